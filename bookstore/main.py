"""
Bookstore Order & Inventory Core
FastAPI application entry point

- Rate limiting with SlowAPI
- Error sanitization middleware and structured domain error bodies
- Health endpoint with DB ping
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.config import settings
from bookstore.core.database import create_tables, engine, get_db
from bookstore.core.error_handler import ErrorSanitizationMiddleware, register_exception_handlers
from bookstore.core.rate_limit import limiter, rate_limit_exceeded_handler
from bookstore.core.utils import utcnow
from bookstore.schemas.common import ErrorResponse
from bookstore.api.routes import admin_inventory, admin_orders, cart, inventory, orders

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DB_CREATE_TABLES:
        logger.info("Creating database tables")
        await create_tables()
    logger.info(f"{settings.APP_NAME} started (environment={settings.ENVIRONMENT})")
    yield
    await engine.dispose()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    lifespan=lifespan,
    title=f"{settings.APP_NAME} API",
    description="Shopping carts, inventory ledger and order lifecycle for the bookstore.",
    version="1.0.0",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
register_exception_handlers(app)

app.add_middleware(ErrorSanitizationMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Every domain error shares one body shape
ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409)}

# Routes
app.include_router(cart.router, responses=ERROR_RESPONSES)
app.include_router(orders.router, responses=ERROR_RESPONSES)
app.include_router(inventory.router, responses=ERROR_RESPONSES)
app.include_router(admin_orders.router, responses=ERROR_RESPONSES)
app.include_router(admin_inventory.router, responses=ERROR_RESPONSES)


@app.get("/", tags=["Health"])
async def root():
    return {"name": settings.APP_NAME, "status": "ok"}


@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check with an actual DB ping. Returns 503 if the database is unreachable."""
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "timestamp": utcnow().isoformat(),
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check DB ping failed: {type(e).__name__}: {e}")
        await db.rollback()
        health_status["database"] = f"error: {type(e).__name__}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
