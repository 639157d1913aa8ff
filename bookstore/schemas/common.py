"""
Shared schema bits: camelCase wire format and the error body
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serialized as camelCase; snake_case is accepted on input too."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorResponse(BaseModel):
    error: str
    message: str
    code: str
    path: str
    timestamp: datetime
    details: Optional[Dict[str, Any]] = None
