from pydantic import BaseModel, Field
from typing import Any, Optional
import uuid


def _rid():
    return uuid.uuid4().hex


class SuccessResponse(BaseModel):
    """Envelope for every admin/API success: data, success flag and request_id"""
    success: Optional[bool] = Field(default=True)
    request_id: str = Field(default_factory=_rid)
    data: Optional[Any] = None


class PageResponse(SuccessResponse):
    """List envelope; ``count`` is the number of rows in ``data``."""
    count: int = 0
    limit: int = 50
    offset: int = 0
