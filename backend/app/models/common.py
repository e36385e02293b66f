"""
Response envelope shared by every endpoint.
"""
from pydantic import BaseModel
from typing import Any, List, Optional


class ApiResponse(BaseModel):
    """``{success, message, data?|errors?}``"""
    success: bool
    message: str
    data: Optional[Any] = None
    errors: Optional[List[str]] = None


def envelope(message: str, data: Any = None, **extra) -> dict:
    """Build a success body; ``extra`` carries listing metadata such as ``count``."""
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def error_envelope(message: str, errors: Optional[List[str]] = None) -> dict:
    body = ApiResponse(success=False, message=message, errors=errors or None)
    return body.model_dump(exclude_none=True)
