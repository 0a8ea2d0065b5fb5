"""
Pilbum Backend — Shared Schema Base Classes
=============================================

What:  Base model and the generic response shapes used by every router.
How:   JSON keys are camelCase (the bundled client's contract); requests may
       use either camelCase or snake_case. Validation messages that reach the
       user are raised as PydanticCustomError so the text is exactly the
       Chinese message, with no "Value error, " prefix.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def invalid(message: str) -> PydanticCustomError:
    """A validation error whose message is shown to the user verbatim."""
    return PydanticCustomError("value_error", message)


class SuccessResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """
    Returned by the global exception handlers for every error status.
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="User-facing message (Chinese)")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Extra context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
