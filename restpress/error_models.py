"""
Response envelope model for restpress.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


ENVELOPE_KEYS = frozenset({"code", "data", "msg"})


class ResponseEnvelope(BaseModel):
    """Standard response envelope.

    Every response built by ``Response`` factories has this shape. ``code``
    is 0 on success and a non-zero ``ResponseCode`` otherwise.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": 422,
                "data": {"email": ["The email must be a valid email address."]},
                "msg": "Validation Failed",
            }
        }
    )

    code: int = Field(
        ...,
        description="Machine-readable response code, 0 on success"
    )

    data: Any = Field(
        None,
        description="Response payload, or error details for failures"
    )

    msg: str = Field(
        ...,
        description="Human-readable message describing the outcome"
    )

    @staticmethod
    def is_envelope(body: Any) -> bool:
        return isinstance(body, dict) and set(body) == ENVELOPE_KEYS

    @property
    def succeeded(self) -> bool:
        return self.code == 0

    @classmethod
    def from_validation_errors(
        cls,
        errors: Dict[str, List[str]],
        message: str = "Validation Failed",
        code: Optional[int] = None,
    ) -> "ResponseEnvelope":
        """Create an envelope carrying a per-field validation error map."""
        return cls(code=422 if code is None else code, data=errors, msg=message)
