"""
Application settings.
"""

import logging
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Settings(BaseModel):
    """Runtime configuration shared by the application, router and error handler."""

    model_config = ConfigDict(extra="allow", validate_assignment=True)

    debug: bool = Field(
        False,
        description="Include exception details in error responses"
    )

    namespace: str = Field(
        "api/v1",
        description="Default REST namespace for routes declared outside a namespaced group"
    )

    log_level: str = Field(
        "WARNING",
        description="Level applied to the restpress logger by Application.configure_logging()"
    )

    base_path: str = Field(
        "",
        description="Plugin or theme root directory"
    )

    @field_validator("namespace")
    @classmethod
    def _strip_namespace(cls, value: str) -> str:
        return value.strip("/")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "Settings":
        return cls.model_validate(dict(values))

    def merged(self, **values: Any) -> "Settings":
        """A copy with ``values`` applied, validated again."""
        return Settings.model_validate({**self.model_dump(), **values})
