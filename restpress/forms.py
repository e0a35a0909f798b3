"""
Form requests: request wrappers that carry their own validation rules.

Declare a subclass and annotate a controller parameter with it; the
request is validated before the action runs and a failing ruleset turns
into a 422 response::

    class StorePostRequest(FormRequest):
        def rules(self):
            return {"title": "required|max:200", "status": "in:draft,publish"}

    class PostController:
        def store(self, form: StorePostRequest):
            return Response.success(form.validated())
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .exceptions import ValidationError
from .models import Request
from .validation import RuleSpec, Validator


class FormRequest(ABC):
    """Base class for validated form requests."""

    def __init__(self, request: Request):
        self.request = request
        self._validated: Optional[Dict[str, Any]] = None

    @abstractmethod
    def rules(self) -> Dict[str, RuleSpec]:
        """Field -> rule spec used to validate the request parameters."""

    def messages(self) -> Dict[str, str]:
        """Custom messages keyed by ``"field.rule"``."""
        return {}

    def validate(self) -> Dict[str, Any]:
        """Validate the request parameters.

        Raises:
            ValidationError: If any rule fails
        """
        data = self.request.all()
        validator = Validator(data, self.rules(), self.messages())
        if not validator.validate():
            raise ValidationError(validator.errors())
        self._validated = data
        return self._validated

    def validated(self) -> Dict[str, Any]:
        if self._validated is None:
            self.validate()
        return self._validated

    def get(self, key: str, default: Any = None) -> Any:
        return self.validated().get(key, default)

    def __getattr__(self, name: str) -> Any:
        # Only reached for attributes the form itself lacks
        if name == "request":
            raise AttributeError(name)
        return getattr(self.request, name)

    @classmethod
    def create_from(cls, request: Request) -> "FormRequest":
        return cls(request)
