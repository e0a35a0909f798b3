"""
Translation of exceptions into error responses.
"""

import logging
import traceback
from typing import Any, Dict, List, Optional

from .exceptions import (
    ApiError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from .models import Response, ResponseCode

GENERIC_ERROR_MESSAGE = "Internal server error"

# Frames of traceback kept in debug responses
TRACE_DEPTH = 5


class ExceptionHandler:
    """Turns any exception raised while handling a request into a ``Response``.

    Args:
        debug: Include the exception message and trace in responses
        logger: Logger receiving one record per handled exception
    """

    def __init__(self, debug: bool = False, logger: Optional[logging.Logger] = None):
        self.debug = debug
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    def handle(self, exception: BaseException) -> Response:
        self.log_exception(exception)

        if isinstance(exception, ValidationError):
            return Response.validation_error(exception.errors, exception.message)
        if isinstance(exception, NotFoundError):
            return Response.not_found(exception.message, exception.code)
        if isinstance(exception, UnauthorizedError):
            return Response.error(exception.message, exception.code, None, 401)
        if isinstance(exception, ForbiddenError):
            return Response.forbidden(exception.message, exception.code)
        if isinstance(exception, ApiError):
            return Response.error(
                exception.message,
                exception.code or ResponseCode.ERROR,
                exception.data if exception.data is not None else self.exception_data(exception),
                exception.status_code,
            )

        message = (str(exception) or type(exception).__name__) if self.debug else GENERIC_ERROR_MESSAGE
        return Response.error(message, ResponseCode.SERVER_ERROR, self.exception_data(exception), 500)

    def log_exception(self, exception: BaseException) -> None:
        name = type(exception).__name__
        if isinstance(exception, (ValidationError, NotFoundError)):
            self.logger.info(f"{name}: {exception}")
        elif isinstance(exception, ApiError):
            self.logger.warning(f"{name}: {exception}")
        else:
            self.logger.error(f"Unhandled {name}: {exception}", exc_info=exception)

    def exception_data(self, exception: BaseException) -> Optional[Dict[str, Any]]:
        """Exception details for debug responses; ``None`` outside debug mode."""
        if not self.debug:
            return None
        return {
            "exception": f"{type(exception).__module__}.{type(exception).__qualname__}",
            "trace": self.format_trace(exception),
        }

    @staticmethod
    def format_trace(exception: BaseException) -> List[Dict[str, Any]]:
        frames = traceback.extract_tb(exception.__traceback__)[-TRACE_DEPTH:]
        return [
            {"file": frame.filename, "line": frame.lineno, "function": frame.name}
            for frame in frames
        ]
