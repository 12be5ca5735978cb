"""
Unified error handling for pagerline.

Every error raised on purpose by pagerline derives from PagerlineError and
carries both a CLI exit code and an HTTP status code, so the API and the
command line report the same failure the same way.

Exit Codes:
- 0: Success
- 1: Warning (operation succeeded, nothing on call)
- 10: Configuration error
- 11: Infrastructure error (queue/store unavailable)
- 12: Validation error
- 13: Not found
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    WARNING = 1
    CONFIG_ERROR = 10
    INFRASTRUCTURE_ERROR = 11
    VALIDATION_ERROR = 12
    NOT_FOUND = 13
    UNKNOWN_ERROR = 127


class PagerlineError(Exception):
    """Base exception for pagerline errors."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    status_code: int = 500
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(PagerlineError):
    """Raised when a rotation, layer, override, policy or alert group is missing."""

    exit_code = ExitCode.NOT_FOUND
    status_code = 404


class ValidationError(PagerlineError):
    """Raised when a write is rejected before it reaches the store."""

    exit_code = ExitCode.VALIDATION_ERROR
    status_code = 422


class ConfigurationError(PagerlineError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR
    status_code = 500


class InfrastructureError(PagerlineError):
    """Raised when the queue or the store is unavailable.

    Never handled inside a job: it must reach the job runner so the
    delivery is retried.
    """

    exit_code = ExitCode.INFRASTRUCTURE_ERROR
    status_code = 503


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - PagerlineError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except PagerlineError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: PagerlineError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
