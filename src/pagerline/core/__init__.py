"""Core modules for pagerline - centralized definitions and utilities."""

from pagerline.core.errors import (
    ConfigurationError,
    ExitCode,
    InfrastructureError,
    NotFoundError,
    PagerlineError,
    ValidationError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "PagerlineError",
    "NotFoundError",
    "ValidationError",
    "ConfigurationError",
    "InfrastructureError",
    "main_with_error_handling",
    "format_error_message",
]
