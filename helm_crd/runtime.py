"""Process wide sink for errors that can not be returned to a caller.

Errors that are given up on, such as a key that failed too many times, are
reported here. Every error is logged and passed to the registered handlers.
"""

from collections.abc import Callable
import logging

__all__ = [
    "add_error_handler",
    "handle_error",
]

_LOGGER = logging.getLogger(__name__)

ErrorHandler = Callable[[BaseException], None]

_handlers: list[ErrorHandler] = []


def add_error_handler(handler: ErrorHandler) -> Callable[[], None]:
    """Register a handler for reported errors, returning a function to remove it."""

    def remove() -> None:
        if handler in _handlers:
            _handlers.remove(handler)

    _handlers.append(handler)
    return remove


def handle_error(err: BaseException) -> None:
    """Report an error that can not be handled by the caller."""
    _LOGGER.error("Unhandled error: %s", err)
    for handler in list(_handlers):
        try:
            handler(err)
        except Exception:
            _LOGGER.exception("Error handler failed")
