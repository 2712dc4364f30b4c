"""
agora.errors — Typed Failure Outcomes
======================================

Expected outcomes (not found, forbidden, conflict, validation) are raised as
:class:`ForumError` subclasses and reach the caller verbatim.  Anything else
that escapes a write path is logged with its stack and re-raised as a
generic :class:`InternalError`, so the cause is never lost and never leaked.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class ForumError(Exception):
    """Base class for every outcome the API reports to callers."""

    status_code = 400
    code = "forum_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ForumError):
    status_code = 404
    code = "not_found"


class ForbiddenError(ForumError):
    status_code = 403
    code = "forbidden"


class ConflictError(ForumError):
    status_code = 409
    code = "conflict"


class ValidationError(ForumError):
    status_code = 422
    code = "validation_error"


class InternalError(ForumError):
    status_code = 500
    code = "internal_error"


def guard_write(action: str) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorate a write-path service function.

    ``ForumError`` passes through untouched; any other exception is logged
    and converted to ``InternalError("Failed to <action>")``.
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except ForumError:
                raise
            except Exception as exc:
                logger.exception("Unexpected failure in %s (%s)", func.__qualname__, action)
                raise InternalError(f"Failed to {action}") from exc

        return wrapper

    return decorator
