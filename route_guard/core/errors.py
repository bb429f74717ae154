"""Domain exceptions raised by the limiter, the stores and the dispatch hook.

Handlers in ``route_guard.core.exception_handlers`` turn these into JSON
error bodies; nothing below knows about HTTP.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    retry_after: int
    backend: str
    rule_keys: list[str]
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Root of the route-guard error hierarchy.

    ``code`` is stable and meant for clients to branch on; ``message`` is for
    humans. ``details`` is echoed in the response body when present.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Bad rule definitions or limiter configuration."""


class RateLimitAppError(AppError):
    """A locked rule rejected the request."""

    @property
    def retry_after(self) -> int:
        return int((self.details or {}).get("retry_after", 1))


class StoreUnavailableAppError(AppError):
    """The counter/lock backend could not be reached."""
