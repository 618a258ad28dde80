"""Error taxonomy for the moderation engine."""

from __future__ import annotations


class ModerationError(Exception):
    """Base class for every error raised by the moderation engine."""

    # Validation failures are surfaced immediately and never retried.
    retryable = False


class ValidationError(ModerationError, ValueError):
    """Malformed input (unknown reason, missing description, ...)."""


class DuplicateReport(ModerationError):
    """The reporter already reported this piece of content."""

    def __init__(self, content_id: str) -> None:
        super().__init__(f"You have already reported this content ({content_id})")
        self.content_id = content_id


class NotFound(ModerationError):
    """A report, content item, user or restriction does not exist."""

    def __init__(self, kind: str, ident: str) -> None:
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class InvalidTransition(ModerationError):
    """Action not allowed in the report's current status, or missing fields."""


class Unauthorized(ModerationError):
    """Actor lacks the moderator role or crossed a tenant boundary."""


class DependencyUnavailable(ModerationError):
    """A backing store failed transiently (after the single retry)."""

    retryable = True
