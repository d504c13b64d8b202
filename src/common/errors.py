# ABOUTME: Declares the error taxonomy shared by every scoring domain.
# ABOUTME: Insufficient data and degenerate fits are values, so they have no class here.


class AnalyticsError(Exception):
    """Base class for failures surfaced by the analytics engine."""


class NotFoundError(AnalyticsError, LookupError):
    """A referenced course, lecture, student, educator or record does not exist."""

    def __init__(self, kind: str, identifier) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found")


class InvalidInputError(AnalyticsError, ValueError):
    """Malformed key or raw value; raised before any store mutation."""


class StoreConflictError(AnalyticsError):
    """The record store could not complete an atomic merge or upsert.

    The engine never retries; callers decide whether to.
    """
