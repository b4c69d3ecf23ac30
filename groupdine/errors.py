from __future__ import annotations


class GroupDineError(Exception):
    """Base class for errors surfaced to callers with a human-readable message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(GroupDineError):
    """A session or participant does not exist."""


class ValidationError(GroupDineError):
    """Caller input is missing or unusable."""


class EmptyInputError(ValidationError):
    """An aggregation was asked to work on nothing."""


class NoPreferencesError(EmptyInputError):
    def __init__(self, message: str = "No preferences submitted yet") -> None:
        super().__init__(message)


class SessionBusyError(ValidationError):
    def __init__(self, message: str = "Consensus is already running for this session") -> None:
        super().__init__(message)


class UpstreamError(GroupDineError):
    """The search or reasoning provider failed."""
