"""Errors raised by bracket services."""


class BracketError(Exception):
    """Base class for bracket errors."""


class ValidationError(BracketError):
    """Malformed input (e.g. duplicate participant ids). Nothing was produced or written."""


class ConflictError(BracketError):
    """Result rejected: match already completed, or winner not in the match."""


class NotFoundError(BracketError):
    """Referenced match, participant, team, tournament or game does not exist."""


class StorageError(BracketError):
    """Underlying store failed. The whole operation was rolled back."""
