"""Exceptions raised by the session store and mutation engine."""

from pathlib import Path


class SessionError(Exception):
    """Base class for all recoverable session-management failures."""


class NotFoundError(SessionError):
    """A project, session or record does not exist."""


class MalformedRecordError(SessionError):
    """A session log line is not valid JSON."""

    def __init__(self, path: Path, line_number: int, detail: str = ""):
        self.path = path
        self.line_number = line_number
        message = f"Malformed record at {path}:{line_number}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class EmptySessionError(SessionError):
    """The session has no records."""


class NoUserMessageError(SessionError):
    """The session has no user record to carry a title."""


class InvalidSplitPointError(SessionError):
    """A split would leave the original session empty."""


class InvalidTargetError(SessionError):
    """The operation's target is not acceptable (wrong record kind, same project, ...)."""


class StorageError(SessionError):
    """A filesystem call failed while reading, writing or moving a file."""
