"""Exceptions raised by the session, match and store layers."""

from __future__ import annotations

from typing import Any, Dict, Optional


class MemoryMatchError(Exception):
    """Base class for every error scoped to a single game session."""

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {"error": self.__class__.__name__, "message": str(self)}


class SessionNotFound(MemoryMatchError):
    """Raised when a join code has no session document behind it."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"No session exists for code {code}")


class SessionFull(MemoryMatchError):
    """Raised when the guest slot of a session is already taken."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Session {code} is full")


class AlreadyStarted(MemoryMatchError):
    """Raised when joining a session that is no longer waiting for a guest."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Session {code} has already started")


class ActionNotAllowed(MemoryMatchError):
    """Raised for lobby intents the caller may not perform right now."""


class InvalidMove(MemoryMatchError):
    """Raised when a flip breaks the turn rules."""

    def __init__(self, role: str, index: Optional[int], reason: str):
        self.role = role
        self.index = index
        self.reason = reason
        super().__init__(f"Invalid move by {role}: {reason}")

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update({"role": self.role, "index": self.index, "reason": self.reason})
        return payload


class StoreUnavailable(MemoryMatchError):
    """Raised when the shared document store cannot serve a read or write."""


class DocumentDecodeError(StoreUnavailable):
    """Raised when a stored session document does not match the schema."""


class SessionClosed(MemoryMatchError):
    """Raised when the session document disappeared under an active party."""


class DocumentExists(MemoryMatchError):
    """Raised when creating a document at a path that is already taken."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Document already exists at {path}")


class DocumentNotFound(MemoryMatchError):
    """Raised when writing below a document that does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No document at {path}")
