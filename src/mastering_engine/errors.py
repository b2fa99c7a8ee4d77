"""Error types shared by analysis, chain construction and job processing."""

from __future__ import annotations


class MasteringError(Exception):
    """Base class for all mastering engine errors."""


class ValidationError(MasteringError, ValueError):
    """Input rejected at the boundary before it can enter processing."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def as_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class ProcessingError(MasteringError):
    """A module or requirement failed while processing a request."""
