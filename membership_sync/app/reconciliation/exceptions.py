"""Custom exceptions raised by the event adapters."""
from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, status


@dataclass
class MalformedEventError(ValueError):
    """A lifecycle notification lacks the data needed to reconcile safely."""

    event: str
    reason: str

    def __post_init__(self) -> None:
        super().__init__(f"{self.event}: {self.reason}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "malformed_event", "event": self.event, "message": self.reason},
        )
