"""Errors raised while mutating the enrollment store."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class EnrollmentStoreError(Exception):
    """A write to the enrollment store failed; the caller decides what to do next."""

    operation: str
    user_id: int
    course_id: Optional[int] = None
    message: str = "enrollment store unavailable"

    def __post_init__(self) -> None:
        super().__init__(
            f"{self.operation} failed for user={self.user_id} course={self.course_id}: {self.message}"
        )
