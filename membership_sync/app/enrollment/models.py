"""Domain models for course enrollment records."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EnrollmentStatus(str, Enum):
    """Lifecycle state of an enrollment record."""

    ACTIVE = "active"
    CANCELLED = "cancelled"


class OrderReference(BaseModel):
    """Order linkage written on enrollments created by a checkout."""

    order_id: Optional[int] = None
    order_code: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class EnrollmentProvenance(BaseModel):
    """Why an enrollment exists: the granting level and how it was reached."""

    origin_level_id: Optional[int] = None
    via_bundle: bool = False
    is_membership_enrollment: bool = True
    order: Optional[OrderReference] = None

    model_config = ConfigDict(frozen=True)


class EnrollmentRecord(BaseModel):
    """A user's enrollment in a course together with its provenance."""

    enrollment_id: int
    user_id: int
    course_id: int
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    origin_level_id: Optional[int] = None
    is_membership_enrollment: bool = False
    via_bundle: bool = False
    order_id: Optional[int] = None
    order_code: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE
