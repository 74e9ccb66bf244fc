"""Lifecycle notifications and reconciliation values."""
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..enrollment.models import EnrollmentRecord, OrderReference


class EventSource(str, Enum):
    """Lifecycle notification that produced a reconciliation."""

    CHECKOUT_COMPLETED = "checkout_completed"
    LEVEL_CHANGED = "level_changed"
    LEVELS_CHANGED = "levels_changed"
    ORDER_REFUNDED = "order_refunded"
    MANUAL = "manual"


class MembershipOrder(BaseModel):
    """Order object as delivered by the membership system; any field may be missing."""

    order_id: Optional[int] = None
    code: Optional[str] = None
    user_id: Optional[int] = None
    membership_id: Optional[int] = None
    status: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def reference(self) -> OrderReference:
        return OrderReference(order_id=self.order_id or None, order_code=self.code or None)


class CheckoutCompleted(BaseModel):
    user_id: Optional[int] = None
    order: Optional[MembershipOrder] = None
    previous_level_ids: Optional[FrozenSet[int]] = None

    model_config = ConfigDict(frozen=True)


class LevelChanged(BaseModel):
    """A single level change; ``new_level_id`` is 0 when the level was cancelled."""

    user_id: Optional[int] = None
    new_level_id: int = Field(default=0, ge=0)
    cancelled_level_id: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class LevelsChanged(BaseModel):
    """Plan-wide change: each affected user's levels before the change."""

    old_levels_by_user: Dict[int, FrozenSet[int]] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class OrderRefunded(BaseModel):
    order: MembershipOrder
    old_status: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class EnrollmentCompleted(BaseModel):
    """An enrollment the course platform created on its own (manual or purchase)."""

    course_id: int = Field(gt=0)
    user_id: int = Field(gt=0)
    enrollment_id: int = Field(gt=0)

    model_config = ConfigDict(frozen=True)


class ReconciliationEvent(BaseModel):
    """Previous and current level ids for one user; never persisted."""

    user_id: int = Field(gt=0)
    previous_level_ids: FrozenSet[int]
    current_level_ids: FrozenSet[int]
    source: EventSource = EventSource.MANUAL
    origin_level_id: Optional[int] = None
    order: Optional[OrderReference] = None

    model_config = ConfigDict(frozen=True)


class ReconciliationResult(BaseModel):
    """What a reconciliation wanted to change and what it actually changed."""

    user_id: int
    source: EventSource
    to_enroll: FrozenSet[int] = frozenset()
    to_unenroll: FrozenSet[int] = frozenset()
    enrolled: Tuple[EnrollmentRecord, ...] = ()
    unenrolled: FrozenSet[int] = frozenset()

    model_config = ConfigDict(frozen=True)

    @property
    def mutation_count(self) -> int:
        return len(self.enrolled) + len(self.unenrolled)


class EnrollmentObservation(BaseModel):
    """Outcome of flagging an externally created enrollment."""

    user_id: int
    enrollment_id: int
    flagged: bool = False
    level_id: Optional[int] = None
    bundle_enrollments: Tuple[EnrollmentRecord, ...] = ()

    model_config = ConfigDict(frozen=True)


class AssociationChange(BaseModel):
    course_id: int
    added: FrozenSet[int] = frozenset()
    removed: FrozenSet[int] = frozenset()

    model_config = ConfigDict(frozen=True)
