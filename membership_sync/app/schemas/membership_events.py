"""API schemas for membership lifecycle notifications."""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..reconciliation import (
    CheckoutCompleted,
    EnrollmentCompleted,
    EnrollmentObservation,
    LevelChanged,
    LevelsChanged,
    MembershipOrder,
    OrderRefunded,
    ReconciliationResult,
)


class OrderPayload(BaseModel):
    order_id: Optional[int] = Field(alias="id", default=None)
    code: Optional[str] = None
    user_id: Optional[int] = Field(alias="userId", default=None)
    membership_id: Optional[int] = Field(alias="membershipId", default=None)
    status: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    def to_order(self) -> MembershipOrder:
        return MembershipOrder(
            order_id=self.order_id,
            code=self.code,
            user_id=self.user_id,
            membership_id=self.membership_id,
            status=self.status,
        )


class CheckoutCompletedRequest(BaseModel):
    user_id: Optional[int] = Field(alias="userId", default=None)
    order: Optional[OrderPayload] = None
    previous_level_ids: Optional[List[int]] = Field(alias="previousLevelIds", default=None)

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> CheckoutCompleted:
        return CheckoutCompleted(
            user_id=self.user_id,
            order=self.order.to_order() if self.order else None,
            previous_level_ids=frozenset(self.previous_level_ids) if self.previous_level_ids is not None else None,
        )


class LevelChangedRequest(BaseModel):
    user_id: Optional[int] = Field(alias="userId", default=None)
    level_id: int = Field(alias="levelId", default=0, ge=0)
    cancel_level_id: Optional[int] = Field(alias="cancelLevelId", default=None)

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> LevelChanged:
        return LevelChanged(
            user_id=self.user_id,
            new_level_id=self.level_id,
            cancelled_level_id=self.cancel_level_id,
        )


class LevelsChangedRequest(BaseModel):
    old_levels: Dict[int, List[int]] = Field(alias="oldLevels", default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> LevelsChanged:
        return LevelsChanged(
            old_levels_by_user={user_id: frozenset(levels) for user_id, levels in self.old_levels.items()}
        )


class OrderRefundedRequest(BaseModel):
    order: OrderPayload
    old_status: Optional[str] = Field(alias="oldStatus", default=None)

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> OrderRefunded:
        return OrderRefunded(order=self.order.to_order(), old_status=self.old_status)


class EnrollmentCompletedRequest(BaseModel):
    course_id: int = Field(alias="courseId", gt=0)
    user_id: int = Field(alias="userId", gt=0)
    enrollment_id: int = Field(alias="enrollmentId", gt=0)

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> EnrollmentCompleted:
        return EnrollmentCompleted(
            course_id=self.course_id,
            user_id=self.user_id,
            enrollment_id=self.enrollment_id,
        )


class ReconciliationResponse(BaseModel):
    user_id: int = Field(alias="userId")
    source: str
    enrolled: List[int] = Field(default_factory=list)
    unenrolled: List[int] = Field(default_factory=list)
    unchanged: List[int] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: ReconciliationResult) -> "ReconciliationResponse":
        enrolled = sorted(record.course_id for record in result.enrolled)
        unenrolled = sorted(result.unenrolled)
        touched = set(enrolled) | set(unenrolled)
        return cls(
            user_id=result.user_id,
            source=result.source.value,
            enrolled=enrolled,
            unenrolled=unenrolled,
            unchanged=sorted((result.to_enroll | result.to_unenroll) - touched),
        )


class BatchReconciliationResponse(BaseModel):
    results: List[ReconciliationResponse] = Field(default_factory=list)


class EnrollmentSourceResponse(BaseModel):
    user_id: int = Field(alias="userId")
    course_id: int = Field(alias="courseId")
    membership_enrollment: bool = Field(alias="membershipEnrollment")

    model_config = ConfigDict(populate_by_name=True)


class EnrollmentObservationResponse(BaseModel):
    enrollment_id: int = Field(alias="enrollmentId")
    flagged: bool
    level_id: Optional[int] = Field(alias="levelId", default=None)
    bundle_course_ids: List[int] = Field(alias="bundleCourseIds", default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_observation(cls, observation: EnrollmentObservation) -> "EnrollmentObservationResponse":
        return cls(
            enrollment_id=observation.enrollment_id,
            flagged=observation.flagged,
            level_id=observation.level_id,
            bundle_course_ids=sorted(record.course_id for record in observation.bundle_enrollments),
        )
