"""Idempotent application of enrollment changes to the enrollment store."""
from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol, Tuple, TypeVar

from .exceptions import EnrollmentStoreError
from .models import EnrollmentProvenance, EnrollmentRecord, OrderReference

logger = logging.getLogger("membership_sync.enrollment")

T = TypeVar("T")


class EnrollmentStore(Protocol):
    """Persistence operations of the course platform's enrollment table."""

    def is_enrolled(self, user_id: int, course_id: int) -> bool:
        ...

    def get_enrollment(self, user_id: int, course_id: int) -> Optional[EnrollmentRecord]:
        ...

    def create_or_reactivate_enrollment(
        self,
        user_id: int,
        course_id: int,
        provenance: EnrollmentProvenance,
    ) -> EnrollmentRecord:
        """Insert a record or flip an existing one back to active, stamping provenance."""

    def cancel_enrollment(self, user_id: int, course_id: int) -> Optional[EnrollmentRecord]:
        ...

    def mark_membership_enrollment(self, enrollment_id: int, level_id: int) -> Optional[EnrollmentRecord]:
        ...


class EnrollmentMutator:
    """Enrolls and unenrolls users without duplicate writes or status churn.

    Failures of the store are raised as :class:`EnrollmentStoreError` and are not
    retried; every operation is safe to repeat.
    """

    def __init__(self, store: EnrollmentStore) -> None:
        self._store = store

    def apply_enroll(
        self,
        user_id: int,
        course_id: int,
        origin_level_id: Optional[int],
        *,
        via_bundle: bool = False,
        order: Optional[OrderReference] = None,
    ) -> EnrollmentRecord:
        record, _ = self.ensure_enrolled(
            user_id, course_id, origin_level_id, via_bundle=via_bundle, order=order
        )
        return record

    def ensure_enrolled(
        self,
        user_id: int,
        course_id: int,
        origin_level_id: Optional[int],
        *,
        via_bundle: bool = False,
        order: Optional[OrderReference] = None,
    ) -> Tuple[EnrollmentRecord, bool]:
        """Return the active record and whether this call created or reactivated it."""

        existing = self._call(
            "get_enrollment", user_id, course_id, lambda: self._store.get_enrollment(user_id, course_id)
        )
        if existing is not None and existing.is_active:
            return existing, False

        provenance = EnrollmentProvenance(
            origin_level_id=origin_level_id,
            via_bundle=via_bundle,
            is_membership_enrollment=True,
            order=order,
        )
        record = self._call(
            "enroll",
            user_id,
            course_id,
            lambda: self._store.create_or_reactivate_enrollment(user_id, course_id, provenance),
        )
        logger.info(
            "Enrolled user=%s course=%s enrollment=%s level=%s bundle=%s",
            user_id,
            course_id,
            record.enrollment_id,
            origin_level_id,
            via_bundle,
        )
        return record, True

    def apply_unenroll(self, user_id: int, course_id: int) -> bool:
        """Cancel the active enrollment; returns ``False`` when there was nothing to cancel."""

        enrolled = self._call(
            "is_enrolled", user_id, course_id, lambda: self._store.is_enrolled(user_id, course_id)
        )
        if not enrolled:
            return False
        self._call("unenroll", user_id, course_id, lambda: self._store.cancel_enrollment(user_id, course_id))
        logger.info("Unenrolled user=%s course=%s", user_id, course_id)
        return True

    def mark_membership_enrollment(self, user_id: int, enrollment_id: int, level_id: int) -> Optional[EnrollmentRecord]:
        return self._call(
            "mark_membership_enrollment",
            user_id,
            None,
            lambda: self._store.mark_membership_enrollment(enrollment_id, level_id),
        )

    def is_enrolled_by_membership(self, user_id: int, course_id: int) -> bool:
        """True for an active enrollment flagged as membership-based, False for individual purchases."""
        record = self._call(
            "get_enrollment", user_id, course_id, lambda: self._store.get_enrollment(user_id, course_id)
        )
        return bool(record and record.is_active and record.is_membership_enrollment)

    @staticmethod
    def _call(operation: str, user_id: int, course_id: Optional[int], func: Callable[[], T]) -> T:
        try:
            return func()
        except EnrollmentStoreError:
            raise
        except Exception as exc:
            raise EnrollmentStoreError(
                operation=operation, user_id=user_id, course_id=course_id, message=str(exc)
            ) from exc


__all__ = ["EnrollmentMutator", "EnrollmentStore"]
