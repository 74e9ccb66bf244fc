"""Persistence layer for course enrollment records."""
from __future__ import annotations

from typing import Optional

from ..db import PostgresRepository
from .models import EnrollmentProvenance, EnrollmentRecord, EnrollmentStatus


def _row_to_enrollment(row: dict) -> EnrollmentRecord:
    return EnrollmentRecord(
        enrollment_id=int(row["enrollment_id"]),
        user_id=int(row["user_id"]),
        course_id=int(row["course_id"]),
        status=EnrollmentStatus(row["status"]),
        origin_level_id=row.get("origin_level_id"),
        is_membership_enrollment=bool(row.get("is_membership_enrollment")),
        via_bundle=bool(row.get("via_bundle")),
        order_id=row.get("order_id"),
        order_code=row.get("order_code"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresEnrollmentStore(PostgresRepository):
    """Enrollment store backed by the ``course_enrollments`` table.

    One row exists per (user, course); unenrolling flips ``status`` and keeps the
    provenance columns for audit and refund handling.
    """

    def is_enrolled(self, user_id: int, course_id: int) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT 1
                FROM course_enrollments
                WHERE user_id = %s AND course_id = %s AND status = %s
                LIMIT 1
                """,
                (user_id, course_id, EnrollmentStatus.ACTIVE.value),
            )
            return cursor.fetchone() is not None

    def get_enrollment(self, user_id: int, course_id: int) -> Optional[EnrollmentRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM course_enrollments
                WHERE user_id = %s AND course_id = %s
                LIMIT 1
                """,
                (user_id, course_id),
            )
            row = cursor.fetchone()
            return _row_to_enrollment(row) if row else None

    def create_or_reactivate_enrollment(
        self,
        user_id: int,
        course_id: int,
        provenance: EnrollmentProvenance,
    ) -> EnrollmentRecord:
        order = provenance.order
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO course_enrollments (
                    user_id,
                    course_id,
                    status,
                    origin_level_id,
                    is_membership_enrollment,
                    via_bundle,
                    order_id,
                    order_code
                )
                VALUES (%(user_id)s, %(course_id)s, %(status)s, %(origin_level_id)s,
                        %(is_membership_enrollment)s, %(via_bundle)s, %(order_id)s, %(order_code)s)
                ON CONFLICT (user_id, course_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    origin_level_id = EXCLUDED.origin_level_id,
                    is_membership_enrollment = EXCLUDED.is_membership_enrollment,
                    via_bundle = EXCLUDED.via_bundle,
                    order_id = COALESCE(EXCLUDED.order_id, course_enrollments.order_id),
                    order_code = COALESCE(EXCLUDED.order_code, course_enrollments.order_code),
                    updated_at = NOW()
                RETURNING *
                """,
                {
                    "user_id": user_id,
                    "course_id": course_id,
                    "status": EnrollmentStatus.ACTIVE.value,
                    "origin_level_id": provenance.origin_level_id,
                    "is_membership_enrollment": provenance.is_membership_enrollment,
                    "via_bundle": provenance.via_bundle,
                    "order_id": order.order_id if order else None,
                    "order_code": order.order_code if order else None,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist enrollment")
            return _row_to_enrollment(row)

    def cancel_enrollment(self, user_id: int, course_id: int) -> Optional[EnrollmentRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE course_enrollments
                SET status = %s, updated_at = NOW()
                WHERE user_id = %s AND course_id = %s AND status = %s
                RETURNING *
                """,
                (EnrollmentStatus.CANCELLED.value, user_id, course_id, EnrollmentStatus.ACTIVE.value),
            )
            row = cursor.fetchone()
            return _row_to_enrollment(row) if row else None

    def mark_membership_enrollment(self, enrollment_id: int, level_id: int) -> Optional[EnrollmentRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE course_enrollments
                SET is_membership_enrollment = TRUE,
                    origin_level_id = %s,
                    updated_at = NOW()
                WHERE enrollment_id = %s
                RETURNING *
                """,
                (level_id, enrollment_id),
            )
            row = cursor.fetchone()
            return _row_to_enrollment(row) if row else None


__all__ = ["PostgresEnrollmentStore"]
