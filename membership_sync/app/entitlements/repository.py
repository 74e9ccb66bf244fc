"""Postgres implementations of the membership, course and bundle collaborators."""
from __future__ import annotations

from typing import Optional, Set

from ..db import PostgresRepository
from .models import (
    CourseId,
    CoursePricing,
    CyclePeriod,
    LevelDetails,
    LevelMetaKey,
    MembershipLevelId,
    UserId,
)

FREE_PRICE_TYPE = "free"


def _row_to_level(row: dict) -> LevelDetails:
    period = (row.get("cycle_period") or "").strip().lower()
    return LevelDetails(
        level_id=int(row["id"]),
        name=row.get("name") or "",
        initial_payment=float(row.get("initial_payment") or 0),
        billing_amount=float(row.get("billing_amount") or 0),
        cycle_number=int(row.get("cycle_number") or 0),
        cycle_period=CyclePeriod(period) if period else None,
        billing_limit=int(row.get("billing_limit") or 0),
        trial_amount=float(row.get("trial_amount") or 0),
        trial_limit=int(row.get("trial_limit") or 0),
    )


def _row_to_pricing(row: dict) -> CoursePricing:
    return CoursePricing(
        course_id=int(row["course_id"]),
        is_public=bool(row.get("is_public")),
        is_free=(row.get("price_type") or "") == FREE_PRICE_TYPE,
    )


class PostgresMembershipDirectory(PostgresRepository):
    """Membership levels, level metadata and the level/course join table."""

    def __init__(self, *, course_content_type: str = "courses", conn=None) -> None:
        super().__init__(conn=conn)
        self._course_content_type = course_content_type

    def get_active_levels(self, user_id: UserId) -> Set[MembershipLevelId]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT DISTINCT level_id
                FROM membership_user_levels
                WHERE user_id = %s
                  AND status = 'active'
                  AND (enddate IS NULL OR enddate > NOW())
                """,
                (user_id,),
            )
            return {MembershipLevelId(int(row["level_id"])) for row in cursor.fetchall() or []}

    def get_level(self, level_id: MembershipLevelId) -> Optional[LevelDetails]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM membership_levels
                WHERE id = %s
                LIMIT 1
                """,
                (level_id,),
            )
            row = cursor.fetchone()
            return _row_to_level(row) if row else None

    def get_level_course_ids(self, level_id: MembershipLevelId) -> Set[CourseId]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT lc.course_id
                FROM membership_level_courses AS lc
                JOIN courses AS c ON c.course_id = lc.course_id
                WHERE lc.level_id = %s
                  AND c.content_type = %s
                  AND c.status = 'publish'
                GROUP BY lc.course_id
                """,
                (level_id, self._course_content_type),
            )
            return {CourseId(int(row["course_id"])) for row in cursor.fetchall() or []}

    def get_level_meta(self, level_id: MembershipLevelId, key: LevelMetaKey) -> Optional[str]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT meta_value
                FROM membership_level_meta
                WHERE level_id = %s AND meta_key = %s
                LIMIT 1
                """,
                (level_id, key.value),
            )
            row = cursor.fetchone()
            return row["meta_value"] if row else None

    def get_level_associations(self, course_id: CourseId) -> Set[MembershipLevelId]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT level_id FROM membership_level_courses WHERE course_id = %s",
                (course_id,),
            )
            return {MembershipLevelId(int(row["level_id"])) for row in cursor.fetchall() or []}

    def add_level_association(self, course_id: CourseId, level_id: MembershipLevelId) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO membership_level_courses (level_id, course_id)
                VALUES (%s, %s)
                ON CONFLICT (level_id, course_id) DO NOTHING
                """,
                (level_id, course_id),
            )

    def remove_level_association(self, course_id: CourseId, level_id: MembershipLevelId) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "DELETE FROM membership_level_courses WHERE course_id = %s AND level_id = %s",
                (course_id, level_id),
            )

    def remove_level_associations(self, level_id: MembershipLevelId) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM membership_level_courses WHERE level_id = %s", (level_id,))


class PostgresCourseCatalog(PostgresRepository):
    """Course publication and price attributes from the ``courses`` table."""

    def __init__(
        self,
        *,
        course_content_type: str = "courses",
        bundle_content_type: str = "course-bundle",
        conn=None,
    ) -> None:
        super().__init__(conn=conn)
        self._course_content_type = course_content_type
        self._bundle_content_type = bundle_content_type

    def get_course_pricing(self, course_id: CourseId) -> Optional[CoursePricing]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT course_id, is_public, price_type
                FROM courses
                WHERE course_id = %s
                LIMIT 1
                """,
                (course_id,),
            )
            row = cursor.fetchone()
            return _row_to_pricing(row) if row else None

    def course_exists_published(self, course_id: CourseId) -> bool:
        return self._has_content_type(course_id, self._course_content_type, published_only=True)

    def is_bundle(self, course_id: CourseId) -> bool:
        return self._has_content_type(course_id, self._bundle_content_type, published_only=False)

    def _has_content_type(self, course_id: CourseId, content_type: str, *, published_only: bool) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT 1
                FROM courses
                WHERE course_id = %s
                  AND content_type = %s
                  AND (NOT %s OR status = 'publish')
                LIMIT 1
                """,
                (course_id, content_type, published_only),
            )
            return cursor.fetchone() is not None


class PostgresBundleCatalog(PostgresRepository):
    """Bundle membership from the ``course_bundle_items`` table."""

    def get_bundle_course_ids(self, bundle_id: int) -> Set[CourseId]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT course_id FROM course_bundle_items WHERE bundle_id = %s",
                (bundle_id,),
            )
            return {CourseId(int(row["course_id"])) for row in cursor.fetchall() or []}


__all__ = [
    "PostgresBundleCatalog",
    "PostgresCourseCatalog",
    "PostgresMembershipDirectory",
]
