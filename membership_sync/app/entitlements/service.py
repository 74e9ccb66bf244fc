"""Resolution of membership levels into the courses they unlock."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Protocol, Set

from .models import (
    CourseId,
    CoursePricing,
    EntitlementSet,
    Grant,
    LevelDetails,
    LevelMetaKey,
    MembershipLevelId,
    UserId,
    as_course_ids,
    normalize_level_ids,
)

logger = logging.getLogger("membership_sync.entitlements")


class MembershipDirectory(Protocol):
    """Read access to membership levels and their course associations."""

    def get_active_levels(self, user_id: UserId) -> Set[MembershipLevelId]:
        ...

    def get_level(self, level_id: MembershipLevelId) -> Optional[LevelDetails]:
        ...

    def get_level_course_ids(self, level_id: MembershipLevelId) -> Set[CourseId]:
        """Published courses attached to the level through the join table."""

    def get_level_meta(self, level_id: MembershipLevelId, key: LevelMetaKey) -> Optional[str]:
        ...

    def get_level_associations(self, course_id: CourseId) -> Set[MembershipLevelId]:
        ...

    def add_level_association(self, course_id: CourseId, level_id: MembershipLevelId) -> None:
        ...

    def remove_level_association(self, course_id: CourseId, level_id: MembershipLevelId) -> None:
        ...

    def remove_level_associations(self, level_id: MembershipLevelId) -> None:
        ...


class CourseCatalog(Protocol):
    """Read access to course price and publication attributes."""

    def get_course_pricing(self, course_id: CourseId) -> Optional[CoursePricing]:
        ...

    def course_exists_published(self, course_id: CourseId) -> bool:
        ...

    def is_bundle(self, course_id: CourseId) -> bool:
        ...


class BundleCatalog(Protocol):
    """Optional catalog describing which courses belong to a bundle."""

    def get_bundle_course_ids(self, bundle_id: int) -> Set[CourseId]:
        ...


def _parse_tag(raw: Optional[str]) -> int:
    if raw is None:
        return 0
    try:
        return int(str(raw).strip())
    except ValueError:
        return 0


class BundleExpander:
    """Expands a bundle id into its member courses, never raising."""

    def __init__(self, bundle_catalog: Optional[BundleCatalog], *, enabled: bool = True) -> None:
        self._bundle_catalog = bundle_catalog
        self._enabled = enabled

    @property
    def available(self) -> bool:
        return self._enabled and self._bundle_catalog is not None

    def expand(self, bundle_id: int) -> Set[CourseId]:
        if not self.available or bundle_id <= 0:
            return set()
        try:
            course_ids = self._bundle_catalog.get_bundle_course_ids(bundle_id)
        except Exception:
            logger.warning("Bundle lookup failed bundle=%s", bundle_id, exc_info=True)
            return set()
        return set(as_course_ids(course_ids or ()))


class EntitlementResolver:
    """Maps membership levels to courses using three unioned strategies.

    1. the level/course join table,
    2. a ``course_id`` tag on the level (course-specific levels),
    3. a ``bundle_id`` tag on the level, expanded through :class:`BundleExpander`.

    A strategy that fails for a level contributes nothing for that level.
    """

    def __init__(
        self,
        directory: MembershipDirectory,
        catalog: CourseCatalog,
        bundle_expander: BundleExpander,
    ) -> None:
        self._directory = directory
        self._catalog = catalog
        self._bundle_expander = bundle_expander

    def resolve(self, level_ids: Optional[Iterable[int]]) -> EntitlementSet:
        grants = self.grants_by_level(level_ids)
        entitlement = EntitlementSet.from_level_grants(grants, grants.keys())
        if grants:
            logger.debug(
                "Resolved levels=%s courses=%s bundle_courses=%s",
                sorted(grants),
                sorted(entitlement.all_courses),
                sorted(entitlement.bundle_courses),
            )
        return entitlement

    def grants_by_level(self, level_ids: Optional[Iterable[int]]) -> Dict[MembershipLevelId, List[Grant]]:
        """Run every strategy once per level.

        Callers that need entitlements for several overlapping level sets build
        each of them from this single result, so one lookup outcome applies to
        every set that contains the level.
        """

        grants: Dict[MembershipLevelId, List[Grant]] = {}
        for level_id in sorted(normalize_level_ids(level_ids)):
            level_grants: List[Grant] = []
            level_grants.extend((course_id, level_id, False) for course_id in self._direct_courses(level_id))
            level_grants.extend((course_id, level_id, False) for course_id in self._tagged_course(level_id))
            level_grants.extend((course_id, level_id, True) for course_id in self._bundle_courses(level_id))
            grants[level_id] = level_grants
        return grants

    def _direct_courses(self, level_id: MembershipLevelId) -> Set[CourseId]:
        try:
            return set(as_course_ids(self._directory.get_level_course_ids(level_id) or ()))
        except Exception:
            logger.warning("Direct course lookup failed level=%s", level_id, exc_info=True)
            return set()

    def _tagged_course(self, level_id: MembershipLevelId) -> Set[CourseId]:
        try:
            course_id = _parse_tag(self._directory.get_level_meta(level_id, LevelMetaKey.COURSE_ID))
            if course_id <= 0:
                return set()
            if not self._catalog.course_exists_published(CourseId(course_id)):
                logger.debug("Ignoring course tag level=%s course=%s (not a published course)", level_id, course_id)
                return set()
        except Exception:
            logger.warning("Course tag lookup failed level=%s", level_id, exc_info=True)
            return set()
        return {CourseId(course_id)}

    def _bundle_courses(self, level_id: MembershipLevelId) -> Set[CourseId]:
        if not self._bundle_expander.available:
            return set()
        try:
            bundle_id = _parse_tag(self._directory.get_level_meta(level_id, LevelMetaKey.BUNDLE_ID))
        except Exception:
            logger.warning("Bundle tag lookup failed level=%s", level_id, exc_info=True)
            return set()
        return self._bundle_expander.expand(bundle_id)


__all__ = [
    "BundleCatalog",
    "BundleExpander",
    "CourseCatalog",
    "EntitlementResolver",
    "MembershipDirectory",
]
