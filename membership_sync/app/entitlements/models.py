"""Domain models for membership level to course entitlements."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Dict, FrozenSet, Iterable, Mapping, NewType, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

MembershipLevelId = NewType("MembershipLevelId", int)
CourseId = NewType("CourseId", int)
UserId = NewType("UserId", int)

# (course, granting level, reached through a bundle)
Grant = Tuple[CourseId, MembershipLevelId, bool]


class LevelMetaKey(str, Enum):
    """Level metadata keys consulted during resolution."""

    COURSE_ID = "course_id"
    BUNDLE_ID = "bundle_id"


class CyclePeriod(str, Enum):
    """Billing cycle units supported by the membership directory."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class CoursePricing(BaseModel):
    """Price and visibility attributes of a course, owned by the catalog."""

    course_id: int
    is_public: bool = False
    is_free: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def freely_accessible(self) -> bool:
        return self.is_public or self.is_free


class LevelDetails(BaseModel):
    """Cycle and billing information for a membership level."""

    level_id: int
    name: str = ""
    initial_payment: float = Field(default=0.0, ge=0)
    billing_amount: float = Field(default=0.0, ge=0)
    cycle_number: int = Field(default=0, ge=0)
    cycle_period: Optional[CyclePeriod] = None
    billing_limit: int = Field(default=0, ge=0)
    trial_amount: float = Field(default=0.0, ge=0)
    trial_limit: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def is_recurring(self) -> bool:
        """A level without a billing amount and cycle is a one-time purchase."""
        return self.billing_amount > 0 or self.cycle_number > 0


@dataclass(frozen=True)
class EntitlementSet:
    """Courses unlocked by a collection of membership levels.

    ``bundle_courses`` is always a subset of ``all_courses``; ``granted_by`` maps
    each course to the levels that unlocked it.
    """

    all_courses: FrozenSet[CourseId] = frozenset()
    bundle_courses: FrozenSet[CourseId] = frozenset()
    granted_by: Mapping[CourseId, FrozenSet[MembershipLevelId]] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not self.bundle_courses <= self.all_courses:
            raise ValueError("bundle_courses must be a subset of all_courses")

    @property
    def regular_courses(self) -> FrozenSet[CourseId]:
        return self.all_courses - self.bundle_courses

    @classmethod
    def empty(cls) -> "EntitlementSet":
        return cls()

    @classmethod
    def from_level_grants(
        cls,
        grants_by_level: Mapping[MembershipLevelId, Iterable[Grant]],
        level_ids: Iterable[int],
    ) -> "EntitlementSet":
        """Entitlements of ``level_ids`` taken from grants resolved beforehand."""

        return cls.build(
            grant
            for level_id in sorted(normalize_level_ids(level_ids))
            for grant in grants_by_level.get(level_id, ())
        )

    @classmethod
    def build(cls, grants: Iterable[Grant]) -> "EntitlementSet":
        """Assemble a set from ``(course, level, via_bundle)`` grants."""

        all_courses: set[CourseId] = set()
        bundle_courses: set[CourseId] = set()
        granted_by: Dict[CourseId, set[MembershipLevelId]] = {}
        for course_id, level_id, via_bundle in grants:
            all_courses.add(course_id)
            if via_bundle:
                bundle_courses.add(course_id)
            granted_by.setdefault(course_id, set()).add(level_id)
        return cls(
            all_courses=frozenset(all_courses),
            bundle_courses=frozenset(bundle_courses),
            granted_by={course_id: frozenset(levels) for course_id, levels in granted_by.items()},
        )

    def origin_of(
        self,
        course_id: CourseId,
        preferred: Optional[int] = None,
    ) -> Optional[MembershipLevelId]:
        """Level to record as provenance: ``preferred`` when it grants the course, else the lowest."""

        levels = self.granted_by.get(course_id)
        if not levels:
            return None
        if preferred is not None and preferred in levels:
            return MembershipLevelId(preferred)
        return min(levels)

    def is_bundle_course(self, course_id: CourseId) -> bool:
        return course_id in self.bundle_courses


def normalize_level_ids(level_ids: Optional[Iterable[int]]) -> FrozenSet[MembershipLevelId]:
    """Coerce raw level ids to a set of positive ``MembershipLevelId`` values."""

    if not level_ids:
        return frozenset()
    normalized = set()
    for raw in level_ids:
        value = int(raw)
        if value > 0:
            normalized.add(MembershipLevelId(value))
    return frozenset(normalized)


def as_course_ids(values: AbstractSet[int] | Iterable[int]) -> FrozenSet[CourseId]:
    return frozenset(CourseId(int(value)) for value in values if int(value) > 0)
