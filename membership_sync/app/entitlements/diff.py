"""Set difference between previous and current course entitlements."""
from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, FrozenSet, Optional, TypeVar

from .models import CourseId

T = TypeVar("T")


@dataclass(frozen=True)
class EntitlementDiff:
    """Courses to enroll and unenroll; the two sets never intersect."""

    to_enroll: FrozenSet[CourseId]
    to_unenroll: FrozenSet[CourseId]

    @property
    def is_empty(self) -> bool:
        return not self.to_enroll and not self.to_unenroll


def set_difference(
    previous: Optional[AbstractSet[T]],
    current: Optional[AbstractSet[T]],
) -> tuple[FrozenSet[T], FrozenSet[T]]:
    """Return ``(current - previous, previous - current)``.

    ``None`` is rejected so that callers decide explicitly whether an unknown
    prior state should mean "nothing held before".
    """

    if previous is None or current is None:
        raise TypeError("previous and current must be sets; pass an empty set for no prior state")
    previous_set = frozenset(previous)
    current_set = frozenset(current)
    return current_set - previous_set, previous_set - current_set


def diff(
    previous: Optional[AbstractSet[CourseId]],
    current: Optional[AbstractSet[CourseId]],
) -> EntitlementDiff:
    to_enroll, to_unenroll = set_difference(previous, current)
    return EntitlementDiff(to_enroll=to_enroll, to_unenroll=to_unenroll)


__all__ = ["EntitlementDiff", "diff", "set_difference"]
