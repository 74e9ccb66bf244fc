from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional, Set, Tuple

import pytest

from membership_sync.app.enrollment import (
    EnrollmentProvenance,
    EnrollmentRecord,
    EnrollmentStatus,
)
from membership_sync.app.entitlements import (
    CoursePricing,
    LevelDetails,
    LevelMetaKey,
)
from membership_sync.app.reconciliation import ReconciliationService


class FakeMembershipDirectory:
    def __init__(self) -> None:
        self.active: Dict[int, Set[int]] = {}
        self.levels: Dict[int, LevelDetails] = {}
        self.associations: Dict[int, Set[int]] = {}
        self.meta: Dict[Tuple[int, str], str] = {}
        self.failing: Set[str] = set()

    def hold(self, user_id: int, *level_ids: int) -> None:
        self.active[user_id] = set(level_ids)

    def attach(self, level_id: int, *course_ids: int) -> None:
        for course_id in course_ids:
            self.associations.setdefault(course_id, set()).add(level_id)

    def tag(self, level_id: int, key: LevelMetaKey, value: object) -> None:
        self.meta[(level_id, key.value)] = str(value)

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise RuntimeError(f"{operation} unavailable")

    def get_active_levels(self, user_id: int) -> Set[int]:
        self._check("get_active_levels")
        return set(self.active.get(user_id, set()))

    def get_level(self, level_id: int) -> Optional[LevelDetails]:
        return self.levels.get(level_id)

    def get_level_course_ids(self, level_id: int) -> Set[int]:
        self._check("get_level_course_ids")
        return {course_id for course_id, levels in self.associations.items() if level_id in levels}

    def get_level_meta(self, level_id: int, key: LevelMetaKey) -> Optional[str]:
        self._check("get_level_meta")
        return self.meta.get((level_id, key.value))

    def get_level_associations(self, course_id: int) -> Set[int]:
        return set(self.associations.get(course_id, set()))

    def add_level_association(self, course_id: int, level_id: int) -> None:
        self.associations.setdefault(course_id, set()).add(level_id)

    def remove_level_association(self, course_id: int, level_id: int) -> None:
        self.associations.get(course_id, set()).discard(level_id)

    def remove_level_associations(self, level_id: int) -> None:
        for levels in self.associations.values():
            levels.discard(level_id)


class FakeCourseCatalog:
    def __init__(self) -> None:
        self.pricing: Dict[int, CoursePricing] = {}
        self.published: Set[int] = set()
        self.bundles: Set[int] = set()
        self.failing_pricing: Set[int] = set()
        self.fail_bundle_check = False
        self.pricing_calls = 0

    def add_course(
        self,
        course_id: int,
        *,
        public: bool = False,
        free: bool = False,
        published: bool = True,
        bundle: bool = False,
    ) -> None:
        self.pricing[course_id] = CoursePricing(course_id=course_id, is_public=public, is_free=free)
        if published:
            self.published.add(course_id)
        if bundle:
            self.bundles.add(course_id)

    def get_course_pricing(self, course_id: int) -> Optional[CoursePricing]:
        self.pricing_calls += 1
        if course_id in self.failing_pricing:
            raise RuntimeError("pricing unavailable")
        return self.pricing.get(course_id)

    def course_exists_published(self, course_id: int) -> bool:
        return course_id in self.published

    def is_bundle(self, course_id: int) -> bool:
        if self.fail_bundle_check:
            raise RuntimeError("catalog down")
        return course_id in self.bundles


class FakeBundleCatalog:
    def __init__(self) -> None:
        self.bundles: Dict[int, Set[int]] = {}
        self.fail = False
        self.fail_on_call: Optional[int] = None
        self.calls = 0

    def get_bundle_course_ids(self, bundle_id: int) -> Set[int]:
        self.calls += 1
        if self.fail or self.calls == self.fail_on_call:
            raise RuntimeError("bundle catalog unavailable")
        return set(self.bundles.get(bundle_id, set()))


class InMemoryEnrollmentStore:
    def __init__(self) -> None:
        self.records: Dict[Tuple[int, int], EnrollmentRecord] = {}
        self.writes = 0
        self.failing: Set[str] = set()
        self._next_id = 1

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise ConnectionError(f"{operation} failed")

    def seed(
        self,
        user_id: int,
        course_id: int,
        *,
        status: EnrollmentStatus = EnrollmentStatus.ACTIVE,
        membership: bool = False,
    ) -> EnrollmentRecord:
        record = EnrollmentRecord(
            enrollment_id=self._next_id,
            user_id=user_id,
            course_id=course_id,
            status=status,
            is_membership_enrollment=membership,
        )
        self._next_id += 1
        self.records[(user_id, course_id)] = record
        return record

    def active_courses(self, user_id: int) -> Set[int]:
        return {
            course_id
            for (owner, course_id), record in self.records.items()
            if owner == user_id and record.is_active
        }

    def is_enrolled(self, user_id: int, course_id: int) -> bool:
        self._check("is_enrolled")
        record = self.records.get((user_id, course_id))
        return bool(record and record.is_active)

    def get_enrollment(self, user_id: int, course_id: int) -> Optional[EnrollmentRecord]:
        self._check("get_enrollment")
        return self.records.get((user_id, course_id))

    def create_or_reactivate_enrollment(
        self,
        user_id: int,
        course_id: int,
        provenance: EnrollmentProvenance,
    ) -> EnrollmentRecord:
        self._check("create_or_reactivate_enrollment")
        self.writes += 1
        existing = self.records.get((user_id, course_id))
        order = provenance.order
        fields = {
            "status": EnrollmentStatus.ACTIVE,
            "origin_level_id": provenance.origin_level_id,
            "is_membership_enrollment": provenance.is_membership_enrollment,
            "via_bundle": provenance.via_bundle,
            "order_id": order.order_id if order else None,
            "order_code": order.order_code if order else None,
            "updated_at": datetime.now(timezone.utc),
        }
        if existing is not None:
            record = existing.model_copy(update=fields)
        else:
            record = EnrollmentRecord(
                enrollment_id=self._next_id,
                user_id=user_id,
                course_id=course_id,
                **fields,
            )
            self._next_id += 1
        self.records[(user_id, course_id)] = record
        return record

    def cancel_enrollment(self, user_id: int, course_id: int) -> Optional[EnrollmentRecord]:
        self._check("cancel_enrollment")
        existing = self.records.get((user_id, course_id))
        if existing is None or not existing.is_active:
            return None
        self.writes += 1
        record = existing.model_copy(update={"status": EnrollmentStatus.CANCELLED})
        self.records[(user_id, course_id)] = record
        return record

    def mark_membership_enrollment(self, enrollment_id: int, level_id: int) -> Optional[EnrollmentRecord]:
        self._check("mark_membership_enrollment")
        for key, record in self.records.items():
            if record.enrollment_id == enrollment_id:
                updated = record.model_copy(
                    update={"is_membership_enrollment": True, "origin_level_id": level_id}
                )
                self.records[key] = updated
                self.writes += 1
                return updated
        return None


@pytest.fixture
def directory() -> FakeMembershipDirectory:
    return FakeMembershipDirectory()


@pytest.fixture
def catalog() -> FakeCourseCatalog:
    return FakeCourseCatalog()


@pytest.fixture
def bundle_catalog() -> FakeBundleCatalog:
    return FakeBundleCatalog()


@pytest.fixture
def store() -> InMemoryEnrollmentStore:
    return InMemoryEnrollmentStore()


@pytest.fixture
def service(directory, catalog, store, bundle_catalog) -> ReconciliationService:
    return ReconciliationService(
        directory=directory,
        catalog=catalog,
        enrollment_store=store,
        bundle_catalog=bundle_catalog,
    )
