"""Reconciliation pipeline: levels to courses to enrollment mutations."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set

from ..enrollment.models import EnrollmentRecord
from ..enrollment.service import EnrollmentMutator, EnrollmentStore
from ..entitlements.diff import diff, set_difference
from ..entitlements.models import CourseId, EntitlementSet, MembershipLevelId, normalize_level_ids
from ..entitlements.pricing import PricingFilter
from ..entitlements.service import (
    BundleCatalog,
    BundleExpander,
    CourseCatalog,
    EntitlementResolver,
    MembershipDirectory,
)
from . import adapters
from .models import (
    AssociationChange,
    CheckoutCompleted,
    EnrollmentCompleted,
    EnrollmentObservation,
    LevelChanged,
    LevelsChanged,
    OrderRefunded,
    ReconciliationEvent,
    ReconciliationResult,
)

logger = logging.getLogger("membership_sync")


class ReconciliationService:
    """Keeps course enrollments in line with held membership levels.

    Every entry point is a one-shot computation from two level sets to zero or
    more idempotent mutations; re-running any of them converges to the same
    enrollment state.
    """

    def __init__(
        self,
        directory: MembershipDirectory,
        catalog: CourseCatalog,
        enrollment_store: EnrollmentStore,
        bundle_catalog: Optional[BundleCatalog] = None,
        *,
        membership_only_mode: bool = False,
        bundles_enabled: bool = True,
    ) -> None:
        self._directory = directory
        self._catalog = catalog
        self._membership_only_mode = membership_only_mode
        self._bundle_expander = BundleExpander(bundle_catalog, enabled=bundles_enabled)
        self._resolver = EntitlementResolver(directory, catalog, self._bundle_expander)
        self._pricing = PricingFilter(catalog)
        self._mutator = EnrollmentMutator(enrollment_store)

    @property
    def resolver(self) -> EntitlementResolver:
        return self._resolver

    @property
    def mutator(self) -> EnrollmentMutator:
        return self._mutator

    def reconcile(self, event: ReconciliationEvent) -> ReconciliationResult:
        # Each level is looked up once; a failed lookup drops it from both sides.
        grants = self._resolver.grants_by_level(event.previous_level_ids | event.current_level_ids)
        previous = EntitlementSet.from_level_grants(grants, event.previous_level_ids)
        current = EntitlementSet.from_level_grants(grants, event.current_level_ids)

        pricing = self._pricing.snapshot(sorted(previous.regular_courses | current.regular_courses))
        previous_courses = self._pricing.filter(previous, pricing=pricing)
        current_courses = self._pricing.filter(current, pricing=pricing)
        changes = diff(previous_courses, current_courses)

        logger.debug(
            "Reconcile user=%s source=%s previous_levels=%s current_levels=%s enroll=%s unenroll=%s",
            event.user_id,
            event.source.value,
            sorted(event.previous_level_ids),
            sorted(event.current_level_ids),
            sorted(changes.to_enroll),
            sorted(changes.to_unenroll),
        )

        unenrolled: Set[int] = set()
        for course_id in sorted(changes.to_unenroll):
            if self._mutator.apply_unenroll(event.user_id, course_id):
                unenrolled.add(course_id)

        enrolled: List[EnrollmentRecord] = []
        for course_id in sorted(changes.to_enroll):
            origin = current.origin_of(course_id, preferred=event.origin_level_id)
            order = event.order if event.origin_level_id and origin == event.origin_level_id else None
            record, created = self._mutator.ensure_enrolled(
                event.user_id,
                course_id,
                origin,
                via_bundle=current.is_bundle_course(course_id),
                order=order,
            )
            if created:
                enrolled.append(record)

        return ReconciliationResult(
            user_id=event.user_id,
            source=event.source,
            to_enroll=changes.to_enroll,
            to_unenroll=changes.to_unenroll,
            enrolled=tuple(enrolled),
            unenrolled=frozenset(unenrolled),
        )

    def handle_checkout_completed(self, payload: CheckoutCompleted) -> ReconciliationResult:
        user_id = adapters.checkout_user_id(payload)
        active = self._directory.get_active_levels(user_id)
        return self.reconcile(adapters.checkout_completed_event(payload, active))

    def handle_level_changed(self, payload: LevelChanged) -> ReconciliationResult:
        user_id = adapters.level_changed_user_id(payload)
        active = self._directory.get_active_levels(user_id)
        return self.reconcile(adapters.level_changed_event(payload, active))

    def handle_levels_changed(self, payload: LevelsChanged) -> List[ReconciliationResult]:
        logger.info("Levels changed for %s user(s)", len(payload.old_levels_by_user))
        active_by_user = {
            user_id: self._directory.get_active_levels(user_id)
            for user_id in payload.old_levels_by_user
            if user_id > 0
        }
        events = adapters.levels_changed_events(payload, active_by_user)
        return [self.reconcile(event) for event in events]

    def handle_order_refunded(self, payload: OrderRefunded) -> ReconciliationResult:
        user_id = adapters.refund_user_id(payload)
        active = self._directory.get_active_levels(user_id)
        return self.reconcile(adapters.order_refunded_event(payload, active))

    def handle_enrollment_completed(self, payload: EnrollmentCompleted) -> EnrollmentObservation:
        """Flag an enrollment the course platform made itself as membership based.

        Applies in membership-only mode or when the user holds any level; the
        lowest held level is recorded. Enrolling in a bundle also enrolls the user
        in each bundle course they have access to.
        """

        active = normalize_level_ids(self._directory.get_active_levels(payload.user_id))
        if not active:
            if self._membership_only_mode:
                logger.debug("Membership-only mode but user=%s holds no level", payload.user_id)
            return EnrollmentObservation(user_id=payload.user_id, enrollment_id=payload.enrollment_id)

        level_id = min(active)
        self._mutator.mark_membership_enrollment(payload.user_id, payload.enrollment_id, level_id)

        bundle_enrollments: List[EnrollmentRecord] = []
        if self._bundle_expander.available and self._is_bundle(payload.course_id):
            for course_id in self._accessible_bundle_courses(payload.course_id, active):
                record, created = self._mutator.ensure_enrolled(
                    payload.user_id, course_id, level_id, via_bundle=True
                )
                if created:
                    bundle_enrollments.append(record)

        return EnrollmentObservation(
            user_id=payload.user_id,
            enrollment_id=payload.enrollment_id,
            flagged=True,
            level_id=level_id,
            bundle_enrollments=tuple(bundle_enrollments),
        )

    def is_membership_enrollment(self, user_id: int, course_id: int) -> bool:
        """Whether the user's active enrollment in the course came from a membership level."""

        return self._mutator.is_enrolled_by_membership(user_id, course_id)

    def sync_course_levels(self, course_id: int, level_ids: Iterable[int]) -> AssociationChange:
        """Make the course's join-table rows match ``level_ids`` exactly."""

        course = CourseId(course_id)
        if course_id <= 0 or not self._catalog.course_exists_published(course):
            return AssociationChange(course_id=course_id)

        desired = normalize_level_ids(level_ids)
        existing = normalize_level_ids(self._directory.get_level_associations(course))
        to_add, to_remove = set_difference(existing, desired)
        for level_id in sorted(to_add):
            self._directory.add_level_association(course, level_id)
        for level_id in sorted(to_remove):
            self._directory.remove_level_association(course, level_id)
        return AssociationChange(course_id=course_id, added=to_add, removed=to_remove)

    def remove_level_associations(self, level_id: int) -> None:
        if level_id > 0:
            self._directory.remove_level_associations(MembershipLevelId(level_id))

    def _is_bundle(self, course_id: int) -> bool:
        try:
            return bool(self._catalog.is_bundle(CourseId(course_id)))
        except Exception:
            logger.warning("Bundle check failed course=%s", course_id, exc_info=True)
            return False

    def _accessible_bundle_courses(self, bundle_id: int, active: Iterable[MembershipLevelId]) -> List[CourseId]:
        bundle_courses = self._bundle_expander.expand(bundle_id)
        if not bundle_courses:
            return []
        held = self._resolver.resolve(active).all_courses
        pricing = self._pricing.snapshot(sorted(bundle_courses - held))
        return [
            course_id
            for course_id in sorted(bundle_courses)
            if course_id in held or (pricing.get(course_id) is not None and pricing[course_id].freely_accessible)
        ]


__all__ = ["ReconciliationService"]
