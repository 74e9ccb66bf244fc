"""End-to-end reconciliation against in-memory collaborators."""
from __future__ import annotations

import logging

import pytest

from membership_sync.app.enrollment import EnrollmentStatus, EnrollmentStoreError
from membership_sync.app.entitlements import LevelMetaKey
from membership_sync.app.reconciliation import (
    CheckoutCompleted,
    EnrollmentCompleted,
    EventSource,
    LevelChanged,
    LevelsChanged,
    MalformedEventError,
    MembershipOrder,
    OrderRefunded,
    ReconciliationEvent,
    ReconciliationService,
)

USER = 5


def test_new_level_enrolls_its_course(service, directory, catalog, store):
    catalog.add_course(1)
    directory.attach(10, 1)

    result = service.reconcile(
        ReconciliationEvent(user_id=USER, previous_level_ids=frozenset(), current_level_ids=frozenset({10}))
    )

    assert result.to_enroll == {1}
    assert result.to_unenroll == frozenset()
    assert [record.course_id for record in result.enrolled] == [1]
    assert store.records[(USER, 1)].origin_level_id == 10
    assert store.records[(USER, 1)].is_membership_enrollment


def test_upgrade_only_touches_changed_courses(service, directory, catalog, store):
    for course_id in (1, 2, 3):
        catalog.add_course(course_id)
    directory.attach(10, 1, 2)
    directory.attach(20, 2, 3)
    store.seed(USER, 1, membership=True)
    untouched = store.seed(USER, 2, membership=True)
    directory.hold(USER, 20)

    result = service.handle_level_changed(LevelChanged(user_id=USER, new_level_id=20, cancelled_level_id=10))

    assert result.to_enroll == {3}
    assert result.to_unenroll == {1}
    assert result.unenrolled == {1}
    assert store.records[(USER, 1)].status == EnrollmentStatus.CANCELLED
    assert store.records[(USER, 2)] == untouched
    assert store.active_courses(USER) == {2, 3}
    assert store.writes == 2


def test_bundle_level_enrolls_free_bundle_courses(service, directory, catalog, bundle_catalog, store):
    catalog.add_course(4, free=True)
    catalog.add_course(5)
    bundle_catalog.bundles[500] = {4, 5}
    directory.tag(30, LevelMetaKey.BUNDLE_ID, 500)

    result = service.reconcile(
        ReconciliationEvent(user_id=USER, previous_level_ids=frozenset(), current_level_ids=frozenset({30}))
    )

    assert result.to_enroll == {4, 5}
    assert store.records[(USER, 4)].via_bundle is True
    assert store.records[(USER, 5)].via_bundle is True


def test_free_regular_course_is_not_enrolled(service, directory, catalog, store):
    catalog.add_course(1, free=True)
    catalog.add_course(2, public=True)
    catalog.add_course(3)
    directory.attach(10, 1, 2, 3)

    result = service.reconcile(
        ReconciliationEvent(user_id=USER, previous_level_ids=frozenset(), current_level_ids=frozenset({10}))
    )

    assert result.to_enroll == {3}
    assert store.active_courses(USER) == {3}


def test_refund_keeps_course_granted_by_another_level(service, directory, catalog, store):
    catalog.add_course(1)
    catalog.add_course(6)
    directory.attach(10, 1)
    directory.attach(40, 1, 6)
    store.seed(USER, 1, membership=True)
    store.seed(USER, 6, membership=True)
    directory.hold(USER, 40)

    result = service.handle_order_refunded(
        OrderRefunded(order=MembershipOrder(order_id=3, user_id=USER, membership_id=10))
    )

    assert result.to_unenroll == frozenset()
    assert result.mutation_count == 0
    assert store.active_courses(USER) == {1, 6}


def test_refund_without_other_level_unenrolls(service, directory, catalog, store):
    catalog.add_course(1)
    directory.attach(10, 1)
    store.seed(USER, 1, membership=True)

    result = service.handle_order_refunded(
        OrderRefunded(order=MembershipOrder(order_id=3, user_id=USER, membership_id=10))
    )

    assert result.source == EventSource.ORDER_REFUNDED
    assert result.unenrolled == {1}
    assert store.active_courses(USER) == set()


def test_duplicate_checkout_delivery_is_a_no_op(service, directory, catalog, store):
    catalog.add_course(1)
    directory.attach(10, 1)
    directory.hold(USER, 10)
    payload = CheckoutCompleted(
        user_id=USER,
        order=MembershipOrder(order_id=9, code="ORD9", user_id=USER, membership_id=10),
    )

    first = service.handle_checkout_completed(payload)
    second = service.handle_checkout_completed(payload)

    assert first.mutation_count == 1
    assert second.mutation_count == 0
    assert store.writes == 1
    assert store.records[(USER, 1)].order_code == "ORD9"


def test_checkout_records_purchased_level_as_origin(service, directory, catalog, store):
    catalog.add_course(1)
    directory.attach(10, 1)
    directory.attach(12, 1)
    directory.hold(USER, 10, 12)

    service.handle_checkout_completed(
        CheckoutCompleted(
            user_id=USER,
            order=MembershipOrder(order_id=4, membership_id=12),
            previous_level_ids=frozenset(),
        )
    )

    record = store.records[(USER, 1)]
    assert record.origin_level_id == 12
    assert record.order_id == 4


def test_checkout_without_user_is_rejected_before_any_lookup(service, directory):
    directory.failing.add("get_active_levels")

    with pytest.raises(MalformedEventError):
        service.handle_checkout_completed(CheckoutCompleted(order=MembershipOrder(membership_id=10)))


def test_active_level_lookup_failure_propagates(service, directory):
    directory.failing.add("get_active_levels")

    with pytest.raises(RuntimeError):
        service.handle_level_changed(LevelChanged(user_id=USER, new_level_id=10))


def test_levels_changed_reconciles_each_user(service, directory, catalog, store):
    catalog.add_course(1)
    catalog.add_course(2)
    directory.attach(10, 1)
    directory.attach(20, 2)
    store.seed(3, 1, membership=True)
    store.seed(4, 1, membership=True)
    directory.hold(3, 20)

    results = service.handle_levels_changed(
        LevelsChanged(old_levels_by_user={3: frozenset({10}), 4: frozenset({10})})
    )

    assert [result.user_id for result in results] == [3, 4]
    assert store.active_courses(3) == {2}
    assert store.active_courses(4) == set()


def test_store_failure_propagates_and_rerun_converges(service, directory, catalog, store):
    for course_id in (1, 2):
        catalog.add_course(course_id)
    directory.attach(10, 1, 2)
    directory.hold(USER, 10)
    event = ReconciliationEvent(
        user_id=USER,
        previous_level_ids=frozenset(),
        current_level_ids=frozenset({10}),
    )
    store.failing.add("create_or_reactivate_enrollment")

    with pytest.raises(EnrollmentStoreError):
        service.reconcile(event)

    store.failing.clear()
    service.reconcile(event)
    again = service.reconcile(event)

    assert store.active_courses(USER) == {1, 2}
    assert again.mutation_count == 0


def test_manual_enrollment_is_flagged_with_lowest_level(service, directory, catalog, store):
    catalog.add_course(1)
    seeded = store.seed(USER, 1)
    directory.hold(USER, 12, 11)

    observation = service.handle_enrollment_completed(
        EnrollmentCompleted(course_id=1, user_id=USER, enrollment_id=seeded.enrollment_id)
    )

    assert observation.flagged is True
    assert observation.level_id == 11
    assert store.records[(USER, 1)].is_membership_enrollment
    assert store.records[(USER, 1)].origin_level_id == 11


def test_manual_enrollment_without_level_is_left_alone(directory, catalog, store, bundle_catalog):
    service = ReconciliationService(
        directory=directory,
        catalog=catalog,
        enrollment_store=store,
        bundle_catalog=bundle_catalog,
        membership_only_mode=True,
    )
    seeded = store.seed(USER, 1)

    observation = service.handle_enrollment_completed(
        EnrollmentCompleted(course_id=1, user_id=USER, enrollment_id=seeded.enrollment_id)
    )

    assert observation.flagged is False
    assert store.records[(USER, 1)].is_membership_enrollment is False


def test_bundle_enrollment_auto_enrolls_accessible_courses(service, directory, catalog, bundle_catalog, store):
    catalog.add_course(100, bundle=True)
    catalog.add_course(1)
    catalog.add_course(2, free=True)
    catalog.add_course(3)
    bundle_catalog.bundles[100] = {1, 2, 3}
    directory.attach(10, 1)
    directory.hold(USER, 10)
    seeded = store.seed(USER, 100)

    observation = service.handle_enrollment_completed(
        EnrollmentCompleted(course_id=100, user_id=USER, enrollment_id=seeded.enrollment_id)
    )

    assert sorted(record.course_id for record in observation.bundle_enrollments) == [1, 2]
    assert store.records[(USER, 1)].via_bundle is True
    assert (USER, 3) not in store.records


def test_sync_course_levels_adds_and_removes_associations(service, directory, catalog):
    catalog.add_course(1)
    directory.attach(10, 1)
    directory.attach(11, 1)

    change = service.sync_course_levels(1, [11, 12, 0])

    assert change.added == {12}
    assert change.removed == {10}
    assert directory.get_level_associations(1) == {11, 12}


def test_sync_course_levels_ignores_unpublished_course(service, directory, catalog):
    catalog.add_course(1, published=False)

    change = service.sync_course_levels(1, [10])

    assert change.added == frozenset()
    assert directory.get_level_associations(1) == set()


def test_remove_level_associations_detaches_level(service, directory, catalog):
    directory.attach(10, 1, 2)
    directory.attach(11, 2)

    service.remove_level_associations(10)

    assert directory.get_level_associations(1) == set()
    assert directory.get_level_associations(2) == {11}


@pytest.mark.parametrize("fail_on_call", [1, 2])
def test_flaky_bundle_lookup_never_unenrolls_retained_level_courses(
    service, directory, catalog, bundle_catalog, store, fail_on_call
):
    for course_id in (1, 2, 4, 5):
        catalog.add_course(course_id)
    directory.attach(10, 1)
    directory.attach(20, 2)
    directory.tag(30, LevelMetaKey.BUNDLE_ID, 500)
    bundle_catalog.bundles[500] = {4, 5}
    bundle_catalog.fail_on_call = fail_on_call
    for course_id in (1, 4, 5):
        store.seed(USER, course_id, membership=True)
    directory.hold(USER, 20, 30)

    result = service.handle_level_changed(LevelChanged(user_id=USER, new_level_id=20, cancelled_level_id=10))

    assert bundle_catalog.calls == 1
    assert result.to_unenroll == {1}
    assert store.active_courses(USER) == {2, 4, 5}


def test_reconciling_same_event_twice_writes_nothing_the_second_time(service, directory, catalog, store):
    for course_id in (1, 2, 3):
        catalog.add_course(course_id)
    directory.attach(10, 1, 2)
    directory.attach(20, 2, 3)
    store.seed(USER, 1, membership=True)
    store.seed(USER, 2, membership=True)
    event = ReconciliationEvent(
        user_id=USER,
        previous_level_ids=frozenset({10}),
        current_level_ids=frozenset({20}),
    )

    first = service.reconcile(event)
    writes = store.writes
    second = service.reconcile(event)

    assert first.mutation_count == 2
    assert second.to_enroll == {3}
    assert second.to_unenroll == {1}
    assert second.mutation_count == 0
    assert store.writes == writes
    assert store.active_courses(USER) == {2, 3}


def test_bundle_check_failure_still_flags_enrollment(service, directory, catalog, store, caplog):
    catalog.add_course(100, bundle=True)
    catalog.fail_bundle_check = True
    directory.hold(USER, 10)
    seeded = store.seed(USER, 100)

    with caplog.at_level(logging.WARNING, logger="membership_sync"):
        observation = service.handle_enrollment_completed(
            EnrollmentCompleted(course_id=100, user_id=USER, enrollment_id=seeded.enrollment_id)
        )

    assert observation.flagged is True
    assert observation.level_id == 10
    assert observation.bundle_enrollments == ()
    assert store.records[(USER, 100)].is_membership_enrollment
    assert "Bundle check failed" in caplog.text


def test_membership_enrollment_query(service, store):
    store.seed(USER, 1, membership=True)
    store.seed(USER, 2)

    assert service.is_membership_enrollment(USER, 1) is True
    assert service.is_membership_enrollment(USER, 2) is False
    assert service.is_membership_enrollment(USER, 3) is False
