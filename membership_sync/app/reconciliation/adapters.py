"""Pure translations from lifecycle notifications to reconciliation events.

Adapters never read or write anything: the caller fetches the user's active
levels and passes them in, which keeps every adapter a plain function of its
inputs.
"""
from __future__ import annotations

from typing import AbstractSet, Iterable, List, Mapping, Optional

from ..entitlements.models import normalize_level_ids
from .exceptions import MalformedEventError
from .models import (
    CheckoutCompleted,
    EventSource,
    LevelChanged,
    LevelsChanged,
    OrderRefunded,
    ReconciliationEvent,
)


def _positive(value: Optional[int]) -> int:
    return int(value) if value and int(value) > 0 else 0


def checkout_user_id(payload: CheckoutCompleted) -> int:
    """User id from the notification, falling back to the order object."""

    user_id = _positive(payload.user_id)
    if not user_id and payload.order is not None:
        user_id = _positive(payload.order.user_id)
    if not user_id:
        raise MalformedEventError("checkout_completed", "no user id on the notification or its order")
    return user_id


def checkout_completed_event(
    payload: CheckoutCompleted,
    active_level_ids: Iterable[int],
) -> ReconciliationEvent:
    user_id = checkout_user_id(payload)
    active = normalize_level_ids(active_level_ids)
    order_level = _positive(payload.order.membership_id) if payload.order else 0

    current = active | normalize_level_ids([order_level])
    if payload.previous_level_ids is not None:
        previous = normalize_level_ids(payload.previous_level_ids)
    else:
        previous = active - {order_level}

    return ReconciliationEvent(
        user_id=user_id,
        previous_level_ids=previous,
        current_level_ids=current,
        source=EventSource.CHECKOUT_COMPLETED,
        origin_level_id=order_level or None,
        order=payload.order.reference() if payload.order else None,
    )


def level_changed_user_id(payload: LevelChanged) -> int:
    user_id = _positive(payload.user_id)
    if not user_id:
        raise MalformedEventError("level_changed", "no user id on the notification")
    return user_id


def level_changed_event(
    payload: LevelChanged,
    active_level_ids: Iterable[int],
) -> ReconciliationEvent:
    """Old level versus new level, with the user's other held levels on both sides.

    A course that another held level still grants therefore never lands in the
    unenroll set.
    """

    user_id = level_changed_user_id(payload)
    old_level = _positive(payload.cancelled_level_id)
    new_level = _positive(payload.new_level_id)
    retained = normalize_level_ids(active_level_ids) - {old_level, new_level}

    return ReconciliationEvent(
        user_id=user_id,
        previous_level_ids=retained | normalize_level_ids([old_level]),
        current_level_ids=retained | normalize_level_ids([new_level]),
        source=EventSource.LEVEL_CHANGED,
        origin_level_id=new_level or None,
    )


def levels_changed_events(
    payload: LevelsChanged,
    active_levels_by_user: Mapping[int, AbstractSet[int]],
) -> List[ReconciliationEvent]:
    events: List[ReconciliationEvent] = []
    for raw_user_id in sorted(payload.old_levels_by_user):
        user_id = _positive(raw_user_id)
        if not user_id:
            raise MalformedEventError("levels_changed", f"invalid user id {raw_user_id!r}")
        events.append(
            ReconciliationEvent(
                user_id=user_id,
                previous_level_ids=normalize_level_ids(payload.old_levels_by_user[raw_user_id]),
                current_level_ids=normalize_level_ids(active_levels_by_user.get(raw_user_id, ())),
                source=EventSource.LEVELS_CHANGED,
            )
        )
    return events


def refund_user_id(payload: OrderRefunded) -> int:
    user_id = _positive(payload.order.user_id)
    if not user_id:
        raise MalformedEventError("order_refunded", "refunded order has no user id")
    return user_id


def order_refunded_event(
    payload: OrderRefunded,
    active_level_ids: Iterable[int],
) -> ReconciliationEvent:
    """Treat the refunded level as still held before the refund."""

    user_id = refund_user_id(payload)
    refunded_level = _positive(payload.order.membership_id)
    if not refunded_level:
        raise MalformedEventError("order_refunded", "refunded order has no membership level")

    current = normalize_level_ids(active_level_ids) - {refunded_level}
    return ReconciliationEvent(
        user_id=user_id,
        previous_level_ids=current | {refunded_level},
        current_level_ids=current,
        source=EventSource.ORDER_REFUNDED,
        order=payload.order.reference(),
    )


__all__ = [
    "checkout_completed_event",
    "checkout_user_id",
    "level_changed_event",
    "level_changed_user_id",
    "levels_changed_events",
    "order_refunded_event",
    "refund_user_id",
]
