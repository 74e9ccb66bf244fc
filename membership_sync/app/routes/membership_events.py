"""API routes receiving membership lifecycle notifications."""
from __future__ import annotations

import logging
from typing import Callable, TypeVar

from fastapi import APIRouter, HTTPException, status

from ..enrollment import EnrollmentStoreError
from ..reconciliation import MalformedEventError
from ..schemas.membership_events import (
    BatchReconciliationResponse,
    CheckoutCompletedRequest,
    EnrollmentCompletedRequest,
    EnrollmentObservationResponse,
    EnrollmentSourceResponse,
    LevelChangedRequest,
    LevelsChangedRequest,
    OrderRefundedRequest,
    ReconciliationResponse,
)
from ..services.reconciliation import get_reconciliation_service

logger = logging.getLogger("membership_sync")

T = TypeVar("T")

router = APIRouter(prefix="/api/membership-sync", tags=["membership-sync"])


def _run(event: str, handler: Callable[[], T]) -> T:
    try:
        return handler()
    except MalformedEventError as exc:
        logger.warning("Rejected %s notification: %s", event, exc.reason)
        raise exc.to_http_exception() from exc
    except EnrollmentStoreError as exc:
        logger.error("Enrollment store failure during %s: %s", event, exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.post("/checkout-completed", response_model=ReconciliationResponse)
def checkout_completed(payload: CheckoutCompletedRequest) -> ReconciliationResponse:
    service = get_reconciliation_service()
    result = _run("checkout_completed", lambda: service.handle_checkout_completed(payload.to_payload()))
    return ReconciliationResponse.from_result(result)


@router.post("/level-changed", response_model=ReconciliationResponse)
def level_changed(payload: LevelChangedRequest) -> ReconciliationResponse:
    service = get_reconciliation_service()
    result = _run("level_changed", lambda: service.handle_level_changed(payload.to_payload()))
    return ReconciliationResponse.from_result(result)


@router.post("/levels-changed", response_model=BatchReconciliationResponse)
def levels_changed(payload: LevelsChangedRequest) -> BatchReconciliationResponse:
    service = get_reconciliation_service()
    results = _run("levels_changed", lambda: service.handle_levels_changed(payload.to_payload()))
    return BatchReconciliationResponse(results=[ReconciliationResponse.from_result(result) for result in results])


@router.post("/order-refunded", response_model=ReconciliationResponse)
def order_refunded(payload: OrderRefundedRequest) -> ReconciliationResponse:
    service = get_reconciliation_service()
    result = _run("order_refunded", lambda: service.handle_order_refunded(payload.to_payload()))
    return ReconciliationResponse.from_result(result)


@router.post("/enrollment-completed", response_model=EnrollmentObservationResponse)
def enrollment_completed(payload: EnrollmentCompletedRequest) -> EnrollmentObservationResponse:
    service = get_reconciliation_service()
    observation = _run("enrollment_completed", lambda: service.handle_enrollment_completed(payload.to_payload()))
    return EnrollmentObservationResponse.from_observation(observation)


@router.get("/enrollments/{user_id}/{course_id}", response_model=EnrollmentSourceResponse)
def enrollment_source(user_id: int, course_id: int) -> EnrollmentSourceResponse:
    service = get_reconciliation_service()
    membership = _run("enrollment_source", lambda: service.is_membership_enrollment(user_id, course_id))
    return EnrollmentSourceResponse(user_id=user_id, course_id=course_id, membership_enrollment=membership)
