"""Reconciliation of membership level changes into course enrollments."""

from .exceptions import MalformedEventError
from .models import (
    AssociationChange,
    CheckoutCompleted,
    EnrollmentCompleted,
    EnrollmentObservation,
    EventSource,
    LevelChanged,
    LevelsChanged,
    MembershipOrder,
    OrderRefunded,
    ReconciliationEvent,
    ReconciliationResult,
)
from .service import ReconciliationService

__all__ = [
    "AssociationChange",
    "CheckoutCompleted",
    "EnrollmentCompleted",
    "EnrollmentObservation",
    "EventSource",
    "LevelChanged",
    "LevelsChanged",
    "MalformedEventError",
    "MembershipOrder",
    "OrderRefunded",
    "ReconciliationEvent",
    "ReconciliationResult",
    "ReconciliationService",
]
