"""Enrollment domain package: records, provenance and the idempotent mutator."""

from .exceptions import EnrollmentStoreError
from .models import (
    EnrollmentProvenance,
    EnrollmentRecord,
    EnrollmentStatus,
    OrderReference,
)
from .service import EnrollmentMutator, EnrollmentStore

__all__ = [
    "EnrollmentMutator",
    "EnrollmentProvenance",
    "EnrollmentRecord",
    "EnrollmentStatus",
    "EnrollmentStore",
    "EnrollmentStoreError",
    "OrderReference",
]
