"""Application wiring for the reconciliation service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ...config import SyncConfig, load_sync_config
from ..enrollment.repository import PostgresEnrollmentStore
from ..entitlements.repository import (
    PostgresBundleCatalog,
    PostgresCourseCatalog,
    PostgresMembershipDirectory,
)
from ..reconciliation import ReconciliationService

logger = logging.getLogger("membership_sync")


def build_reconciliation_service(config: SyncConfig) -> ReconciliationService:
    directory = PostgresMembershipDirectory(course_content_type=config.course_content_type)
    catalog = PostgresCourseCatalog(
        course_content_type=config.course_content_type,
        bundle_content_type=config.bundle_content_type,
    )
    bundle_catalog = PostgresBundleCatalog() if config.bundles_enabled else None
    logger.debug(
        "Reconciliation service configured membership_only=%s bundles=%s",
        config.membership_only_mode,
        config.bundles_enabled,
    )
    return ReconciliationService(
        directory=directory,
        catalog=catalog,
        enrollment_store=PostgresEnrollmentStore(),
        bundle_catalog=bundle_catalog,
        membership_only_mode=config.membership_only_mode,
        bundles_enabled=config.bundles_enabled,
    )


@lru_cache(maxsize=1)
def get_reconciliation_service() -> ReconciliationService:
    return build_reconciliation_service(load_sync_config())
