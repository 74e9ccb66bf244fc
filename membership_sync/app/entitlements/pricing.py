"""Pricing based filtering of resolved entitlements."""
from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from .models import CourseId, CoursePricing, EntitlementSet
from .service import CourseCatalog

logger = logging.getLogger("membership_sync.entitlements")

PricingSnapshot = Mapping[CourseId, Optional[CoursePricing]]


class PricingFilter:
    """Removes freely accessible courses from the non-bundle part of an entitlement.

    Bundle courses are always kept: the grant is the whole bundle, not the
    individual course. A regular course whose pricing cannot be read is dropped.
    """

    def __init__(self, catalog: CourseCatalog) -> None:
        self._catalog = catalog

    def snapshot(self, course_ids: Iterable[CourseId]) -> Dict[CourseId, Optional[CoursePricing]]:
        """Fetch pricing once for every course so several filters agree."""

        prices: Dict[CourseId, Optional[CoursePricing]] = {}
        for course_id in course_ids:
            if course_id in prices:
                continue
            try:
                prices[course_id] = self._catalog.get_course_pricing(course_id)
            except Exception:
                logger.warning("Pricing lookup failed course=%s", course_id, exc_info=True)
                prices[course_id] = None
        return prices

    def filter(
        self,
        entitlement: EntitlementSet,
        *,
        pricing: Optional[PricingSnapshot] = None,
    ) -> FrozenSet[CourseId]:
        regular = entitlement.regular_courses
        prices = pricing if pricing is not None else self.snapshot(regular)
        if any(course_id not in prices for course_id in regular):
            prices = {**prices, **self.snapshot(c for c in regular if c not in prices)}

        kept = frozenset(course_id for course_id in regular if _requires_entitlement(prices[course_id]))
        return kept | entitlement.bundle_courses


def _requires_entitlement(pricing: Optional[CoursePricing]) -> bool:
    if pricing is None:
        return False
    return not pricing.freely_accessible


__all__ = ["PricingFilter", "PricingSnapshot"]
