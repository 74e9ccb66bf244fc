"""Entitlement resolution: membership levels to the courses they unlock."""

from .diff import EntitlementDiff, diff, set_difference
from .models import (
    CourseId,
    CoursePricing,
    CyclePeriod,
    EntitlementSet,
    Grant,
    LevelDetails,
    LevelMetaKey,
    MembershipLevelId,
    UserId,
    normalize_level_ids,
)
from .pricing import PricingFilter, PricingSnapshot
from .service import (
    BundleCatalog,
    BundleExpander,
    CourseCatalog,
    EntitlementResolver,
    MembershipDirectory,
)

__all__ = [
    "BundleCatalog",
    "BundleExpander",
    "CourseCatalog",
    "CourseId",
    "CoursePricing",
    "CyclePeriod",
    "EntitlementDiff",
    "EntitlementResolver",
    "EntitlementSet",
    "Grant",
    "LevelDetails",
    "LevelMetaKey",
    "MembershipDirectory",
    "MembershipLevelId",
    "PricingFilter",
    "PricingSnapshot",
    "UserId",
    "diff",
    "normalize_level_ids",
    "set_difference",
]
