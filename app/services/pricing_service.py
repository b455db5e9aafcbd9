"""
Pricing — monthly subscription cost per dealership or dealer group.

Groups are priced per member dealership using the single-dealership table, so
a group and the same set of standalone dealerships always report the same
revenue.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from app.models.dealership import DealershipType, SubscriptionTier

SINGLE_DEALERSHIP_PRICES: dict[SubscriptionTier, int] = {
    SubscriptionTier.base: 250,
    SubscriptionTier.plus: 350,
    SubscriptionTier.premium: 750,
}


def normalize_tier(value: Any) -> SubscriptionTier:
    """Unknown or missing tiers are billed as ``base``."""
    if isinstance(value, SubscriptionTier):
        return value
    try:
        return SubscriptionTier(str(value or "").strip().lower())
    except ValueError:
        return SubscriptionTier.base


def per_member_price(tier: Any) -> int:
    return SINGLE_DEALERSHIP_PRICES[normalize_tier(tier)]


def _field(dealership: Mapping[str, Any] | Any, name: str) -> Any:
    if isinstance(dealership, Mapping):
        return dealership.get(name)
    return getattr(dealership, name, None)


def _member_descriptors(dealership: Mapping[str, Any] | Any) -> list[Mapping[str, Any]]:
    if isinstance(dealership, Mapping):
        metadata = dealership.get("metadata")
    else:
        # ORM rows expose the column as ``metadata_``; ``metadata`` is the MetaData registry.
        metadata = getattr(dealership, "metadata_", None)
    if not isinstance(metadata, Mapping):
        return []
    members = metadata.get("dealerships")
    if not isinstance(members, list):
        return []
    return [m for m in members if isinstance(m, Mapping)]


def monthly_cost(dealership: Mapping[str, Any] | Any) -> int:
    """Monthly cost in whole dollars for a dealerships row (dict or ORM object)."""
    tier = _field(dealership, "subscription_tier")
    if _field(dealership, "type") != DealershipType.group.value:
        return per_member_price(tier)

    members = _member_descriptors(dealership)
    if members:
        return sum(per_member_price(member.get("tier")) for member in members)

    try:
        num_teams = int(_field(dealership, "num_teams") or 1)
    except (TypeError, ValueError):
        num_teams = 1
    return max(num_teams, 1) * per_member_price(tier)


def revenue_summary(dealerships: Iterable[Mapping[str, Any] | Any]) -> dict:
    by_tier = {tier.value: {"count": 0, "monthly": 0} for tier in SubscriptionTier}
    total = 0
    singles = 0
    groups = 0
    for dealership in dealerships:
        cost = monthly_cost(dealership)
        tier = normalize_tier(_field(dealership, "subscription_tier")).value
        by_tier[tier]["count"] += 1
        by_tier[tier]["monthly"] += cost
        total += cost
        if _field(dealership, "type") == DealershipType.group.value:
            groups += 1
        else:
            singles += 1
    return {
        "total_monthly": total,
        "total_annual": total * 12,
        "single_count": singles,
        "group_count": groups,
        "by_tier": by_tier,
    }
