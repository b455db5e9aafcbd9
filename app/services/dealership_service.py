"""Dealership Service — read-side views used by the master-admin console."""

from __future__ import annotations

import logging

from app.models.dealership import DealershipType
from app.services.exceptions import NotFoundError, ProvisioningError, ValidationError
from app.services.pricing_service import monthly_cost, revenue_summary
from app.services.record_store import Query, RecordStore

logger = logging.getLogger(__name__)

DEALERSHIPS = "dealerships"


def _with_cost(row: dict) -> dict:
    return {**row, "monthly_cost": monthly_cost(row)}


class DealershipService:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def list_dealerships(self, dealership_type: str | None = None, limit: int = 100, offset: int = 0) -> list[dict]:
        filters = {}
        if dealership_type:
            try:
                filters["type"] = DealershipType(dealership_type).value
            except ValueError as exc:
                raise ValidationError("type", f"Unknown dealership type: {dealership_type!r}") from exc
        result = self.store.select(DEALERSHIPS, Query(filters=filters, order_by="id", limit=limit, offset=offset))
        if not result.ok:
            raise ProvisioningError("dealership_listing", result.error.message)
        return [_with_cost(row) for row in result.rows]

    def get(self, dealership_id: int) -> dict:
        result = self.store.select(DEALERSHIPS, Query(filters={"id": dealership_id}, limit=1))
        if not result.ok:
            raise ProvisioningError("dealership_lookup", result.error.message)
        if not result.rows:
            raise NotFoundError(f"Dealership {dealership_id} not found")
        return _with_cost(result.rows[0])

    def billing_summary(self) -> dict:
        result = self.store.select(
            DEALERSHIPS,
            Query(columns=("id", "type", "subscription_tier", "num_teams", "metadata"), order_by="id"),
        )
        if not result.ok:
            raise ProvisioningError("billing_summary", result.error.message)
        summary = revenue_summary(result.rows)
        logger.debug("Billing summary over %d dealerships", len(result.rows))
        return summary
