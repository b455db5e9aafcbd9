from datetime import datetime

from pydantic import BaseModel, Field


class DealershipRead(BaseModel):
    id: int
    name: str
    type: str
    schema_name: str | None = None
    num_teams: int
    subscription_tier: str
    manufacturer: str | None = None
    admin_user_id: str | None = None
    store_hours: dict | None = None
    metadata: dict | None = None
    monthly_cost: int
    created_at: datetime | None = None


class TierTotals(BaseModel):
    count: int = 0
    monthly: int = 0


class BillingSummary(BaseModel):
    total_monthly: int
    total_annual: int
    single_count: int
    group_count: int
    by_tier: dict[str, TierTotals] = Field(default_factory=dict)
