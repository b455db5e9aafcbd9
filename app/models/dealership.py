import enum
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base


class DealershipType(str, enum.Enum):
    single = "single"
    group = "group"


class SubscriptionTier(str, enum.Enum):
    base = "base"
    plus = "plus"
    premium = "premium"


# Written at creation; the tenant replaces it from its own settings screen.
STORE_HOURS_PLACEHOLDER: dict = {"configured": False}


class Dealership(Base):
    __tablename__ = "dealerships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=DealershipType.single.value)
    schema_name: Mapped[str | None] = mapped_column(String(255), unique=True)
    num_teams: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    subscription_tier: Mapped[str] = mapped_column(String(16), nullable=False, default=SubscriptionTier.base.value)
    manufacturer: Mapped[str | None] = mapped_column(String(120))
    admin_user_id: Mapped[str | None] = mapped_column(String(64), index=True)
    store_hours: Mapped[dict | None] = mapped_column(JSON)
    # "metadata" is reserved on declarative classes, so the attribute is renamed.
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
