"""
Billing Models
==============

SQLModel table for persistent billing state:
- BillingRecord: one row per subscription attempt against Asaas. Rows are
  never deleted; CANCELLED is the soft end of the lifecycle.

The raw provider response is kept in ``metadata_json`` as a versioned
envelope. It is written for humans debugging a charge and is never parsed
by the reconciler.
"""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlmodel import Field, SQLModel, Column, Text

METADATA_SCHEMA_VERSION = 1


class BillingStatus(str, Enum):
    """Local billing states. Any state may follow any other on a later sync."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class BillingCycle(str, Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    @classmethod
    def from_request(cls, value: Optional[str]) -> "BillingCycle":
        """``"yearly"`` in any case selects YEARLY; everything else is MONTHLY."""
        if value and value.strip().lower() == "yearly":
            return cls.YEARLY
        return cls.MONTHLY


def wrap_metadata(data: Any) -> str:
    """Serialize a provider snapshot inside the versioned metadata envelope."""
    return json.dumps(
        {
            "version": METADATA_SCHEMA_VERSION,
            "captured_at": datetime.now(timezone.utc).isoformat(),
            "data": data,
        },
        default=str,
    )


def _utc_isoformat(value: Optional[datetime]) -> Optional[str]:
    """SQLite hands timestamps back naive; they were written as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class BillingRecord(SQLModel, table=True):
    """Local view of an Asaas subscription for one user."""

    __tablename__ = "billings"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True, max_length=36)
    user_id: str = Field(index=True, foreign_key="users.id", max_length=128)
    plan_id: str = Field(max_length=128)
    cycle: str = Field(default=BillingCycle.MONTHLY.value, max_length=16)
    status: str = Field(default=BillingStatus.PENDING.value, index=True, max_length=16)
    provider_customer_id: Optional[str] = Field(default=None, nullable=True, max_length=128)
    provider_subscription_id: Optional[str] = Field(default=None, nullable=True, index=True, max_length=128)
    provider_payment_link: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    price_cents: Optional[int] = Field(default=None, nullable=True)
    metadata_json: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def metadata_snapshot(self) -> Any:
        """Decoded metadata envelope, or None when absent or unreadable."""
        if not self.metadata_json:
            return None
        try:
            return json.loads(self.metadata_json)
        except (json.JSONDecodeError, TypeError):
            return None

    def to_api(self) -> dict:
        """camelCase representation returned by the billing endpoints."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "planId": self.plan_id,
            "cycle": self.cycle,
            "status": self.status,
            "providerCustomerId": self.provider_customer_id,
            "providerSubscriptionId": self.provider_subscription_id,
            "providerPaymentLink": self.provider_payment_link,
            "priceCents": self.price_cents,
            "metadata": self.metadata_snapshot(),
            "createdAt": _utc_isoformat(self.created_at),
            "updatedAt": _utc_isoformat(self.updated_at),
        }
