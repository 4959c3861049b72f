"""
Billing Service — Asaas Subscriptions & Local Billing Records
==============================================================

PURPOSE:
    Keeps the local ``billings`` table in step with Asaas:
    1. **get_billings()** — newest-first list for a user. With ``sync=True``
       every record with a subscription is re-read from Asaas; without it,
       only a missing link on the newest record is filled in (lazy refresh).
    2. **sync_records()** — per-record reconciliation. A failure on one
       record is logged and the record is left as it was.
    3. **create_or_reuse_billing()** — reuses the newest record when it is
       PENDING with a cached link, otherwise creates (or reuses) the Asaas
       customer, creates a subscription and stores a new record.

DUPLICATE CHARGES:
    The reuse check is the only guard against creating two subscriptions
    for the same user, and it is best-effort: two concurrent requests can
    both pass it. BILLING_USER_LOCK_ENABLED serializes create-or-reuse per
    user inside one process only. Provider-side objects created before a
    failure are not rolled back.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.config import settings
from app.core.errors import BillingError
from app.models.billing import BillingCycle, BillingRecord, BillingStatus, wrap_metadata
from app.services.asaas_client import AsaasClient, asaas_client
from app.services.reconciler import normalize_status, resolve_link

logger = logging.getLogger(__name__)

__all__ = [
    "BillingService",
    "BillingOverview",
    "BillingResult",
    "SyncReport",
    "billing_service",
]

USER_NOT_FOUND = "BIL-USR-001"
CREATION_FAILED = "BIL-PRV-001"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BillingOverview:
    """Newest record plus the user's full history, newest first."""
    billing: Optional[BillingRecord]
    billings: List[BillingRecord]


@dataclass(frozen=True)
class BillingResult:
    """Outcome of create_or_reuse_billing()."""
    record: BillingRecord
    payment_link: Optional[str]
    subscription: Optional[Dict[str, Any]] = None
    created: bool = True


@dataclass
class SyncReport:
    updated: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: int = 0


# ---------------------------------------------------------------------------
# DB helpers
# ---------------------------------------------------------------------------

def _get_db_session():
    from app.core.database import get_session_context
    return get_session_context()


class BillingService:
    """
    Reconciles local billing records with Asaas subscriptions.

    Records are processed one at a time; nothing runs in parallel.
    """

    def __init__(self, client: Optional[AsaasClient] = None):
        self.client = client or asaas_client
        # a lock lives only while some caller waits on or holds it
        self._user_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    def list_records(self, user_id: str) -> List[BillingRecord]:
        """All records for a user, newest first."""
        from sqlmodel import select

        with _get_db_session() as session:
            stmt = (
                select(BillingRecord)
                .where(BillingRecord.user_id == user_id)
                .order_by(BillingRecord.created_at.desc())
            )
            return list(session.exec(stmt).all())

    def latest_record(self, user_id: str) -> Optional[BillingRecord]:
        from sqlmodel import select

        with _get_db_session() as session:
            stmt = (
                select(BillingRecord)
                .where(BillingRecord.user_id == user_id)
                .order_by(BillingRecord.created_at.desc())
            )
            return session.exec(stmt).first()

    def subscribed_user_ids(self) -> List[str]:
        """Users owning at least one record with an Asaas subscription."""
        from sqlmodel import select

        with _get_db_session() as session:
            stmt = (
                select(BillingRecord.user_id)
                .where(BillingRecord.provider_subscription_id.is_not(None))
                .distinct()
            )
            return list(session.exec(stmt).all())

    def _get_user(self, user_id: str):
        from app.models.user import User

        with _get_db_session() as session:
            return session.get(User, user_id)

    def _update_record(self, record_id: str, **fields: Any) -> BillingRecord:
        """Partial update; returns the refreshed row."""
        with _get_db_session() as session:
            row = session.get(BillingRecord, record_id)
            if row is None:
                raise LookupError(f"billing record {record_id} disappeared")
            for name, value in fields.items():
                setattr(row, name, value)
            row.updated_at = datetime.now(timezone.utc)
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def _insert_record(self, record: BillingRecord) -> BillingRecord:
        with _get_db_session() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_billings(self, user_id: str, sync: bool = False) -> BillingOverview:
        """Return the user's billing history, syncing or lazily refreshing first."""
        if sync:
            billings = await self.sync_billings(user_id)
            return BillingOverview(billing=billings[0] if billings else None, billings=billings)

        billings = self.list_records(user_id)
        latest = billings[0] if billings else None
        if latest is not None and latest.provider_subscription_id and not latest.provider_payment_link:
            refreshed = await self.refresh_payment_link(latest)
            if refreshed is not latest:
                latest = refreshed
                billings = [refreshed, *billings[1:]]

        return BillingOverview(billing=latest, billings=billings)

    async def refresh_payment_link(self, record: BillingRecord) -> BillingRecord:
        """
        Fill in a missing payment link from Asaas.

        Returns the updated record, or ``record`` unchanged when nothing was
        found or Asaas failed. Failures are not reported to the caller.
        """
        try:
            payments = await self.client.list_subscription_payments(record.provider_subscription_id)
            link = resolve_link(payments)
            if not link:
                return record
            updated = self._update_record(record.id, provider_payment_link=link)
            logger.info("Filled payment link for billing=%s", record.id)
            return updated
        except Exception as exc:
            logger.warning(
                "Payment link refresh failed for billing=%s subscription=%s: %s",
                record.id, record.provider_subscription_id, exc,
            )
            return record

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_billings(self, user_id: str) -> List[BillingRecord]:
        """Sync every record of a user against Asaas and return the reloaded list."""
        report = await self.sync_records(self.list_records(user_id))
        logger.info(
            "Billing sync for user=%s: updated=%d failed=%d skipped=%d",
            user_id, len(report.updated), len(report.failed), report.skipped,
        )
        return self.list_records(user_id)

    async def sync_records(self, records: List[BillingRecord]) -> SyncReport:
        report = SyncReport()
        for record in records:
            if not record.provider_subscription_id:
                report.skipped += 1
                continue
            try:
                await self._sync_record(record)
                report.updated.append(record.id)
            except Exception as exc:
                report.failed.append(record.id)
                logger.warning(
                    "Billing sync failed for billing=%s subscription=%s: %s",
                    record.id, record.provider_subscription_id, exc,
                )
        return report

    async def _sync_record(self, record: BillingRecord) -> BillingRecord:
        payments = await self.client.list_subscription_payments(record.provider_subscription_id)
        first = payments[0] if payments and isinstance(payments[0], dict) else {}

        status = normalize_status(first.get("status") or record.status)
        link = resolve_link(payments, fallback=record.provider_payment_link)

        fields: Dict[str, Any] = {"status": status.value}
        if link:
            fields["provider_payment_link"] = link
        if payments:
            fields["metadata_json"] = wrap_metadata(payments)

        if status.value != record.status:
            logger.info(
                "Billing %s status %s -> %s (subscription=%s)",
                record.id, record.status, status.value, record.provider_subscription_id,
            )
        return self._update_record(record.id, **fields)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _lock_for(self, user_id: str) -> Optional[asyncio.Lock]:
        if not settings.user_lock_enabled:
            return None
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = self._user_locks[user_id] = asyncio.Lock()
        return lock

    async def create_or_reuse_billing(
        self,
        user_id: str,
        plan_id: str,
        cycle: BillingCycle,
        amount_cents: Optional[int] = None,
    ) -> BillingResult:
        """
        Start a subscription for a user, or hand back the pending one.

        Raises:
            BillingError BIL-USR-001 when the user does not exist.
            BillingError BIL-PRV-001 when any Asaas call or the insert fails.
        """
        lock = self._lock_for(user_id)
        if lock is None:
            return await self._create_or_reuse(user_id, plan_id, cycle, amount_cents)
        async with lock:
            return await self._create_or_reuse(user_id, plan_id, cycle, amount_cents)

    async def _create_or_reuse(
        self,
        user_id: str,
        plan_id: str,
        cycle: BillingCycle,
        amount_cents: Optional[int],
    ) -> BillingResult:
        user = self._get_user(user_id)
        if user is None:
            raise BillingError(USER_NOT_FOUND, detail=f"user {user_id} not found", context={"user_id": user_id})

        previous = self.latest_record(user_id)

        # Must run before any Asaas call
        if (
            previous is not None
            and previous.status == BillingStatus.PENDING.value
            and previous.provider_payment_link
        ):
            logger.info("Reusing pending billing %s for user %s", previous.id, user_id)
            return BillingResult(
                record=previous,
                payment_link=previous.provider_payment_link,
                subscription=None,
                created=False,
            )

        customer_id = previous.provider_customer_id if previous is not None else None

        try:
            if not customer_id:
                customer = await self.client.create_customer(name=user.name, email=user.email)
                customer_id = customer["id"]

            subscription = await self.client.create_subscription(
                customer_id=customer_id,
                plan_id=plan_id,
                amount_cents=int(amount_cents or 0),
                cycle=cycle.value,
            )

            payment_link = subscription.get("paymentLink") or self.client.extract_payment_link(subscription)
            snapshot: Any = subscription

            if not payment_link and subscription.get("id"):
                try:
                    payments = await self.client.list_subscription_payments(subscription["id"])
                    snapshot = payments
                    payment_link = resolve_link(payments)
                except Exception as exc:
                    logger.warning(
                        "Could not fetch payments for new subscription %s: %s",
                        subscription.get("id"), exc,
                    )

            record = self._insert_record(
                BillingRecord(
                    user_id=user_id,
                    plan_id=plan_id,
                    cycle=cycle.value,
                    status=normalize_status(subscription.get("status")).value,
                    provider_customer_id=customer_id,
                    provider_subscription_id=subscription.get("id"),
                    provider_payment_link=payment_link or None,
                    price_cents=int(amount_cents) if amount_cents else None,
                    metadata_json=wrap_metadata(snapshot),
                )
            )
        except Exception as exc:
            logger.error("Billing creation failed for user %s: %s", user_id, exc)
            raise BillingError(
                CREATION_FAILED,
                detail=getattr(exc, "detail", None) or str(exc) or "Error creating charge",
                context={"user_id": user_id, "plan_id": plan_id},
            ) from exc

        logger.info(
            "Created billing %s for user %s (subscription=%s status=%s link=%s)",
            record.id, user_id, record.provider_subscription_id, record.status,
            bool(record.provider_payment_link),
        )
        return BillingResult(
            record=record,
            payment_link=record.provider_payment_link,
            subscription=subscription,
            created=True,
        )


# Module-level singleton
billing_service = BillingService()
