"""
Billing Sync Job — Periodic Asaas Reconciliation
=================================================

PURPOSE:
    Re-reads every Asaas subscription known locally and updates the
    matching billing records, the same way GET /billing?sync=true does for
    a single user. Failures on individual records are logged and skipped.

SCHEDULE:
    Started from the app lifespan when BILLING_SYNC_INTERVAL_S > 0.
    Can also be called directly (cron, one-off script).
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from app.services.billing_service import BillingService, billing_service

logger = logging.getLogger(__name__)


async def run_billing_sync(service: Optional[BillingService] = None) -> dict[str, Any]:
    """
    Sync all subscribed users' billing records against Asaas.

    Returns a summary dict with counts and the ids of records that failed.
    """
    service = service or billing_service
    logger.info("Starting billing sync run")

    user_ids = service.subscribed_user_ids()
    if not user_ids:
        logger.info("Billing sync: no subscribed users")
        return {"status": "ok", "users_checked": 0, "updated": 0, "failed": []}

    updated = 0
    failed: list[str] = []
    for user_id in user_ids:
        report = await service.sync_records(service.list_records(user_id))
        updated += len(report.updated)
        failed.extend(report.failed)

    summary = {
        "status": "completed",
        "users_checked": len(user_ids),
        "updated": updated,
        "failed": failed,
    }

    if failed:
        logger.warning("Billing sync: %d records could not be refreshed", len(failed))
    logger.info(json.dumps({"event": "billing_sync_summary", **summary}))
    return summary


async def billing_sync_loop(interval_s: int) -> None:
    """Run run_billing_sync() forever, sleeping ``interval_s`` between runs."""
    while True:
        try:
            await run_billing_sync()
        except Exception as exc:
            # Store errors (e.g. database down) must not kill the loop
            logger.error("Billing sync run failed: %s", exc)
        await asyncio.sleep(interval_s)
