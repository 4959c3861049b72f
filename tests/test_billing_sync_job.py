"""
Periodic billing sync tests: run_billing_sync() over every subscribed user,
and the background loop surviving a failed run.
"""

import asyncio
from unittest.mock import patch

import pytest

from app.services.asaas_client import AsaasClientError
from app.services.billing_sync_job import billing_sync_loop, run_billing_sync


@pytest.mark.asyncio
async def test_no_subscribed_users(service, fake_asaas, make_user, make_billing):
    make_user()
    make_billing(provider_subscription_id=None)

    summary = await run_billing_sync(service)

    assert summary == {"status": "ok", "users_checked": 0, "updated": 0, "failed": []}
    fake_asaas.list_subscription_payments.assert_not_awaited()


@pytest.mark.asyncio
async def test_syncs_every_subscribed_user(service, fake_asaas, make_user, make_billing, load_record):
    make_user("user-1")
    make_user("user-2")
    a = make_billing("user-1", provider_subscription_id="sub_a")
    b = make_billing("user-2", provider_subscription_id="sub_b")
    c = make_billing("user-2", age=5, provider_subscription_id="sub_c")

    async def payments_for(subscription_id):
        if subscription_id == "sub_c":
            raise AsaasClientError(502, "Cannot reach Asaas")
        return [{"status": "DELETED"}]

    fake_asaas.list_subscription_payments.side_effect = payments_for

    summary = await run_billing_sync(service)

    assert summary["status"] == "completed"
    assert summary["users_checked"] == 2
    assert summary["updated"] == 2
    assert summary["failed"] == [c.id]
    assert load_record(a.id).status == "CANCELLED"
    assert load_record(b.id).status == "CANCELLED"
    assert load_record(c.id).status == "PENDING"


@pytest.mark.asyncio
async def test_loop_survives_failed_run():
    calls = []

    async def flaky_run():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database is locked")
        return {"status": "ok"}

    with patch("app.services.billing_sync_job.run_billing_sync", side_effect=flaky_run):
        task = asyncio.create_task(billing_sync_loop(0))
        while len(calls) < 2:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert len(calls) >= 2
