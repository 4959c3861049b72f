"""
Billing Router
==============

GET  /billing?userId=<id>[&sync=true]  → {billing, billings}
POST /billing                          → {billing, subscription, paymentLink}

Status codes: 201 when a new subscription is created, 200 when a pending
billing is reused, 400 for missing fields, 404 for an unknown user and 500
when Asaas or the insert fails. Errors use the registry format
({"error": {...}}) via the BillingError handler.
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field

from app.core.errors import BillingError
from app.models.billing import BillingCycle
from app.services.billing_service import billing_service

logger = logging.getLogger(__name__)

MISSING_FIELDS = "BIL-API-001"

# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class CreateBillingRequest(BaseModel):
    """All fields optional at the schema level so missing ones map to 400."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    plan_id: Optional[str] = Field(default=None, alias="planId")
    billing_cycle: Optional[str] = Field(default=None, alias="billingCycle")
    amount_cents: Optional[Union[int, float]] = Field(default=None, alias="amountCents")


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------
router = APIRouter()


@router.get(
    "/billing",
    summary="List a user's billings",
    description="Newest-first billing history. `sync=true` re-reads every subscription from Asaas first.",
)
async def get_billing(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    sync: Optional[str] = Query(default=None),
):
    if not user_id:
        raise BillingError(MISSING_FIELDS, detail="userId is required")

    # only the literal "true" triggers a provider sync; any other value is a plain read
    overview = await billing_service.get_billings(user_id, sync=sync == "true")
    return {
        "billing": overview.billing.to_api() if overview.billing else None,
        "billings": [record.to_api() for record in overview.billings],
    }


@router.post(
    "/billing",
    status_code=status.HTTP_201_CREATED,
    summary="Create or reuse a subscription",
    description="Creates an Asaas subscription, or returns the pending billing that already has a payment link.",
)
async def create_billing(body: CreateBillingRequest, response: Response):
    missing = [
        name
        for name, value in (
            ("userId", body.user_id),
            ("planId", body.plan_id),
            ("billingCycle", body.billing_cycle),
        )
        if not value
    ]
    if missing:
        raise BillingError(
            MISSING_FIELDS,
            detail="userId, planId and billingCycle are required",
            context={"missing": missing},
        )

    amount_cents = int(body.amount_cents) if body.amount_cents else None
    result = await billing_service.create_or_reuse_billing(
        user_id=body.user_id,
        plan_id=body.plan_id,
        cycle=BillingCycle.from_request(body.billing_cycle),
        amount_cents=amount_cents,
    )

    if not result.created:
        response.status_code = status.HTTP_200_OK

    return {
        "billing": result.record.to_api(),
        "subscription": result.subscription,
        "paymentLink": result.payment_link or None,
    }
