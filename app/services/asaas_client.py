"""
Asaas Client
============

PURPOSE:
    Thin async wrapper over the Asaas v3 REST API for the calls the billing
    service needs:

    POST /customers                      → create_customer()
    POST /subscriptions                  → create_subscription()
    GET  /subscriptions/{id}/payments    → list_subscription_payments()

AUTH:
    Asaas authenticates with an ``access_token`` header carrying the account
    API key (BILLING_ASAAS_API_KEY).

ERRORS:
    Non-2xx responses raise AsaasClientError with the first Asaas error
    description when one is present. Timeouts map to 504 and connection
    failures to 502. No retries.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional

import httpx

from app.config import settings
from app.services.reconciler import resolve_link

logger = logging.getLogger(__name__)

_USER_AGENT = "billing-sync/asaas-client"


class AsaasClientError(Exception):
    """Raised when Asaas returns a non-2xx response or cannot be reached."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Asaas returned {status_code}: {detail}")


def _error_detail(response: httpx.Response) -> str:
    detail = response.text
    try:
        body = response.json()
    except ValueError:
        return detail
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors and isinstance(errors, list) and isinstance(errors[0], dict):
        return errors[0].get("description") or detail
    return detail


def cents_to_value(amount_cents: int) -> float:
    """Asaas expects decimal currency units."""
    return round(int(amount_cents) / 100, 2)


class AsaasClient:
    """
    Asaas API client.

    The underlying httpx.AsyncClient is created on first use and shared
    across requests. Pass ``transport`` to route requests elsewhere (tests
    use httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.asaas_api_url).rstrip("/")
        self._api_key = api_key
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else (settings.asaas_api_key or "")

    def _headers(self) -> Dict[str, str]:
        return {
            "access_token": self.api_key,
            "Content-Type": "application/json",
            "User-Agent": _USER_AGENT,
        }

    def _get_client(self) -> httpx.AsyncClient:
        """Return shared httpx.AsyncClient, creating on first use."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.asaas_timeout_s, connect=settings.asaas_connect_timeout_s),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Make a request to Asaas and return the decoded JSON body.

        Raises AsaasClientError on non-2xx responses.
        """
        url = f"{self.base_url}{path}"
        client = self._get_client()

        try:
            response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("Timeout calling Asaas %s %s: %s", method, path, exc)
            raise AsaasClientError(504, "Asaas request timed out")
        except httpx.RequestError as exc:
            logger.error("Connection error to Asaas %s %s: %s", method, path, exc)
            raise AsaasClientError(502, "Cannot reach Asaas")

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error(
                "Asaas %s %s returned %d: %s",
                method, path, response.status_code, detail,
            )
            raise AsaasClientError(response.status_code, detail)

        return response.json()

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    async def create_customer(self, name: Optional[str], email: str) -> Dict[str, Any]:
        """Create a customer. Returns the Asaas customer object (``id`` at least)."""
        payload = {"name": name or email, "email": email}
        customer = await self._request("POST", "/customers", json=payload)
        logger.info("Created Asaas customer %s", customer.get("id"))
        return customer

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def create_subscription(
        self,
        customer_id: str,
        plan_id: str,
        amount_cents: int,
        cycle: str,
    ) -> Dict[str, Any]:
        """
        Create a recurring subscription.

        Asaas has no plan catalogue, so ``plan_id`` travels as
        ``externalReference`` and in the description.
        """
        next_due = date.today() + timedelta(days=settings.asaas_first_due_in_days)
        payload = {
            "customer": customer_id,
            "billingType": settings.asaas_billing_type,
            "value": cents_to_value(amount_cents),
            "nextDueDate": next_due.isoformat(),
            "cycle": cycle,
            "description": f"Plan {plan_id}",
            "externalReference": plan_id,
        }
        subscription = await self._request("POST", "/subscriptions", json=payload)
        logger.info(
            "Created Asaas subscription %s for customer %s (cycle=%s value=%s)",
            subscription.get("id"), customer_id, cycle, payload["value"],
        )
        return subscription

    async def list_subscription_payments(self, subscription_id: str) -> List[Dict[str, Any]]:
        """Payments generated for a subscription, in the order Asaas returns them."""
        body = await self._request("GET", f"/subscriptions/{subscription_id}/payments")
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            data = body.get("data")
            if isinstance(data, list):
                return data
        return []

    @staticmethod
    def extract_payment_link(subscription: Optional[Mapping[str, Any]]) -> Optional[str]:
        """Best-effort scan of a subscription object for an embedded link.

        Looks at the object itself as if it were a payment, then at any
        embedded ``payments`` or ``data`` list.
        """
        if not isinstance(subscription, Mapping):
            return None
        link = resolve_link([subscription])
        if link:
            return link
        for key in ("payments", "data"):
            embedded = subscription.get(key)
            if isinstance(embedded, list):
                link = resolve_link(embedded)
                if link:
                    return link
        return None


# Module-level singleton
asaas_client = AsaasClient()
