"""
Billing Service Configuration
=============================

PURPOSE:
    Pydantic-Settings based configuration for the billing backend.
    All settings can be overridden via environment variables (BILLING_ prefix).

    DATABASE_URL (no prefix) selects the database; see app.core.database.
"""

import logging
from pydantic_settings import BaseSettings
from typing import List, Optional, Literal

logger = logging.getLogger(__name__)

# Asaas sandbox. Production is https://api.asaas.com/v3
_DEFAULT_ASAAS_API_URL = "https://sandbox.asaas.com/api/v3"


class Settings(BaseSettings):
    """Runtime settings for the billing backend."""

    app_name: str = "billing-sync"
    debug: bool = False

    # Asaas billing provider
    asaas_api_url: str = _DEFAULT_ASAAS_API_URL
    asaas_api_key: Optional[str] = None
    # Payment method offered on new subscriptions: UNDEFINED lets the payer choose
    asaas_billing_type: Literal["UNDEFINED", "BOLETO", "CREDIT_CARD", "PIX"] = "UNDEFINED"
    asaas_timeout_s: float = 10.0
    asaas_connect_timeout_s: float = 5.0
    # Days until the first charge is due
    asaas_first_due_in_days: int = 1

    # Storage
    data_directory: str = "/data"
    log_directory: str = "logs"

    # Periodic sync of every subscribed user. 0 disables the background loop.
    sync_interval_s: int = 0

    # Serializes create-or-reuse per user inside a single process.
    # Does not coordinate across processes or replicas.
    user_lock_enabled: bool = False

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    class Config:
        env_file = ".env"
        env_prefix = "BILLING_"

    @property
    def asaas_configured(self) -> bool:
        """True when an Asaas API key is present."""
        return bool(self.asaas_api_key)


settings = Settings()

if not settings.asaas_configured:
    logger.warning(
        "BILLING_ASAAS_API_KEY not set — provider calls will be rejected by Asaas. "
        "Set it to a sandbox or production access token."
    )
