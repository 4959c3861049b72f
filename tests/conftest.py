"""
Pytest configuration for billing tests.
Points the app at a throwaway SQLite database before anything imports it.
"""

import os
import tempfile

# Must be set before any app imports
_test_data_dir = tempfile.mkdtemp(prefix="billing_test_")
os.environ.setdefault("BILLING_DATA_DIRECTORY", _test_data_dir)
os.environ.setdefault("BILLING_LOG_DIRECTORY", os.path.join(_test_data_dir, "logs"))
os.environ.setdefault("BILLING_ASAAS_API_KEY", "test_asaas_key")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_data_dir}/test.db")

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import delete
from sqlmodel import SQLModel

from app.core.database import get_engine, get_session_context

# Import all models so their tables are registered on SQLModel.metadata
from app.models.user import User
from app.models.billing import BillingRecord

SQLModel.metadata.create_all(get_engine())

# Load error registry so BillingError returns correct HTTP status codes
from app.core.errors.registry import error_registry
error_registry.load()

from app.services.asaas_client import AsaasClient
from app.services.billing_service import BillingService

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_tables():
    """Each test starts with empty users/billings tables."""
    with get_session_context() as session:
        session.exec(delete(BillingRecord))
        session.exec(delete(User))
        session.commit()
    yield


@pytest.fixture
def make_user():
    def _make(user_id="user-1", name="Ana Souza", email=None):
        user = User(id=user_id, name=name, email=email or f"{user_id}@example.com")
        with get_session_context() as session:
            session.add(user)
            session.commit()
            session.refresh(user)
        return user
    return _make


@pytest.fixture
def make_billing():
    """Insert a BillingRecord. ``age`` orders records: higher = older."""
    def _make(user_id="user-1", age=0, **fields):
        values = {
            "plan_id": "pro",
            "cycle": "MONTHLY",
            "status": "PENDING",
            "created_at": BASE_TIME - timedelta(minutes=age),
        }
        values.update(fields)
        record = BillingRecord(user_id=user_id, **values)
        with get_session_context() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
        return record
    return _make


@pytest.fixture
def fake_asaas():
    """AsaasClient double with async provider calls."""
    client = MagicMock(spec=AsaasClient)
    client.create_customer = AsyncMock(return_value={"id": "cus_000001"})
    client.create_subscription = AsyncMock(return_value={"id": "sub_000001", "status": "ACTIVE"})
    client.list_subscription_payments = AsyncMock(return_value=[])
    client.extract_payment_link = MagicMock(side_effect=AsaasClient.extract_payment_link)
    return client


@pytest.fixture
def service(fake_asaas):
    return BillingService(client=fake_asaas)


@pytest.fixture
def load_record():
    """Re-read a BillingRecord straight from the database."""
    def _load(record_id):
        with get_session_context() as session:
            return session.get(BillingRecord, record_id)
    return _load
