"""
User Model
==========

Accounts are created by the login flow; this service only reads them to
name the Asaas customer.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True, max_length=128)
    name: Optional[str] = Field(default=None, nullable=True, max_length=255)
    email: str = Field(unique=True, index=True, max_length=320)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
