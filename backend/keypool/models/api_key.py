"""
API Key Models

Upstream keys in the pool and their per-model usage counters.
"""
from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiKeyBase(SQLModel):
    api_key: str = Field(primary_key=True)


class ApiKey(ApiKeyBase, table=True):
    """A registered upstream key."""
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class ApiKeyCreate(SQLModel):
    api_key: str


class ApiKeyRead(ApiKeyBase):
    created_at: datetime


class ApiKeyUsageBase(SQLModel):
    api_key: str = Field(foreign_key="apikey.api_key", primary_key=True)
    model: str = Field(primary_key=True)
    usage: int = 0  # attempts that received a response
    error: int = 0  # attempts judged erroneous


class ApiKeyUsage(ApiKeyUsageBase, table=True):
    """Counters for one (key, model) pair."""


class ApiKeyUsageRead(ApiKeyUsageBase):
    pass
