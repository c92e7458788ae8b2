"""
Key Store

Persistence for the key pool:
- Registered keys (create / get / list / delete with explicit usage cleanup)
- Per-(key, model) usage and error counters
- Atomic upsert-increment of those counters
"""
import logging
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from keypool.core.database import check_db_connection
from keypool.models.api_key import ApiKey, ApiKeyUsage

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def mask_key(api_key: str) -> str:
    return f"{api_key[:4]}..."


class KeyStore:
    """Synchronous store over a shared SQLModel engine."""

    def __init__(self, engine: Engine):
        dialect = engine.dialect.name
        if dialect not in _UPSERT_DIALECTS:
            raise ValueError(f"Unsupported database dialect for upsert: {dialect}")
        self._engine = engine
        self._insert = _UPSERT_DIALECTS[dialect]

    @property
    def engine(self) -> Engine:
        return self._engine

    def check_connection(self) -> bool:
        return check_db_connection(self._engine)

    # ------------------------------------------------------------------
    # Reads used by key selection
    # ------------------------------------------------------------------
    def list_keys(self) -> List[str]:
        """All registered keys, ordered by key so iteration order is stable."""
        with Session(self._engine) as session:
            return list(session.exec(select(ApiKey.api_key).order_by(ApiKey.api_key)).all())

    def list_usage(self, model: str) -> List[ApiKeyUsage]:
        with Session(self._engine) as session:
            statement = (
                select(ApiKeyUsage)
                .where(ApiKeyUsage.model == model)
                .order_by(ApiKeyUsage.api_key)
            )
            return list(session.exec(statement).all())

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------
    def increment(self, api_key: str, model: str, usage: int = 0, error: int = 0):
        """
        Create the (key, model) row with the given increments, or add them to
        the existing row, in one statement.
        """
        if not usage and not error:
            return
        table = ApiKeyUsage.__table__
        statement = self._insert(table).values(
            api_key=api_key, model=model, usage=usage, error=error
        )
        statement = statement.on_conflict_do_update(
            index_elements=[table.c.api_key, table.c.model],
            set_={
                "usage": table.c.usage + usage,
                "error": table.c.error + error,
            },
        )
        with self._engine.begin() as connection:
            connection.execute(statement)

    def add_usage(self, api_key: str, model: str):
        self.increment(api_key, model, usage=1)

    def add_error(self, api_key: str, model: str):
        self.increment(api_key, model, error=1)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    def create_key(self, api_key: str) -> ApiKey:
        with Session(self._engine) as session:
            key = ApiKey(api_key=api_key)
            session.add(key)
            session.commit()
            session.refresh(key)
            logger.info(f"Created API key: {mask_key(api_key)}")
            return key

    def get_key(self, api_key: str) -> Optional[ApiKey]:
        with Session(self._engine) as session:
            return session.get(ApiKey, api_key)

    def get_all_keys(self) -> List[ApiKey]:
        with Session(self._engine) as session:
            return list(session.exec(select(ApiKey).order_by(ApiKey.api_key)).all())

    def delete_key(self, api_key: str) -> Optional[ApiKey]:
        """Delete a key and all of its usage rows. Returns None if the key is unknown."""
        with Session(self._engine) as session:
            key = session.get(ApiKey, api_key)
            if not key:
                return None
            deleted = ApiKey(api_key=key.api_key, created_at=key.created_at)
            session.connection().execute(
                delete(ApiKeyUsage).where(ApiKeyUsage.api_key == api_key)
            )
            session.delete(key)
            session.commit()
            logger.info(f"Deleted API key: {mask_key(api_key)}")
            return deleted

    def get_key_usage(self, api_key: str, model: Optional[str] = None) -> List[ApiKeyUsage]:
        with Session(self._engine) as session:
            statement = select(ApiKeyUsage).where(ApiKeyUsage.api_key == api_key)
            if model:
                statement = statement.where(ApiKeyUsage.model == model)
            return list(session.exec(statement.order_by(ApiKeyUsage.model)).all())

    def get_all_usage(self) -> List[ApiKeyUsage]:
        with Session(self._engine) as session:
            statement = select(ApiKeyUsage).order_by(ApiKeyUsage.api_key, ApiKeyUsage.model)
            return list(session.exec(statement).all())

    def get_usage(self, api_key: str, model: str) -> Optional[ApiKeyUsage]:
        with Session(self._engine) as session:
            return session.get(ApiKeyUsage, (api_key, model))
