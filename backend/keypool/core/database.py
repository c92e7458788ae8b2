import logging

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session, select

from keypool.models.api_key import ApiKey, ApiKeyUsage  # Ensure models are imported for table creation

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str) -> Engine:
    """Create the process-wide engine shared by every request."""
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(database_url, pool_pre_ping=True)


def create_db_and_tables(engine: Engine):
    SQLModel.metadata.create_all(engine)


def check_db_connection(engine: Engine) -> bool:
    try:
        with Session(engine) as session:
            session.exec(select(ApiKey).limit(1)).first()
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
