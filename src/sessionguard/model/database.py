import logging
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sessionguard.model.base import Base
from sessionguard.utils.config import Config

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str = None) -> Engine:
    """Create the engine for DATABASE_URL.

    SQLite has no row locks, so every transaction starts with BEGIN IMMEDIATE:
    writers queue on the database lock instead of failing on upgrade.
    """
    url = database_url or Config.DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_engine(
            url, connect_args={"check_same_thread": False, "timeout": 30}
        )

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    # pool_pre_ping keeps long-idle connections usable
    return create_engine(url, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_database(engine: Engine):
    """Create all tables if they don't exist"""
    try:
        Base.metadata.create_all(engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        raise
