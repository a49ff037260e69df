"""
Control-Plane Database

SQLAlchemy setup for the platform-wide database that holds the tenant
directory. Tenant business data never lives here: every tenant has its
own data-plane database, reached through hrms.tenancy.registry.

NOTE: This engine is synchronous. Async callers go through
SqlTenantDirectory, which pushes the blocking work onto the thread pool.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from hrms.config import get_settings
import logging

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_options(url: str) -> dict:
    """Pool options for the control-plane engine."""
    if url.startswith("sqlite"):
        # SQLite connections are handed between threadpool workers
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,  # Verify connections before using (handles stale connections)
    }


engine = create_engine(
    settings.CONTROL_DATABASE_URL,
    echo=settings.DEBUG,  # Log SQL in debug mode
    **_engine_options(settings.CONTROL_DATABASE_URL),
)

# expire_on_commit=False so directory rows stay readable after the
# session that loaded them is closed
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)

# Base class for control-plane models
Base = declarative_base()


@event.listens_for(engine, "connect")
def set_connection_timezone(dbapi_connection, connection_record):
    """Set connection-level configuration on new connections."""
    # SQLite doesn't support SET TIME ZONE, so we skip it
    if settings.CONTROL_DATABASE_URL.startswith("postgresql"):
        cursor = dbapi_connection.cursor()
        cursor.execute("SET TIME ZONE 'UTC'")
        cursor.close()
    logger.debug("New control-plane connection established")


def get_db() -> Session:
    """
    Dependency function that provides a control-plane session.

    The session is automatically closed after the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Create the control-plane tables.

    For dev/testing convenience only. Use migrations in production.
    """
    # Register the models on Base.metadata before create_all
    import hrms.models  # noqa: F401

    logger.warning("init_db() called - use migrations in production!")
    Base.metadata.create_all(bind=engine)
