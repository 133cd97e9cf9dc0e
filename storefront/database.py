import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.config import DATABASE_URL

logger = logging.getLogger(__name__)


# ======================================================
# DATABASE CONNECTION
# ======================================================

# Normalise the URL scheme so SQLAlchemy uses psycopg2 correctly.
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

if DATABASE_URL.startswith("sqlite"):
    # Local development and tests. An in-memory database only lives as long
    # as its connection, so every session shares one.
    sqlite_options = {"connect_args": {"check_same_thread": False}}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        sqlite_options["poolclass"] = StaticPool
    engine = create_engine(DATABASE_URL, **sqlite_options)
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,       # drops stale connections
        pool_size=5,
        max_overflow=2,
        pool_timeout=30,
        pool_recycle=300,
        connect_args={"connect_timeout": 10},
    )

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)

Base = declarative_base()


# ======================================================
# DEPENDENCY
# ======================================================

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ======================================================
# DATABASE BOOTSTRAP
# ======================================================

def init_database():
    """
    Idempotent DB initialization: creates every table and index the ORM
    knows about, including the partial unique indexes that keep a single
    default address per type and a single default payment method per user.
    """
    import storefront.models  # noqa: F401
    Base.metadata.create_all(bind=engine)

    logger.info("Database verified | dialect=%s", engine.dialect.name)
