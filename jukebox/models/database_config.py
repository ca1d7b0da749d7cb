"""
Database configuration and session management for Jukebox Mixer.
"""

import os
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool


logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///database/jukebox.db"

engine = None
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)
Base = declarative_base()


def normalize_database_url(database_url):
    """Fix Heroku style postgres:// URLs for SQLAlchemy"""
    if database_url and database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url or DEFAULT_DATABASE_URL


def init_engine(database_url=None):
    """Create the engine and bind the session factory to it"""
    global engine

    url = normalize_database_url(database_url or os.getenv("DATABASE_URL"))

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            # One shared connection and transaction for every thread; test use only
            kwargs["poolclass"] = StaticPool
            logger.warning(
                "In-memory SQLite shares one connection across threads; "
                "use a file or server database when requests and the scheduler run together"
            )
        else:
            path = url.replace("sqlite:///", "", 1)
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
    else:
        kwargs = {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True, "pool_recycle": 300}

    if engine is not None:
        engine.dispose()

    engine = create_engine(url, echo=False, **kwargs)
    SessionLocal.configure(bind=engine)
    logger.info(f"Database engine ready ({engine.url.get_backend_name()})")
    return engine


def init_db():
    """Initialize database tables"""
    # Model modules register themselves on Base when imported
    from . import owner_models, vote_models  # noqa: F401

    if engine is None:
        init_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")


def drop_db():
    """Drop all tables, used by the test suite"""
    if engine is not None:
        Base.metadata.drop_all(bind=engine)


@contextmanager
def get_db():
    """Context manager for database sessions with automatic commit/rollback"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
