import os
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from quicklinks.config import ENVIRONMENT

Base = declarative_base()

# Dev keeps its snapshots in a SQLite file next to the package folder
DEV_DB_PATH = Path(__file__).parent.parent / "quicklinks_dev.db"


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # snapshot timers write from their own thread
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10, pool_recycle=1800)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


def init_db(bind: Engine) -> None:
    """Create the snapshot table if it is missing."""
    from quicklinks import models  # noqa: F401  registers Snapshot on Base

    Base.metadata.create_all(bind=bind)


def database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if ENVIRONMENT == "prod" and not url:
        raise RuntimeError("DATABASE_URL must be set in production")
    return url or f"sqlite:///{DEV_DB_PATH}"


DATABASE_URL = database_url()
engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)
