"""
Campaign Engine - Campaign Store

One engine and session factory for campaigns, images, assignments and the
audit log. DATABASE_URL points at PostgreSQL in deployment and at
in-memory SQLite under the test suite, which also builds one engine per test.
"""
import os
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/campaign_engine"
)
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() == "true"


def engine_options(url: str) -> Dict[str, Any]:
    """Driver-specific create_engine keyword arguments for a database URL."""
    if url.startswith("sqlite"):
        # Request handlers run in a threadpool
        return {"connect_args": {"check_same_thread": False}}
    # Drop connections the server closed while the pool held them
    return {"pool_pre_ping": True}


engine = create_engine(DATABASE_URL, echo=DATABASE_ECHO, **engine_options(DATABASE_URL))

# Request sessions commit explicitly; guarded UPDATEs rely on no autoflush
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Per-request session, closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create the campaign, image, assignment and audit tables if missing."""
    from .models import db_models  # noqa: F401
    Base.metadata.create_all(bind=engine)
