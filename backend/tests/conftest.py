"""
Shared fixtures: an in-memory SQLite database, a small multi-tenant world
(two companies, staff, clients, contractors) and a temp-dir file store.
"""
import io
import os
import tempfile
from types import SimpleNamespace

# Must be set before app.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("UPLOAD_DIR", os.path.join(tempfile.gettempdir(), "campaign-engine-test-uploads"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, engine_options
from app.models import db_models  # noqa: F401
from app.models.db_models import CompanyDB, UserDB, UserRole
from app.models.identity import IdentityContext
from app.services.storage import FileStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", poolclass=StaticPool, **engine_options("sqlite://"))
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_store(tmp_path):
    return FileStore(upload_dir=str(tmp_path / "uploads"))


def make_company(db, name, is_active=True):
    company = CompanyDB(name=name, is_active=is_active)
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def make_user(db, username, role, company_id=None, is_active=True, password_hash="not-a-real-hash"):
    user = UserDB(
        username=username,
        password_hash=password_hash,
        first_name=username.capitalize(),
        role=role,
        company_id=company_id,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def world(db):
    """
    Two tenants with one client each, one staff user, and three contractors
    (one of them inactive).
    """
    acme = make_company(db, "Acme Outdoor")
    globex = make_company(db, "Globex Media")
    dormant = make_company(db, "Dormant Co", is_active=False)

    staff = make_user(db, "staff", UserRole.STAFF)
    client_acme = make_user(db, "acme_client", UserRole.CLIENT, company_id=acme.id)
    client_globex = make_user(db, "globex_client", UserRole.CLIENT, company_id=globex.id)
    t1 = make_user(db, "installer_one", UserRole.CONTRACTOR)
    t2 = make_user(db, "installer_two", UserRole.CONTRACTOR)
    retired = make_user(db, "retired", UserRole.CONTRACTOR, is_active=False)

    return SimpleNamespace(
        acme=acme,
        globex=globex,
        dormant=dormant,
        staff=staff,
        client_acme=client_acme,
        client_globex=client_globex,
        t1=t1,
        t2=t2,
        retired=retired,
        staff_id=IdentityContext.from_user(staff),
        acme_id=IdentityContext.from_user(client_acme),
        globex_id=IdentityContext.from_user(client_globex),
        t1_id=IdentityContext.from_user(t1),
        t2_id=IdentityContext.from_user(t2),
    )


@pytest.fixture
def store_png(file_store):
    """Write a small PNG through the file store and return its descriptor."""
    def _store(name="proof.png"):
        return file_store.save(io.BytesIO(PNG_BYTES), name, "image/png")
    return _store
