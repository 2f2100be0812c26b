import os
import tempfile

os.environ.setdefault("LEDGER_DATA_DIR", tempfile.mkdtemp(prefix="ledger-tests-"))

import httpx
import pytest
from sqlalchemy.orm import sessionmaker

from client import LedgerClient
from database import Base, create_db_engine
from main import app, get_db
from session_store import SessionStore


@pytest.fixture
def db_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
async def api_client(db_engine):
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    http = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    )
    client = LedgerClient(SessionStore(), base_url="http://test/api", http_client=http)
    yield client
    await http.aclose()
    app.dependency_overrides.clear()


@pytest.fixture
async def signed_in(api_client):
    await api_client.auth.signup("Office", "office@example.org", "secret-pass")
    return api_client
