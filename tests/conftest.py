"""
Pytest configuration for testing
"""

import os
import tempfile
from unittest.mock import MagicMock

import firebase_admin.auth  # noqa: F401  (submodule must be loaded before it can be patched)
import pytest
from sqlalchemy.orm import sessionmaker

# Set up environment variables for testing before any imports
_test_dir = tempfile.mkdtemp(prefix="directory-dashboard-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_test_dir}/app.db"
os.environ["FIREBASE_PROJECT_ID"] = "test-project"
os.environ["FIREBASE_CREDENTIALS_PATH"] = os.path.join(_test_dir, "test-creds.json")
os.environ["QUOTA_BACKEND"] = "sql"
os.environ["DAILY_CONTACT_LIMIT"] = "50"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["REDIS_PASSWORD"] = ""

TEST_DAY = "2026-01-15"


# Mock Firebase Admin so nothing reaches Google
@pytest.fixture(autouse=True)
def mock_firebase_admin(monkeypatch):
    """Mock Firebase Admin SDK to avoid initialization issues in tests"""
    mock_credentials = MagicMock()
    monkeypatch.setattr("firebase_admin.credentials.Certificate", mock_credentials.Certificate)

    mock_init = MagicMock()
    monkeypatch.setattr("firebase_admin.initialize_app", mock_init)

    mock_auth = MagicMock()
    monkeypatch.setattr("firebase_admin.auth", mock_auth)
    # Name captured at import time by FirebaseIdentityProvider
    monkeypatch.setattr("app.core.firebase.auth", mock_auth)

    yield mock_auth


@pytest.fixture
def db_engine(tmp_path):
    """File-backed SQLite engine so worker threads share one database"""
    from app.core.database import Base, create_db_engine
    from app import models  # noqa: F401

    engine = create_db_engine(f"sqlite:///{tmp_path}/test.db")
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    """Create a new database session for a test"""
    session = session_factory()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def sql_store(session_factory):
    from app.services.sql_quota_store import SqlQuotaStore

    return SqlQuotaStore(session_factory)


@pytest.fixture
def make_quota_service(sql_store):
    """Build a quota engine over the SQL store with a fixed calendar day"""
    from app.services.contact_quota_service import ContactQuotaService

    def _make(daily_limit=50, store=None, day=TEST_DAY):
        return ContactQuotaService(store or sql_store, daily_limit=daily_limit, today=lambda: day)

    return _make


@pytest.fixture
def seed_contacts(db_session):
    """Insert contacts c001..cNNN; last names sort in id order"""
    from app.models.contact import Contact

    def _seed(count, agency_name="Springfield Police Department", prefix="c"):
        ids = []
        for i in range(1, count + 1):
            contact_id = f"{prefix}{i:03d}"
            db_session.add(Contact(
                id=contact_id,
                first_name=f"First{i:03d}",
                last_name=f"Last{i:03d}",
                email=f"{contact_id}@example.gov",
                title="Officer",
                agency_name=agency_name,
                created_at=f"2025-01-{(i % 28) + 1:02d}T00:00:00Z",
            ))
            ids.append(contact_id)
        db_session.commit()
        return ids

    return _seed


@pytest.fixture(scope="function")
def redis_client():
    """Create Redis client for testing"""
    import redis

    redis_url = os.environ.get("REDIS_URL", "redis://localhost:6379/1")
    redis_password = os.environ.get("REDIS_PASSWORD", "")

    try:
        client = redis.from_url(
            redis_url,
            password=redis_password if redis_password else None,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
    except Exception:
        # Return None if Redis is not available
        yield None
        return

    yield client

    client.flushdb()
    client.close()
