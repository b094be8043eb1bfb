import os

os.environ.setdefault("CATALOG_SYNC_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CATALOG_SYNC_CACHE_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sync_api.core.cache import cache_client
from sync_api.main import app
from sync_worker.config import WorkerSettings
from sync_worker.configuration import SourceConfig, SyncConfigRequest, SyncConfigStore
from sync_worker.models import Base

from helpers import MAPPING

TEST_DB_URL = "sqlite:///:memory:"


@pytest.fixture()
def session() -> Session:
    engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture()
def settings() -> WorkerSettings:
    return WorkerSettings(
        database_url=TEST_DB_URL,
        max_run_seconds=300,
        worker_pool_size=2,
        retry_max_attempts=3,
        retry_backoff_seconds=1.0,
        source_timeout_seconds=5,
        history_retention=100,
    )


@pytest.fixture()
def configure(session):
    def _configure(merchant_id: str = "m1", **overrides):
        values = {
            "sync_type": "scheduled",
            "field_mapping": dict(MAPPING),
            "schedule": "daily",
            "source": SourceConfig(url="https://merchant.example.com/products"),
        }
        values.update(overrides)
        return SyncConfigStore(session).configure(merchant_id, SyncConfigRequest(**values))

    return _configure


@pytest.fixture()
def client(session: Session) -> TestClient:
    from sync_api.db.session import get_db

    def _get_db() -> Session:
        return session

    cache_client._fallback.clear()
    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    cache_client._fallback.clear()

