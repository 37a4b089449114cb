"""
Pytest configuration and shared fixtures for the vault lifecycle tests.
"""
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Generator

# Must be set before vault modules build the global settings and engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from vault.core.security import hash_api_key
from vault.lifecycle import ExpirySweeper, LifecycleEngine
from vault.models import Asset, AssetType, Base, Folder, User
from vault.storage import AssetRepository, BlobStorageError, RemovalStatus


# Test Database Configuration
TEST_DATABASE_URL = "sqlite:///:memory:"

START_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Test doubles
# ============================================================================

class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeBlobStore:
    """
    In-memory blob store.

    Paths in `fail` raise BlobStorageError, paths in `hang` block until
    `release()` is called.
    """

    def __init__(self):
        self.objects = set()
        self.fail = set()
        self.hang = set()
        self.removed = []
        self._released = threading.Event()

    def add(self, path: str) -> None:
        self.objects.add(path)

    def release(self) -> None:
        self._released.set()

    def remove(self, path: str) -> RemovalStatus:
        if path in self.hang:
            self._released.wait(timeout=5)
        if path in self.fail:
            raise BlobStorageError(f"Simulated I/O failure for {path}")
        if path not in self.objects:
            return RemovalStatus.ALREADY_GONE
        self.objects.discard(path)
        self.removed.append(path)
        return RemovalStatus.REMOVED


# ============================================================================
# Database
# ============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Fresh in-memory database for each test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    db_session = session_factory()
    try:
        yield db_session
    finally:
        db_session.close()


# ============================================================================
# Lifecycle components
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def blob_store() -> Generator[FakeBlobStore, None, None]:
    store = FakeBlobStore()
    yield store
    store.release()


@pytest.fixture
def lifecycle(session_factory, blob_store, clock) -> Generator[LifecycleEngine, None, None]:
    engine = LifecycleEngine(
        session_factory,
        blob_store,
        clock=clock,
        retention=timedelta(days=30),
        purge_timeout_seconds=0.5,
        purge_workers=2,
        expiring_soon=timedelta(days=7),
    )
    yield engine
    engine.close()


@pytest.fixture
def sweeper(lifecycle, session_factory, clock) -> ExpirySweeper:
    return ExpirySweeper(lifecycle, session_factory, clock=clock, batch_size=2)


# ============================================================================
# Seed data
# ============================================================================

@pytest.fixture
def make_user(session_factory):
    """Factory creating a user; the raw API key is attached as _test_key."""
    def _make_user(username: str = "alice", storage_limit: int = 1000, storage_used: int = 0) -> User:
        raw_key = f"vlt_test_{username}"
        with session_factory() as session:
            user = User(
                username=username,
                api_key_hash=hash_api_key(raw_key),
                storage_limit=storage_limit,
                storage_used=storage_used,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
        user._test_key = raw_key
        return user

    return _make_user


@pytest.fixture
def owner(make_user) -> User:
    return make_user("alice")


@pytest.fixture
def other_user(make_user) -> User:
    return make_user("bob")


@pytest.fixture
def make_folder(session_factory):
    def _make_folder(owner_id: int, name: str, parent_id: int = None, is_system: bool = False) -> int:
        with session_factory() as session:
            folder = Folder(owner_id=owner_id, name=name, parent_folder_id=parent_id, is_system=is_system)
            session.add(folder)
            session.commit()
            return folder.id

    return _make_folder


@pytest.fixture
def make_asset(lifecycle, blob_store):
    """Factory registering an uploaded asset through the engine (quota included)."""
    counter = {"n": 0}

    def _make_asset(
        owner_id: int,
        size: int,
        folder_id: int = None,
        asset_type: AssetType = AssetType.IMAGE,
    ) -> int:
        counter["n"] += 1
        path = f"{owner_id}/{asset_type.value}s/file-{counter['n']}.bin"
        blob_store.add(path)
        result = lifecycle.register_upload(
            owner_id=owner_id,
            asset_type=asset_type,
            original_name=f"file-{counter['n']}",
            size_bytes=size,
            storage_path=path,
            parent_folder_id=folder_id,
        )
        assert result.ok, result
        return result.asset_id

    return _make_asset


# ============================================================================
# Assertion helpers
# ============================================================================

@pytest.fixture
def storage_used(session_factory):
    def _storage_used(user_id: int) -> int:
        with session_factory() as session:
            return session.get(User, user_id).storage_used

    return _storage_used


@pytest.fixture
def assert_quota_consistent(session_factory):
    """storage_used must equal the bytes of the user's visible assets."""
    def _check(user_id: int) -> None:
        with session_factory() as session:
            used = session.get(User, user_id).storage_used
            visible = AssetRepository(session).visible_bytes(user_id)
        assert used == visible, f"storage_used={used} but visible bytes={visible}"

    return _check


@pytest.fixture
def load_asset(session_factory):
    def _load_asset(asset_id: int):
        with session_factory() as session:
            asset = session.get(Asset, asset_id)
            if asset is not None:
                session.expunge(asset)
            return asset

    return _load_asset


# ============================================================================
# HTTP layer
# ============================================================================

@pytest.fixture
def client(session_factory, lifecycle, sweeper) -> Generator[TestClient, None, None]:
    """Test client wired to the test database and lifecycle engine."""
    from vault.api.v1.deps import get_lifecycle_engine, get_sweeper
    from vault.db import get_db
    from vault.main import app

    def override_get_db():
        db_session = session_factory()
        try:
            yield db_session
        finally:
            db_session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lifecycle_engine] = lambda: lifecycle
    app.dependency_overrides[get_sweeper] = lambda: sweeper

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def authenticated_client(client: TestClient, owner: User) -> TestClient:
    client.headers.update({"X-API-Key": owner._test_key})
    return client


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Admin-Key": "test-admin-key"}
