import os

# settings are read at import time
os.environ.setdefault("ENCODE_KEY", "test-encode-key-with-enough-length-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("NONCE_STORE", "memory")
os.environ.setdefault("NONCE_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("CREATE_TABLES_ON_STARTUP", "false")

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator

from main import app
from wallet_auth.db.base import Base
from wallet_auth.db.session import get_db
from wallet_auth.core.nonce_store import MemoryNonceStore
from wallet_auth.services.nonce_manager import NonceManager, get_nonce_manager


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# fixed keys so failures are reproducible
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
OTHER_PRIVATE_KEY = "0x8da4ef21b864d2cc526dbdb2a120bd2874c36c9d0a1fb7f8c63d7f7a8b41de8f"


class FakeClock:
    """Manually advanced clock shared by the nonce store and manager"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sign_message(account, message: str) -> str:
    """personal_sign the message and return a 0x hex signature"""
    signed = Account.sign_message(encode_defunct(text=message), private_key=account.key)
    return "0x" + bytes(signed.signature).hex()


@pytest.fixture(autouse=True)
def _schema() -> Generator:
    """Fresh tables for every test"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def nonce_store(clock) -> MemoryNonceStore:
    return MemoryNonceStore(clock=clock)


@pytest.fixture
def nonce_manager(nonce_store, clock) -> NonceManager:
    return NonceManager(nonce_store, ttl_seconds=300, clock=clock)


@pytest.fixture
def wallet():
    return Account.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def other_wallet():
    return Account.from_key(OTHER_PRIVATE_KEY)


def override_get_db() -> Generator:
    """Override database dependency for testing"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


@pytest.fixture
def client(nonce_manager) -> TestClient:
    """Create a test client for the FastAPI application"""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_nonce_manager] = lambda: nonce_manager
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
