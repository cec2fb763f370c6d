# Pytest configuration for API tests.
# Forces a local SQLite DB, disables Redis and Stripe, and wires the JWT secret for deterministic runs.
import os
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

# Test-time environment: local SQLite DB, Redis disabled, offline payment intents, predictable JWT secret
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("BOARDINGHOUSE_JWT_SECRET", "test-secret")
os.environ["STRIPE_SECRET_KEY"] = ""

import sys
# Ensure the repo root is on sys.path so 'boardinghouse' resolves when running pytest from anywhere
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from boardinghouse.main import app  # noqa: E402
from boardinghouse.db import Base, engine  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_db() -> Iterator[None]:
    """
    Session-level database bootstrap using a local SQLite file.

    Drops and recreates schema once per test session to ensure a clean slate.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_db() -> Iterator[None]:
    """Function-level isolation: drop and recreate schema before each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def client() -> Iterator[TestClient]:
    with TestClient(app) as c:
        yield c
