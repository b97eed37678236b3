from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
API_DIR = ROOT / "API"
if str(API_DIR) not in sys.path:
    sys.path.insert(0, str(API_DIR))

# Test-mode runtime guards:
# - in-process document store, no MongoDB/Postgres
# - no redis traffic for leaderboard caching
# - fixed signing secret for identity and deadline tokens
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LEADERBOARD_CACHE_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret-for-mathtrack")

from app.core.jwt_auth import create_token  # noqa: E402
from app.main import app  # noqa: E402


@pytest.fixture(scope="session")
def client() -> TestClient:
    with TestClient(app) as tc:
        yield tc


@pytest.fixture
def auth():
    def _headers(user_id: str, role: str = "student") -> dict:
        return {"Authorization": f"Bearer {create_token(user_id, role)}"}

    return _headers
