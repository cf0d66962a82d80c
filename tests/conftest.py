"""Shared fixtures: an isolated config directory, database and Flask client per test."""

from __future__ import annotations

import os
import sys
from typing import Dict

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.db import Database  # noqa: E402
from services.entities import DESCRIPTORS  # noqa: E402
from services.repository import RecordRepository  # noqa: E402
from services.settings import SettingsManager  # noqa: E402

TEST_SIGNING_KEY = "test-signing-key-with-enough-length-for-hs256"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in ("PRACTICE_CONFIG_DIR", "PRACTICE_SECRET_KEY", "PRACTICE_JWT_SECRET"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_dir(tmp_path):
    path = tmp_path / "config"
    path.mkdir()
    return path


@pytest.fixture
def settings(config_dir):
    return SettingsManager(config_dir=config_dir, overrides={"jwt_signing_key": TEST_SIGNING_KEY})


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "practice.db")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def repositories(database) -> Dict[str, RecordRepository]:
    return {name: RecordRepository(database, descriptor) for name, descriptor in DESCRIPTORS.items()}


@pytest.fixture
def customer(repositories):
    return repositories["customers"].create(
        {
            "customer_name": "Acme Holdings",
            "email_address": "legal@acme.test",
            "customer_status": "Active",
            "industry_type": "Technology",
        }
    )


@pytest.fixture
def app(config_dir):
    from app import create_app, shutdown_app

    application = create_app(
        overrides={"jwt_signing_key": TEST_SIGNING_KEY, "log_level": "WARNING"},
        config_dir=config_dir,
    )
    application.config["TESTING"] = True
    yield application
    shutdown_app(application)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth(client):
    payload = {
        "email": "counsel@firm.test",
        "name": "Dana Counsel",
        "password": "s3cret-pass",
        "role": "Attorney",
    }
    r = client.post("/api/auth/register", json=payload)
    assert r.status_code == 201, r.get_json()
    r = client.post("/api/auth/login", json={"email": payload["email"], "password": payload["password"]})
    assert r.status_code == 200, r.get_json()
    return {"Authorization": f"Bearer {r.get_json()['token']}"}
