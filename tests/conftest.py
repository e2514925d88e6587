"""
Shared pytest fixtures for the Tamagotcho API test suite.

Service tests get a fresh in-memory mongomock database with the XP level
table already seeded; HTTP tests get a TestClient wired to that database.
"""
import random
from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

import levels as level_engine
import main
from schemas import XpLevel
from settings import Settings, get_settings

CRON_TOKEN = "cron-secret"
WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def db():
    """Empty database with the default XP levels."""
    database = mongomock.MongoClient().tamagotcho_test
    level_engine.seed_levels(database)
    return database


@pytest.fixture
def levels():
    """Default level table as models, no database needed."""
    return [XpLevel(**row) for row in level_engine.XP_LEVELS_DATA]


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def now():
    return datetime(2025, 3, 14, 15, 30)


@pytest.fixture
def settings():
    return Settings(cron_secret_token=CRON_TOKEN, stripe_webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def client(db, settings):
    main.app.dependency_overrides[main.get_db] = lambda: db
    main.app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
