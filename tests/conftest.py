# tests/conftest.py
"""Shared fixtures: an in-memory SQLite database with one seeded lot, and a controllable clock."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SWEEPER_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from parkflow.database import create_tables
from parkflow.services.notification_service import NotificationService
from parkflow.services.receipt_service import seed_receipt_series
from tests.factories import ALICE, BOB, FixedClock, Seed, add_lot, add_vehicle


@pytest.fixture
def db():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    create_tables(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def notifier(db, clock):
    return NotificationService(db, clock)


@pytest.fixture
def seed(db) -> Seed:
    """Lot "Central": spaces 1..10, hourly 5, day 20. Alice and Bob own one vehicle each."""
    seed = add_lot(db)
    seed.vehicles[ALICE] = add_vehicle(db, ALICE, "ABC-123")
    seed.vehicles[BOB] = add_vehicle(db, BOB, "XYZ-789")
    seed_receipt_series(db)
    return seed
