from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlmodel import SQLModel, create_engine

from courtbook.quota import QuotaTracker
from courtbook.scheduler import PromotionScheduler
from courtbook.schedule import slot_key
from courtbook.service import BookingService
from courtbook.store import SlotStore

# mercredi 21 octobre 2026, 15:00 UTC
NOW = datetime(2026, 10, 21, 15, 0, tzinfo=timezone.utc)
UTC = ZoneInfo("UTC")


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'courtbook.db'}", connect_args={"check_same_thread": False, "timeout": 30})
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def quotas(engine):
    return QuotaTracker(engine, tz=UTC, clock=lambda: NOW)


@pytest.fixture
def store(engine, quotas):
    return SlotStore(engine, quotas, clock=lambda: NOW)


@pytest.fixture
def notified():
    return []


@pytest.fixture
def service(store, notified):
    return BookingService(store, max_weekly_hours=2, notify=lambda r, k: notified.append((r, k)))


@pytest.fixture
def scheduler(store, notified):
    return PromotionScheduler(store, notify=lambda r, k: notified.append((r, k)),
                              window_minutes=120, interval_seconds=0.01, max_attempts=3)


@pytest.fixture
def make_slot(store):
    def _make(day="Wednesday", label="6pm-7pm", start=None, capacity=4):
        store.create_slot(day, label, start or NOW + timedelta(hours=3), capacity)
        return slot_key(day, label)
    return _make


def confirmed_count(store, requester_id):
    return sum(1 for s in store.list() if requester_id in s.confirmed)
