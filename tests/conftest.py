from datetime import datetime, timedelta, timezone
from typing import List, Set, Tuple

import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi.testclient import TestClient

from grid_shed.app import create_app
from grid_shed.devices.models import Device
from grid_shed.events.engine import GridEngine
from grid_shed.events.jobs import GridJobs
from grid_shed.exceptions import DispatchError
from grid_shed.seed.loader import load_seed

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now = self.now + timedelta(minutes=minutes)


class RecordingDispatcher:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, str]] = []
        self.fail_for: Set[str] = set()

    def __call__(self, device: Device, command: str) -> bool:
        if device.id in self.fail_for:
            raise DispatchError(device.id, command, "gateway unreachable")
        self.calls.append((device.id, command))
        return device.control.value != "advisory"


@pytest.fixture(autouse=True)
def _no_external_services(monkeypatch):
    for var in ("CORE_API_URL", "INFLUXDB_URL", "REDIS_HOST", "GRID_SEED_FILE"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def scheduler():
    scheduler = BackgroundScheduler(timezone="UTC")
    yield scheduler
    if scheduler.running:
        scheduler.shutdown(wait=False)


@pytest.fixture
def engine(clock, dispatcher):
    settings, devices, playbooks = load_seed()
    return GridEngine(settings, devices, playbooks, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def scheduled_engine(clock, dispatcher, scheduler):
    settings, devices, playbooks = load_seed()
    return GridEngine(
        settings,
        devices,
        playbooks,
        jobs=GridJobs(scheduler),
        dispatcher=dispatcher,
        clock=clock,
    )


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine))
