from __future__ import annotations

import heapq
import importlib
import itertools
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from farmreset.errors import WorldCreateFailedError  # noqa: E402
from farmreset.host import LocalWorldHost  # noqa: E402
from farmreset.models import FarmRecord, Point  # noqa: E402
from farmreset.scheduler import TimerHandle  # noqa: E402
from farmreset.service import build_service  # noqa: E402
from farmreset.settings import AppSettings  # noqa: E402

BERLIN = ZoneInfo("Europe/Berlin")


def berlin(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=BERLIN)


class FakeScheduler:
    """Virtual-time scheduler; callbacks only run inside ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.lock = threading.RLock()
        self._heap: list[tuple[float, int, TimerHandle, Callable[[], None]]] = []
        self._seq = itertools.count()

    def schedule_once(self, delay: float, fn, *, name: str = "") -> TimerHandle:
        handle = TimerHandle(name=name)
        heapq.heappush(self._heap, (self.now + delay, next(self._seq), handle, fn))
        return handle

    def schedule_repeating(self, interval: float, fn, *, name: str = "") -> TimerHandle:
        handle = TimerHandle(name=name, interval=interval)
        heapq.heappush(self._heap, (self.now, next(self._seq), handle, fn))
        return handle

    def pending(self) -> list[str]:
        return [handle.name for _, _, handle, _ in sorted(self._heap) if not handle.cancelled]

    def advance(self, seconds: float = 0.0) -> None:
        target = self.now + seconds
        while self._heap and self._heap[0][0] <= target:
            deadline, _, handle, fn = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            self.now = deadline
            fn()
            if handle.interval is not None and not handle.cancelled:
                heapq.heappush(self._heap, (deadline + handle.interval, next(self._seq), handle, fn))
        self.now = target


class RecordingRestarter:
    def __init__(self) -> None:
        self.reasons: list[str] = []

    def request_restart(self, reason: str) -> None:
        self.reasons.append(reason)


class FlakyHost(LocalWorldHost):
    """Local host whose world creation fails for the names listed in ``failing``."""

    def __init__(self, *args, **kwargs) -> None:
        self.failing: set[str] = set()
        super().__init__(*args, **kwargs)

    def create_world(self, world: str) -> None:
        if world in self.failing:
            raise WorldCreateFailedError(f"generator refused '{world}'")
        super().create_world(world)


def make_farm(name: str, world: Optional[str] = None, *, y: float = 70.0) -> FarmRecord:
    world = world or name
    return FarmRecord(
        name=name,
        spawn=Point(world=world, x=10.0, y=y, z=-4.0, yaw=90.0),
        corner1=Point(world=world, x=0.0, y=60.0, z=-20.0),
        corner2=Point(world=world, x=20.0, y=80.0, z=12.0),
    )


def make_settings(tmp_path: Path, worlds: list[str]) -> AppSettings:
    return AppSettings(
        data_dir=tmp_path / "data",
        worlds_dir=tmp_path / "worlds",
        worlds=worlds,
        timezone=BERLIN,
        check_interval_sec=60.0,
        catch_up=True,
        restart_container="",
        restart_delay_sec=2.0,
        password="test-password",
        session_secret="test-session-secret",
        cookie_secure=False,
        log_level="INFO",
    )


@pytest.fixture()
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture()
def restarter() -> RecordingRestarter:
    return RecordingRestarter()


@pytest.fixture()
def service_factory(tmp_path: Path, scheduler: FakeScheduler, restarter: RecordingRestarter):
    def factory(worlds=("world", "alpha", "beta"), farms=(), clock=None):
        settings = make_settings(tmp_path, list(worlds))
        host = FlakyHost(settings.worlds_dir, worlds=settings.worlds)
        service = build_service(settings, host=host, scheduler=scheduler, restarter=restarter, clock=clock)
        for farm in farms:
            service.farms.put(farm)
        return service

    return factory


@pytest.fixture()
def app_module(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, scheduler: FakeScheduler, restarter: RecordingRestarter):
    monkeypatch.setenv("FARMRESET_PASSWORD", "test-password")
    monkeypatch.setenv("FARMRESET_SESSION_SECRET", "test-session-secret")
    monkeypatch.setenv("FARMRESET_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("FARMRESET_WORLDS", "world,alpha")

    if "farmreset.main" in sys.modules:
        module = importlib.reload(sys.modules["farmreset.main"])
    else:
        module = importlib.import_module("farmreset.main")

    def build_with_fakes(settings: AppSettings):
        host = FlakyHost(settings.worlds_dir, worlds=settings.worlds)
        return build_service(settings, host=host, scheduler=scheduler, restarter=restarter)

    monkeypatch.setattr(module, "build_service", build_with_fakes)
    return module


@pytest.fixture()
def client(app_module):
    with TestClient(app_module.app) as test_client:
        yield test_client


@pytest.fixture()
def csrf_token(client: TestClient) -> str:
    response = client.post("/login", data={"password": "test-password"})
    assert response.status_code == 200
    return response.json()["csrf_token"]
