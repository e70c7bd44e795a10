from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .countdown import ManualResetCountdown
from .host import LocalWorldHost, WorldHost
from .orchestrator import ResetOrchestrator
from .recovery import RecoveryQueue
from .reset import WorldResetter
from .scheduler import Scheduler, ThreadScheduler
from .server import Restarter, build_restarter
from .settings import AppSettings
from .store import ConfigStore, FarmStore

LOG = logging.getLogger("farmreset.service")


@dataclass
class FarmResetService:
    settings: AppSettings
    config: ConfigStore
    farms: FarmStore
    host: WorldHost
    scheduler: Scheduler
    recovery: RecoveryQueue
    orchestrator: ResetOrchestrator
    countdown: ManualResetCountdown
    lock: threading.RLock

    def start(self) -> None:
        """Place spawns left over from an interrupted reset, then start the due-check."""
        if isinstance(self.scheduler, ThreadScheduler):
            self.scheduler.start()
        with self.lock:
            self.recovery.drain()
        self.orchestrator.start(self.settings.check_interval_sec)
        LOG.info(
            "Farm reset service started: %d farm(s), next reset %s",
            len(self.farms.all()),
            self.orchestrator.next_reset().isoformat(),
        )

    def stop(self) -> None:
        self.orchestrator.stop()
        if isinstance(self.scheduler, ThreadScheduler):
            self.scheduler.stop()
        self.farms.save()
        LOG.info("Farm reset service stopped")


def build_service(
    settings: AppSettings,
    *,
    host: Optional[WorldHost] = None,
    scheduler: Optional[Scheduler] = None,
    restarter: Optional[Restarter] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FarmResetService:
    config = ConfigStore(settings.config_file)
    farms = FarmStore(settings.farms_file)
    if host is None:
        host = LocalWorldHost(settings.worlds_dir, worlds=settings.worlds)
    lock = getattr(scheduler, "lock", None) or threading.RLock()
    scheduler = scheduler or ThreadScheduler(lock=lock)
    recovery = RecoveryQueue(config, farms, host, scheduler)
    orchestrator = ResetOrchestrator(
        config,
        farms,
        host,
        WorldResetter(host, recovery),
        recovery,
        scheduler,
        restarter or build_restarter(settings.restart_container),
        tz=settings.timezone,
        catch_up=settings.catch_up,
        restart_delay_sec=settings.restart_delay_sec,
        now=clock,
    )
    countdown = ManualResetCountdown(orchestrator, host, scheduler)
    return FarmResetService(
        settings=settings,
        config=config,
        farms=farms,
        host=host,
        scheduler=scheduler,
        recovery=recovery,
        orchestrator=orchestrator,
        countdown=countdown,
        lock=lock,
    )
