from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Optional

from .errors import FarmNotFoundError, ResetInProgressError
from .host import WorldHost
from .models import FarmRecord
from .orchestrator import RESET_ANNOUNCEMENT, ResetOrchestrator, ResetState
from .reset import KICK_MESSAGE, broadcast, evacuate
from .scheduler import Scheduler, TimerHandle

LOG = logging.getLogger("farmreset.countdown")

COUNTDOWN_SEC = 30
COUNTDOWN_MARKS = (30, 20, 10, 5, 4, 3, 2, 1)
KICK_MARK = 3


@dataclass
class ManualResetSession:
    farm: FarmRecord
    started_at: datetime
    timers: list[TimerHandle] = field(default_factory=list, repr=False)


class ManualResetCountdown:
    """Operator-triggered reset of one farm after a 30 second countdown.

    Every mark and the final reset are separate one-shot timers relative to the
    start, so they land on their offsets however late the previous one ran.
    """

    def __init__(self, orchestrator: ResetOrchestrator, host: WorldHost, scheduler: Scheduler) -> None:
        self.orchestrator = orchestrator
        self.host = host
        self.scheduler = scheduler
        self._session: Optional[ManualResetSession] = None
        orchestrator.countdown = self

    @property
    def active(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> Optional[ManualResetSession]:
        return self._session

    def start(self, farm: FarmRecord) -> ManualResetSession:
        if self.active or self.orchestrator.state is ResetState.RESETTING:
            raise ResetInProgressError("A farm reset is already running")
        world = farm.world
        if not self.host.is_loaded(world):
            raise FarmNotFoundError(f"World '{world}' for farm '{farm.name}' not found")

        session = ManualResetSession(farm=farm, started_at=self.orchestrator.now())
        self._session = session
        LOG.info("Manual reset of farm '%s' (world '%s') starts in %ds", farm.name, world, COUNTDOWN_SEC)

        broadcast(self.host, world, RESET_ANNOUNCEMENT[0], f"{COUNTDOWN_SEC} seconds until reset")
        for mark in COUNTDOWN_MARKS:
            session.timers.append(
                self.scheduler.schedule_once(
                    COUNTDOWN_SEC - mark,
                    partial(self._on_mark, session, mark),
                    name=f"countdown-{farm.name}-{mark}",
                )
            )
        session.timers.append(
            self.scheduler.schedule_once(
                COUNTDOWN_SEC,
                partial(self._on_finish, session),
                name=f"countdown-{farm.name}-reset",
            )
        )
        return session

    def cancel(self) -> None:
        session = self._session
        if session is None:
            return
        for timer in session.timers:
            timer.cancel()
        self._session = None
        LOG.info("Manual reset of farm '%s' cancelled", session.farm.name)

    def _on_mark(self, session: ManualResetSession, mark: int) -> None:
        if self._session is not session:
            return
        world = session.farm.world
        if not self.host.is_loaded(world):
            return
        if mark == KICK_MARK:
            kicked = evacuate(self.host, world, kick_reason=KICK_MESSAGE)
            LOG.info("Kicked %d player(s) from '%s' before the reset", kicked, world)
        else:
            broadcast(self.host, world, str(mark))

    def _on_finish(self, session: ManualResetSession) -> None:
        if self._session is not session:
            return
        farm = session.farm
        LOG.info("=== Manual farm reset of '%s' started ===", farm.name)
        try:
            if self.host.is_loaded(farm.world):
                broadcast(self.host, farm.world, *RESET_ANNOUNCEMENT)
            results = self.orchestrator.reset_farms([farm])
        finally:
            self._session = None
        LOG.info("=== Manual farm reset of '%s' finished: %s ===", farm.name, results[farm.name])
        self.orchestrator.request_restart(f"manual reset of farm '{farm.name}'")
