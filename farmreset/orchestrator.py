from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, tzinfo
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from .clock import SCHEDULE_TZ, latest_due_instant, next_reset_instant
from .errors import FarmNotFoundError, FarmResetError
from .host import WorldHost
from .models import FarmRecord
from .recovery import RecoveryQueue
from .reset import WorldResetter
from .scheduler import Scheduler, TimerHandle
from .server import NullRestarter, Restarter
from .store import ConfigStore, FarmStore

if TYPE_CHECKING:
    from .countdown import ManualResetCountdown

LOG = logging.getLogger("farmreset.orchestrator")

CHECK_INTERVAL_SEC = 60.0
DEBOUNCE_SEC = 3600

RESET_ANNOUNCEMENT = (
    "=== FARM RESET ===",
    "The farm world is being reset...",
)


class ResetState(str, enum.Enum):
    IDLE = "idle"
    RESETTING = "resetting"


class ResetOrchestrator:
    """Recurring due-check that resets every registered farm when the schedule fires."""

    def __init__(
        self,
        config: ConfigStore,
        farms: FarmStore,
        host: WorldHost,
        resetter: WorldResetter,
        recovery: RecoveryQueue,
        scheduler: Scheduler,
        restarter: Optional[Restarter] = None,
        *,
        tz: tzinfo = SCHEDULE_TZ,
        catch_up: bool = True,
        restart_delay_sec: float = 2.0,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.farms = farms
        self.host = host
        self.resetter = resetter
        self.recovery = recovery
        self.scheduler = scheduler
        self.restarter = restarter or NullRestarter()
        self.tz = tz
        self.catch_up = catch_up
        self.restart_delay_sec = restart_delay_sec
        self._now = now or (lambda: datetime.now(self.tz))
        self.state = ResetState.IDLE
        self.countdown: Optional["ManualResetCountdown"] = None
        self._tick_handle: Optional[TimerHandle] = None
        self._first_check = True
        self._deferred = False

    def now(self) -> datetime:
        return self._now().astimezone(self.tz)

    def start(self, interval: float = CHECK_INTERVAL_SEC) -> None:
        if self._tick_handle is not None and not self._tick_handle.cancelled:
            return
        self._tick_handle = self.scheduler.schedule_repeating(interval, self.tick, name="reset-due-check")

    def stop(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        if self.countdown is not None:
            self.countdown.cancel()

    def tick(self) -> None:
        if len(self.recovery):
            try:
                self.recovery.drain()
            except Exception:  # noqa: BLE001
                LOG.exception("Spawn recovery failed, running the due check anyway")
        self.check_due()

    def next_reset(self, now: Optional[datetime] = None) -> datetime:
        schedule = self.config.schedule()
        now = now or self.now()
        upcoming = next_reset_instant(now, schedule.last_reset, schedule.reset_hour, schedule.interval_days, self.tz)
        if self._on_first_run_day(upcoming):
            upcoming += timedelta(days=schedule.interval_days)
        return upcoming

    def _on_first_run_day(self, moment: datetime) -> bool:
        # Bootstrapping puts one due instant on the first-run day itself; the first
        # real reset is the one a full interval later.
        first_run = self.config.first_run()
        if not first_run:
            return False
        return moment.astimezone(self.tz).date() <= datetime.fromtimestamp(first_run, self.tz).date()

    def check_due(self, now: Optional[datetime] = None) -> bool:
        now = (now or self.now()).astimezone(self.tz)
        schedule = self.config.schedule()

        bootstrapped = False
        if schedule.last_reset == 0:
            first = int((now - timedelta(days=schedule.interval_days)).timestamp())
            self.config.bootstrap(first, int(now.timestamp()))
            schedule = schedule.model_copy(update={"last_reset": first})
            bootstrapped = True
            LOG.info("No reset recorded yet, schedule bootstrapped from %s", now.isoformat())

        late_allowed = self.catch_up and not bootstrapped and (self._first_check or self._deferred)
        self._first_check = False

        due = latest_due_instant(now, schedule.last_reset, schedule.reset_hour, schedule.interval_days, self.tz)
        if due is None or due.date() != now.date() or self._on_first_run_day(due):
            self._deferred = False
            return False

        on_time = now.hour == schedule.reset_hour and now.minute == 0
        if not (on_time or late_allowed):
            return False
        if schedule.last_reset > int(now.timestamp()) - DEBOUNCE_SEC:
            return False

        if self.busy:
            LOG.info("Scheduled reset due at %s postponed, another reset is running", due.isoformat())
            self._deferred = True
            return False
        self._deferred = False

        if not on_time:
            LOG.info("Catching up the reset that was due at %s", due.isoformat())
        self.run_pass(now)
        return True

    @property
    def busy(self) -> bool:
        if self.state is ResetState.RESETTING:
            return True
        return self.countdown is not None and self.countdown.active

    def run_pass(self, now: Optional[datetime] = None) -> dict[str, str]:
        now = now or self.now()
        LOG.info("=== Scheduled farm reset started ===")
        for player in self.host.online_players():
            for line in RESET_ANNOUNCEMENT:
                self.host.message(player.id, line)

        farms = self.farms.all()
        if not farms:
            LOG.warning("No farms registered, nothing to reset")
            self.config.record_reset(int(now.timestamp()))
            return {}

        results = self.reset_farms(farms)
        self.config.record_reset(int(now.timestamp()))
        LOG.info("=== Scheduled farm reset finished: %s ===", results)
        self.request_restart("scheduled farm reset")
        return results

    def reset_farms(self, farms: Iterable[FarmRecord]) -> dict[str, str]:
        """Run the world-reset sequence for each farm in turn, isolating failures."""
        results: dict[str, str] = {}
        self.state = ResetState.RESETTING
        try:
            for farm in farms:
                try:
                    results[farm.name] = self.resetter.reset(farm).value
                except FarmNotFoundError as exc:
                    LOG.warning("Skipping farm '%s' (world '%s'): %s", farm.name, farm.world, exc)
                    results[farm.name] = "not_found"
                except FarmResetError as exc:
                    LOG.error("Reset of farm '%s' (world '%s') failed: %s", farm.name, farm.world, exc)
                    results[farm.name] = "failed"
                except Exception:  # noqa: BLE001
                    LOG.exception("Unexpected error resetting farm '%s' (world '%s')", farm.name, farm.world)
                    results[farm.name] = "failed"
        finally:
            self.state = ResetState.IDLE
        return results

    def request_restart(self, reason: str) -> None:
        self.scheduler.schedule_once(
            self.restart_delay_sec,
            lambda: self.restarter.request_restart(reason),
            name="server-restart",
        )
