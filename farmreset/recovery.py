from __future__ import annotations

import logging

from .errors import WorldCreateFailedError
from .host import WorldHost
from .models import FarmRecord
from .reset import place_spawn
from .scheduler import Scheduler
from .store import ConfigStore, FarmStore

LOG = logging.getLogger("farmreset.recovery")

RETRY_DELAY_SEC = 5.0


class RecoveryQueue:
    """Farms whose world still needs its spawn placed after an interrupted reset.

    Membership is persisted after every change, so a restart during recovery
    keeps every pending farm.
    """

    def __init__(self, config: ConfigStore, farms: FarmStore, host: WorldHost, scheduler: Scheduler) -> None:
        self.config = config
        self.farms = farms
        self.host = host
        self.scheduler = scheduler
        self._retrying: set[str] = set()

    def names(self) -> list[str]:
        return self.config.pending_spawns()

    def __contains__(self, name: str) -> bool:
        return name in self.names()

    def __len__(self) -> int:
        return len(self.names())

    def add(self, name: str) -> None:
        names = self.names()
        if name in names:
            return
        names.append(name)
        self.config.set_pending_spawns(names)
        LOG.info("Farm '%s' queued for spawn placement", name)

    def remove(self, name: str) -> None:
        names = self.names()
        if name not in names:
            return
        names.remove(name)
        self.config.set_pending_spawns(names)

    def drain(self) -> list[str]:
        """Place the spawn of every queued farm that has a live world; return the fixed names."""
        pending = self.names()
        if not pending:
            return []

        LOG.info("Checking %d farm(s) awaiting spawn placement", len(pending))
        fixed: list[str] = []
        for name in pending:
            farm = self.farms.get(name)
            if farm is None:
                LOG.warning("Farm '%s' not found, dropping it from the spawn queue", name)
                self.remove(name)
                continue
            if self._try_place(farm):
                self.remove(name)
                fixed.append(name)
            else:
                self._schedule_retry(farm)

        remaining = len(self.names())
        if remaining:
            LOG.info("%d farm(s) still awaiting spawn placement", remaining)
        else:
            LOG.info("All pending spawns placed")
        return fixed

    def _try_place(self, farm: FarmRecord) -> bool:
        world = farm.world
        try:
            if not self.host.is_loaded(world):
                LOG.info("World '%s' for farm '%s' not loaded yet, creating it", world, farm.name)
                self.host.create_world(world)
            place_spawn(self.host, farm)
        except WorldCreateFailedError as exc:
            LOG.warning("Could not create world '%s' for farm '%s': %s", world, farm.name, exc)
            return False
        except Exception:  # noqa: BLE001
            LOG.exception("Placing the spawn of farm '%s' in world '%s' failed", farm.name, world)
            return False
        return True

    def _schedule_retry(self, farm: FarmRecord) -> None:
        if farm.name in self._retrying:
            return
        self._retrying.add(farm.name)

        def retry() -> None:
            self._retrying.discard(farm.name)
            current = self.farms.get(farm.name)
            if current is None or farm.name not in self:
                return
            if self._try_place(current):
                self.remove(farm.name)
            else:
                LOG.warning("Retry for farm '%s' failed, it stays queued", farm.name)

        self.scheduler.schedule_once(RETRY_DELAY_SEC, retry, name=f"spawn-retry-{farm.name}")
