"""World-reset sequence shared by the scheduled pass and the manual countdown."""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Optional

from .errors import FarmNotFoundError, WorldCreateFailedError
from .host import WorldHost
from .models import FarmRecord, Point

if TYPE_CHECKING:
    from .recovery import RecoveryQueue

LOG = logging.getLogger("farmreset.reset")

EVACUATED_MESSAGE = "You were teleported out of the farm world that is being reset."
KICK_MESSAGE = "Farm reset\nTry again in 1 minute"


class ResetOutcome(str, enum.Enum):
    COMPLETED = "completed"
    DEFERRED = "deferred"


def fallback_spawn(host: WorldHost, world: str) -> Optional[Point]:
    """Spawn of the first loaded world, unless that is the world being reset."""
    names = host.world_names()
    if not names or names[0] == world:
        return None
    return host.spawn_of(names[0])


def evacuate(host: WorldHost, world: str, *, kick_reason: Optional[str] = None) -> int:
    target = fallback_spawn(host, world)
    players = list(host.players_in(world))
    for player in players:
        if target is not None:
            host.teleport(player.id, target)
        if kick_reason is not None:
            host.kick(player.id, kick_reason)
        elif target is not None:
            host.message(player.id, EVACUATED_MESSAGE)
    return len(players)


def broadcast(host: WorldHost, world: str, *lines: str) -> None:
    for player in host.players_in(world):
        for line in lines:
            host.message(player.id, line)


def place_spawn(host: WorldHost, farm: FarmRecord) -> Point:
    """Set the live world's spawn to the farm's saved spawn, never below Y=0."""
    saved = farm.spawn
    spawn = saved
    if saved.y < 0:
        spawn = saved.model_copy(update={"y": float(host.highest_block_y(farm.world, saved.x, saved.z) + 1)})
    host.set_spawn(farm.world, spawn)
    LOG.info("Spawn for farm '%s' set in world '%s' at %s", farm.name, farm.world, spawn.describe())
    return spawn


class WorldResetter:
    def __init__(self, host: WorldHost, recovery: RecoveryQueue) -> None:
        self.host = host
        self.recovery = recovery

    def reset(self, farm: FarmRecord) -> ResetOutcome:
        """Evacuate, unload, delete and re-create the farm world, then place its spawn.

        Once the world is unloaded the farm is queued for recovery on any
        failure, so a half-reset farm is picked up again by the next drain.
        """
        world = farm.world
        if not self.host.is_loaded(world):
            raise FarmNotFoundError(f"World '{world}' for farm '{farm.name}' not found")

        LOG.info("Resetting world '%s' for farm '%s'", world, farm.name)
        moved = evacuate(self.host, world)
        if moved:
            LOG.info("Evacuated %d player(s) from '%s'", moved, world)

        self.host.unload_world(world, save=False)
        try:
            self.host.delete_world(world)
            self.host.create_world(world)
            place_spawn(self.host, farm)
        except WorldCreateFailedError as exc:
            LOG.warning("Re-creating world '%s' for farm '%s' failed, spawn deferred: %s", world, farm.name, exc)
            self.recovery.add(farm.name)
            return ResetOutcome.DEFERRED
        except Exception:
            self.recovery.add(farm.name)
            raise
        return ResetOutcome.COMPLETED
