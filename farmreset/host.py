"""Capability interface to the game server's world and player runtime.

The reset core only ever addresses worlds by name and never keeps a world
object between steps, because a world may be destroyed and replaced at any
point of a reset.
"""

from __future__ import annotations

import json
import logging
import shutil
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Protocol

from .errors import FarmNotFoundError, FarmResetError, WorldCreateFailedError
from .models import Point

LOG = logging.getLogger("farmreset.host")

LEVEL_FILE = "level.json"


@dataclass
class Player:
    id: str
    name: str
    world: str


class WorldHost(Protocol):
    def world_names(self) -> list[str]: ...

    def is_loaded(self, world: str) -> bool: ...

    def players_in(self, world: str) -> list[Player]: ...

    def online_players(self) -> list[Player]: ...

    def spawn_of(self, world: str) -> Point: ...

    def teleport(self, player_id: str, point: Point) -> None: ...

    def message(self, player_id: str, text: str) -> None: ...

    def kick(self, player_id: str, reason: str) -> None: ...

    def unload_world(self, world: str, *, save: bool) -> None: ...

    def world_folder(self, world: str) -> Path: ...

    def delete_world(self, world: str) -> None: ...

    def create_world(self, world: str) -> None: ...

    def set_spawn(self, world: str, point: Point) -> None: ...

    def highest_block_y(self, world: str, x: float, z: float) -> int: ...


@dataclass
class _LoadedWorld:
    folder: Path
    spawn: Point


@dataclass
class _Inbox:
    messages: list[str] = field(default_factory=list)
    kicked_with: Optional[str] = None


class LocalWorldHost:
    """Directory-backed world host.

    Each world is a folder under ``worlds_dir`` holding a ``level.json``. Load
    order is kept, so the first loaded world acts as the fallback world. Terrain
    is flat: the highest block is always ``sea_level``.
    """

    def __init__(self, worlds_dir: Path, worlds: Iterable[str] = ("world",), sea_level: int = 63) -> None:
        self.worlds_dir = worlds_dir
        self.sea_level = sea_level
        self._worlds: OrderedDict[str, _LoadedWorld] = OrderedDict()
        self._players: dict[str, Player] = {}
        self._inboxes: dict[str, _Inbox] = {}
        for name in worlds:
            self.create_world(name)

    # Worlds

    def world_names(self) -> list[str]:
        return list(self._worlds)

    def is_loaded(self, world: str) -> bool:
        return world in self._worlds

    def world_folder(self, world: str) -> Path:
        return self.worlds_dir / world

    def spawn_of(self, world: str) -> Point:
        return self._loaded(world).spawn

    def create_world(self, world: str) -> None:
        if world in self._worlds:
            return
        folder = self.world_folder(world)
        level = folder / LEVEL_FILE
        spawn = Point(world=world, x=0.0, y=float(self.sea_level + 1), z=0.0)
        try:
            folder.mkdir(parents=True, exist_ok=True)
            if level.exists():
                spawn = Point(**json.loads(level.read_text(encoding="utf-8"))["spawn"])
            else:
                level.write_text(json.dumps({"spawn": spawn.model_dump()}), encoding="utf-8")
        except (OSError, ValueError, KeyError) as exc:
            raise WorldCreateFailedError(f"Could not create world '{world}': {exc}") from exc
        self._worlds[world] = _LoadedWorld(folder=folder, spawn=spawn)
        LOG.info("World '%s' loaded from %s", world, folder)

    def delete_world(self, world: str) -> None:
        if world in self._worlds:
            raise FarmResetError(f"World '{world}' is still loaded")
        folder = self.world_folder(world)
        if folder.exists():
            shutil.rmtree(folder)
            LOG.info("World folder '%s' deleted", folder)

    def unload_world(self, world: str, *, save: bool) -> None:
        loaded = self._worlds.pop(world, None)
        if loaded is None:
            return
        if save:
            (loaded.folder / LEVEL_FILE).write_text(json.dumps({"spawn": loaded.spawn.model_dump()}), encoding="utf-8")
        LOG.info("World '%s' unloaded (save=%s)", world, save)

    def set_spawn(self, world: str, point: Point) -> None:
        loaded = self._loaded(world)
        loaded.spawn = point.model_copy(update={"world": world})

    def highest_block_y(self, world: str, x: float, z: float) -> int:
        self._loaded(world)
        return self.sea_level

    def _loaded(self, world: str) -> _LoadedWorld:
        loaded = self._worlds.get(world)
        if loaded is None:
            raise FarmNotFoundError(f"World '{world}' is not loaded")
        return loaded

    # Players

    def join(self, player_id: str, name: str, world: str) -> Player:
        self._loaded(world)
        player = Player(id=player_id, name=name, world=world)
        self._players[player_id] = player
        self._inboxes.setdefault(player_id, _Inbox()).kicked_with = None
        return player

    def online_players(self) -> list[Player]:
        return list(self._players.values())

    def players_in(self, world: str) -> list[Player]:
        return [player for player in self._players.values() if player.world == world]

    def teleport(self, player_id: str, point: Point) -> None:
        self._loaded(point.world)
        player = self._players.get(player_id)
        if player is not None:
            player.world = point.world

    def message(self, player_id: str, text: str) -> None:
        if player_id in self._players:
            self._inboxes.setdefault(player_id, _Inbox()).messages.append(text)

    def kick(self, player_id: str, reason: str) -> None:
        if self._players.pop(player_id, None) is not None:
            self._inboxes.setdefault(player_id, _Inbox()).kicked_with = reason
            LOG.info("Kicked player %s: %s", player_id, reason.replace("\n", " "))

    def messages_for(self, player_id: str) -> list[str]:
        return list(self._inboxes.get(player_id, _Inbox()).messages)

    def kick_reason(self, player_id: str) -> Optional[str]:
        return self._inboxes.get(player_id, _Inbox()).kicked_with
