from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from .errors import PersistenceError
from .models import DEFAULT_INTERVAL_DAYS, DEFAULT_RESET_HOUR, FarmRecord, Point, ScheduleState

LOG = logging.getLogger("farmreset.store")

KEY_LAST_RESET = "lastReset"
KEY_RESET_HOUR = "resetHour"
KEY_INTERVAL_DAYS = "resetIntervalDays"
KEY_PENDING_SPAWNS = "farmsToSetSpawnAfterRestart"
KEY_FIRST_RUN = "firstRun"


def _read_json(path: Path) -> Any:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise PersistenceError(f"Failed to parse {path.name}: {exc}") from exc
    except OSError as exc:
        raise PersistenceError(f"Failed to read {path.name}: {exc}") from exc


def _write_json(path: Path, payload: Any) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, path)
    except OSError as exc:
        raise PersistenceError(f"Failed to write {path.name}: {exc}") from exc


class ConfigStore:
    """Key-value schedule state backed by ``config.json``.

    Read and write failures are logged and swallowed: the in-memory values keep
    the current process running, they just will not survive a restart.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._values: dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        try:
            data = _read_json(self.path)
        except PersistenceError as exc:
            LOG.error("%s; continuing with defaults", exc)
            data = None
        self._values = data if isinstance(data, dict) else {}

    def save(self) -> bool:
        try:
            _write_json(self.path, self._values)
        except PersistenceError as exc:
            LOG.error("%s; state kept in memory only", exc)
            return False
        return True

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def schedule(self) -> ScheduleState:
        raw = {
            "last_reset": self._values.get(KEY_LAST_RESET, 0),
            "reset_hour": self._values.get(KEY_RESET_HOUR, DEFAULT_RESET_HOUR),
            "interval_days": self._values.get(KEY_INTERVAL_DAYS, DEFAULT_INTERVAL_DAYS),
        }
        try:
            return ScheduleState.model_validate(raw)
        except ValidationError as exc:
            LOG.warning("Invalid schedule values in %s, using defaults: %s", self.path.name, exc)
            last_reset = raw["last_reset"] if isinstance(raw["last_reset"], int) and raw["last_reset"] > 0 else 0
            return ScheduleState(last_reset=last_reset)

    def record_reset(self, epoch_seconds: int) -> None:
        current = self._values.get(KEY_LAST_RESET, 0)
        if isinstance(current, int) and current > epoch_seconds:
            LOG.warning("Ignoring lastReset %d older than the recorded %d", epoch_seconds, current)
            return
        self._values[KEY_LAST_RESET] = int(epoch_seconds)
        self.save()

    def bootstrap(self, last_reset: int, first_run: int) -> None:
        """Seed an empty schedule: ``last_reset`` one interval back, ``first_run`` now."""
        self._values[KEY_LAST_RESET] = int(last_reset)
        self._values[KEY_FIRST_RUN] = int(first_run)
        self.save()

    def first_run(self) -> int:
        value = self._values.get(KEY_FIRST_RUN, 0)
        return value if isinstance(value, int) and value > 0 else 0

    def pending_spawns(self) -> list[str]:
        value = self._values.get(KEY_PENDING_SPAWNS) or []
        return [str(name) for name in value]

    def set_pending_spawns(self, names: list[str]) -> None:
        self._values[KEY_PENDING_SPAWNS] = list(names)
        self.save()


def _point_payload(point: Point, *, with_view: bool) -> dict[str, Any]:
    payload: dict[str, Any] = {"world": point.world, "x": point.x, "y": point.y, "z": point.z}
    if with_view:
        payload.update({"yaw": point.yaw, "pitch": point.pitch})
    return payload


class FarmStore:
    """Farm registry persisted to ``farms.json``, plus per-player corner selections."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._farms: dict[str, FarmRecord] = {}
        self._unparsed: dict[str, Any] = {}
        self._corners: dict[str, dict[int, Point]] = {}
        self.load()

    def load(self) -> None:
        try:
            data = _read_json(self.path)
        except PersistenceError as exc:
            LOG.error("%s; starting with an empty farm registry", exc)
            data = None

        self._farms = {}
        self._unparsed = {}
        entries = (data or {}).get("farms") or {}
        for name, entry in entries.items():
            try:
                spawn = entry["spawn"]
                world = spawn["world"]
                record = FarmRecord(
                    name=name,
                    spawn=Point(**spawn),
                    corner1=Point(world=entry["pos1"].get("world", world), **_coords(entry["pos1"])),
                    corner2=Point(world=entry["pos2"].get("world", world), **_coords(entry["pos2"])),
                )
            except (KeyError, TypeError, AttributeError, ValidationError) as exc:
                LOG.warning("Skipping malformed farm '%s' in %s: %s", name, self.path.name, exc)
                self._unparsed[name] = entry
                continue
            self._farms[name] = record
        LOG.info("Loaded %d farm(s)", len(self._farms))

    def save(self) -> bool:
        farms: dict[str, Any] = {name: entry for name, entry in self._unparsed.items() if name not in self._farms}
        farms.update(
            {
                farm.name: {
                    "spawn": _point_payload(farm.spawn, with_view=True),
                    "pos1": _point_payload(farm.corner1, with_view=False),
                    "pos2": _point_payload(farm.corner2, with_view=False),
                }
                for farm in self._farms.values()
            }
        )
        try:
            _write_json(self.path, {"farms": farms})
        except PersistenceError as exc:
            LOG.error("%s; farms kept in memory only", exc)
            return False
        return True

    def put(self, farm: FarmRecord) -> FarmRecord:
        self._farms[farm.name] = farm
        self.save()
        return farm

    def get(self, name: str) -> Optional[FarmRecord]:
        return self._farms.get(name)

    def all(self) -> list[FarmRecord]:
        return list(self._farms.values())

    def find_by_world(self, world: str) -> Optional[FarmRecord]:
        return next((farm for farm in self._farms.values() if farm.world == world), None)

    def set_corner(self, player: str, index: int, point: Point) -> None:
        if index not in (1, 2):
            raise ValueError("Corner index must be 1 or 2")
        self._corners.setdefault(player, {})[index] = point

    def corner(self, player: str, index: int) -> Optional[Point]:
        return self._corners.get(player, {}).get(index)


def _coords(entry: dict[str, Any]) -> dict[str, float]:
    return {"x": entry["x"], "y": entry["y"], "z": entry["z"]}
