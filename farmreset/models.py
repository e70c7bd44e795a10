from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_FARM_NAME_ALLOWED = set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-")

DEFAULT_RESET_HOUR = 12
DEFAULT_INTERVAL_DAYS = 30


class Point(BaseModel):
    model_config = ConfigDict(frozen=True)

    world: str = Field(min_length=1)
    x: float
    y: float
    z: float
    yaw: float = 0.0
    pitch: float = 0.0

    def describe(self) -> str:
        return f"X: {self.x:.1f}, Y: {self.y:.1f}, Z: {self.z:.1f}"


class FarmRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    spawn: Point
    corner1: Point
    corner2: Point

    @model_validator(mode="after")
    def corners_share_world(self) -> "FarmRecord":
        if self.corner1.world != self.corner2.world:
            raise ValueError("Both corners must be in the same world")
        return self

    @property
    def world(self) -> str:
        return self.spawn.world


class ScheduleState(BaseModel):
    last_reset: int = Field(default=0, ge=0)
    reset_hour: int = Field(default=DEFAULT_RESET_HOUR, ge=0, le=23)
    interval_days: int = Field(default=DEFAULT_INTERVAL_DAYS, ge=1)


class SelectionRequest(BaseModel):
    world: str = Field(min_length=1)
    x: float
    y: float
    z: float


class CreateFarmRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=32)
    player: str = Field(min_length=1)
    yaw: float = 0.0
    pitch: float = 0.0

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if any(ch not in _FARM_NAME_ALLOWED for ch in value):
            raise ValueError("Farm names must contain only letters, digits, dashes or underscores")
        return value


class FarmResponse(BaseModel):
    name: str
    world: str
    spawn: Point
    corner1: Point
    corner2: Point


class FarmListResponse(BaseModel):
    farms: list[FarmResponse]


class SessionResponse(BaseModel):
    farm: str
    started_at: datetime


class ScheduleResponse(BaseModel):
    state: Literal["idle", "resetting"]
    reset_hour: int
    interval_days: int
    last_reset: int
    next_reset: datetime
    progress: float
    label: str
    pending_spawn_fixes: list[str]
    manual_reset: Optional[SessionResponse]


def farm_from_corners(name: str, corner1: Point, corner2: Point, *, yaw: float = 0.0, pitch: float = 0.0) -> FarmRecord:
    """Build a farm whose spawn sits at the middle of the two corners."""
    spawn = Point(
        world=corner1.world,
        x=(corner1.x + corner2.x) / 2.0,
        y=(corner1.y + corner2.y) / 2.0,
        z=(corner1.z + corner2.z) / 2.0,
        yaw=yaw,
        pitch=pitch,
    )
    return FarmRecord(name=name, spawn=spawn, corner1=corner1, corner2=corner2)
