from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .clock import DEFAULT_TIMEZONE

_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() not in _FALSE_VALUES


@dataclass
class AppSettings:
    data_dir: Path
    worlds_dir: Path
    worlds: list[str]
    timezone: ZoneInfo
    check_interval_sec: float
    catch_up: bool
    restart_container: str
    restart_delay_sec: float
    password: str
    session_secret: str
    cookie_secure: bool
    log_level: str

    @property
    def config_file(self) -> Path:
        return self.data_dir / "config.json"

    @property
    def farms_file(self) -> Path:
        return self.data_dir / "farms.json"

    @classmethod
    def from_env(cls) -> "AppSettings":
        data_dir = Path(os.environ.get("FARMRESET_DATA_DIR", "data")).resolve()
        worlds_raw = os.environ.get("FARMRESET_WORLDS_DIR", "").strip()
        worlds_dir = Path(worlds_raw).resolve() if worlds_raw else data_dir / "worlds"
        worlds = [name.strip() for name in os.environ.get("FARMRESET_WORLDS", "world").split(",") if name.strip()]

        tz_name = os.environ.get("FARMRESET_TIMEZONE", DEFAULT_TIMEZONE).strip() or DEFAULT_TIMEZONE
        try:
            timezone = ZoneInfo(tz_name)
        except ZoneInfoNotFoundError as exc:
            raise RuntimeError(f"Unknown FARMRESET_TIMEZONE: {tz_name}") from exc

        return cls(
            data_dir=data_dir,
            worlds_dir=worlds_dir,
            worlds=worlds or ["world"],
            timezone=timezone,
            check_interval_sec=float(os.environ.get("FARMRESET_CHECK_INTERVAL_SEC", "60")),
            catch_up=_env_flag("FARMRESET_CATCH_UP", "true"),
            restart_container=os.environ.get("FARMRESET_RESTART_CONTAINER", "").strip(),
            restart_delay_sec=float(os.environ.get("FARMRESET_RESTART_DELAY_SEC", "2")),
            password=os.environ.get("FARMRESET_PASSWORD", ""),
            session_secret=os.environ.get("FARMRESET_SESSION_SECRET", ""),
            cookie_secure=os.environ.get("FARMRESET_COOKIE_SECURE", "false").lower() == "true",
            log_level=os.environ.get("FARMRESET_LOG_LEVEL", "INFO").upper(),
        )

    def check_operator_secrets(self) -> None:
        missing = [
            name
            for name, value in (("FARMRESET_PASSWORD", self.password), ("FARMRESET_SESSION_SECRET", self.session_secret))
            if not value
        ]
        if missing:
            raise RuntimeError(f"{', '.join(missing)} must be configured before the operator API can start")
