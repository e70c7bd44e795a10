from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import Depends, FastAPI, Form, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.sessions import SessionMiddleware

from . import auth
from .clock import SECONDS_PER_DAY, progress_fraction, progress_label
from .errors import FarmNotFoundError, FarmResetError, InvalidFarmError, ResetInProgressError
from .models import (
    CreateFarmRequest,
    FarmListResponse,
    FarmRecord,
    FarmResponse,
    Point,
    ScheduleResponse,
    SelectionRequest,
    SessionResponse,
    farm_from_corners,
)
from .service import FarmResetService, build_service
from .settings import AppSettings

LOG = logging.getLogger("farmreset.main")

_ERROR_STATUS = {
    FarmNotFoundError: status.HTTP_404_NOT_FOUND,
    ResetInProgressError: status.HTTP_409_CONFLICT,
    InvalidFarmError: status.HTTP_400_BAD_REQUEST,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = AppSettings.from_env()
    settings.check_operator_secrets()

    service = build_service(settings)
    app.state.settings = settings
    app.state.service = service
    service.start()
    try:
        yield
    finally:
        service.stop()


def create_app() -> FastAPI:
    settings = AppSettings.from_env()
    application = FastAPI(title="Farm Reset", lifespan=lifespan)
    # Cookie settings are fixed at import; the secret is re-checked in the lifespan.
    application.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret or secrets.token_urlsafe(32),
        session_cookie="farmreset_session",
        same_site="strict",
        https_only=settings.cookie_secure,
        max_age=12 * 3600,
    )
    return application


app = create_app()


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_service(request: Request) -> FarmResetService:
    return request.app.state.service


def farm_response(farm: FarmRecord) -> FarmResponse:
    return FarmResponse(name=farm.name, world=farm.world, spawn=farm.spawn, corner1=farm.corner1, corner2=farm.corner2)


def schedule_response(service: FarmResetService) -> ScheduleResponse:
    orchestrator = service.orchestrator
    schedule = service.config.schedule()
    now = orchestrator.now()
    next_reset = orchestrator.next_reset(now)
    session = service.countdown.session
    return ScheduleResponse(
        state=orchestrator.state.value,
        reset_hour=schedule.reset_hour,
        interval_days=schedule.interval_days,
        last_reset=schedule.last_reset,
        next_reset=next_reset,
        progress=progress_fraction(now, next_reset, schedule.interval_days * SECONDS_PER_DAY),
        label=progress_label(now, next_reset, schedule.reset_hour),
        pending_spawn_fixes=service.recovery.names(),
        manual_reset=SessionResponse(farm=session.farm.name, started_at=session.started_at) if session else None,
    )


@app.exception_handler(FarmResetError)
async def farm_reset_error_handler(_: Request, exc: FarmResetError) -> JSONResponse:
    code = next((value for kind, value in _ERROR_STATUS.items() if isinstance(exc, kind)), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/login")
async def login_submit(request: Request, password: str = Form(default=""), settings: AppSettings = Depends(get_settings)):
    if not auth.password_matches(password, settings.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")
    return {"status": "ok", "csrf_token": auth.OperatorSession(request).sign_in()}


@app.post("/logout")
async def logout(request: Request, _: None = Depends(auth.require_operator)):
    auth.OperatorSession(request).sign_out()
    return {"status": "ok"}


@app.get("/api/farms", response_model=FarmListResponse)
def api_farms(_: None = Depends(auth.require_login), service: FarmResetService = Depends(get_service)):
    return FarmListResponse(farms=[farm_response(farm) for farm in service.farms.all()])


@app.post("/api/selections/{player}/{corner}")
def api_select_corner(
    player: str,
    corner: Literal["pos1", "pos2"],
    payload: SelectionRequest,
    _: None = Depends(auth.require_operator),
    service: FarmResetService = Depends(get_service),
):
    point = Point(world=payload.world, x=payload.x, y=payload.y, z=payload.z)
    with service.lock:
        service.farms.set_corner(player, 1 if corner == "pos1" else 2, point)
    return {"player": player, "corner": corner, "position": point.describe()}


@app.post("/api/farms", response_model=FarmResponse)
def api_create_farm(
    payload: CreateFarmRequest,
    _: None = Depends(auth.require_operator),
    service: FarmResetService = Depends(get_service),
):
    corner1 = service.farms.corner(payload.player, 1)
    corner2 = service.farms.corner(payload.player, 2)
    if corner1 is None or corner2 is None:
        raise InvalidFarmError("Set position 1 and position 2 first")
    if corner1.world != corner2.world:
        raise InvalidFarmError("Both positions must be in the same world")
    try:
        farm = farm_from_corners(payload.name, corner1, corner2, yaw=payload.yaw, pitch=payload.pitch)
    except ValidationError as exc:
        raise InvalidFarmError(str(exc)) from exc
    with service.lock:
        service.farms.put(farm)
    LOG.info("Farm '%s' created in world '%s' with spawn %s", farm.name, farm.world, farm.spawn.describe())
    return farm_response(farm)


@app.post("/api/farms/{name}/reset", response_model=SessionResponse)
def api_manual_reset(
    name: str,
    _: None = Depends(auth.require_operator),
    service: FarmResetService = Depends(get_service),
):
    with service.lock:
        farm = service.farms.get(name)
        if farm is None:
            raise FarmNotFoundError(f"Farm '{name}' not found")
        session = service.countdown.start(farm)
    return SessionResponse(farm=farm.name, started_at=session.started_at)


@app.get("/api/schedule", response_model=ScheduleResponse)
def api_schedule(_: None = Depends(auth.require_login), service: FarmResetService = Depends(get_service)):
    return schedule_response(service)


@app.post("/api/players/{player}/join", response_model=ScheduleResponse)
def api_player_join(player: str, _: None = Depends(auth.require_login), service: FarmResetService = Depends(get_service)):
    LOG.debug("Refreshing reset progress for player %s", player)
    return schedule_response(service)


def main() -> None:
    import uvicorn

    settings = AppSettings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=8080, log_config=None)


if __name__ == "__main__":
    main()
