from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

import docker
from docker.errors import DockerException, NotFound

from .errors import FarmResetError

LOG = logging.getLogger("farmreset.server")

_STOP_TIMEOUT_SEC = 30


class Restarter(Protocol):
    def request_restart(self, reason: str) -> None: ...


class NullRestarter:
    def request_restart(self, reason: str) -> None:
        LOG.info("Restart requested (%s) but no server container is configured", reason)


def get_docker_client() -> docker.DockerClient:
    try:
        return docker.from_env()
    except DockerException as exc:
        raise FarmResetError(f"Docker client unavailable: {exc}") from exc


def get_container(client: docker.DockerClient, name: str):
    try:
        container = client.containers.get(name)
        container.reload()
        return container
    except NotFound as exc:
        raise FarmResetError(f"Container '{name}' is missing") from exc
    except DockerException as exc:
        raise FarmResetError(f"Failed to inspect Docker container '{name}': {exc}") from exc


class DockerRestarter:
    """Restarts the game server container so freshly created worlds are picked up.

    The restart runs on its own daemon thread: stopping the container can take
    up to ``_STOP_TIMEOUT_SEC`` and the caller holds the service lock. A request
    made while a restart is still running is dropped.
    """

    def __init__(self, container_name: str) -> None:
        self.container_name = container_name
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def request_restart(self, reason: str) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                LOG.info("Restart of '%s' already running, ignoring request (%s)", self.container_name, reason)
                return
            self._thread = threading.Thread(
                target=self._restart,
                args=(reason,),
                name="farmreset-restart",
                daemon=True,
            )
            self._thread.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _restart(self, reason: str) -> None:
        LOG.info("Restarting container '%s' after %s", self.container_name, reason)
        try:
            container = get_container(get_docker_client(), self.container_name)
            container.restart(timeout=_STOP_TIMEOUT_SEC)
        except DockerException as exc:
            LOG.error("Failed to restart container '%s': %s", self.container_name, exc)
        except FarmResetError as exc:
            LOG.error("%s", exc)
        else:
            LOG.info("Container '%s' restarted", self.container_name)


def build_restarter(container_name: str) -> Restarter:
    if container_name:
        return DockerRestarter(container_name)
    return NullRestarter()
