# tests/conftest.py
"""
Pytest fixtures shared by all aoe tests.

This module provides:
    - InMemoryRuntime: a ContainerRuntime that simulates Docker in memory
    - Storage and settings fixtures rooted in a temporary directory
    - A reset of the logging singleton for tests that configure logging
"""

import logging
import uuid
from pathlib import Path

import pytest

from aoe.docker.base import ContainerConfig, ContainerRuntime
from aoe.docker.config import SandboxSettings
from aoe.docker.exceptions import (
    DockerDaemonNotRunningError,
    DockerNotInstalledError,
    SandboxConflictError,
    SandboxError,
    SandboxImageNotFoundError,
    SandboxNotFoundError,
    SandboxRuntimeError,
)
from aoe.logging_config import UnifiedLoggingManager
from aoe.session.storage import Storage, StorageConfig

# ==============================================================================
# In-memory runtime
# ==============================================================================

class InMemoryRuntime(ContainerRuntime):
    """
    ContainerRuntime that keeps containers in a dict.

    Mirrors the Docker semantics the lifecycle code relies on: name
    conflicts on create, conflict on non-forced removal of a running
    container, idempotent stop, not-found for state changes on missing
    names. Failure injection is done by setting attributes.
    """

    def __init__(self, images=("aoe-sandbox:latest", "alpine:latest")):
        self.available = True
        self.daemon_running = True
        self.images = set(images)
        self.containers: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_create: SandboxError | None = None
        self.fail_graceful_remove = False
        self.undeletable: set[str] = set()
        self.image_binaries: dict[str, set[str]] = {}

    def _check_daemon(self):
        if not self.available:
            raise DockerNotInstalledError()
        if not self.daemon_running:
            raise DockerDaemonNotRunningError()

    def _get(self, name: str, operation: str) -> dict:
        self._check_daemon()
        container = self.containers.get(name)
        if container is None:
            raise SandboxNotFoundError(
                f"No container named '{name}'", container_name=name, operation=operation
            )
        return container

    def is_available(self) -> bool:
        return self.available

    def is_daemon_running(self) -> bool:
        return self.available and self.daemon_running

    def exists(self, name: str) -> bool:
        self._check_daemon()
        self.calls.append(("exists", name))
        return name in self.containers

    def is_running(self, name: str) -> bool:
        self._check_daemon()
        self.calls.append(("is_running", name))
        container = self.containers.get(name)
        return container is not None and container["running"]

    def get_id(self, name: str) -> str | None:
        self._check_daemon()
        self.calls.append(("get_id", name))
        container = self.containers.get(name)
        return container["id"] if container else None

    def get_owner(self, name: str) -> str | None:
        self._check_daemon()
        self.calls.append(("get_owner", name))
        container = self.containers.get(name)
        return container["owner"] if container else None

    def create(self, name: str, image: str, config: ContainerConfig, owner: str | None = None) -> str:
        self._check_daemon()
        self.calls.append(("create", name, image))
        if self.fail_create is not None:
            raise self.fail_create
        if name in self.containers:
            raise SandboxConflictError(
                f"A container named '{name}' already exists", container_name=name, operation="create"
            )
        if image not in self.images:
            raise SandboxImageNotFoundError(
                f"Image '{image}' could not be resolved", image=image,
                container_name=name, operation="create",
            )
        container_id = uuid.uuid4().hex + uuid.uuid4().hex
        self.containers[name] = {
            "id": container_id, "image": image, "config": config, "owner": owner, "running": True,
        }
        return container_id

    def start(self, name: str) -> None:
        self.calls.append(("start", name))
        self._get(name, "start")["running"] = True

    def stop(self, name: str) -> None:
        self.calls.append(("stop", name))
        self._get(name, "stop")["running"] = False

    def remove(self, name: str, force: bool = False) -> None:
        self.calls.append(("remove", name, force))
        container = self._get(name, "remove")
        if name in self.undeletable:
            raise SandboxRuntimeError(
                "device or resource busy", runtime_message="device or resource busy",
                container_name=name, operation="remove",
            )
        if not force and self.fail_graceful_remove:
            raise SandboxRuntimeError(
                "removal in progress", runtime_message="removal in progress",
                container_name=name, operation="remove",
            )
        if container["running"] and not force:
            raise SandboxConflictError(
                "You cannot remove a running container", container_name=name, operation="remove"
            )
        del self.containers[name]

    def run_check(self, image: str, command: list[str]) -> bool:
        self._check_daemon()
        if image not in self.images:
            raise SandboxImageNotFoundError(f"Image '{image}' could not be resolved", image=image)
        return command[-1] in self.image_binaries.get(image, set())


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def runtime() -> InMemoryRuntime:
    """A fresh in-memory container runtime."""
    return InMemoryRuntime()


@pytest.fixture
def workspace_config() -> ContainerConfig:
    """Minimal container configuration."""
    return ContainerConfig(working_dir="/workspace")


@pytest.fixture
def storage_config(tmp_path: Path) -> StorageConfig:
    """Storage rooted in a temporary directory."""
    return StorageConfig(root=tmp_path / ".agent-of-empires", profile="test")


@pytest.fixture
def storage(storage_config: StorageConfig) -> Storage:
    return Storage(storage_config)


@pytest.fixture
def sandbox_settings() -> SandboxSettings:
    """Default settings with a fixed environment."""
    return SandboxSettings(environment={"TERM": "xterm-256color"})


def _reset_logging():
    UnifiedLoggingManager._instance = None
    UnifiedLoggingManager._configured = False
    UnifiedLoggingManager._log_file_path = None
    UnifiedLoggingManager._console_handler = None
    UnifiedLoggingManager._file_handler = None
    UnifiedLoggingManager._display_filter = None

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


@pytest.fixture
def reset_logging_manager():
    """Reset the logging manager singleton between tests."""
    _reset_logging()
    yield
    _reset_logging()
