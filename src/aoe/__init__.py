# src/aoe/__init__.py
"""
aoe - sandbox container lifecycle for Agent of Empires sessions.

Each agent session may run inside its own Docker container instead of
directly on the host. This package names, creates, inspects, stops and
removes that container, and keeps the session's persisted SandboxInfo
record consistent with what the container runtime reports.

Applications start from ``SandboxManager.from_config()``, which reads the
``[sandbox]`` and ``[logging]`` tables of
``~/.agent-of-empires/config.toml`` and configures logging once.
"""

from importlib.metadata import PackageNotFoundError, version

from .docker import (
    ContainerConfig,
    DockerContainer,
    SandboxError,
    SandboxSettings,
    is_daemon_running,
    is_docker_available,
    load_sandbox_config,
)
from .exceptions import (
    AoeError,
    ConfigError,
    SessionNotFoundError,
    SessionStorageError,
    StorageError,
)
from .logging_config import configure_logging
from .sandbox_manager import SandboxManager
from .session import Instance, SandboxInfo, SandboxState, Storage, StorageConfig

try:
    __version__ = version("aoe")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    # Sandbox containers
    "ContainerConfig",
    "DockerContainer",
    "SandboxError",
    "SandboxSettings",
    "is_daemon_running",
    "is_docker_available",
    "load_sandbox_config",
    # Sessions
    "Instance",
    "SandboxInfo",
    "SandboxState",
    "Storage",
    "StorageConfig",
    "SandboxManager",
    "configure_logging",
    # Exceptions
    "AoeError",
    "ConfigError",
    "StorageError",
    "SessionStorageError",
    "SessionNotFoundError",
]
