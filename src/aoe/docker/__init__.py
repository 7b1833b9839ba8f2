# src/aoe/docker/__init__.py
"""
Sandbox containers for aoe sessions.

Main Components:
    - ContainerConfig: How a container is created (mounts, env, limits)
    - DockerContainer: Lifecycle of one session's container
    - DockerRuntime: docker SDK implementation of ContainerRuntime
    - SandboxSettings: Loaded sandbox configuration

Usage:
    >>> from aoe.docker import (
    ...     ContainerConfig,
    ...     DockerContainer,
    ...     is_daemon_running,
    ...     is_docker_available,
    ... )
    >>>
    >>> if is_docker_available() and is_daemon_running():
    ...     container = DockerContainer(session_id, "aoe-sandbox:latest")
    ...     container_id = container.create(ContainerConfig(working_dir="/workspace"))
"""

from .base import ContainerConfig, ContainerRuntime, VolumeMount
from .config import (
    DockerSettings,
    SandboxSettings,
    VolumeSettings,
    generate_sample_config,
    load_sandbox_config,
    write_sample_config,
)
from .container import CONTAINER_NAME_PREFIX, DockerContainer, generate_name
from .docker_runtime import (
    DockerRuntime,
    get_default_runtime,
    is_daemon_running,
    is_docker_available,
)
from .exceptions import (
    DockerDaemonNotRunningError,
    DockerNotInstalledError,
    SandboxCleanupError,
    SandboxConflictError,
    SandboxCreationError,
    SandboxError,
    SandboxImageNotFoundError,
    SandboxNotFoundError,
    SandboxRuntimeError,
    SandboxUnavailableError,
)
from .tools import SANDBOX_TOOLS, SandboxTool

__all__ = [
    # Data models
    "ContainerConfig",
    "ContainerRuntime",
    "VolumeMount",
    # Containers
    "CONTAINER_NAME_PREFIX",
    "DockerContainer",
    "generate_name",
    # Runtime
    "DockerRuntime",
    "get_default_runtime",
    "is_daemon_running",
    "is_docker_available",
    # Configuration
    "DockerSettings",
    "SandboxSettings",
    "VolumeSettings",
    "generate_sample_config",
    "load_sandbox_config",
    "write_sample_config",
    # Exceptions
    "SandboxError",
    "SandboxUnavailableError",
    "DockerNotInstalledError",
    "DockerDaemonNotRunningError",
    "SandboxNotFoundError",
    "SandboxConflictError",
    "SandboxRuntimeError",
    "SandboxCreationError",
    "SandboxImageNotFoundError",
    "SandboxCleanupError",
    # Image contract
    "SANDBOX_TOOLS",
    "SandboxTool",
]
