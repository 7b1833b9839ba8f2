# src/aoe/docker/base.py
"""
Core data models and the runtime contract for sandbox containers.

Classes:
    VolumeMount: A single host-path bind mount
    ContainerConfig: Immutable description of how a container is created
    ContainerRuntime: Abstract base class for container runtimes

The ContainerRuntime interface is deliberately narrow. DockerContainer
only ever needs these calls, which lets the lifecycle logic run against
an in-memory runtime in tests without touching a real container engine.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class VolumeMount:
    """
    Host-path to container-path bind mount.

    Attributes:
        host_path: Absolute path on the host
        container_path: Absolute path inside the container
        read_only: Mount read-only instead of read-write
    """
    host_path: str
    container_path: str
    read_only: bool = False

    @property
    def mode(self) -> str:
        return "ro" if self.read_only else "rw"

    def to_bind(self) -> str:
        """Docker bind string, e.g. ``/home/me/proj:/workspace/proj:rw``."""
        return f"{self.host_path}:{self.container_path}:{self.mode}"


def _freeze_pairs(value: Iterable[tuple[str, str]] | Mapping[str, str] | None) -> tuple[tuple[str, str], ...]:
    if value is None:
        return ()
    if isinstance(value, Mapping):
        value = value.items()
    return tuple((str(k), str(v)) for k, v in value)


def _freeze_mounts(value: Iterable[Any] | None) -> tuple[VolumeMount, ...]:
    if value is None:
        return ()
    mounts = []
    for item in value:
        if isinstance(item, VolumeMount):
            mounts.append(item)
        else:
            # (host, container) or (host, container, read_only)
            mounts.append(VolumeMount(*item))
    return tuple(mounts)


@dataclass(frozen=True)
class ContainerConfig:
    """
    How a sandbox container should be created.

    Fully determined before any runtime call and never mutated after
    construction. Sequences are frozen to tuples so their order (which
    the runtime sees) is preserved.

    Attributes:
        working_dir: Absolute path inside the container where commands run
        volumes: Ordered host bind mounts
        named_volumes: Ordered (volume name, container path) pairs for
            runtime-managed volumes
        environment: Ordered (key, value) pairs injected into the process
        cpu_limit: CPU ceiling in cores (None = unconstrained)
        memory_limit: Memory ceiling in bytes or a docker size string
            such as "2g" (None = unconstrained)

    Example:
        >>> config = ContainerConfig(
        ...     working_dir="/workspace/proj",
        ...     volumes=[("/home/me/proj", "/workspace/proj")],
        ...     environment={"TERM": "xterm-256color"},
        ...     memory_limit="2g",
        ... )
    """
    working_dir: str
    volumes: tuple[VolumeMount, ...] = field(default=())
    named_volumes: tuple[tuple[str, str], ...] = field(default=())
    environment: tuple[tuple[str, str], ...] = field(default=())
    cpu_limit: float | None = None
    memory_limit: int | str | None = None

    def __post_init__(self):
        """Freeze sequences and validate values."""
        if not self.working_dir.startswith("/"):
            raise ValueError(f"working_dir must be an absolute container path, got '{self.working_dir}'")
        # frozen dataclass: go through object.__setattr__
        object.__setattr__(self, "volumes", _freeze_mounts(self.volumes))
        object.__setattr__(self, "named_volumes", _freeze_pairs(self.named_volumes))
        object.__setattr__(self, "environment", _freeze_pairs(self.environment))
        if self.cpu_limit is not None and self.cpu_limit <= 0:
            raise ValueError(f"cpu_limit must be positive, got {self.cpu_limit}")
        if isinstance(self.memory_limit, int) and self.memory_limit <= 0:
            raise ValueError(f"memory_limit must be positive, got {self.memory_limit}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize configuration to dictionary."""
        return {
            "working_dir": self.working_dir,
            "volumes": [m.to_bind() for m in self.volumes],
            "named_volumes": [f"{name}:{path}" for name, path in self.named_volumes],
            "environment": [f"{k}={v}" for k, v in self.environment],
            "cpu_limit": self.cpu_limit,
            "memory_limit": self.memory_limit,
        }


class ContainerRuntime(ABC):
    """
    Abstract base class for the external container runtime.

    Implementations address containers by name only and keep no state
    about them between calls: every query reflects the runtime's current
    truth. Failures are reported with the exceptions defined in
    ``aoe.docker.exceptions``:

        - "not found" on exists/is_running/get_id is a normal False/None
        - SandboxUnavailableError when the runtime cannot be reached
        - SandboxNotFoundError for start/stop/remove on a missing name
        - SandboxConflictError for create on a taken name and for a
          non-forced remove of a running container
        - SandboxRuntimeError (and subclasses) for rejected requests
    """

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the runtime client is installed."""
        pass

    @abstractmethod
    def is_daemon_running(self) -> bool:
        """Whether the runtime's daemon answers."""
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        pass

    @abstractmethod
    def is_running(self, name: str) -> bool:
        pass

    @abstractmethod
    def get_id(self, name: str) -> str | None:
        """Runtime identifier of the named container, None if absent."""
        pass

    @abstractmethod
    def get_owner(self, name: str) -> str | None:
        """Session id the named container was created for, None if absent or unlabeled."""
        pass

    @abstractmethod
    def create(self, name: str, image: str, config: ContainerConfig, owner: str | None = None) -> str:
        """
        Create and start a container; return its identifier.

        ``owner`` is recorded on the container and reported by get_owner().
        A container that fails to start is removed before the error is raised.
        """
        pass

    @abstractmethod
    def start(self, name: str) -> None:
        pass

    @abstractmethod
    def stop(self, name: str) -> None:
        pass

    @abstractmethod
    def remove(self, name: str, force: bool = False) -> None:
        pass

    @abstractmethod
    def run_check(self, image: str, command: list[str]) -> bool:
        """
        Run a throwaway container from image and report whether the
        command exited with status 0. Used for installation-time checks.
        """
        pass
