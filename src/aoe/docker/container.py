# src/aoe/docker/container.py
"""
One sandbox container, addressed by a name derived from a session id.

States:
    Absent -> Created -> Running -> Stopped -> Removed

``create`` goes straight to Running; ``remove(force=True)`` reaches
Removed from any state. DockerContainer holds no state of its own
besides the name and image: every method is a round trip to the
runtime, so answers never drift from reality.

Usage:
    >>> container = DockerContainer("abcd1234ef", "aoe-sandbox:latest")
    >>> container.name
    'aoe-sandbox-abcd1234'
    >>> container_id = container.create(ContainerConfig(working_dir="/workspace"))
    >>> container.stop()
    >>> container.remove()
"""

import logging

from .base import ContainerConfig, ContainerRuntime

logger = logging.getLogger(__name__)

CONTAINER_NAME_PREFIX = "aoe-sandbox-"

# Number of session id characters kept in the container name
NAME_ID_LENGTH = 8


def generate_name(session_id: str) -> str:
    """
    Derive the container name for a session.

    The first eight characters of the session id are kept verbatim
    (shorter ids are used whole, no padding, no hashing).

    Args:
        session_id: Non-empty session identifier

    Returns:
        Container name, e.g. "aoe-sandbox-abcd1234"

    Raises:
        ValueError: If session_id is empty
    """
    if not session_id:
        raise ValueError("session_id must not be empty")
    return CONTAINER_NAME_PREFIX + session_id[:NAME_ID_LENGTH]


class DockerContainer:
    """
    Lifecycle operations for a session's sandbox container.

    Attributes:
        session_id: Session the container belongs to
        image: Image used by create()
        name: Deterministic container name (see generate_name)
    """

    generate_name = staticmethod(generate_name)

    def __init__(self, session_id: str, image: str, runtime: ContainerRuntime | None = None):
        """
        Args:
            session_id: Session identifier the name is derived from
            image: Image reference used when creating the container
            runtime: Container runtime (default: the local Docker daemon)
        """
        if runtime is None:
            from .docker_runtime import get_default_runtime
            runtime = get_default_runtime()
        self.session_id = session_id
        self.image = image
        self.name = generate_name(session_id)
        self._runtime = runtime

    def __repr__(self) -> str:
        return f"DockerContainer(name={self.name!r}, image={self.image!r})"

    def exists(self) -> bool:
        """Whether a container with this name exists. Absence is not an error."""
        return self._runtime.exists(self.name)

    def is_running(self) -> bool:
        """Whether the container is running; False if it does not exist."""
        return self._runtime.is_running(self.name)

    def container_id(self) -> str | None:
        return self._runtime.get_id(self.name)

    def owner(self) -> str | None:
        """Session id recorded on the container, None if absent or unlabeled."""
        return self._runtime.get_owner(self.name)

    def create(self, config: ContainerConfig) -> str:
        """
        Create and start the container, labeled with its session id.

        Args:
            config: How to create the container

        Returns:
            Non-empty runtime container id

        Raises:
            SandboxConflictError: A container with this name already exists
            SandboxImageNotFoundError: The image cannot be resolved
            SandboxCreationError: The runtime rejected the configuration
        """
        logger.info(f"Creating sandbox container '{self.name}' from image '{self.image}'")
        container_id = self._runtime.create(self.name, self.image, config, owner=self.session_id)
        logger.debug(f"Sandbox container '{self.name}' running as {container_id[:12]}")
        return container_id

    def start(self) -> None:
        """Start a stopped container."""
        logger.info(f"Starting sandbox container '{self.name}'")
        self._runtime.start(self.name)

    def stop(self) -> None:
        """
        Stop the container. Stopping a stopped container is a no-op.

        Raises:
            SandboxNotFoundError: The container does not exist
        """
        logger.info(f"Stopping sandbox container '{self.name}'")
        self._runtime.stop(self.name)

    def remove(self, force: bool = False) -> None:
        """
        Remove the container.

        Args:
            force: Remove even if running (stops it implicitly)

        Raises:
            SandboxConflictError: Not forced and the container is running
            SandboxNotFoundError: The container does not exist
        """
        logger.info(f"Removing sandbox container '{self.name}' (force={force})")
        self._runtime.remove(self.name, force=force)

    def exec_command(self, args: list[str], interactive: bool = True) -> list[str]:
        """
        Build the docker CLI argv that runs a command inside the container.

        Used by the terminal UI to attach an agent process to the sandbox.

        Args:
            args: Command and arguments to run in the container
            interactive: Allocate a TTY and keep stdin open

        Returns:
            argv list, e.g. ["docker", "exec", "-it", "aoe-sandbox-abcd1234", "claude"]
        """
        argv = ["docker", "exec"]
        if interactive:
            argv.append("-it")
        argv.append(self.name)
        argv.extend(args)
        return argv
