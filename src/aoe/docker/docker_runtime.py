# src/aoe/docker/docker_runtime.py
"""
Docker runtime backed by the docker-py SDK.

This module translates the narrow ContainerRuntime contract into calls
against a local (or explicitly configured) Docker daemon and maps every
SDK failure onto the typed sandbox exceptions.

Availability is checked in two independent steps:
    - is_available(): the docker SDK is importable and the ``docker``
      CLI is on PATH (agents are attached with ``docker exec``)
    - is_daemon_running(): the daemon answers a ping

Requirements:
    - docker-py package (pip install docker)
    - Docker daemon running and accessible
"""

import logging
import shutil
from typing import Any

from .base import ContainerConfig, ContainerRuntime
from .exceptions import (
    DockerDaemonNotRunningError,
    DockerNotInstalledError,
    SandboxConflictError,
    SandboxCreationError,
    SandboxImageNotFoundError,
    SandboxNotFoundError,
    SandboxRuntimeError,
)

logger = logging.getLogger(__name__)

# Keeps the container alive so agents can be attached with docker exec
KEEPALIVE_COMMAND = ["sleep", "infinity"]

LABEL_PREFIX = "aoe.sandbox"

# Label recording the session that owns a container
OWNER_LABEL = f"{LABEL_PREFIX}.session"


def _runtime_message(error: Exception) -> str:
    """The daemon's own diagnostic text for an SDK error."""
    explanation = getattr(error, "explanation", None)
    if explanation:
        return explanation if isinstance(explanation, str) else str(explanation)
    return str(error)


def _status_code(error: Exception) -> int | None:
    return getattr(error, "status_code", None)


class DockerRuntime(ContainerRuntime):
    """
    ContainerRuntime implementation using the docker SDK.

    The client connection is created lazily on first use and reused;
    container state is never cached, each call inspects the daemon.

    Attributes:
        _docker_host: Optional daemon URL (None = docker.from_env())
        _timeout: Request timeout in seconds for daemon calls
        _stop_timeout: Seconds to wait for a graceful stop before SIGKILL
        _client: docker.DockerClient instance
    """

    def __init__(
        self,
        docker_host: str | None = None,
        timeout: int = 60,
        stop_timeout: int = 10,
    ):
        """
        Initialize the Docker runtime.

        Args:
            docker_host: Optional Docker host URL (e.g. "unix:///var/run/docker.sock")
            timeout: Request timeout for daemon calls, in seconds
            stop_timeout: Grace period for container stop, in seconds
        """
        self._docker_host = docker_host
        self._timeout = timeout
        self._stop_timeout = stop_timeout
        self._client: Any | None = None  # docker.DockerClient

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _get_client(self) -> Any:
        """
        Return a connected docker client.

        Raises:
            DockerNotInstalledError: If the docker SDK is not installed
            DockerDaemonNotRunningError: If the daemon cannot be reached
        """
        if self._client is not None:
            return self._client

        try:
            import docker
        except ImportError:
            raise DockerNotInstalledError(
                "docker-py package not installed. Install with: pip install docker"
            )

        try:
            if self._docker_host:
                self._client = docker.DockerClient(base_url=self._docker_host, timeout=self._timeout)
                logger.info(f"Connected to Docker at {self._docker_host}")
            else:
                self._client = docker.from_env(timeout=self._timeout)
                logger.debug("Connected to local Docker daemon")
        except (docker.errors.DockerException, OSError) as e:
            raise DockerDaemonNotRunningError(
                f"Failed to connect to Docker daemon: {e}",
                host=self._docker_host or "local",
            )
        return self._client

    def _unreachable(self, error: Exception, name: str, operation: str) -> DockerDaemonNotRunningError:
        # Drop the client so the next call reconnects
        self._client = None
        return DockerDaemonNotRunningError(
            f"Docker daemon unreachable: {error}",
            host=self._docker_host or "local",
            container_name=name,
            operation=operation,
        )

    def is_available(self) -> bool:
        try:
            import docker  # noqa: F401
        except ImportError:
            logger.debug("docker SDK not importable")
            return False
        if shutil.which("docker") is None:
            logger.debug("docker CLI not found on PATH")
            return False
        return True

    def is_daemon_running(self) -> bool:
        try:
            client = self._get_client()
            return bool(client.ping())
        except DockerNotInstalledError:
            return False
        except DockerDaemonNotRunningError as e:
            logger.debug(f"Docker daemon check failed: {e}")
            return False
        except Exception as e:
            self._client = None
            logger.debug(f"Docker daemon ping failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _get_container(self, name: str, operation: str) -> Any | None:
        """Fetch the container by name, None if it does not exist."""
        client = self._get_client()
        from docker.errors import APIError, DockerException, NotFound

        try:
            return client.containers.get(name)
        except NotFound:
            return None
        except APIError as e:
            raise SandboxRuntimeError(
                _runtime_message(e), runtime_message=_runtime_message(e),
                container_name=name, operation=operation,
            )
        except (DockerException, OSError) as e:
            raise self._unreachable(e, name, operation)

    def exists(self, name: str) -> bool:
        return self._get_container(name, "exists") is not None

    def is_running(self, name: str) -> bool:
        container = self._get_container(name, "is_running")
        if container is None:
            return False
        return container.status == "running"

    def get_id(self, name: str) -> str | None:
        container = self._get_container(name, "inspect")
        return container.id if container is not None else None

    def get_owner(self, name: str) -> str | None:
        container = self._get_container(name, "inspect")
        if container is None:
            return None
        return (container.labels or {}).get(OWNER_LABEL)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _create_kwargs(self, name: str, config: ContainerConfig, owner: str | None = None) -> dict[str, Any]:
        """Translate a ContainerConfig into containers.create() keyword arguments."""
        binds = [mount.to_bind() for mount in config.volumes]
        binds.extend(f"{volume}:{path}:rw" for volume, path in config.named_volumes)

        labels = {f"{LABEL_PREFIX}.name": name}
        if owner is not None:
            labels[OWNER_LABEL] = owner

        kwargs: dict[str, Any] = {
            "command": KEEPALIVE_COMMAND,
            "name": name,
            "detach": True,
            "working_dir": config.working_dir,
            "labels": labels,
        }
        if binds:
            kwargs["volumes"] = binds
        if config.environment:
            kwargs["environment"] = [f"{k}={v}" for k, v in config.environment]
        if config.cpu_limit is not None:
            kwargs["nano_cpus"] = int(config.cpu_limit * 1_000_000_000)
        if config.memory_limit is not None:
            kwargs["mem_limit"] = config.memory_limit
        return kwargs

    def _ensure_image(self, client: Any, image: str, name: str) -> None:
        """
        Pull the image if it is not available locally.

        Raises:
            SandboxImageNotFoundError: If the image cannot be pulled
        """
        from docker.errors import APIError, ImageNotFound

        try:
            client.images.get(image)
            return
        except ImageNotFound:
            pass

        logger.info(f"Pulling image '{image}'...")
        try:
            client.images.pull(image)
        except APIError as e:
            raise SandboxImageNotFoundError(
                f"Failed to pull image '{image}': {_runtime_message(e)}",
                image=image, runtime_message=_runtime_message(e),
                container_name=name, operation="create",
            )
        logger.info(f"Successfully pulled image '{image}'")

    def _discard(self, container: Any, name: str) -> str | None:
        """Force-remove a container that failed to start; return the removal error, if any."""
        from docker.errors import DockerException

        try:
            container.remove(force=True)
        except (DockerException, OSError) as e:
            logger.error(f"Could not remove container '{name}' after failed start: {e}")
            return str(e)
        logger.debug(f"Removed container '{name}' after failed start")
        return None

    def create(self, name: str, image: str, config: ContainerConfig, owner: str | None = None) -> str:
        """
        Create the container, then start it.

        Creation and start are separate daemon calls. If the start is
        rejected, the created container is force-removed before the
        error is raised, so a failed create never leaves the name taken.
        """
        client = self._get_client()
        from docker.errors import APIError, DockerException, ImageNotFound

        kwargs = self._create_kwargs(name, config, owner)
        logger.debug(f"Creating container '{name}' from '{image}': {config.to_dict()}")

        try:
            self._ensure_image(client, image, name)
            container = client.containers.create(image, **kwargs)
        except ImageNotFound as e:
            raise SandboxImageNotFoundError(
                f"Image '{image}' could not be resolved: {_runtime_message(e)}",
                image=image, runtime_message=_runtime_message(e),
                container_name=name, operation="create",
            )
        except APIError as e:
            if _status_code(e) == 409:
                raise SandboxConflictError(
                    f"A container named '{name}' already exists: {_runtime_message(e)}",
                    container_name=name, operation="create",
                )
            raise SandboxCreationError(
                _runtime_message(e), runtime_message=_runtime_message(e),
                container_name=name, operation="create",
            )
        except (DockerException, OSError) as e:
            raise self._unreachable(e, name, "create")

        try:
            container.start()
        except APIError as e:
            cleanup_error = self._discard(container, name)
            raise SandboxCreationError(
                f"Container failed to start: {_runtime_message(e)}",
                runtime_message=_runtime_message(e),
                details={"cleanup_error": cleanup_error} if cleanup_error else None,
                container_name=name, operation="create",
            )
        except (DockerException, OSError) as e:
            self._discard(container, name)
            raise self._unreachable(e, name, "create")

        container_id = container.id
        if not container_id:
            raise SandboxCreationError(
                "Runtime returned an empty container id",
                container_name=name, operation="create",
            )
        logger.info(f"Created container '{name}' ({container.short_id}) from '{image}'")
        return container_id

    def _change_state(self, name: str, operation: str, action) -> None:
        """Apply a state-changing action to an existing container."""
        from docker.errors import APIError, DockerException, NotFound

        container = self._get_container(name, operation)
        if container is None:
            raise SandboxNotFoundError(
                f"No container named '{name}'", container_name=name, operation=operation
            )
        try:
            action(container)
        except NotFound:
            # Vanished between lookup and action
            raise SandboxNotFoundError(
                f"No container named '{name}'", container_name=name, operation=operation
            )
        except APIError as e:
            if _status_code(e) == 409:
                raise SandboxConflictError(
                    _runtime_message(e), container_name=name, operation=operation
                )
            raise SandboxRuntimeError(
                _runtime_message(e), runtime_message=_runtime_message(e),
                container_name=name, operation=operation,
            )
        except (DockerException, OSError) as e:
            raise self._unreachable(e, name, operation)

    def start(self, name: str) -> None:
        self._change_state(name, "start", lambda c: c.start())
        logger.debug(f"Started container '{name}'")

    def stop(self, name: str) -> None:
        self._change_state(name, "stop", lambda c: c.stop(timeout=self._stop_timeout))
        logger.debug(f"Stopped container '{name}'")

    def remove(self, name: str, force: bool = False) -> None:
        self._change_state(name, "remove", lambda c: c.remove(force=force))
        logger.debug(f"Removed container '{name}' (force={force})")

    def run_check(self, image: str, command: list[str]) -> bool:
        client = self._get_client()
        from docker.errors import APIError, ContainerError, DockerException, ImageNotFound

        try:
            client.containers.run(image, command=command, remove=True)
            return True
        except ContainerError as e:
            logger.debug(f"Check {command} in '{image}' exited with {e.exit_status}")
            return False
        except ImageNotFound as e:
            raise SandboxImageNotFoundError(
                f"Image '{image}' could not be resolved: {_runtime_message(e)}",
                image=image, runtime_message=_runtime_message(e), operation="run_check",
            )
        except APIError as e:
            raise SandboxRuntimeError(
                _runtime_message(e), runtime_message=_runtime_message(e), operation="run_check"
            )
        except (DockerException, OSError) as e:
            self._client = None
            raise DockerDaemonNotRunningError(
                f"Docker daemon unreachable: {e}", host=self._docker_host or "local",
                operation="run_check",
            )


_default_runtime: DockerRuntime | None = None


def get_default_runtime() -> DockerRuntime:
    """Process-wide DockerRuntime using the local daemon."""
    global _default_runtime
    if _default_runtime is None:
        _default_runtime = DockerRuntime()
    return _default_runtime


def is_docker_available() -> bool:
    """Check whether the docker client is installed."""
    return get_default_runtime().is_available()


def is_daemon_running() -> bool:
    """Check whether the local docker daemon is reachable."""
    return get_default_runtime().is_daemon_running()
