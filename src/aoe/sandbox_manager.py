# src/aoe/sandbox_manager.py
"""
Keeps sessions' SandboxInfo records consistent with the container runtime.

Two sources of truth meet here: the persisted SandboxInfo (what the
session *intends* and last saw) and the runtime's live state. The
manager is called by session lifecycle operations:

    - session start  -> start_session(): create (or adopt/restart) the
      container and record its id
    - session delete -> delete_session(): remove the container, then
      drop the record
    - revert to host -> disable_sandbox(): remove the container, then
      mark the record disabled
    - status refresh -> refresh(): notice containers removed out-of-band

Rules:
    - A failed creation never leaves a container id in the record.
    - A record is only cleared or disabled once the runtime confirms the
      container no longer exists.
    - A container is only adopted or removed by the session it was
      created for (its owner label), never by another session whose id
      shares the same name prefix.
    - Nothing is retried internally; errors reach the caller typed.

Container calls are blocking and run in the default executor, one at a
time per operation. Callers serialize operations on the same session.

Usage:
    >>> manager = SandboxManager.from_config()
    >>> instance = Instance(title="api", project_path="/home/me/api")
    >>> manager.request_sandbox(instance)
    >>> await manager.start_session(instance)
    >>> ...
    >>> await manager.delete_session(instance)
"""

import asyncio
import functools
import logging
import os
import posixpath
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable

from .docker.base import ContainerConfig, ContainerRuntime, VolumeMount
from .docker.config import SandboxSettings, load_sandbox_config
from .docker.container import DockerContainer
from .docker.docker_runtime import DockerRuntime
from .docker.exceptions import (
    DockerDaemonNotRunningError,
    DockerNotInstalledError,
    SandboxCleanupError,
    SandboxConflictError,
    SandboxError,
    SandboxNotFoundError,
    SandboxUnavailableError,
)
from .session.instance import Instance, SandboxInfo
from .logging_config import configure_logging, log_display
from .session.storage import Storage, StorageConfig

logger = logging.getLogger(__name__)


class SandboxManager:
    """
    Reconciles session records with their sandbox containers.

    Attributes:
        _storage: Session list persistence
        _settings: Sandbox configuration
        _runtime: Container runtime shared by all containers
    """

    def __init__(
        self,
        storage: Storage,
        settings: SandboxSettings | None = None,
        runtime: ContainerRuntime | None = None,
    ):
        """
        Args:
            storage: Storage holding the session list
            settings: Sandbox settings (default: built-in defaults)
            runtime: Container runtime (default: DockerRuntime from settings)
        """
        self._storage = storage
        self._settings = settings or SandboxSettings()
        if runtime is None:
            runtime = DockerRuntime(
                docker_host=self._settings.docker.host,
                timeout=self._settings.docker.timeout_seconds,
                stop_timeout=self._settings.docker.stop_timeout_seconds,
            )
        self._runtime = runtime

    @classmethod
    def from_config(
        cls,
        home: str | Path | None = None,
        profile: str = "default",
        config_file_path: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
        runtime: ContainerRuntime | None = None,
        setup_logging: bool = True,
    ) -> "SandboxManager":
        """
        Build a manager from the application's config file.

        This is the application entry point. The ``[logging]`` and
        ``[sandbox]`` tables are read from the same TOML file, by
        default ``<home>/.agent-of-empires/config.toml``, and sessions
        are stored below ``<home>/.agent-of-empires/profiles/<profile>``.

        Args:
            home: Home directory (default: the user's home)
            profile: Session profile name
            config_file_path: TOML config file (default: in the aoe root)
            environ: Environment for AOE_SANDBOX_* overrides (default: os.environ)
            runtime: Container runtime (default: DockerRuntime from settings)
            setup_logging: Configure logging handlers from the [logging] table

        Raises:
            ConfigError: The config file, a setting or the profile is invalid
        """
        storage_config = StorageConfig.for_home(Path(home) if home is not None else Path.home(), profile)
        if config_file_path is None:
            config_file_path = storage_config.root / "config.toml"
        config_file_path = Path(config_file_path).expanduser()

        if setup_logging:
            log_file = configure_logging(app_name="aoe", config_file_path=config_file_path)
            logger.debug(f"aoe logging to {log_file}")

        settings = load_sandbox_config(config_path=config_file_path, environ=environ)
        logger.info(f"Sandbox manager for profile '{profile}' using image '{settings.docker.image}'")
        return cls(Storage(storage_config), settings, runtime=runtime)

    @property
    def settings(self) -> SandboxSettings:
        return self._settings

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking runtime call without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def check_runtime(self) -> None:
        """
        Ensure the runtime can be used.

        Raises:
            DockerNotInstalledError: The docker client is missing
            DockerDaemonNotRunningError: The daemon does not answer
        """
        if not self._runtime.is_available():
            log_display(logger, logging.ERROR, "Docker is not installed; sandboxed sessions cannot start")
            raise DockerNotInstalledError()
        if not self._runtime.is_daemon_running():
            log_display(logger, logging.ERROR, "Docker daemon is not running")
            raise DockerDaemonNotRunningError(host=self._settings.docker.host or "local")

    def container_for(self, instance: Instance) -> DockerContainer:
        info = instance.sandbox_info
        image = info.image if info is not None and info.image else self._settings.docker.image
        return DockerContainer(instance.id, image, runtime=self._runtime)

    def request_sandbox(
        self,
        instance: Instance,
        image: str | None = None,
        yolo_mode: bool | None = None,
    ) -> SandboxInfo:
        """
        Mark a session as sandboxed. No container is created until
        start_session().

        Args:
            instance: Session to sandbox
            image: Image override (default: settings image)
            yolo_mode: Elevated permissions (default: settings default)
        """
        if yolo_mode is None and self._settings.yolo_mode_default:
            yolo_mode = True
        info = SandboxInfo.requested(
            instance.id,
            image=image or self._settings.docker.image,
            yolo_mode=yolo_mode,
        )
        instance.sandbox_info = info
        return info

    def build_container_config(self, instance: Instance) -> ContainerConfig:
        """
        Container configuration for a session.

        The project directory is bind-mounted at
        ``<workspace_root>/<project dir name>``, which is also the working
        directory. Configured extra mounts, named volumes, environment and
        resource limits are added.
        """
        project_path = os.path.abspath(os.path.expanduser(instance.project_path))
        project_name = os.path.basename(project_path.rstrip(os.sep)) or "project"
        working_dir = posixpath.join(self._settings.workspace_root, project_name)

        volumes = [VolumeMount(project_path, working_dir), *self._settings.volumes.extra]

        environment = dict(self._settings.environment)
        environment["AOE_SESSION_ID"] = instance.id
        if instance.sandbox_info is not None and instance.sandbox_info.yolo_mode:
            environment["AOE_YOLO_MODE"] = "1"

        return ContainerConfig(
            working_dir=working_dir,
            volumes=volumes,
            named_volumes=self._settings.volumes.named,
            environment=environment,
            cpu_limit=self._settings.docker.cpu_limit,
            memory_limit=self._settings.docker.memory_limit,
        )

    def exec_command(self, instance: Instance, args: list[str], interactive: bool = True) -> list[str]:
        """
        argv that runs a command inside the session's sandbox.

        Raises:
            ValueError: If the session is not sandboxed
        """
        if not instance.is_sandboxed():
            raise ValueError(f"Session '{instance.id}' is not sandboxed")
        return self.container_for(instance).exec_command(args, interactive=interactive)

    async def _persist(self, instance: Instance) -> None:
        """Write one session back into the stored list."""
        instances = await self._storage.load()
        for index, existing in enumerate(instances):
            if existing.id == instance.id:
                instances[index] = instance
                break
        else:
            instances.append(instance)
        await self._storage.save(instances)

    async def _owned_by(self, container: DockerContainer, instance: Instance, existing_id: str) -> bool:
        """
        Whether an existing container belongs to the session.

        Names keep only a prefix of the session id, so two sessions can
        map to the same name. The owner label decides; an unlabeled
        container counts as the session's only if its id is the one
        already recorded for it.
        """
        owner = await self._call(container.owner)
        if owner is not None:
            return owner == instance.id
        return existing_id == instance.sandbox_info.container_id

    async def _remove_container(self, container: DockerContainer) -> None:
        """
        Stop and remove a container, forcing removal if needed.

        Raises:
            SandboxUnavailableError: The runtime cannot be reached
            SandboxCleanupError: The container still exists afterwards
        """
        force_error: SandboxError | None = None
        try:
            await self._call(container.stop)
            await self._call(container.remove, False)
        except SandboxUnavailableError:
            raise
        except SandboxError as e:
            logger.warning(f"Graceful removal of '{container.name}' failed ({e}), forcing removal")
            try:
                await self._call(container.remove, True)
            except SandboxNotFoundError:
                logger.debug(f"Container '{container.name}' already gone")
            except SandboxUnavailableError:
                raise
            except SandboxError as e2:
                logger.error(f"Forced removal of '{container.name}' failed: {e2}")
                force_error = e2

        if await self._call(container.exists):
            message = "Container still exists after removal"
            details = {}
            if force_error is not None:
                message = f"{message}: {force_error.message}"
                runtime_message = getattr(force_error, "runtime_message", None)
                if runtime_message:
                    details["runtime_message"] = runtime_message
            raise SandboxCleanupError(
                message,
                details=details,
                resources_leaked=[container.name],
                container_name=container.name,
                operation="remove",
            ) from force_error
        logger.info(f"Removed sandbox container '{container.name}'")

    async def _release_container(self, instance: Instance) -> None:
        """Remove the session's container, leaving other sessions' containers alone."""
        container = self.container_for(instance)
        existing_id = await self._call(container.container_id)
        if existing_id is None:
            logger.debug(f"No container '{container.name}' to remove for session '{instance.id}'")
            return
        if not await self._owned_by(container, instance, existing_id):
            logger.warning(
                f"Container '{container.name}' belongs to another session, "
                f"not removing it for session '{instance.id}'"
            )
            return
        await self._remove_container(container)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_session(self, instance: Instance) -> Instance:
        """
        Bring up the sandbox of a session and persist the result.

        Host sessions are returned unchanged. For sandboxed sessions an
        existing container created for this session is adopted (and
        started if stopped); otherwise a new one is created.

        Raises:
            SandboxUnavailableError: Docker is missing or not running
            SandboxConflictError: The container name is held by another
                session's container
            SandboxError: Creation or start failed; the record is saved
                without a container id
        """
        if not instance.is_sandboxed():
            logger.debug(f"Session '{instance.id}' runs on the host")
            return instance

        info = instance.sandbox_info
        await self._call(self.check_runtime)

        container = self.container_for(instance)
        info.container_name = container.name

        existing_id = await self._call(container.container_id)
        if existing_id is not None:
            if not await self._owned_by(container, instance, existing_id):
                logger.error(
                    f"Container '{container.name}' belongs to another session; "
                    f"session '{instance.id}' cannot use it"
                )
                info.mark_absent()
                await self._persist(instance)
                raise SandboxConflictError(
                    f"Container '{container.name}' already exists for another session",
                    container_name=container.name,
                    operation="create",
                )
            if not await self._call(container.is_running):
                await self._call(container.start)
            if info.container_id != existing_id:
                logger.info(f"Adopting existing container '{container.name}' for session '{instance.id}'")
                info.mark_created(existing_id, container.image, info.created_at)
            await self._persist(instance)
            return instance

        config = self.build_container_config(instance)
        try:
            container_id = await self._call(container.create, config)
        except SandboxError as e:
            logger.error(f"Failed to create sandbox for session '{instance.id}': {e}")
            info.mark_absent()
            await self._persist(instance)
            raise

        info.mark_created(container_id, container.image)
        await self._persist(instance)
        logger.info(f"Session '{instance.id}' sandboxed in '{container.name}'")
        return instance

    async def delete_session(self, instance: Instance) -> None:
        """
        Remove a session's container, then drop the session from storage.

        A container with the session's name that belongs to another
        session is left in place.

        Raises:
            SandboxUnavailableError: Docker is missing or not running
            SandboxCleanupError: The container could not be removed; the
                session and its record are kept
        """
        if instance.is_sandboxed():
            await self._call(self.check_runtime)
            await self._release_container(instance)
            instance.sandbox_info = None

        instances = await self._storage.load()
        await self._storage.save([i for i in instances if i.id != instance.id])
        logger.info(f"Deleted session '{instance.id}'")

    async def disable_sandbox(self, instance: Instance) -> Instance:
        """
        Revert a session to host execution.

        The container is removed first; the record is then kept with
        ``enabled=False`` and no container id.
        """
        if not instance.is_sandboxed():
            return instance

        await self._call(self.check_runtime)
        await self._release_container(instance)

        info = instance.sandbox_info
        info.enabled = False
        info.mark_absent()
        await self._persist(instance)
        logger.info(f"Session '{instance.id}' reverted to host execution")
        return instance

    async def refresh(self, instance: Instance) -> bool:
        """
        Re-read the runtime state of a session's sandbox.

        If the recorded container no longer exists (removed outside aoe,
        or its name now belongs to another session), the container id is
        cleared and persisted so the next start creates a fresh one.

        Returns:
            Whether the session's own sandbox container is running
        """
        if not instance.is_sandboxed():
            return False

        await self._call(self.check_runtime)
        container = self.container_for(instance)
        info = instance.sandbox_info

        existing_id = await self._call(container.container_id)
        if existing_id is not None and await self._owned_by(container, instance, existing_id):
            return await self._call(container.is_running)

        if info.container_id is not None:
            logger.warning(f"Container '{container.name}' of session '{instance.id}' vanished")
            info.mark_absent()
            await self._persist(instance)
        return False
