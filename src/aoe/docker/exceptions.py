# src/aoe/docker/exceptions.py
"""
Sandbox-specific exceptions for the container lifecycle manager.

Every failure reported by the container runtime is surfaced as one of
these typed errors, carrying the container name, the attempted
operation and the runtime's own diagnostic text so that callers can
decide whether to retry, fall back to forced removal, or abandon
sandboxing for a session.

Exception Hierarchy:
    SandboxError (base)
    ├── SandboxUnavailableError - Runtime cannot be used at all
    │   ├── DockerNotInstalledError - Client library or CLI missing
    │   └── DockerDaemonNotRunningError - Daemon unreachable
    ├── SandboxNotFoundError - Container absent for a state-changing call
    ├── SandboxConflictError - Name already taken / container still running
    ├── SandboxRuntimeError - Runtime rejected the request
    │   └── SandboxCreationError - Container could not be created
    │       └── SandboxImageNotFoundError - Image could not be resolved
    └── SandboxCleanupError - Removal could not be confirmed
"""

from typing import Any


class SandboxError(Exception):
    """
    Base exception for all sandbox-related errors.

    Attributes:
        message: Human-readable error description
        details: Optional dictionary with additional context
        container_name: Name of the affected container (if known)
        operation: Lifecycle operation that failed (if known)
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        container_name: str | None = None,
        operation: str | None = None,
    ):
        """
        Initialize the sandbox error.

        Args:
            message: Human-readable error description
            details: Optional dictionary with additional context
            container_name: Name of the affected container
            operation: Lifecycle operation that failed (e.g. "create")
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.container_name = container_name
        self.operation = operation

    def __str__(self) -> str:
        """Return formatted error message."""
        base_msg = self.message
        if self.container_name:
            prefix = f"{self.operation} " if self.operation else ""
            base_msg = f"[{prefix}{self.container_name}] {base_msg}"
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            base_msg = f"{base_msg} ({detail_str})"
        return base_msg

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception to dictionary for logging/API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "container_name": self.container_name,
            "operation": self.operation,
        }


class SandboxUnavailableError(SandboxError):
    """
    Raised when the container runtime cannot be used at all.

    This is fatal for any lifecycle operation and is never retried
    automatically.
    """

    pass


class DockerNotInstalledError(SandboxUnavailableError):
    """Raised when the docker client (SDK or CLI) is not installed."""

    def __init__(
        self,
        message: str = "Docker is not installed. Install Docker and make sure the 'docker' CLI is on PATH.",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class DockerDaemonNotRunningError(SandboxUnavailableError):
    """
    Raised when the docker daemon does not answer.

    Attributes:
        host: The daemon endpoint that was tried
    """

    def __init__(
        self,
        message: str = "Docker daemon is not running. Start Docker and try again.",
        host: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.host = host

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception to dictionary."""
        result = super().to_dict()
        result.update({"host": self.host})
        return result


class SandboxNotFoundError(SandboxError):
    """
    Raised when a state-changing operation targets a missing container.

    State queries (exists, is_running) never raise this; they report
    ``False`` instead.
    """

    pass


class SandboxConflictError(SandboxError):
    """
    Raised when a request conflicts with the container's current state.

    This occurs when:
    - create is called for a name that already exists
    - remove without force is called on a running container

    The caller can resolve it (stop first, or force the removal); the
    runtime state is never silently overwritten.
    """

    pass


class SandboxRuntimeError(SandboxError):
    """
    Raised when the runtime rejects a request.

    Attributes:
        runtime_message: The runtime's diagnostic text, verbatim
    """

    def __init__(self, message: str, runtime_message: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.runtime_message = runtime_message

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception to dictionary."""
        result = super().to_dict()
        result.update({"runtime_message": self.runtime_message})
        return result


class SandboxCreationError(SandboxRuntimeError):
    """
    Raised when a container cannot be created.

    Example:
        >>> raise SandboxCreationError(
        ...     "invalid mount config for type \\"bind\\"",
        ...     container_name="aoe-sandbox-abcd1234",
        ...     operation="create",
        ... )
    """

    pass


class SandboxImageNotFoundError(SandboxCreationError):
    """
    Raised when the sandbox image cannot be found or pulled.

    Attributes:
        image: The image that wasn't found
    """

    def __init__(self, message: str, image: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.image = image

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception to dictionary."""
        result = super().to_dict()
        result.update({"image": self.image})
        return result


class SandboxCleanupError(SandboxError):
    """
    Raised when a container could not be confirmed removed.

    The session's SandboxInfo is kept intact when this is raised, since
    the container may still exist.

    Attributes:
        resources_leaked: Containers that may still exist
    """

    def __init__(self, message: str, resources_leaked: list | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.resources_leaked = resources_leaked or []

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception to dictionary."""
        result = super().to_dict()
        result.update({"resources_leaked": self.resources_leaked})
        return result
