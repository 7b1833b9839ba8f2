# src/aoe/session/instance.py
"""
Session data models.

This module defines the Pydantic models for a session (Instance) and the
persisted record of its sandbox (SandboxInfo). SandboxInfo is the
*intent and last known state* of a session's container; the container
runtime remains the source of truth for whether that container is
actually alive, and aoe.sandbox_manager keeps the two consistent.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..docker.container import generate_name


def _ensure_utc(v: Any) -> Any:
    """Make datetimes timezone-aware UTC; leave other values to pydantic."""
    if isinstance(v, str):
        if v.endswith("Z"):
            v = v[:-1] + "+00:00"
        try:
            v = datetime.fromisoformat(v)
        except ValueError:
            raise ValueError(f"Invalid datetime format: {v}")
    if isinstance(v, datetime):
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)
    return v


class SandboxState(str, Enum):
    """
    Tagged view over SandboxInfo's optional fields.

    PENDING: sandboxing requested, no container created (or creation failed,
             or the container vanished)
    ACTIVE: a container was created and its id recorded
    DISABLED: the session was reverted to host execution
    """
    PENDING = "pending"
    ACTIVE = "active"
    DISABLED = "disabled"


class SandboxInfo(BaseModel):
    """
    Persisted sandbox record of one session.

    Attributes:
        enabled: Whether the session runs in a sandbox at all
        container_id: Runtime id, set once creation succeeds, None before
            creation or after removal
        image: Image the container was (or will be) created from
        container_name: Deterministic container name, present as soon as a
            sandbox is attempted
        created_at: When the container was created (UTC)
        yolo_mode: Whether the agent inside runs with unchecked permissions

    A disabled record never carries a container id: the manager removes
    the container before it clears ``enabled``.
    """
    enabled: bool = Field(description="Whether sandboxing is enabled for the session.")
    container_id: Optional[str] = Field(default=None, description="Runtime-assigned container id.")
    image: Optional[str] = Field(default=None, description="Image reference used to create the container.")
    container_name: str = Field(description="Deterministic container name.")
    created_at: Optional[datetime] = Field(default=None, description="Container creation time (UTC).")
    yolo_mode: Optional[bool] = Field(default=None, description="Elevated permissions inside the sandbox.")

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("created_at", mode="before")
    @classmethod
    def ensure_utc_timestamp(cls, v: Any) -> Any:
        return _ensure_utc(v)

    @classmethod
    def requested(cls, session_id: str, image: str | None = None, yolo_mode: bool | None = None) -> "SandboxInfo":
        """Intent record for a session that should run sandboxed."""
        return cls(
            enabled=True,
            container_name=generate_name(session_id),
            image=image,
            yolo_mode=yolo_mode,
        )

    @property
    def state(self) -> SandboxState:
        if not self.enabled:
            return SandboxState.DISABLED
        if self.container_id is None:
            return SandboxState.PENDING
        return SandboxState.ACTIVE

    def mark_created(self, container_id: str, image: str, created_at: datetime | None = None) -> None:
        """Record a successful container creation."""
        self.container_id = container_id
        self.image = image
        self.created_at = created_at or datetime.now(timezone.utc)

    def mark_absent(self) -> None:
        """Forget the container: not created, failed, or removed."""
        self.container_id = None
        self.created_at = None


class Instance(BaseModel):
    """
    One agent session.

    Attributes:
        id: Unique session identifier (16 hex characters)
        title: Human-readable session title
        project_path: Host directory the agent works in
        tool: Agent tool run for this session (see aoe.docker.tools)
        created_at: When the session was created (UTC)
        sandbox_info: Sandbox record, None for sessions never sandboxed
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:16], description="Unique session identifier.")
    title: str = Field(description="Session title.")
    project_path: str = Field(description="Host project directory.")
    tool: str = Field(default="claude", description="Agent tool run in the session.")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Creation time (UTC).")
    sandbox_info: Optional[SandboxInfo] = Field(default=None, description="Sandbox record, if any.")

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Session id must not be empty")
        return v

    @field_validator("created_at", mode="before")
    @classmethod
    def ensure_utc_timestamp(cls, v: Any) -> Any:
        return _ensure_utc(v)

    def is_sandboxed(self) -> bool:
        """True iff a sandbox record is present and enabled."""
        return self.sandbox_info is not None and self.sandbox_info.enabled
