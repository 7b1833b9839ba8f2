# src/aoe/session/storage.py
"""
JSON file-based storage for the session list.

All sessions of a profile are stored together in one JSON file,
``<root>/profiles/<profile>/sessions.json``. The list is loaded and saved
as a whole; callers address sessions by id within it. Writes go to a
temporary file that is then moved over the real one, so a crash never
leaves a half-written session list behind.

The storage location is always passed in explicitly through
StorageConfig; nothing here reads the process environment.
It uses aiofiles for asynchronous file operations.
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiofiles.os as aios
from pydantic import ValidationError

from ..exceptions import ConfigError, SessionNotFoundError, SessionStorageError
from .instance import Instance

logger = logging.getLogger(__name__)

SESSIONS_FILE_NAME = "sessions.json"

_PROFILE_RE = re.compile(r"^[\w.-]+$")


@dataclass(frozen=True)
class StorageConfig:
    """
    Where sessions are stored.

    Attributes:
        root: Application data directory (e.g. ~/.agent-of-empires)
        profile: Profile name; each profile has its own session list
    """
    root: Path
    profile: str = "default"

    def __post_init__(self):
        if not self.profile or not _PROFILE_RE.match(self.profile) or self.profile in (".", ".."):
            raise ConfigError(f"Invalid profile name '{self.profile}'")
        object.__setattr__(self, "root", Path(self.root).expanduser())

    @classmethod
    def for_home(cls, home: Path, profile: str = "default") -> "StorageConfig":
        """Standard location below a home directory."""
        return cls(root=Path(home) / ".agent-of-empires", profile=profile)

    @property
    def profile_dir(self) -> Path:
        return self.root / "profiles" / self.profile

    @property
    def sessions_path(self) -> Path:
        return self.profile_dir / SESSIONS_FILE_NAME


class Storage:
    """
    Loads and saves the full list of Instance records of one profile.
    """

    def __init__(self, config: StorageConfig):
        self._config = config

    @property
    def config(self) -> StorageConfig:
        return self._config

    @property
    def path(self) -> Path:
        return self._config.sessions_path

    async def load(self) -> list[Instance]:
        """
        Load all sessions.

        Returns:
            The stored sessions, or an empty list if nothing was saved yet.

        Raises:
            SessionStorageError: If the file is unreadable or corrupted.
        """
        path = self.path
        if not await aios.path.exists(path):
            logger.debug(f"No session file at {path}, starting empty")
            return []

        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            logger.error(f"Error reading session file {path}: {e}")
            raise SessionStorageError(f"Failed to read session file {path}: {e}")

        if not content.strip():
            return []

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Error decoding session file {path}: {e}")
            raise SessionStorageError(f"Corrupted session file {path}: {e}")

        if not isinstance(data, list):
            raise SessionStorageError(f"Corrupted session file {path}: expected a list of sessions")

        try:
            instances = [Instance.model_validate(item) for item in data]
        except ValidationError as e:
            logger.error(f"Invalid session record in {path}: {e}")
            raise SessionStorageError(f"Invalid session data in {path}: {e}")

        logger.debug(f"Loaded {len(instances)} sessions from {path}")
        return instances

    async def get(self, session_id: str) -> Instance:
        """
        Load one session by id.

        Raises:
            SessionNotFoundError: If no stored session has this id.
        """
        for instance in await self.load():
            if instance.id == session_id:
                return instance
        raise SessionNotFoundError(session_id)

    async def save(self, instances: list[Instance]) -> None:
        """
        Replace the stored session list.

        Optional fields that are None are omitted from the file and load
        back as None.

        Raises:
            SessionStorageError: If the list cannot be written.
        """
        path = self.path
        tmp_path = path.with_name(f".{path.name}.tmp")
        payload = json.dumps(
            [instance.model_dump(mode="json", exclude_none=True) for instance in instances],
            indent=2,
        )

        try:
            await aios.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
                await f.write(payload)
                await f.flush()
            await aios.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Error writing session file {path}: {e}")
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise SessionStorageError(f"Failed to write session file {path}: {e}")

        logger.debug(f"Saved {len(instances)} sessions to {path}")
