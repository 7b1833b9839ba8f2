# src/aoe/session/__init__.py
"""Session records and their persistence."""

from .instance import Instance, SandboxInfo, SandboxState
from .storage import Storage, StorageConfig

__all__ = [
    "Instance",
    "SandboxInfo",
    "SandboxState",
    "Storage",
    "StorageConfig",
]
