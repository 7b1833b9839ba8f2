# src/aoe/exceptions.py
"""
Custom exceptions for the aoe package.

This module defines the package-level exception hierarchy used outside
the container runtime layer (configuration and session storage). Errors
raised while talking to the container runtime live in
``aoe.docker.exceptions``.
"""

class AoeError(Exception):
    """Base class for all aoe specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in aoe."):
        super().__init__(message)

class ConfigError(AoeError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class StorageError(AoeError):
    """Base class for errors related to storage operations."""
    def __init__(self, message: str = "Storage error."):
        super().__init__(message)

class SessionStorageError(StorageError):
    """Raised for errors specific to session storage operations."""
    def __init__(self, message: str = "Session storage error."):
        super().__init__(message)

class SessionNotFoundError(StorageError):
    """
    Raised when a specified session ID is not found in storage.
    Inherits from StorageError as it's a storage-related lookup failure.
    """
    def __init__(self, session_id: str, message: str = "Session not found."):
        self.session_id = session_id
        super().__init__(f"{message} Session ID: '{session_id}'")
