# src/aoe/docker/config.py
"""
Configuration management for sandboxed sessions.

Configuration Hierarchy:
    1. Default values (defined in this module)
    2. Config file (~/.agent-of-empires/config.toml, [sandbox] table)
    3. Environment variables (AOE_SANDBOX_*)
    4. Runtime overrides (passed to load_sandbox_config)

The environment is only consulted here, at load time. Everything below
this layer (containers, storage, the sandbox manager) receives the
resulting SandboxSettings object explicitly.

Example TOML configuration:
    [sandbox]
    enabled_by_default = false
    yolo_mode_default = false
    workspace_root = "/workspace"

    [sandbox.docker]
    image = "aoe-sandbox:latest"
    cpu_limit = 2.0
    memory_limit = "4g"

    [sandbox.volumes]
    extra = ["~/.gitconfig:/root/.gitconfig:ro"]
    named = { "aoe-claude-auth" = "/root/.claude" }

    [sandbox.environment]
    TERM = "xterm-256color"
"""

import copy
import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..exceptions import ConfigError
from .base import VolumeMount

logger = logging.getLogger(__name__)

ENV_PREFIX = "AOE_SANDBOX_"

# Table whose keys are container variable names, matched with their case
ENV_SECTION = "environment"

DEFAULT_CONFIG_PATH = Path("~/.agent-of-empires/config.toml")

# Default configuration values
DEFAULT_CONFIG = {
    "enabled_by_default": False,
    "yolo_mode_default": False,
    "workspace_root": "/workspace",
    "docker": {
        "image": "aoe-sandbox:latest",
        "host": None,
        "cpu_limit": None,
        "memory_limit": None,
        "timeout_seconds": 60,
        "stop_timeout_seconds": 10,
    },
    "volumes": {
        "extra": [],
        "named": {},
    },
    "environment": {
        "TERM": "xterm-256color",
    },
}


@dataclass
class DockerSettings:
    """Docker runtime settings."""

    image: str = "aoe-sandbox:latest"
    host: str | None = None
    cpu_limit: float | None = None
    memory_limit: int | str | None = None
    timeout_seconds: int = 60
    stop_timeout_seconds: int = 10


@dataclass
class VolumeSettings:
    """Additional mounts for every sandbox container."""

    extra: list[VolumeMount] = field(default_factory=list)
    named: dict[str, str] = field(default_factory=dict)


@dataclass
class SandboxSettings:
    """
    Complete sandbox configuration.

    Attributes:
        enabled_by_default: New sessions are sandboxed unless told otherwise
        yolo_mode_default: New sandboxes grant unchecked permissions
        workspace_root: Container directory under which projects are mounted
        docker: Runtime and resource settings
        volumes: Extra bind mounts and named volumes
        environment: Variables injected into every sandbox
    """

    enabled_by_default: bool = False
    yolo_mode_default: bool = False
    workspace_root: str = "/workspace"
    docker: DockerSettings = field(default_factory=DockerSettings)
    volumes: VolumeSettings = field(default_factory=VolumeSettings)
    environment: dict[str, str] = field(default_factory=lambda: {"TERM": "xterm-256color"})

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "enabled_by_default": self.enabled_by_default,
            "yolo_mode_default": self.yolo_mode_default,
            "workspace_root": self.workspace_root,
            "docker": {
                "image": self.docker.image,
                "host": self.docker.host,
                "cpu_limit": self.docker.cpu_limit,
                "memory_limit": self.docker.memory_limit,
                "timeout_seconds": self.docker.timeout_seconds,
                "stop_timeout_seconds": self.docker.stop_timeout_seconds,
            },
            "volumes": {
                "extra": [m.to_bind() for m in self.volumes.extra],
                "named": dict(self.volumes.named),
            },
            "environment": dict(self.environment),
        }


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in override take precedence. Nested dictionaries are merged recursively.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _parse_env_value(value: str) -> Any:
    """
    Parse environment variable value to appropriate type.

    Returns:
        Parsed value (bool, int, float, list, or string)
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if "," in value:
        return [v.strip() for v in value.split(",")]

    return value


def _apply_env_overrides(config: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Environment variables follow the pattern:
        AOE_SANDBOX_<KEY>=value or AOE_SANDBOX_<SECTION>_<KEY>=value

    Examples:
        AOE_SANDBOX_ENABLED_BY_DEFAULT=true
        AOE_SANDBOX_DOCKER_IMAGE=ghcr.io/me/aoe-sandbox:dev
        AOE_SANDBOX_DOCKER_MEMORY_LIMIT=4g
        AOE_SANDBOX_ENVIRONMENT_TERM=dumb

    Only keys that already exist in the configuration are overridden,
    except in the [environment] table. There the name after
    AOE_SANDBOX_ENVIRONMENT_ is taken with its case and may add an entry.
    Its value stays a string.
    """
    env_prefix = f"{ENV_PREFIX}{ENV_SECTION.upper()}_"
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        if key.startswith(env_prefix) and len(key) > len(env_prefix):
            if isinstance(config.get(ENV_SECTION), dict):
                config[ENV_SECTION][key[len(env_prefix):]] = value
            continue

        name = key[len(ENV_PREFIX):].lower()

        if name in config and not isinstance(config[name], dict):
            config[name] = _parse_env_value(value)
            continue

        section, _, nested_key = name.partition("_")
        if section in config and isinstance(config[section], dict) and nested_key in config[section]:
            config[section][nested_key] = _parse_env_value(value)

    return config


def load_toml_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load the [sandbox] table from a TOML config file.

    Args:
        config_path: Path to TOML file (default: ~/.agent-of-empires/config.toml)

    Returns:
        Sandbox configuration dictionary (empty if the file does not exist)

    Raises:
        ConfigError: If the file exists but cannot be parsed
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path).expanduser()

    if not config_path.exists():
        logger.debug(f"Config file not found: {config_path}")
        return {}

    try:
        with open(config_path, "rb") as f:
            full_config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to load config from {config_path}: {e}")

    logger.debug(f"Loaded sandbox config from {config_path}")
    return full_config.get("sandbox", {})


def _parse_mount(spec: Any) -> VolumeMount:
    """Parse "host:container[:ro|rw]" or a {host, container, read_only} table."""
    if isinstance(spec, VolumeMount):
        return spec
    if isinstance(spec, dict):
        try:
            host, container = spec["host"], spec["container"]
        except KeyError as e:
            raise ConfigError(f"Volume entry {spec!r} is missing key {e}")
        read_only = bool(spec.get("read_only", False))
    elif isinstance(spec, str):
        parts = spec.split(":")
        if len(parts) not in (2, 3) or (len(parts) == 3 and parts[2] not in ("ro", "rw")):
            raise ConfigError(f"Invalid volume spec '{spec}', expected host:container[:ro|rw]")
        host, container = parts[0], parts[1]
        read_only = len(parts) == 3 and parts[2] == "ro"
    else:
        raise ConfigError(f"Invalid volume spec {spec!r}")

    host_path = os.path.abspath(os.path.expanduser(host))
    if not container.startswith("/"):
        raise ConfigError(f"Container path must be absolute in volume spec {spec!r}")
    return VolumeMount(host_path, container, read_only)


def load_sandbox_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> SandboxSettings:
    """
    Load complete sandbox configuration.

    Configuration is loaded and merged in order:
        1. Default values
        2. TOML config file
        3. Environment variables
        4. Runtime overrides

    Args:
        config_path: Optional path to TOML config file
        overrides: Optional runtime overrides
        environ: Environment mapping (default: os.environ)

    Returns:
        SandboxSettings instance

    Raises:
        ConfigError: If the file or a value is invalid
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    toml_config = load_toml_config(config_path)
    if toml_config:
        config = _deep_merge(config, toml_config)

    config = _apply_env_overrides(config, os.environ if environ is None else environ)

    if overrides:
        config = _deep_merge(config, overrides)

    docker_section = config["docker"]
    extra = config["volumes"].get("extra", [])
    if isinstance(extra, str):
        extra = [extra]

    try:
        cpu_limit = docker_section.get("cpu_limit")
        docker_settings = DockerSettings(
            image=docker_section.get("image", "aoe-sandbox:latest"),
            host=docker_section.get("host"),
            cpu_limit=float(cpu_limit) if cpu_limit is not None else None,
            memory_limit=docker_section.get("memory_limit"),
            timeout_seconds=int(docker_section.get("timeout_seconds", 60)),
            stop_timeout_seconds=int(docker_section.get("stop_timeout_seconds", 10)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid [sandbox.docker] value: {e}")

    if docker_settings.cpu_limit is not None and docker_settings.cpu_limit <= 0:
        raise ConfigError(f"cpu_limit must be positive, got {docker_settings.cpu_limit}")

    volume_settings = VolumeSettings(
        extra=[_parse_mount(spec) for spec in extra],
        named={str(k): str(v) for k, v in config["volumes"].get("named", {}).items()},
    )

    return SandboxSettings(
        enabled_by_default=bool(config.get("enabled_by_default", False)),
        yolo_mode_default=bool(config.get("yolo_mode_default", False)),
        workspace_root=config.get("workspace_root", "/workspace"),
        docker=docker_settings,
        volumes=volume_settings,
        environment={str(k): str(v) for k, v in config.get("environment", {}).items()},
    )


def generate_sample_config() -> str:
    """
    Generate a sample TOML configuration file content.

    Returns:
        TOML configuration string
    """
    return """# Agent of Empires sandbox configuration
# Place this in ~/.agent-of-empires/config.toml

[sandbox]
# Run new sessions inside a container unless told otherwise
enabled_by_default = false

# Grant agents unchecked permissions inside the sandbox
yolo_mode_default = false

# Directory inside the container where projects are mounted
workspace_root = "/workspace"

[sandbox.docker]
# Image providing the agent binaries (claude, opencode, codex)
image = "aoe-sandbox:latest"

# Docker host (optional, default: local daemon from the environment)
# host = "unix:///var/run/docker.sock"

# Resource limits (omit for unconstrained)
# cpu_limit = 2.0
# memory_limit = "4g"

# Seconds to wait for daemon requests and graceful stops
timeout_seconds = 60
stop_timeout_seconds = 10

[sandbox.volumes]
# Extra bind mounts, "host:container[:ro|rw]"
extra = []

# Named volumes managed by docker, name = container path
[sandbox.volumes.named]
# "aoe-claude-auth" = "/root/.claude"

[sandbox.environment]
TERM = "xterm-256color"
"""


def write_sample_config(path: Path | None = None) -> Path:
    """
    Write a sample configuration file.

    Args:
        path: Path to write to (default: ~/.agent-of-empires/config.toml.sample)

    Returns:
        Path where config was written
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH.expanduser().with_name("config.toml.sample")

    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        f.write(generate_sample_config())

    logger.info(f"Wrote sample config to {path}")
    return path
