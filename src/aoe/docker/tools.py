# src/aoe/docker/tools.py
"""
The sandbox image contract.

A sandbox image must ship one executable per supported agent tool.
Verifying this is an installation-time concern: the helpers below are
used by tests and by image maintainers, never on the session start
path.

When adding a new agent tool:
    1. Add the install command to sandbox-image/Dockerfile
    2. Add a SandboxTool entry to SANDBOX_TOOLS
    3. Rebuild the image: docker build -t aoe-sandbox:latest sandbox-image/
"""

import logging
from dataclasses import dataclass

from .base import ContainerRuntime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SandboxTool:
    """
    An agent tool the sandbox image must provide.

    Attributes:
        name: Tool name as selected for a session
        dockerfile_pattern: Text that must appear in the Dockerfile install section
        binary: Executable looked up inside the container
    """
    name: str
    dockerfile_pattern: str
    binary: str


SANDBOX_TOOLS: tuple[SandboxTool, ...] = (
    SandboxTool(name="claude", dockerfile_pattern="claude.ai/install", binary="claude"),
    SandboxTool(name="opencode", dockerfile_pattern="opencode.ai/install", binary="opencode"),
    SandboxTool(name="codex", dockerfile_pattern="@openai/codex", binary="codex"),
)

SUPPORTED_TOOL_NAMES: tuple[str, ...] = tuple(tool.name for tool in SANDBOX_TOOLS)


def get_tool(name: str) -> SandboxTool:
    """
    Look up a tool by name.

    Raises:
        KeyError: If the tool is not part of the image contract
    """
    for tool in SANDBOX_TOOLS:
        if tool.name == name:
            return tool
    raise KeyError(f"Unknown sandbox tool '{name}'. Supported: {', '.join(SUPPORTED_TOOL_NAMES)}")


def missing_dockerfile_tools(dockerfile_text: str) -> list[SandboxTool]:
    """Tools whose install command is absent from a Dockerfile."""
    return [tool for tool in SANDBOX_TOOLS if tool.dockerfile_pattern not in dockerfile_text]


def missing_image_tools(runtime: ContainerRuntime, image: str) -> list[SandboxTool]:
    """
    Tools whose binary cannot be found in an image.

    Each check runs ``which <binary>`` in a throwaway container.

    Raises:
        SandboxImageNotFoundError: If the image does not exist
        SandboxUnavailableError: If the runtime cannot be reached
    """
    missing = []
    for tool in SANDBOX_TOOLS:
        if not runtime.run_check(image, ["which", tool.binary]):
            logger.warning(f"Tool '{tool.name}' ({tool.binary}) not found in image '{image}'")
            missing.append(tool)
    return missing
