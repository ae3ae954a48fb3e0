"""Agent backend lookup.

Maps a backend name (``Settings.agent_backend``) to the class implementing
it. Classes are imported the first time they are asked for, so a transport
whose dependency is missing only fails when it is selected.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, NamedTuple

from schemabridge.errors import ConfigurationError

if TYPE_CHECKING:
    from schemabridge.agents.backend import AgentBackend, BackendInfo
    from schemabridge.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "claude_code_cli"


class BackendRef(NamedTuple):
    module: str
    attr: str


_BACKENDS: dict[str, BackendRef] = {
    "claude_code_cli": BackendRef("schemabridge.agents.claude_cli", "ClaudeCLIBackend"),
    "claude_agent_sdk": BackendRef("schemabridge.agents.claude_sdk", "ClaudeSDKBackend"),
    "agent_service": BackendRef("schemabridge.agents.agent_service", "AgentServiceBackend"),
}


def list_backends() -> list[str]:
    return list(_BACKENDS)


def get_backend_class(name: str) -> type[AgentBackend] | None:
    """Import the class registered under *name*; None when unknown or not importable."""
    ref = _BACKENDS.get(name)
    if ref is None:
        logger.debug("No backend registered as '%s'", name)
        return None
    try:
        return getattr(importlib.import_module(ref.module), ref.attr)
    except (ImportError, AttributeError) as e:
        logger.warning("Backend '%s' could not be loaded from %s: %s", name, ref.module, e)
        return None


def get_backend_info(name: str) -> BackendInfo | None:
    backend_cls = get_backend_class(name)
    return backend_cls.info() if backend_cls is not None else None


def register_backend(name: str, module: str, cls: str) -> None:
    """Add (or replace) a backend entry, e.g. from a plugin."""
    _BACKENDS[name] = BackendRef(module, cls)


def create_backend(settings: Settings) -> AgentBackend:
    """Instantiate the backend named by ``settings.agent_backend``."""
    name = settings.agent_backend or DEFAULT_BACKEND
    backend_cls = get_backend_class(name)
    if backend_cls is None:
        raise ConfigurationError(
            f"Unknown or unavailable agent backend '{name}'. "
            f"Available: {', '.join(list_backends())}"
        )
    logger.info("Using agent backend: %s", name)
    return backend_cls(settings)
