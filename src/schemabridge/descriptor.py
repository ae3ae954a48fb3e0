"""Tool descriptor materializer.

Before the agent process starts it needs a JSON file telling it how to
launch the tool responder. One file is written per session and removed as
soon as the agent exits, so a descriptor never outlives (or leaks
environment into) another session.

File shape::

    {"mcpServers": {"schema-db": {"command": "...", "args": [...], "env": {...}}}}
"""

import hashlib
import json
import logging
import re
import sys
from pathlib import Path
from typing import Any

from schemabridge.config import Settings, get_settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")

RESPONDER_MODULE = "schemabridge.responder"


def _safe_token(session_id: str) -> str:
    """Filename-safe form of *session_id*; distinct ids always give distinct tokens."""
    token = _UNSAFE_CHARS.sub("_", session_id)
    if token != session_id or not token:
        digest = hashlib.sha1(session_id.encode("utf-8")).hexdigest()[:8]
        token = f"{token}-{digest}"
    return token


def descriptor_path(session_id: str, settings: Settings | None = None) -> Path:
    settings = settings or get_settings()
    return settings.descriptor_dir / f"mcp_config_{_safe_token(session_id)}.json"


def build_descriptor(settings: Settings | None = None) -> dict[str, Any]:
    """Return the descriptor contents without writing anything."""
    settings = settings or get_settings()
    return {
        "mcpServers": {
            settings.mcp_server_name: {
                "command": sys.executable,
                "args": ["-m", RESPONDER_MODULE],
                "env": {"SCHEMABRIDGE_DATABASE_URL": settings.database_url},
            }
        }
    }


def materialize(session_id: str, settings: Settings | None = None) -> Path:
    """Write the descriptor for *session_id* and return its path."""
    settings = settings or get_settings()
    path = descriptor_path(session_id, settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(build_descriptor(settings), indent=2))
    path.chmod(0o600)
    logger.debug("Descriptor written: %s", path)
    return path


def discard(path: Path | str | None) -> None:
    """Remove a descriptor. Missing paths are fine."""
    if path is None:
        return
    Path(path).unlink(missing_ok=True)
    logger.debug("Descriptor removed: %s", path)
