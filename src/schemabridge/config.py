"""Configuration management for SchemaBridge.

Settings come from (highest priority first) constructor kwargs, environment
variables prefixed with ``SCHEMABRIDGE_``, a local ``.env`` file, and
``~/.schemabridge/config.json``.

Credentials for the agent (``ANTHROPIC_API_KEY`` / ``CLAUDE_CODE_OAUTH_TOKEN``)
are never stored here. They are read from the process environment at the
moment a child process is spawned.
"""

import json
import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Environment variables the agent process accepts as credentials.
CREDENTIAL_ENV_VARS: tuple[str, ...] = ("ANTHROPIC_API_KEY", "CLAUDE_CODE_OAUTH_TOKEN")


def get_config_dir() -> Path:
    """Get the config directory, creating if needed."""
    config_dir = Path.home() / ".schemabridge"
    config_dir.mkdir(exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    """Get the config file path."""
    return get_config_dir() / "config.json"


def get_credentials_env() -> dict[str, str]:
    """Return the credential variables that are set (and non-empty) in the environment."""
    env: dict[str, str] = {}
    for name in CREDENTIAL_ENV_VARS:
        value = os.environ.get(name)
        if value:
            env[name] = value
    return env


class Settings(BaseSettings):
    """SchemaBridge settings with env and file support."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEMABRIDGE_",
        env_file=".env",
        extra="ignore",
    )

    # Agent backend
    agent_backend: str = Field(
        default="claude_code_cli",
        description="Agent backend: 'claude_code_cli', 'claude_agent_sdk', or 'agent_service'",
    )
    max_turns: int = Field(default=10, description="Maximum agent turns per message (0 = no limit)")

    # Schema backend
    database_url: str = Field(
        default="sqlite:///schemabridge.db",
        description="SQLAlchemy URL of the database whose schema the tool inspects",
    )

    # Claude Code CLI
    claude_executable: str | None = Field(
        default=None,
        description="Path to the claude executable (auto-detected when unset)",
    )
    project_root: Path = Field(
        default_factory=Path.cwd,
        description="Working directory for the agent; node_modules/.bin/claude is looked up here",
    )
    mcp_config_dir: Path | None = Field(
        default=None,
        description="Where per-session tool descriptors are written (default: <project_root>/tmp/mcp_configs)",
    )
    mcp_server_name: str = Field(default="schema-db", description="Tool namespace seen by the agent")
    stderr_tail_lines: int = Field(default=5, description="Agent stderr lines logged on failure")
    stderr_drain_timeout: float = Field(
        default=1.0, description="Seconds to let the stderr reader finish after the agent exits"
    )

    # Agent service (HTTP transport)
    agent_service_url: str = Field(
        default="http://localhost:3001", description="Base URL of the remote agent service"
    )
    agent_service_host: str = Field(default="127.0.0.1", description="Agent service bind host")
    agent_service_port: int = Field(default=3001, description="Agent service bind port")

    # Web server
    web_host: str = Field(default="127.0.0.1", description="Web server host")
    web_port: int = Field(default=8888, description="Web server port")

    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")

    @property
    def descriptor_dir(self) -> Path:
        """Directory holding per-session tool descriptors."""
        if self.mcp_config_dir is not None:
            return self.mcp_config_dir
        return self.project_root / "tmp" / "mcp_configs"

    def save(self) -> None:
        """Save non-default settings to the config file."""
        data = self.model_dump(mode="json", exclude_defaults=True)
        get_config_path().write_text(json.dumps(data, indent=2))

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from config file, falling back to env/defaults."""
        config_path = get_config_path()
        if config_path.exists():
            try:
                data = json.loads(config_path.read_text())
                return cls(**data)
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning("Ignoring unreadable config %s: %s", config_path, e)
        return cls()


@lru_cache
def _cached_settings() -> Settings:
    return Settings.load()


def get_settings(force_reload: bool = False) -> Settings:
    """Get cached settings instance."""
    if force_reload:
        _cached_settings.cache_clear()
    return _cached_settings()
