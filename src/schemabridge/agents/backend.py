"""Backend Protocol: the adapter interface every agent transport implements.

Each backend (Claude Code CLI subprocess, in-process Claude Agent SDK,
remote agent service) exposes an ``info()`` staticmethod and an async
``invoke()`` that delivers StreamEvents to a sink.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Flag, auto
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from schemabridge.config import Settings
    from schemabridge.events import EventSink
    from schemabridge.session import Session


class Capability(Flag):
    """Features a transport advertises through its BackendInfo."""

    STREAMING = auto()
    PARTIAL_TEXT = auto()  # emits assistant_delta fragments
    SCHEMA_TOOL = auto()
    SUBPROCESS = auto()
    REMOTE = auto()


@dataclass(frozen=True)
class BackendInfo:
    """Describes a transport without constructing it."""

    name: str  # e.g. "claude_code_cli"
    display_name: str  # e.g. "Claude Code CLI"
    capabilities: Capability
    required_env: list[str] = field(default_factory=list)
    install_hint: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class AgentBackend(Protocol):
    """A transport that runs one message and pushes StreamEvents to a sink."""

    @staticmethod
    def info() -> BackendInfo: ...

    def __init__(self, settings: Settings) -> None: ...

    async def invoke(self, session: Session, message: str, on_event: EventSink) -> None: ...

    async def get_status(self) -> dict[str, Any]: ...
