"""
Claude Agent SDK backend for SchemaBridge.

Runs the agent in-process through the official Claude Agent SDK
(pip install claude-agent-sdk) instead of supervising a CLI subprocess:
- the ``check_schema`` tool is served by an in-process SDK MCP server
- partial messages are enabled, so text arrives as deltas and full blocks
- SDK messages are converted back into stream-json envelopes and classified
  by the same parser the CLI backend uses
"""

import asyncio
import logging
from typing import Any

from schemabridge.agents.backend import BackendInfo, Capability
from schemabridge.config import Settings
from schemabridge.errors import ToolExecutionError
from schemabridge.events import EventSink, StreamEvent, deliver
from schemabridge.parser import parse_envelope
from schemabridge.responder import TOOL_DESCRIPTION, TOOL_NAME
from schemabridge.schema import SchemaInspector, format_tables
from schemabridge.session import Session

logger = logging.getLogger(__name__)


class ClaudeSDKBackend:
    """Claude Agent SDK backend: in-process agent with an SDK tool server.

    Requires: pip install claude-agent-sdk
    """

    @staticmethod
    def info() -> BackendInfo:
        return BackendInfo(
            name="claude_agent_sdk",
            display_name="Claude Agent SDK",
            capabilities=(
                Capability.STREAMING | Capability.PARTIAL_TEXT | Capability.SCHEMA_TOOL
            ),
            required_env=["ANTHROPIC_API_KEY"],
            install_hint={"pip_package": "claude-agent-sdk"},
        )

    def __init__(self, settings: Settings, inspector: SchemaInspector | None = None):
        self.settings = settings
        self.inspector = inspector or SchemaInspector(settings.database_url)
        self._sdk_available = False

        # SDK imports (set during initialization)
        self._query = None
        self._ClaudeAgentOptions = None
        self._AssistantMessage = None
        self._ResultMessage = None
        self._SystemMessage = None
        self._StreamEvent = None
        self._TextBlock = None
        self._tool = None
        self._create_sdk_mcp_server = None

        self._initialize()

    def _initialize(self) -> None:
        try:
            from claude_agent_sdk import (
                AssistantMessage,
                ClaudeAgentOptions,
                ResultMessage,
                SystemMessage,
                TextBlock,
                create_sdk_mcp_server,
                query,
                tool,
            )
            from claude_agent_sdk.types import StreamEvent as SDKStreamEvent
        except ImportError as e:
            logger.warning("Claude Agent SDK not installed ─ pip install claude-agent-sdk")
            logger.debug("Import error: %s", e)
            return

        self._query = query
        self._ClaudeAgentOptions = ClaudeAgentOptions
        self._AssistantMessage = AssistantMessage
        self._ResultMessage = ResultMessage
        self._SystemMessage = SystemMessage
        self._StreamEvent = SDKStreamEvent
        self._TextBlock = TextBlock
        self._tool = tool
        self._create_sdk_mcp_server = create_sdk_mcp_server
        self._sdk_available = True

    @property
    def allowed_tool(self) -> str:
        return f"mcp__{self.settings.mcp_server_name}__{TOOL_NAME}"

    async def run_check_schema(self, args: dict[str, Any]) -> dict[str, Any]:
        """Tool handler: list tables without blocking the event loop."""
        try:
            tables = await asyncio.to_thread(self.inspector.check_schema)
        except ToolExecutionError as e:
            logger.error("Tool execution failed: %s", e)
            return {
                "content": [{"type": "text", "text": f"Tool execution failed: {e}"}],
                "is_error": True,
            }
        return {"content": [{"type": "text", "text": format_tables(tables)}]}

    def _build_options(self) -> Any:
        check_schema = self._tool(TOOL_NAME, TOOL_DESCRIPTION, {})(self.run_check_schema)
        server = self._create_sdk_mcp_server(
            name=self.settings.mcp_server_name,
            version="1.0.0",
            tools=[check_schema],
        )
        return self._ClaudeAgentOptions(
            mcp_servers={self.settings.mcp_server_name: server},
            allowed_tools=[self.allowed_tool],
            max_turns=self.settings.max_turns or None,
            include_partial_messages=True,
            cwd=str(self.settings.project_root),
        )

    def to_envelope(self, message: Any) -> dict[str, Any] | None:
        """Convert an SDK message into the stream-json envelope it stands for."""
        if self._StreamEvent and isinstance(message, self._StreamEvent):
            return {"type": "stream_event", "event": getattr(message, "event", None) or {}}

        if self._AssistantMessage and isinstance(message, self._AssistantMessage):
            blocks = [
                {"type": "text", "text": block.text}
                for block in message.content
                if isinstance(block, self._TextBlock)
            ]
            return {"type": "assistant", "message": {"content": blocks}}

        if self._ResultMessage and isinstance(message, self._ResultMessage):
            return {
                "type": "result",
                "subtype": message.subtype,
                "total_cost_usd": message.total_cost_usd,
                "num_turns": message.num_turns,
            }

        if self._SystemMessage and isinstance(message, self._SystemMessage):
            return {"type": "system", "subtype": message.subtype, **(message.data or {})}

        logger.debug("Unknown SDK message type: %s", message.__class__.__name__)
        return None

    async def invoke(self, session: Session, message: str, on_event: EventSink) -> None:
        if not self._sdk_available:
            await deliver(
                on_event,
                StreamEvent.error(
                    "Claude Agent SDK not installed. Install with: pip install claude-agent-sdk"
                ),
            )
            return

        logger.debug("Starting SDK query for session %s: %s", session.session_id, message[:100])
        try:
            async for sdk_message in self._query(prompt=message, options=self._build_options()):
                envelope = self.to_envelope(sdk_message)
                if envelope is None:
                    continue
                event = parse_envelope(envelope)
                if event is not None:
                    await deliver(on_event, event)
        except Exception as e:
            logger.error("Claude Agent SDK error: %s", e)
            await deliver(on_event, StreamEvent.error(str(e)))

    async def get_status(self) -> dict[str, Any]:
        return {
            "backend": "claude_agent_sdk",
            "available": self._sdk_available,
            "allowed_tools": [self.allowed_tool],
            "max_turns": self.settings.max_turns,
        }
