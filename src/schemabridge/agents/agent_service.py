"""Agent service backend for SchemaBridge.

Talks to a running agent service (``schemabridge service``) over HTTP and
relays its Server-Sent Events.

API:
  GET  /health        → {status, service}
  POST /agent/query   → text/event-stream
    body: {message}
    frames: ``data: {json}\\n\\n`` with already-normalized events,
            terminated by ``data: [DONE]``
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from schemabridge.agents.backend import BackendInfo, Capability
from schemabridge.config import Settings
from schemabridge.events import EventSink, StreamEvent, deliver
from schemabridge.parser import DONE_SENTINEL, parse_sse_event
from schemabridge.session import Session

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data:"


async def iter_sse_data(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the ``data:`` payload of each blank-line separated SSE frame."""
    buffer = ""
    async for chunk in chunks:
        buffer += chunk.replace("\r\n", "\n")
        while "\n\n" in buffer:
            frame, buffer = buffer.split("\n\n", 1)
            payload = _frame_data(frame)
            if payload is not None:
                yield payload
    # A trailing frame without the closing blank line
    payload = _frame_data(buffer)
    if payload is not None:
        yield payload


def _frame_data(frame: str) -> str | None:
    lines = [
        line[len(_DATA_PREFIX) :].removeprefix(" ")
        for line in frame.split("\n")
        if line.startswith(_DATA_PREFIX)
    ]
    if not lines:
        return None
    return "\n".join(lines)


class AgentServiceBackend:
    """Remote agent service backend: streams SSE over HTTP."""

    @staticmethod
    def info() -> BackendInfo:
        return BackendInfo(
            name="agent_service",
            display_name="Agent Service (HTTP)",
            capabilities=(
                Capability.STREAMING
                | Capability.PARTIAL_TEXT
                | Capability.SCHEMA_TOOL
                | Capability.REMOTE
            ),
            install_hint={"external_cmd": "schemabridge service"},
        )

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._base_url = settings.agent_service_url.rstrip("/")
        self._transport = transport
        logger.info("Agent service backend targeting %s", self._base_url)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self._base_url, timeout=None, transport=self._transport)

    async def invoke(self, session: Session, message: str, on_event: EventSink) -> None:
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", "/agent/query", json={"message": message}
                ) as response:
                    if response.is_error:
                        await response.aread()
                        logger.error(
                            "Agent service HTTP error: %s %s",
                            response.status_code,
                            response.text[:200],
                        )
                        await deliver(
                            on_event,
                            StreamEvent.error(
                                f"Agent service error: {response.status_code} "
                                f"{response.reason_phrase}"
                            ),
                        )
                        return

                    async for payload in iter_sse_data(response.aiter_text()):
                        if payload.strip() == DONE_SENTINEL:
                            break
                        event = parse_sse_event(payload)
                        if event is not None:
                            await deliver(on_event, event)
        except httpx.HTTPError as e:
            logger.error("Agent service unreachable: %s", e)
            await deliver(on_event, StreamEvent.error(f"Agent service unavailable: {e}"))

    async def _check_health(self) -> bool:
        try:
            async with self._client() as client:
                resp = await client.get("/health")
                return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def get_status(self) -> dict[str, Any]:
        return {
            "backend": "agent_service",
            "server_url": self._base_url,
            "reachable": await self._check_health(),
        }
