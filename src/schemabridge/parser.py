"""Stream event parser: classifies agent output into StreamEvents.

The agent emits one JSON envelope per line (``--output-format stream-json``).
Each envelope is decoded into exactly one outcome: a StreamEvent, or None
when the envelope carries nothing for the client. Nothing in this module
raises past ``parse_line`` / ``parse_envelope``: one bad line must never
abort the stream.

Envelope kinds:
    system             -> None (``init`` logs which tool servers connected)
    assistant          -> "assistant" with all text segments joined by newlines
    result             -> "result" with stop reason and optional cost/turns
    stream_event       -> "assistant_delta" for wrapped text deltas
    content_block_delta-> "assistant_delta" for bare text deltas
    anything else      -> None
"""

import json
import logging
from collections.abc import Callable
from typing import Any

from schemabridge.errors import StreamParseError
from schemabridge.events import (
    ASSISTANT,
    ASSISTANT_DELTA,
    ERROR,
    RESULT,
    StreamEvent,
)

logger = logging.getLogger(__name__)

# Diagnostic truncation so one huge line can't flood the logs
_WARN_PREVIEW = 100
_ERROR_PREVIEW = 200

DONE_SENTINEL = "[DONE]"


def _decode(line: str) -> dict[str, Any]:
    try:
        data = json.loads(line)
    except (json.JSONDecodeError, RecursionError) as e:
        # RecursionError: nesting deeper than the decoder can follow
        raise StreamParseError(str(e)) from e
    if not isinstance(data, dict):
        raise StreamParseError(f"expected a JSON object, got {type(data).__name__}")
    return data


def parse_line(line: str) -> StreamEvent | None:
    """Parse one line of agent stdout. Returns None when there is nothing to deliver."""
    if not line or not line.strip():
        return None

    try:
        data = _decode(line)
    except StreamParseError:
        logger.warning("Failed to parse agent output: %s", line[:_WARN_PREVIEW])
        return None

    try:
        return parse_envelope(data)
    except Exception as e:
        logger.error("Error parsing agent event: %s", e)
        logger.error("Line: %s", line[:_ERROR_PREVIEW])
        return None


def parse_envelope(data: dict[str, Any]) -> StreamEvent | None:
    """Classify a decoded envelope. Unknown kinds map to None."""
    kind = data.get("type")
    handler = _HANDLERS.get(kind) if isinstance(kind, str) else None
    if handler is None:
        logger.debug("Unknown event type: %s", kind)
        return None
    try:
        return handler(data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.error("Malformed %s event ignored: %s", kind, e)
        return None


def _on_system(data: dict[str, Any]) -> None:
    subtype = data.get("subtype")
    logger.info("System event: %s", subtype)
    if subtype == "init":
        servers = data.get("mcp_servers") or []
        connected = [
            s.get("name", "?")
            for s in servers
            if isinstance(s, dict) and s.get("status") == "connected"
        ]
        logger.info("Tool servers connected: %s", ", ".join(connected) or "none")
    return None


def _on_assistant(data: dict[str, Any]) -> StreamEvent | None:
    message = data.get("message")
    if not message:
        return None

    content = message["content"]
    if isinstance(content, str):
        text = content
    else:
        text = "\n".join(
            block["text"]
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )

    if not text:
        return None
    return StreamEvent.assistant(text)


def _on_result(data: dict[str, Any]) -> StreamEvent:
    return StreamEvent.result(
        data.get("subtype"),
        cost=data.get("total_cost_usd"),
        turns=data.get("num_turns"),
    )


def _on_content_block_delta(data: dict[str, Any]) -> StreamEvent | None:
    delta = data.get("delta") or {}
    if delta.get("type") != "text_delta":
        return None
    text = delta.get("text")
    if not text:
        return None
    return StreamEvent.delta(text)


def _on_stream_event(data: dict[str, Any]) -> StreamEvent | None:
    inner = data.get("event") or {}
    if inner.get("type") != "content_block_delta":
        return None
    return _on_content_block_delta(inner)


_HANDLERS: dict[str, Callable[[dict[str, Any]], StreamEvent | None]] = {
    "system": _on_system,
    "assistant": _on_assistant,
    "result": _on_result,
    "stream_event": _on_stream_event,
    "content_block_delta": _on_content_block_delta,
}


def parse_sse_event(payload: str) -> StreamEvent | None:
    """Decode the data of one agent-service SSE frame.

    The agent service sends events that are already normalized
    (``assistant_delta``, ``assistant``, ``result``, ``error``). Returns None
    for the ``[DONE]`` sentinel, for unknown types, and for malformed payloads.
    """
    if payload.strip() == DONE_SENTINEL:
        return None

    try:
        data = _decode(payload)
    except StreamParseError as e:
        logger.error("Failed to parse SSE event: %s", e)
        return None

    kind = data.get("type")
    if kind == ASSISTANT_DELTA:
        return StreamEvent.delta(data.get("content") or "")
    if kind == ASSISTANT:
        return StreamEvent.assistant(data.get("content") or "")
    if kind == RESULT:
        return StreamEvent.result(
            data.get("stop_reason"), cost=data.get("cost"), turns=data.get("turns")
        )
    if kind == ERROR:
        return StreamEvent.error(str(data.get("content", "")))

    logger.debug("Ignoring SSE event type: %s", kind)
    return None
