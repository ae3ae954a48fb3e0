"""
Tool responder: the process the agent calls back into for ``check_schema``.

A standalone process that:
1. Reads one JSON-RPC request per line from stdin
2. Handles it completely (no concurrency, so responses keep request order)
3. Writes one JSON-RPC response per line to stdout, flushed immediately

Launch (normally done by the agent, via the session's tool descriptor):

    python -m schemabridge.responder

Test manually:

    echo '{"jsonrpc":"2.0","method":"tools/list","id":1}' | python -m schemabridge.responder
    echo '{"jsonrpc":"2.0","method":"tools/call","params":{"name":"check_schema"},"id":2}' \\
        | python -m schemabridge.responder

Logs go to stderr; stdout carries nothing but responses.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Protocol, TextIO

from schemabridge import __version__
from schemabridge.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    ToolExecutionError,
)
from schemabridge.schema import format_tables

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "schema-db-mcp"

TOOL_NAME = "check_schema"
TOOL_DESCRIPTION = "Check database schema - returns list of tables and count"
TOOL_SCHEMA: dict[str, Any] = {
    "name": TOOL_NAME,
    "description": TOOL_DESCRIPTION,
    "inputSchema": {"type": "object", "properties": {}, "required": []},
}


class SchemaBackend(Protocol):
    def check_schema(self) -> list[str]: ...


class RpcError(Exception):
    """An error that maps directly onto a JSON-RPC error response."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ToolResponder:
    """JSON-RPC responder exposing the single ``check_schema`` tool.

    Methods:
        - "initialize" → capability/version descriptor
        - "tools/list" → one-element tool catalog
        - "tools/call" → runs ``check_schema`` against the backend
    """

    def __init__(
        self,
        backend: SchemaBackend,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ):
        self.backend = backend
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout

    def run(self) -> None:
        """Serve until stdin closes."""
        logger.info("Tool responder starting (tool: %s)", TOOL_NAME)
        try:
            for line in self._stdin:
                try:
                    response = self.handle_line(line)
                except Exception as e:
                    logger.exception("Unhandled error for request line")
                    response = _error(None, INTERNAL_ERROR, f"Internal error: {e}")
                if response is not None:
                    self._write(response)
        except KeyboardInterrupt:
            pass
        logger.info("Tool responder shutting down")

    def handle_line(self, line: str) -> dict[str, Any] | None:
        """Turn one request line into one response (None for blanks and notifications)."""
        line = line.strip()
        if not line:
            return None

        try:
            request = json.loads(line)
        except (json.JSONDecodeError, RecursionError) as e:
            return _error(None, PARSE_ERROR, f"Parse error: {e}")

        if not isinstance(request, dict):
            return _error(None, INVALID_REQUEST, "Invalid Request")

        request_id = request.get("id")
        method = request.get("method", "")

        if "id" not in request and isinstance(method, str) and method.startswith("notifications/"):
            logger.debug("Notification: %s", method)
            return None

        try:
            result = self._dispatch(method, request.get("params") or {})
        except RpcError as e:
            return _error(request_id, e.code, e.message)
        except ToolExecutionError as e:
            logger.error("Tool execution failed: %s", e)
            return _error(request_id, e.rpc_code, f"Tool execution failed: {e}")
        except Exception as e:
            logger.exception("Error handling request")
            return _error(request_id, INTERNAL_ERROR, f"Internal error: {e}")

        return _result(request_id, result)

    def _dispatch(self, method: Any, params: Any) -> dict[str, Any]:
        if method == "initialize":
            return {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
            }

        if method == "tools/list":
            return {"tools": [TOOL_SCHEMA]}

        if method == "tools/call":
            if not isinstance(params, dict):
                raise RpcError(INVALID_PARAMS, "Invalid params")
            tool_name = params.get("name")
            if tool_name != TOOL_NAME:
                raise RpcError(INVALID_PARAMS, f"Unknown tool: {tool_name}")
            return self._check_schema()

        raise RpcError(METHOD_NOT_FOUND, f"Method not found: {method}")

    def _check_schema(self) -> dict[str, Any]:
        tables = self.backend.check_schema()
        return {"content": [{"type": "text", "text": format_tables(tables)}]}

    def _write(self, response: dict[str, Any]) -> None:
        self._stdout.write(json.dumps(response) + "\n")
        self._stdout.flush()


def _result(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def main() -> None:
    from schemabridge.config import get_settings
    from schemabridge.logging_setup import setup_logging
    from schemabridge.schema import SchemaInspector

    settings = get_settings()
    setup_logging(settings.log_level)

    inspector = SchemaInspector(settings.database_url)
    try:
        ToolResponder(inspector).run()
    finally:
        inspector.close()


if __name__ == "__main__":
    main()
