"""Error hierarchy for the agent bridge.

Every failure that reaches a client is flattened into a single ``error``
StreamEvent; these classes exist so the bridge can tell failures apart
internally (logging, exit paths) without transports having to.
"""

# JSON-RPC 2.0 error codes used by the tool responder
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class BridgeError(Exception):
    """Base exception for all bridge failures."""

    code: str = "bridge_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(BridgeError):
    """No usable credentials (or other required setting); fatal to the invocation."""

    code = "configuration_error"


class SpawnError(BridgeError):
    """The agent executable is missing or could not be started."""

    code = "spawn_error"


class StreamParseError(BridgeError):
    """A single output line could not be decoded. Recovered locally, never surfaced."""

    code = "stream_parse_error"


class ProcessExitError(BridgeError):
    """The agent process exited with a non-zero status."""

    code = "process_exit_error"

    def __init__(self, exit_code: int, stderr_tail: list[str] | None = None):
        super().__init__(f"Claude Code exited with status {exit_code}. Check logs for details.")
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail or []


class ToolExecutionError(BridgeError):
    """The backend query behind a tool call failed inside the responder."""

    code = "tool_execution_error"
    rpc_code = INTERNAL_ERROR
