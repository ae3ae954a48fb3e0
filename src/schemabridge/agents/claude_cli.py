"""Claude Code CLI backend: the process supervisor.

Spawns the ``claude`` CLI once per message in non-interactive mode with
streamed JSON output, points it at a per-session tool descriptor so it can
reach the schema tool responder, and turns its stdout into StreamEvents.

Guarantees per invocation:
    - at most one child per session; a message arriving while the session
      is busy is dropped without events
    - events reach the sink in stdout order; stderr is only logged
    - the descriptor is removed and ``busy`` reset on every exit path
    - every failure becomes exactly one "error" event

Requires: ANTHROPIC_API_KEY or CLAUDE_CODE_OAUTH_TOKEN, and the CLI
(``npm install @anthropic-ai/claude-code``).
"""

import asyncio
import logging
import os
import shutil
from collections import deque
from pathlib import Path
from typing import Any

from schemabridge import descriptor
from schemabridge.agents.backend import BackendInfo, Capability
from schemabridge.config import CREDENTIAL_ENV_VARS, Settings, get_credentials_env
from schemabridge.errors import ConfigurationError, ProcessExitError, SpawnError
from schemabridge.events import EventSink, StreamEvent, deliver
from schemabridge.parser import parse_line
from schemabridge.security.redact import redact_output
from schemabridge.session import Session

logger = logging.getLogger(__name__)

# Per-line buffer limit for the child's streams (assistant envelopes can be large)
_STREAM_LIMIT = 16 * 1024 * 1024

# Inherited so the executable (or npx) resolves and finds its config
_PASSTHROUGH_ENV = ("PATH", "HOME")

_NO_AUTH_MESSAGE = (
    "No authentication configured. Please set either:\n"
    "  ANTHROPIC_API_KEY=your_key\n"
    "  or CLAUDE_CODE_OAUTH_TOKEN=your_token\n"
    "and restart the server."
)


class ClaudeCLIBackend:
    """Claude Code CLI backend: one supervised subprocess per message."""

    @staticmethod
    def info() -> BackendInfo:
        return BackendInfo(
            name="claude_code_cli",
            display_name="Claude Code CLI",
            capabilities=Capability.STREAMING | Capability.SCHEMA_TOOL | Capability.SUBPROCESS,
            required_env=list(CREDENTIAL_ENV_VARS),
            install_hint={"external_cmd": "npm install @anthropic-ai/claude-code"},
        )

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def find_executable(self) -> list[str]:
        """Resolve how to launch the CLI: configured path, local install, PATH, then npx."""
        if self.settings.claude_executable:
            return [self.settings.claude_executable]

        local = Path(self.settings.project_root) / "node_modules" / ".bin" / "claude"
        if local.is_file() and os.access(local, os.X_OK):
            return [str(local)]

        on_path = shutil.which("claude")
        if on_path:
            return [on_path]

        return ["npx", "@anthropic-ai/claude-code"]

    def build_command(self, message: str, descriptor_path: Path) -> list[str]:
        cmd = [
            *self.find_executable(),
            "--print",
            "--verbose",
            "--dangerously-skip-permissions",
            "--output-format",
            "stream-json",
            "--mcp-config",
            str(descriptor_path),
        ]
        if self.settings.max_turns:
            cmd += ["--max-turns", str(self.settings.max_turns)]
        # "--" keeps a message starting with "-" from being read as a flag
        cmd += ["--", message]
        return cmd

    @staticmethod
    def build_env(credentials: dict[str, str]) -> dict[str, str]:
        """Child environment: the credentials that are set, plus PATH and HOME."""
        env = {k: os.environ[k] for k in _PASSTHROUGH_ENV if os.environ.get(k)}
        env.update(credentials)
        return env

    async def invoke(self, session: Session, message: str, on_event: EventSink) -> None:
        """Run one message to completion, delivering events to *on_event*."""
        if not await session.try_acquire():
            logger.info("Session %s busy, dropping message", session.session_id)
            return

        try:
            await self._run(session, message, on_event)
        except ConfigurationError as e:
            logger.error("Claude Code not configured: %s", e.message.splitlines()[0])
            await deliver(on_event, StreamEvent.error(e.message))
        except Exception as e:
            logger.exception("Failed to run Claude Code")
            await deliver(on_event, StreamEvent.error(f"Failed to start Claude Code: {e}"))
        finally:
            await session.release()

    async def _run(self, session: Session, message: str, on_event: EventSink) -> None:
        credentials = get_credentials_env()
        if not credentials:
            raise ConfigurationError(_NO_AUTH_MESSAGE)

        async with session.lock:
            session.descriptor_path = descriptor.materialize(session.session_id, self.settings)
        command = self.build_command(message, session.descriptor_path)

        logger.debug("Descriptor: %s", session.descriptor_path)
        logger.debug("Command: %s", " ".join(command[:-1] + ["<message>"]))

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.build_env(credentials),
                cwd=str(self.settings.project_root),
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            raise SpawnError(str(e)) from e

        session.process = process
        if process.stdin is not None:
            process.stdin.close()

        stderr_tail: deque[str] = deque(maxlen=max(self.settings.stderr_tail_lines, 1))
        stderr_task = asyncio.create_task(self._drain_stderr(process.stderr, stderr_tail))

        read_error: Exception | None = None
        stdout_done = False
        try:
            await self._pump_stdout(process.stdout, on_event)
            stdout_done = True
        except Exception as e:
            logger.error("Error reading agent output: %s", e)
            read_error = e
        finally:
            # Nobody reads stdout any more; a still-running child would block on it.
            if not stdout_done and process.returncode is None:
                process.kill()
            await process.wait()
            await self._stop_reader(stderr_task)

        if read_error is not None:
            # Already a failure; the kill status is not reported on top of it.
            logger.debug("Claude Code stopped with status %s", process.returncode)
            await deliver(on_event, StreamEvent.error(str(read_error)))
            return

        exit_code = process.returncode
        if exit_code:
            failure = ProcessExitError(exit_code, list(stderr_tail))
            logger.error("Claude Code exited with status %s", exit_code)
            for line in failure.stderr_tail[-self.settings.stderr_tail_lines :]:
                logger.error("  %s", redact_output(line))
            await deliver(on_event, StreamEvent.error(failure.message))

    async def _pump_stdout(self, stream: Any, on_event: EventSink) -> None:
        if stream is None:
            raise SpawnError("Failed to capture Claude Code stdout")
        async for raw_line in stream:
            line = raw_line.decode("utf-8", errors="replace")
            if not line.strip():
                continue
            event = parse_line(line)
            if event is not None:
                await deliver(on_event, event)

    async def _drain_stderr(self, stream: Any, tail: deque[str]) -> None:
        if stream is None:
            return
        try:
            async for raw_line in stream:
                line = raw_line.decode("utf-8", errors="replace").rstrip("\n")
                tail.append(line)
                logger.debug("Claude stderr: %s", redact_output(line))
        except (OSError, ValueError) as e:
            logger.error("Error reading stderr: %s", e)

    async def _stop_reader(self, task: asyncio.Task) -> None:
        """Give the stderr reader a moment to finish, then stop it."""
        done, _ = await asyncio.wait({task}, timeout=self.settings.stderr_drain_timeout)
        if task in done:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def get_status(self) -> dict[str, Any]:
        return {
            "backend": "claude_code_cli",
            "executable": " ".join(self.find_executable()),
            "credentials_configured": bool(get_credentials_env()),
            "max_turns": self.settings.max_turns,
        }
