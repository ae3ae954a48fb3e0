"""Chat bridge: one per connection.

Owns the connection's Session, echoes each message back as a ``user``
event, and runs the agent on a background task so the connection keeps
receiving while a query is in flight.
"""

import asyncio
import logging

from schemabridge.agents.backend import AgentBackend
from schemabridge.agents.registry import create_backend
from schemabridge.config import Settings, get_settings
from schemabridge.events import EventSink, StreamEvent, deliver
from schemabridge.session import Session

logger = logging.getLogger(__name__)


class ChatBridge:
    def __init__(
        self,
        session_id: str,
        sink: EventSink,
        settings: Settings | None = None,
        backend: AgentBackend | None = None,
    ):
        self.settings = settings or get_settings()
        self.session = Session(session_id)
        self.sink = sink
        self.backend = backend or create_backend(self.settings)
        self._tasks: set[asyncio.Task] = set()

    async def chat(self, message: str | None) -> asyncio.Task | None:
        """Echo *message* and start the agent on it. Blank messages are ignored."""
        if not message or not message.strip():
            return None

        await deliver(self.sink, StreamEvent.user(message))

        task = asyncio.create_task(self._invoke(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _invoke(self, message: str) -> None:
        try:
            await self.backend.invoke(self.session, message, self.sink)
        except Exception as e:
            logger.exception("Agent invocation failed for session %s", self.session.session_id)
            await deliver(self.sink, StreamEvent.error(f"Error: {e}"))

    def close(self) -> None:
        """Connection closed. In-flight queries run to completion on their own.

        The descriptor may be removed while a child is still running; the
        child reads it once at startup, so that is safe.
        """
        logger.info("Session %s disconnected (%d running)", self.session.session_id, len(self._tasks))
        self.session.close()
