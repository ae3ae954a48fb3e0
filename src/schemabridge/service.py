"""Agent service: exposes the in-process SDK agent over HTTP/SSE.

Consumed by ``AgentServiceBackend`` (``agent_backend = "agent_service"``).

    GET  /health       → {"status": "ok", "service": "agent-service"}
    POST /agent/query  → body {"message": "..."}; ``text/event-stream`` of
                         ``data: {event}\\n\\n`` frames, then ``data: [DONE]\\n\\n``
"""

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from schemabridge import __version__
from schemabridge.agents.backend import AgentBackend
from schemabridge.config import Settings, get_settings
from schemabridge.events import StreamEvent
from schemabridge.parser import DONE_SENTINEL
from schemabridge.session import Session

logger = logging.getLogger(__name__)


def sse_frame(payload: str) -> str:
    return f"data: {payload}\n\n"


async def stream_events(backend: AgentBackend, message: str) -> AsyncIterator[str]:
    """Run *message* through *backend* and yield its events as SSE frames."""
    queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
    session = Session(f"service-{uuid.uuid4().hex}")

    async def run() -> None:
        try:
            await backend.invoke(session, message, queue.put)
        except Exception as e:
            logger.exception("Agent query failed")
            await queue.put(StreamEvent.error(str(e)))
        finally:
            await queue.put(None)

    task = asyncio.create_task(run())
    try:
        while (event := await queue.get()) is not None:
            yield sse_frame(json.dumps(event.to_dict()))
        yield sse_frame(DONE_SENTINEL)
    finally:
        if not task.done():
            task.cancel()
        session.close()


def create_service_app(
    settings: Settings | None = None, backend: AgentBackend | None = None
) -> FastAPI:
    settings = settings or get_settings()
    if backend is None:
        from schemabridge.agents.claude_sdk import ClaudeSDKBackend

        backend = ClaudeSDKBackend(settings)

    app = FastAPI(title="SchemaBridge Agent Service", version=__version__)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "agent-service"}

    @app.post("/agent/query")
    async def agent_query(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        message = body.get("message") if isinstance(body, dict) else None
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Message is required"}, status_code=400)

        logger.info("Agent query: %s", message[:100])
        return StreamingResponse(
            stream_events(backend, message),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    return app


def run_service(settings: Settings) -> None:
    """Start the agent service (blocking)."""
    import uvicorn

    logger.info(
        "Agent service listening on http://%s:%s",
        settings.agent_service_host,
        settings.agent_service_port,
    )
    uvicorn.run(
        create_service_app(settings),
        host=settings.agent_service_host,
        port=settings.agent_service_port,
    )
