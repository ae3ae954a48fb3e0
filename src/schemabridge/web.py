"""Web server for the chat UI.

    GET  /health      → liveness
    GET  /api/schema  → {tables, count} from the configured database
    WS   /ws          → send {"message": "..."}; receive one JSON object per
                        StreamEvent (``user``, ``assistant``,
                        ``assistant_delta``, ``result``, ``error``)
"""

import asyncio
import json
import logging
import uuid

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from schemabridge import __version__
from schemabridge.agents.backend import AgentBackend
from schemabridge.agents.registry import create_backend
from schemabridge.bridge import ChatBridge
from schemabridge.config import Settings, get_settings
from schemabridge.errors import ToolExecutionError
from schemabridge.events import StreamEvent
from schemabridge.schema import SchemaInspector

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, backend: AgentBackend | None = None) -> FastAPI:
    """Build the FastAPI app serving the chat WebSocket and schema endpoint."""
    settings = settings or get_settings()
    backend = backend or create_backend(settings)
    inspector = SchemaInspector(settings.database_url)

    app = FastAPI(
        title="SchemaBridge",
        description="Chat with a coding agent about your database schema.",
        version=__version__,
    )

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "schemabridge", "backend": settings.agent_backend}

    @app.get("/api/schema")
    async def schema():
        try:
            tables = await asyncio.to_thread(inspector.check_schema)
        except ToolExecutionError as e:
            logger.error("Schema lookup failed: %s", e)
            return JSONResponse({"error": e.message}, status_code=503)
        return {"tables": tables, "count": len(tables)}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        session_id = uuid.uuid4().hex
        logger.info("WS connected: session=%s", session_id)

        async def send(event: StreamEvent) -> None:
            try:
                await websocket.send_json(event.to_dict())
            except (WebSocketDisconnect, RuntimeError) as e:
                # The client went away mid-query; the agent keeps running.
                logger.debug("Dropping %s event for closed session %s: %s", event.type, session_id, e)

        bridge = ChatBridge(session_id, send, settings, backend=backend)
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("WS ignoring non-JSON frame: %s", raw[:100])
                    continue
                message = data.get("message") if isinstance(data, dict) else None
                await bridge.chat(message if isinstance(message, str) else None)
        except WebSocketDisconnect:
            logger.info("WS disconnected: session=%s", session_id)
        finally:
            bridge.close()

    @app.on_event("shutdown")
    async def shutdown():
        inspector.close()

    return app


def run_web_server(settings: Settings) -> None:
    """Start the chat web server (blocking)."""
    import uvicorn

    print("\n" + "=" * 50)
    print("SCHEMABRIDGE WEB")
    print("=" * 50)
    print(f"\nWebSocket: ws://{settings.web_host}:{settings.web_port}/ws")
    print(f"Backend:   {settings.agent_backend}\n")

    uvicorn.run(create_app(settings), host=settings.web_host, port=settings.web_port)
