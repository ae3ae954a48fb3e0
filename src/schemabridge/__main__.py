"""SchemaBridge entry point."""

import argparse
import asyncio
import logging
import uuid
from importlib.metadata import PackageNotFoundError, version

from rich.console import Console

from schemabridge.config import Settings, get_settings
from schemabridge.events import ASSISTANT, ASSISTANT_DELTA, ERROR, RESULT, StreamEvent
from schemabridge.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _package_version() -> str:
    try:
        return version("schemabridge")
    except PackageNotFoundError:
        from schemabridge import __version__

        return __version__


class ConsoleSink:
    """Renders StreamEvents to the terminal."""

    def __init__(self, console: Console):
        self.console = console
        self._mid_line = False

    def __call__(self, event: StreamEvent) -> None:
        if event.type == ASSISTANT_DELTA:
            self.console.print(event.content, end="", markup=False, highlight=False)
            self._mid_line = True
            return

        if self._mid_line:
            self.console.print()
            self._mid_line = False

        if event.type == ASSISTANT:
            self.console.print(event.content, markup=False)
        elif event.type == RESULT:
            parts = [f"stop: {event.stop_reason}"]
            if "turns" in event.metadata:
                parts.append(f"turns: {event.metadata['turns']}")
            if "cost" in event.metadata:
                parts.append(f"cost: ${event.metadata['cost']:.4f}")
            self.console.print(f"[dim]({', '.join(parts)})[/dim]")
        elif event.type == ERROR:
            self.console.print(f"[red]{event.content}[/red]", highlight=False)


async def run_chat(settings: Settings) -> None:
    """Interactive terminal chat against the configured backend."""
    from schemabridge.bridge import ChatBridge

    console = Console()
    bridge = ChatBridge(f"cli-{uuid.uuid4().hex[:8]}", ConsoleSink(console), settings)
    console.print(f"[bold]SchemaBridge[/bold] ({settings.agent_backend}). Ctrl-D to quit.")
    try:
        while True:
            try:
                message = await asyncio.to_thread(console.input, "[bold cyan]> [/bold cyan]")
            except EOFError:
                break
            task = await bridge.chat(message)
            if task is not None:
                await task
    finally:
        bridge.close()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="schemabridge",
        description="SchemaBridge - chat with a coding agent about your database schema",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  schemabridge web                      Chat UI backend on :8888 (WebSocket /ws)
  schemabridge service                  Agent service on :3001 (POST /agent/query)
  schemabridge chat --backend claude_agent_sdk
""",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {_package_version()}")
    parser.add_argument("--backend", "-b", help="Agent backend (overrides SCHEMABRIDGE_AGENT_BACKEND)")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")

    sub = parser.add_subparsers(dest="command")
    web = sub.add_parser("web", help="Run the chat web server")
    web.add_argument("--host", help="Bind host")
    web.add_argument("--port", "-p", type=int, help="Bind port")
    service = sub.add_parser("service", help="Run the HTTP agent service")
    service.add_argument("--host", help="Bind host")
    service.add_argument("--port", "-p", type=int, help="Bind port")
    sub.add_parser("chat", help="Chat in the terminal")

    args = parser.parse_args()

    settings = get_settings()
    overrides: dict = {}
    if args.backend:
        overrides["agent_backend"] = args.backend
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.command == "web":
        if args.host:
            overrides["web_host"] = args.host
        if args.port:
            overrides["web_port"] = args.port
    elif args.command == "service":
        if args.host:
            overrides["agent_service_host"] = args.host
        if args.port:
            overrides["agent_service_port"] = args.port
    if overrides:
        settings = settings.model_copy(update=overrides)

    setup_logging(settings.log_level)

    try:
        if args.command == "web":
            from schemabridge.web import run_web_server

            run_web_server(settings)
        elif args.command == "service":
            from schemabridge.service import run_service

            run_service(settings)
        elif args.command == "chat":
            asyncio.run(run_chat(settings))
        else:
            parser.print_help()
    except KeyboardInterrupt:
        logger.info("SchemaBridge stopped.")


if __name__ == "__main__":
    main()
