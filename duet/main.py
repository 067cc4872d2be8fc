"""duet entry point.

Initializes all components and serves the MCP tools:
  Settings -> TaskRegistry + ConversationContext -> CompletionClient -> TaskOrchestrator -> MCP Server

Transports:
  stdio (default) - for editor/agent hosts that spawn the server as a subprocess
  http            - Streamable HTTP mounted at /mcp on a Starlette app, served by uvicorn
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.routing import Mount

from duet.api.client import CompletionClient
from duet.api.mcp import create_mcp_server
from duet.config import Settings
from duet.memory.context import ConversationContext
from duet.memory.history import ClineHistorySource
from duet.tasks.orchestrator import TaskOrchestrator
from duet.tasks.registry import TaskRegistry

logger = logging.getLogger(__name__)


async def create_components(settings: Settings) -> dict:
    """Initialize all components in dependency order.

    Returns dict with all components for lifespan storage.
    """
    registry = TaskRegistry(
        wait_timeout=settings.status_wait_timeout,
        poll_interval=settings.status_poll_interval,
    )
    context = ConversationContext(settings.max_context_entries)
    history_source = ClineHistorySource(settings.history_dir or None)

    client = CompletionClient(settings)
    await client.start()

    orchestrator = TaskOrchestrator(registry, context, client, settings, history_source)
    server = create_mcp_server(orchestrator, registry, settings)

    return {
        "registry": registry,
        "context": context,
        "history_source": history_source,
        "client": client,
        "orchestrator": orchestrator,
        "server": server,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down duet...")

    orchestrator = components.get("orchestrator")
    if orchestrator:
        if orchestrator.pending:
            logger.warning("Abandoning %d in-flight tasks", orchestrator.pending)
        await orchestrator.stop()

    client = components.get("client")
    if client:
        await client.close()

    logger.info("duet shutdown complete.")


async def run_stdio(settings: Settings) -> None:
    """Serve MCP over stdin/stdout until EOF or an interrupt signal.

    SIGINT/SIGTERM cancel this coroutine; leaving stdio_server() closes the
    transport before the components are shut down.
    """
    components = await create_components(settings)
    server = components["server"]

    loop = asyncio.get_running_loop()
    current = asyncio.current_task()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, current.cancel)
        except NotImplementedError:
            logger.debug("Signal handlers unsupported on this platform, relying on KeyboardInterrupt")
            break

    try:
        async with stdio_server() as (read_stream, write_stream):
            logger.info("duet MCP server running on stdio")
            await server.run(read_stream, write_stream, server.create_initialization_options())
    except asyncio.CancelledError:
        logger.info("Interrupt received, transport closed")
    finally:
        await shutdown_components(components)


def build_app(settings: Settings) -> Starlette:
    """Build a Starlette app serving MCP over Streamable HTTP at /mcp.

    Uses Starlette lifespan for component lifecycle management.
    """
    components: dict = {}

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        components.update(await create_components(settings))
        app.state.components = components

        session_manager = StreamableHTTPSessionManager(components["server"])
        app.state.mcp_manager = session_manager
        try:
            async with session_manager.run():
                logger.info("MCP server mounted at /mcp")
                yield
        finally:
            await shutdown_components(components)

    async def mcp_asgi(scope, receive, send):
        await app.state.mcp_manager.handle_request(scope, receive, send)

    app = Starlette(routes=[Mount("/mcp", app=mcp_asgi)], lifespan=lifespan)
    return app


def main() -> None:
    """Entry point: parse settings, start the selected transport."""
    settings = Settings()

    # stdout belongs to the stdio transport, so logs always go to stderr
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    logger.info("Starting duet (%s transport)", settings.transport)
    logger.info("Reasoning model: %s", settings.reasoning_model)
    logger.info("Response model: %s", settings.response_model)

    if not settings.openrouter_api_key:
        logger.warning("OPENROUTER_API_KEY is not set -- generate_response tasks will fail")

    if settings.transport == "http":
        uvicorn.run(
            build_app(settings),
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level,
        )
        return

    try:
        asyncio.run(run_stdio(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
