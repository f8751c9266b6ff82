"""
Sentinel Dispatch Application

FastAPI application with the dispatch WebSocket endpoint and a small
read-only HTTP surface. This is the main entry point for running the server.

Server settings come from sentinel.config (SENTINEL_HOST, SENTINEL_PORT,
SENTINEL_LOG_LEVEL, SENTINEL_WS_PATH, SENTINEL_MAX_QUEUE_SIZE,
SENTINEL_CORS_ORIGINS).

Storage is configured via environment variables:
- SENTINEL_STORAGE_BACKEND: "memory", "sqlite", "postgresql"
- SENTINEL_DATABASE_URL: SQLAlchemy async connection URL
- SENTINEL_SEED_AGENTS: seed the default agent roster into an empty store

Environment variables can be loaded from a .env file in the project root.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sentinel import __version__
from sentinel.config import settings_from_env
from sentinel.dispatch import DispatchEngine
from sentinel.registry import ConnectionRegistry
from sentinel.storage import StorageBundle, create_storage_from_env
from sentinel.transport.gateway import WebSocketGateway
from sentinel.transport.queue import ConnectionQueueManager

settings = settings_from_env()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global instances (created at startup)
storage: StorageBundle | None = None
registry: ConnectionRegistry | None = None
engine: DispatchEngine | None = None
queue_manager: ConnectionQueueManager | None = None
gateway: WebSocketGateway | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Initializes and tears down all dispatch components.
    """
    global storage, registry, engine, queue_manager, gateway

    # Startup
    logger.info("Starting Sentinel Dispatch...")

    storage = await create_storage_from_env()
    logger.info(f"Storage initialized: {type(storage.missions).__name__}")

    registry = ConnectionRegistry()
    engine = DispatchEngine(storage=storage, registry=registry)
    queue_manager = ConnectionQueueManager(capacity=settings.max_queue_size)
    gateway = WebSocketGateway(
        engine=engine,
        registry=registry,
        queue_manager=queue_manager,
    )

    logger.info(f"Sentinel Dispatch started (websocket path: {settings.ws_path})")

    yield

    # Shutdown
    logger.info("Shutting down Sentinel Dispatch...")
    await gateway.shutdown()
    await storage.close()
    gateway = None
    logger.info("Sentinel Dispatch stopped")


app = FastAPI(
    title="Sentinel Dispatch",
    description="Real-time dispatch of security missions between requesters, operators and field agents",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.websocket(settings.ws_path)
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for dispatch clients.

    Operators, requesters and agents all connect here and identify
    themselves with a `register` event.
    """
    if gateway is None:
        await websocket.close(code=1011, reason="Dispatch not initialized")
        return

    await gateway.handle_connection(websocket)


@app.get("/api/agents")
async def list_agents():
    """Full agent roster in wire format."""
    try:
        agents = await storage.agents.list_all()
    except Exception as e:
        logger.error(f"Failed to fetch agents: {e}")
        return JSONResponse(status_code=500, content={"message": "Failed to fetch agents"})
    return [agent.to_dict() for agent in agents]


@app.get("/api/missions")
async def list_missions():
    """Every mission in creation order, in wire format."""
    try:
        missions = await storage.missions.list_all()
    except Exception as e:
        logger.error(f"Failed to fetch missions: {e}")
        return JSONResponse(status_code=500, content={"message": "Failed to fetch missions"})
    return [mission.to_dict() for mission in missions]


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    missions = await storage.missions.list_all() if storage else []
    tags = await registry.list_tags() if registry else []
    return {
        "status": "healthy",
        "connections": gateway.connection_count if gateway else 0,
        "registered": registry.count_by_role() if registry else {},
        "tags": [tag.to_public_dict() for tag in tags],
        "missions": len(missions),
        "outbound": queue_manager.stats() if queue_manager else {},
    }


def main() -> None:
    """Run the dispatch server with uvicorn."""
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
