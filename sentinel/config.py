"""
Server Configuration

Environment-based settings for the dispatch server. Variables can be put in
a .env file in the working directory; storage variables are read by
sentinel.storage.factory.

Environment variables:
    SENTINEL_HOST: Bind address (default: 0.0.0.0)
    SENTINEL_PORT: Bind port (default: 8000)
    SENTINEL_LOG_LEVEL: Logging level name (default: INFO)
    SENTINEL_WS_PATH: WebSocket upgrade path (default: /ws)
    SENTINEL_MAX_QUEUE_SIZE: Outbound queue depth per connection (default: 200)
    SENTINEL_CORS_ORIGINS: Comma-separated allowed origins (default: *)
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


@dataclass
class ServerSettings:
    """
    Configuration for the transport layer.

    Attributes:
        host: Bind address for uvicorn
        port: Bind port for uvicorn
        log_level: Root logging level name
        ws_path: Path of the WebSocket endpoint
        max_queue_size: Outbound messages buffered per connection before dropping
        cors_origins: Origins allowed to call the HTTP endpoints
    """
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    ws_path: str = "/ws"
    max_queue_size: int = 200
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


def settings_from_env(load_env_file: bool = True) -> ServerSettings:
    """
    Create ServerSettings from environment variables.

    Args:
        load_env_file: Load a .env file first (existing variables win)
    """
    if load_env_file:
        load_dotenv()

    origins = os.getenv("SENTINEL_CORS_ORIGINS", "*")

    return ServerSettings(
        host=os.getenv("SENTINEL_HOST", "0.0.0.0"),
        port=int(os.getenv("SENTINEL_PORT", "8000")),
        log_level=os.getenv("SENTINEL_LOG_LEVEL", "INFO").upper(),
        ws_path=os.getenv("SENTINEL_WS_PATH", "/ws"),
        max_queue_size=int(os.getenv("SENTINEL_MAX_QUEUE_SIZE", "200")),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )
