"""Network listener: serves the webhook application with uvicorn."""

from __future__ import annotations

import uvicorn

from .api import create_app
from .config import DeployConfig
from .logging import get_logger

logger = get_logger(__name__)


def build_server(config: DeployConfig) -> uvicorn.Server:
    """Create a uvicorn server bound to ``listen_addr:listen_port``.

    uvicorn installs the SIGINT/SIGTERM handlers and lets in-flight requests
    finish before shutting down.
    """
    app = create_app(config)
    server_config = uvicorn.Config(
        app,
        host=str(config.webhooks.listen_addr),
        port=config.webhooks.listen_port,
        log_config=None,
        access_log=False,
        server_header=False,
    )
    return uvicorn.Server(server_config)


def serve(config: DeployConfig) -> None:
    """Run the webhook server until it is asked to stop."""
    server = build_server(config)
    logger.info(
        "listening",
        address=f"{config.webhooks.listen_addr}:{config.webhooks.listen_port}",
    )
    server.run()
