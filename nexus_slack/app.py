"""
FastAPI Application Factory.
Hosts a Slack connection on its own when no Nexus host is around, e.g.
for local development behind a tunnel:

    uvicorn nexus_slack.app:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import replace

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from nexus_slack.adapters.slack.slack_connection import SlackConnection
from nexus_slack.adapters.slack.types import SlackAppConfig
from nexus_slack.config.logging_config import NO_CORRELATION_ID, correlation_id_var, setup_logging
from nexus_slack.config.settings import Config

logger = logging.getLogger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to extract and set correlation ID from request headers."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", NO_CORRELATION_ID)
        correlation_id_var.set(correlation_id)

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


def create_app(config: SlackAppConfig | None = None, global_config: dict | None = None) -> FastAPI:
    """
    Application factory for a standalone Slack connection.

    Routes are registered on the app itself; the given config is copied
    with `sub_app` pointed at the new app.
    """
    setup_logging(Config.LOG_LEVEL, Config.LOG_PATH)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.slack.disconnect()
        logger.info("Slack connection closed.")

    app = FastAPI(title="Nexus Slack Connection", version="1.0.0", lifespan=lifespan)
    app.add_middleware(CorrelationIdMiddleware)

    if config is None:
        config = SlackAppConfig.from_env()
    config = replace(config, sub_app=app)
    app.state.slack = SlackConnection(config, global_config or {"env": Config.NEXUS_ENV}).connect()

    @app.get("/", tags=["health"])
    async def root():
        return {"message": "Slack connection is running."}

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "healthy", "connection": app.state.slack.name}

    return app
