"""FastAPI application entry point.

Run with ``uvicorn livepos.main:app`` from the ``backend`` directory.
"""

import json
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from livepos.api.routes import api_router
from livepos.core.clock import to_iso, utc_now
from livepos.core.config import Settings, settings as default_settings
from livepos.core.rate_limit import limiter
from livepos.db.persistence import StateRepository
from livepos.services import ConnectionManager, Dispatcher, StateStore


class JSONFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(settings: Settings) -> None:
    """Human-readable logs in debug mode, one JSON object per line otherwise."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))
    root_logger.handlers.clear()

    if settings.debug:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())

    root_logger.addHandler(handler)


configure_logging(default_settings)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in ["/health", "/docs", "/openapi.json"]:
            return await call_next(request)

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"
        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                f"Error: {request.method} {request.url.path} - "
                f"Exception: {str(e)} - Time: {time.time() - start_time:.3f}s - Client: {client_ip}"
            )
            raise

        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            log_level,
            f"Response: {request.method} {request.url.path} - "
            f"Status: {response.status_code} - Time: {time.time() - start_time:.3f}s - Client: {client_ip}"
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the state before serving; close live connections on shutdown."""
    app_settings = app.state.settings
    logger.info(f"Starting LivePOS {app_settings.app_version} ({app_settings.environment})")

    store = app.state.store
    if not store.loaded:
        store.load()
    logger.info(f"State file: {store.repository.data_file}")

    yield

    await app.state.connections.close_all()
    logger.info("Shutting down LivePOS")


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around one state store.

    Everything stateful hangs off ``app.state``: ``settings``, ``store``,
    ``dispatcher`` and ``connections``.
    """
    app_settings = app_settings or default_settings

    app = FastAPI(
        title="LivePOS",
        description="Restaurant point-of-sale live state sync backend",
        version=app_settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if app_settings.debug else None,
        redoc_url="/redoc" if app_settings.debug else None,
    )

    repository = StateRepository(
        data_file=app_settings.data_file,
        backup_dir=app_settings.backup_dir,
        backup_retention=app_settings.backup_retention,
    )
    store = StateStore(repository, timezone=app_settings.timezone)
    connections = ConnectionManager(queue_size=app_settings.ws_send_queue_size)

    app.state.settings = app_settings
    app.state.store = store
    app.state.connections = connections
    app.state.dispatcher = Dispatcher(store, publisher=connections)

    # Rate limiting setup
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(RequestLoggingMiddleware)

    # CORS middleware - added last so it runs first (Starlette LIFO order)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
        max_age=600,
    )

    app.include_router(api_router)

    @app.get("/health")
    def health_check(request: Request):
        """Liveness check with the number of live connections."""
        return {
            "ok": True,
            "time": to_iso(utc_now()),
            "version": app_settings.app_version,
            "env": app_settings.environment,
            "connections": request.app.state.connections.connection_count,
        }

    return app


app = create_app()
