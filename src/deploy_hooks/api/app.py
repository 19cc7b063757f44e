"""FastAPI application builder for the webhook server."""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .. import __version__
from ..commands import Action, Command
from ..config import DeployConfig
from ..errors import DeployHooksError, DispatchError, build_error_body, http_status_for
from ..history import DeploymentHistory
from ..logging import get_logger
from ..metrics import DeployMetrics
from ..models import DeploymentList, DeployResponse, HealthResponse
from ..pipe import PipeWriter
from ..security import AuthContext, build_signature_auth

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex


class DeployHooksAppBuilder:
    """Builder for the webhook FastAPI application."""

    def __init__(
        self,
        config: DeployConfig,
        metrics: Optional[DeployMetrics] = None,
        pipe_writer: Optional[PipeWriter] = None,
        history: Optional[DeploymentHistory] = None,
    ):
        self.config = config
        self.metrics = metrics or DeployMetrics()
        self.pipe_writer = pipe_writer or PipeWriter(
            config.webhooks.pipe,
            timeout_seconds=config.webhooks.dispatch_timeout_seconds,
            metrics=self.metrics,
        )
        self.history = history or DeploymentHistory(config.history_path)
        self.app: Optional[FastAPI] = None

    def _create_lifespan_handler(self) -> Callable:
        """Create lifespan handler for the FastAPI app."""

        @asynccontextmanager
        async def lifespan(_app: FastAPI):
            logger.info(
                "webhook server starting",
                version=__version__,
                clients=len(self.config.clients),
                pipe=str(self.config.webhooks.pipe),
            )
            try:
                yield
            finally:
                logger.info("webhook server stopped", **self.metrics.summary())

        return lifespan

    def _add_middleware(self, app: FastAPI) -> None:
        """Bind a request id to every log line of a request."""

        @app.middleware("http")
        async def request_context(request: Request, call_next):
            request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
            request.state.request_id = request_id
            structlog.contextvars.bind_contextvars(request_id=request_id)
            started = time.perf_counter()
            try:
                response = await call_next(request)
            finally:
                structlog.contextvars.unbind_contextvars("request_id")
            logger.debug(
                "request handled",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                latency_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

    def _add_exception_handlers(self, app: FastAPI) -> None:
        """Add exception handlers."""

        async def deploy_hooks_error_handler(request: Request, exc: DeployHooksError):
            body = build_error_body(
                request_id=_request_id(request), code=exc.error_code, message=exc.message
            )
            return JSONResponse(
                body.model_dump(), status_code=http_status_for(exc.error_code)
            )

        async def validation_error_handler(request: Request, exc: RequestValidationError):
            body = build_error_body(
                request_id=_request_id(request),
                code="INVALID_REQUEST",
                message="; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
                ),
            )
            return JSONResponse(body.model_dump(), status_code=http_status_for("INVALID_REQUEST"))

        async def unhandled_exception_handler(request: Request, exc: Exception):
            request_id = _request_id(request)
            logger.exception(
                "unhandled error", request_id=request_id, path=request.url.path, error=str(exc)
            )
            body = build_error_body(request_id=request_id, code="INTERNAL_ERROR", message="internal error")
            return JSONResponse(body.model_dump(), status_code=500)

        app.add_exception_handler(DeployHooksError, deploy_hooks_error_handler)
        app.add_exception_handler(RequestValidationError, validation_error_handler)
        app.add_exception_handler(Exception, unhandled_exception_handler)

    def _add_health_endpoints(self, app: FastAPI) -> None:
        """Add health check endpoints."""

        @app.get("/health", response_model=HealthResponse)
        async def health() -> HealthResponse:
            return HealthResponse(version=__version__, clients=len(self.config.clients))

        @app.get("/metrics")
        async def metrics_endpoint():
            data = generate_latest()
            return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    def _add_webhook_endpoints(self, app: FastAPI) -> None:
        """Add the deploy and deployment history endpoints."""

        auth_deploy = build_signature_auth(self.config, "/deploy", metrics=self.metrics)
        auth_history = build_signature_auth(self.config, "/deployments", metrics=self.metrics)

        @app.post("/deploy", response_model=DeployResponse)
        async def deploy(auth: AuthContext = Depends(auth_deploy)) -> DeployResponse:
            logger.info("received deploy request", client=auth.client_name, project=auth.project)

            if not auth.can(Action.DEPLOY):
                logger.info(
                    "client not permitted to deploy, ignoring",
                    client=auth.client_name,
                    project=auth.project,
                )
                self.metrics.record_request("/deploy", "not_permitted")
                return DeployResponse(dispatched=False, project=auth.project)

            command = Command(action=Action.DEPLOY, project=auth.project)
            try:
                await self.pipe_writer.dispatch(command)
            except DispatchError:
                self.metrics.record_request("/deploy", "dispatch_failed")
                raise

            self.metrics.record_request("/deploy", "dispatched")
            return DeployResponse(dispatched=True, project=auth.project, command=str(command))

        @app.get("/deployments", response_model=DeploymentList)
        async def deployments(
            limit: int = Query(default=20, ge=1, le=500),
            auth: AuthContext = Depends(auth_history),
        ) -> DeploymentList:
            records = await asyncio.to_thread(self.history.read, auth.project, limit)
            self.metrics.record_request("/deployments", "ok")
            return DeploymentList(project=auth.project, deployments=records)

    def build(self) -> FastAPI:
        """Build the complete FastAPI application."""
        app = FastAPI(
            title="Deploy Hooks",
            version=__version__,
            description="Signed webhook receiver that triggers deploy scripts",
            lifespan=self._create_lifespan_handler(),
        )
        self.app = app

        self._add_middleware(app)
        self._add_exception_handlers(app)
        self._add_health_endpoints(app)
        self._add_webhook_endpoints(app)

        return app


def create_app(config: DeployConfig, **kwargs) -> FastAPI:
    """Create the webhook application for ``config``."""
    return DeployHooksAppBuilder(config, **kwargs).build()
