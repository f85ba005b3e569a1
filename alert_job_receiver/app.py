"""FastAPI application for receiving Alertmanager webhooks."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from loguru import logger

from alert_job_receiver import __version__
from alert_job_receiver.config import ReceiverConfig
from alert_job_receiver.errors import ReceiverError
from alert_job_receiver.handler import AlertJobHandler, decode_webhook
from alert_job_receiver.kube import (
    ConfigMapDefinitionStore,
    DefinitionStore,
    JobScheduler,
    KubeClient,
    KubeJobScheduler,
)
from alert_job_receiver.log import configure_logging

DISCONNECT_POLL_INTERVAL = 0.5


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def run_until_disconnected(request: Request, work: Awaitable[Any]) -> Any:
    """Run work, cancelling it if the caller goes away first.

    Raises:
        asyncio.CancelledError: If the client disconnected before completion
    """
    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not task.done():
            task.cancel()
    return await task


def create_app(
    config: ReceiverConfig,
    store: Optional[DefinitionStore] = None,
    scheduler: Optional[JobScheduler] = None,
) -> FastAPI:
    """Build the receiver application.

    Args:
        config: Receiver configuration
        store: Job definition source; defaults to the ConfigMap store
        scheduler: Job destination; defaults to the batch/v1 API

    Returns:
        The FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Configure application lifespan events."""
        configure_logging(config.log_level)
        logger.info("Starting webhook receiver")

        kube_client: Optional[KubeClient] = None
        job_store, job_scheduler = store, scheduler
        if job_store is None or job_scheduler is None:
            kube_client = KubeClient.from_config(config.kube)
            job_store = job_store or ConfigMapDefinitionStore(kube_client)
            job_scheduler = job_scheduler or KubeJobScheduler(kube_client)

        app.state.handler = AlertJobHandler(config, job_store, job_scheduler)
        logger.info(
            f"Job definitions from {config.configmap_namespace}/{config.responses_configmap}, "
            f"jobs created in {config.job_destination_namespace}"
        )

        yield

        if kube_client is not None:
            await kube_client.aclose()
        logger.info("Application shutdown")

    app = FastAPI(title="Alert Job Receiver", version=__version__, lifespan=lifespan)

    @app.exception_handler(ReceiverError)
    async def receiver_error_handler(request: Request, exc: ReceiverError) -> PlainTextResponse:
        return PlainTextResponse(exc.public_message, status_code=exc.status_code)

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz() -> str:
        """Health check endpoint."""
        return "Webhook receiver is running\n"

    @app.post("/alerts")
    async def post_alerts(request: Request) -> Dict[str, Any]:
        """Receive an Alertmanager notification and create the configured Job."""
        body = await request.body()
        try:
            message = decode_webhook(body)
        except ReceiverError as e:
            logger.error(e.detail)
            raise

        handler: AlertJobHandler = request.app.state.handler
        try:
            result = await run_until_disconnected(request, handler.handle(message))
        except asyncio.CancelledError:
            if not await request.is_disconnected():
                raise
            logger.warning(f"Client disconnected, abandoned alert {message.alert_name}[{message.status}]")
            return Response(status_code=499)
        return result.model_dump(exclude_none=True)

    @app.get("/alerts")
    async def get_alerts() -> JSONResponse:
        """Answer Alertmanager's check request; send_resolved needs a 200 here."""
        return JSONResponse("OK")

    @app.api_route("/alerts", methods=["PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"])
    async def unsupported_alerts_method(request: Request) -> PlainTextResponse:
        return PlainTextResponse(f"Unsupported HTTP method: {request.method}", status_code=400)

    return app
