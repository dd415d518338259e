from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Body, Depends, FastAPI, Request, Response
from fastapi.responses import StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from vibecheck.api.messages import BackgroundHost
from vibecheck.config import Settings, get_settings
from vibecheck.core.errors import VibeCheckError
from vibecheck.core.ui_events import Subscription
from vibecheck.telemetry import PROMETHEUS_REGISTRY

logger = logging.getLogger(__name__)

SSE_KEEPALIVE_SECONDS = 15.0


def get_host(request: Request) -> BackgroundHost:
    return request.app.state.host


HostDep = Annotated[BackgroundHost, Depends(get_host)]


async def event_stream(
    subscription: Subscription, *, keepalive: float = SSE_KEEPALIVE_SECONDS
) -> AsyncIterator[str]:
    """Render bus events as server-sent-event frames with periodic keepalives."""

    # one read stays pending across keepalive timeouts
    next_event = asyncio.ensure_future(subscription.__anext__())
    try:
        while True:
            done, _ = await asyncio.wait({next_event}, timeout=keepalive)
            if not done:
                yield ": keepalive\n\n"
                continue
            try:
                ev = next_event.result()
            except StopAsyncIteration:
                return
            yield f"event: {ev.type}\ndata: {ev.to_json()}\n\n"
            next_event = asyncio.ensure_future(subscription.__anext__())
    finally:
        subscription.close()
        next_event.cancel()
        await asyncio.gather(next_event, return_exceptions=True)


def create_app(
    settings: Settings | None = None, *, host: BackgroundHost | None = None
) -> FastAPI:
    """Build the HTTP transport around a single :class:`BackgroundHost`."""

    settings = settings or get_settings()
    background_host = host or BackgroundHost.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.host = background_host
        try:
            status = await background_host.start()
        except VibeCheckError as exc:
            # the next message retries initialisation
            logger.error("lifespan.start_failed", extra={"error": str(exc)})
        else:
            logger.info("lifespan.started", extra=status.to_payload())
        try:
            yield
        finally:
            await background_host.shutdown()

    app = FastAPI(title=f"{settings.app_name} API", version=settings.api_version, lifespan=lifespan)

    @app.post("/api/v1/messages")
    async def post_message(
        host: HostDep, message: Annotated[dict[str, Any], Body()]
    ) -> dict[str, Any]:
        """Answer one UI message with exactly one response object."""

        return await host.handle(message)

    @app.get("/api/v1/status")
    async def get_status(host: HostDep) -> dict[str, Any]:
        return await host.handle({"type": "GET_STATUS"})

    @app.get("/api/v1/events")
    async def stream_events(host: HostDep) -> StreamingResponse:
        """Server-sent event stream of provider changes."""

        return StreamingResponse(
            event_stream(host.events.subscribe()), media_type="text/event-stream"
        )

    @app.get("/metrics", include_in_schema=False)
    async def metrics_endpoint() -> Response:
        """Expose Prometheus metrics collected from the host process."""

        payload = generate_latest(PROMETHEUS_REGISTRY)
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok"}

    return app
