"""Caller-facing entry points that route requests to the active provider."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

from vibecheck.telemetry import (
    PROVIDER_FALLBACKS_TOTAL,
    PROVIDER_REQUEST_LATENCY_SECONDS,
    PROVIDER_REQUESTS_TOTAL,
)

from .errors import ProviderRequestError
from .hybrid_service import HybridAIService
from .normalizer import AnalysisResult, normalize_response
from .prompts import build_analysis_system_prompt, build_analysis_user_prompt
from .providers.base import ProviderClient
from .types import AnalysisRequest, GenerationResult, ImageAttachment

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PreparedRequest = tuple[str, str | None, Sequence[ImageAttachment]]
RequestBuilder = Callable[[ProviderClient], PreparedRequest]


class RequestOrchestrator:
    """Facade over :class:`HybridAIService` used by the message host."""

    def __init__(self, service: HybridAIService) -> None:
        self._service = service

    @property
    def service(self) -> HybridAIService:
        return self._service

    async def _complete(
        self, client: ProviderClient, build: RequestBuilder
    ) -> GenerationResult:
        prompt, system_prompt, images = build(client)
        provider = client.kind.value
        started = time.perf_counter()
        try:
            text = await client.complete(
                prompt, system_prompt=system_prompt, images=images
            )
        except ProviderRequestError:
            PROVIDER_REQUESTS_TOTAL.labels(provider=provider, outcome="error").inc()
            raise
        PROVIDER_REQUESTS_TOTAL.labels(provider=provider, outcome="success").inc()
        PROVIDER_REQUEST_LATENCY_SECONDS.labels(provider=provider).observe(
            time.perf_counter() - started
        )
        return GenerationResult(text=text, provider=client.kind, model=client.model)

    async def _run(self, build: RequestBuilder) -> GenerationResult:
        # each client that attempts the request gets its own build of it
        client = self._service.active_client()
        with tracer.start_as_current_span(
            "vibecheck.generate", kind=SpanKind.INTERNAL
        ) as span:
            span.set_attribute("vibecheck.provider", client.kind.value)
            try:
                result = await self._complete(client, build)
            except ProviderRequestError as exc:
                if not self._service.demote(client.kind):
                    span.set_status(Status(StatusCode.ERROR, str(exc)))
                    raise
                fallback = self._service.active_client()
                PROVIDER_FALLBACKS_TOTAL.labels(
                    from_provider=client.kind.value,
                    to_provider=fallback.kind.value,
                ).inc()
                logger.warning(
                    "orchestrator.fallback",
                    extra={
                        "from_provider": client.kind.value,
                        "to_provider": fallback.kind.value,
                        "reason": str(exc)[:200],
                    },
                )
                span.set_attribute("vibecheck.fallback_provider", fallback.kind.value)
                try:
                    result = await self._complete(fallback, build)
                except ProviderRequestError as retry_exc:
                    span.set_status(Status(StatusCode.ERROR, str(retry_exc)))
                    raise
            span.set_attribute("vibecheck.model", result.model)
        return result

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        *,
        images: Sequence[ImageAttachment] = (),
    ) -> GenerationResult:
        """Return raw model text from the active provider.

        An on-device failure demotes the service to the cloud provider and
        the request is retried there once before the error surfaces.
        """

        return await self._run(lambda client: (prompt, system_prompt, images))

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Score ``request`` for sentiment, clarity and reputation risk."""

        if request.audios:
            logger.debug(
                "orchestrator.audio_ignored",
                extra={"audio_count": len(request.audios)},
            )
        user_prompt = build_analysis_user_prompt(request.text)

        def build(client: ProviderClient) -> PreparedRequest:
            images: Sequence[ImageAttachment] = request.images
            if images and not client.supports_images():
                logger.warning(
                    "orchestrator.images_dropped",
                    extra={"provider": client.kind.value, "image_count": len(images)},
                )
                images = ()
            system_prompt = build_analysis_system_prompt(with_images=bool(images))
            return user_prompt, system_prompt, images

        result = await self._run(build)
        return normalize_response(
            result.text, provider=result.provider, model=result.model
        )
