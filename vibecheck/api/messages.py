"""Message-passing contract between UI collaborators and the AI service."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pydantic import ValidationError

from vibecheck.config import Settings, get_settings
from vibecheck.core.errors import VibeCheckError
from vibecheck.core.hybrid_service import HybridAIService
from vibecheck.core.orchestrator import RequestOrchestrator
from vibecheck.core.types import ProviderChangeEvent, ServiceStatus
from vibecheck.core.ui_events import PROVIDER_CHANGED, EventBus, make_event

from .schemas import (
    AnalyzeMessage,
    AnalyzeMultimodalMessage,
    GenerateMessage,
    SetCredentialMessage,
)

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[], HybridAIService]
Response = dict[str, Any]

MESSAGE_ALIASES: Mapping[str, str] = {
    "GET_AI_STATUS": "GET_STATUS",
    "RESET_SERVICE": "RESET",
    "SET_GEMINI_API_KEY": "SET_CREDENTIAL",
    "ANALYZE_CONTENT": "ANALYZE",
    "ANALYZE_CONTENT_MULTIMODAL": "ANALYZE_MULTIMODAL",
    "GENERATE_RESPONSE": "GENERATE",
}


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "Invalid message: " + "; ".join(parts)


def _failure(message: str) -> Response:
    return {"success": False, "error": message}


class BackgroundHost:
    """Own the single service instance for this process and answer messages.

    Exactly one :class:`HybridAIService` is alive at a time. ``RESET``
    discards it and builds a fresh one from the factory.
    """

    def __init__(
        self,
        service_factory: ServiceFactory,
        *,
        events: EventBus | None = None,
    ) -> None:
        self._factory = service_factory
        self._events = events or EventBus()
        self._service: HybridAIService | None = None
        self._orchestrator: RequestOrchestrator | None = None
        self._lifecycle_lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Awaitable[Response]]] = {
            "GET_STATUS": self._handle_get_status,
            "SET_CREDENTIAL": self._handle_set_credential,
            "RESET": self._handle_reset,
            "ANALYZE": self._handle_analyze,
            "ANALYZE_MULTIMODAL": self._handle_analyze_multimodal,
            "GENERATE": self._handle_generate,
        }

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "BackgroundHost":
        settings = settings or get_settings()
        return cls(
            lambda: HybridAIService.from_settings(settings),
            events=EventBus(max_queue_size=settings.eventbus_memory_queue_maxsize),
        )

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def service(self) -> HybridAIService | None:
        return self._service

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _build(self) -> ServiceStatus:
        service = self._factory()
        service.on_provider_change(self._on_provider_change)
        try:
            status = await service.initialize()
        except BaseException:
            await service.cleanup()
            raise
        self._service = service
        self._orchestrator = RequestOrchestrator(service)
        logger.info("host.service.ready", extra=status.to_payload())
        return status

    async def _ensure_started(self) -> RequestOrchestrator:
        async with self._lifecycle_lock:
            if self._orchestrator is None:
                logger.info("host.service.lazy_start")
                await self._build()
            assert self._orchestrator is not None
            return self._orchestrator

    async def start(self) -> ServiceStatus:
        orchestrator = await self._ensure_started()
        return orchestrator.service.get_status()

    async def reset(self) -> ServiceStatus:
        async with self._lifecycle_lock:
            await self._teardown()
            logger.info("host.service.reset")
            return await self._build()

    async def shutdown(self) -> None:
        async with self._lifecycle_lock:
            await self._teardown()
        pending = tuple(self._pending)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _teardown(self) -> None:
        service, self._service = self._service, None
        self._orchestrator = None
        if service is not None:
            await service.cleanup()

    def _on_provider_change(self, event: ProviderChangeEvent) -> None:
        ev = make_event(PROVIDER_CHANGED, event.to_payload())
        task = asyncio.get_running_loop().create_task(self._events.publish(ev))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, message: Mapping[str, Any]) -> Response:
        """Answer one message; errors are returned as strings, never raised."""

        raw_type = message.get("type") if isinstance(message, Mapping) else None
        message_type = MESSAGE_ALIASES.get(str(raw_type), str(raw_type))
        handler = self._handlers.get(message_type)
        if handler is None:
            logger.info("host.message.unknown", extra={"type": raw_type})
            return _failure("Unknown message type")
        try:
            return await handler(message)
        except asyncio.CancelledError:
            raise
        except ValidationError as exc:
            return _failure(_validation_message(exc))
        except VibeCheckError as exc:
            logger.warning(
                "host.message.failed",
                extra={"type": message_type, "error": type(exc).__name__},
            )
            return _failure(str(exc))
        except Exception as exc:
            logger.exception("host.message.crashed", extra={"type": message_type})
            return _failure(str(exc) or type(exc).__name__)

    async def _handle_get_status(self, message: Mapping[str, Any]) -> Response:
        status = await self.start()
        return {"success": True, "status": status.to_payload()}

    async def _handle_set_credential(self, message: Mapping[str, Any]) -> Response:
        payload = SetCredentialMessage.model_validate(message)
        orchestrator = await self._ensure_started()
        status = await orchestrator.service.set_credential(payload.key)
        return {"success": True, "status": status.to_payload()}

    async def _handle_reset(self, message: Mapping[str, Any]) -> Response:
        status = await self.reset()
        return {"success": True, "status": status.to_payload()}

    async def _handle_analyze(self, message: Mapping[str, Any]) -> Response:
        payload = AnalyzeMessage.model_validate(message)
        orchestrator = await self._ensure_started()
        analysis = await orchestrator.analyze(payload.to_request())
        return {"success": True, "analysis": analysis.to_payload()}

    async def _handle_analyze_multimodal(self, message: Mapping[str, Any]) -> Response:
        payload = AnalyzeMultimodalMessage.model_validate(message)
        orchestrator = await self._ensure_started()
        analysis = await orchestrator.analyze(payload.to_request())
        return {"success": True, "analysis": analysis.to_payload()}

    async def _handle_generate(self, message: Mapping[str, Any]) -> Response:
        payload = GenerateMessage.model_validate(message)
        orchestrator = await self._ensure_started()
        result = await orchestrator.generate(payload.prompt, payload.system_prompt)
        return {"success": True, "response": result.to_payload()}
