"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import httpx
import pytest

from vibecheck.config import Settings
from vibecheck.core.credentials import MemoryCredentialStore
from vibecheck.core.hybrid_service import HybridAIService
from vibecheck.core.providers.on_device import OnDeviceRuntime

ON_DEVICE_MODEL = "gemma3:4b"
CLOUD_MODEL = "gemini-2.0-flash"

VALID_ANALYSIS = {
    "sentiment": "positive",
    "sentimentScore": 95,
    "clarity": "clear",
    "clarityNotes": "",
    "reputationRisk": "low",
    "riskFactors": [],
    "suggestions": [],
}


class FakeOllamaClient:
    """Stand-in for :class:`ollama.AsyncClient` recording every call."""

    def __init__(
        self,
        models: Iterable[str] = (ON_DEVICE_MODEL,),
        *,
        reply: str = json.dumps(VALID_ANALYSIS),
    ) -> None:
        self.models = list(models)
        self.reply = reply
        self.list_error: Exception | None = None
        self.list_delay = 0.0
        self.generate_error: Exception | None = None
        self.generate_delay = 0.0
        self.chat_error: Exception | None = None
        self.chat_gate: asyncio.Event | None = None
        self.list_calls = 0
        self.generate_calls: list[dict[str, Any]] = []
        self.chat_calls: list[dict[str, Any]] = []

    async def list(self) -> dict[str, Any]:
        self.list_calls += 1
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        if self.list_error is not None:
            raise self.list_error
        return {"models": [{"model": name} for name in self.models]}

    async def generate(self, **kwargs: Any) -> dict[str, Any]:
        self.generate_calls.append(kwargs)
        if self.generate_delay:
            await asyncio.sleep(self.generate_delay)
        if self.generate_error is not None:
            raise self.generate_error
        return {"model": kwargs.get("model"), "response": "", "done": True}

    async def chat(self, **kwargs: Any) -> dict[str, Any]:
        self.chat_calls.append(kwargs)
        if self.chat_gate is not None:
            await self.chat_gate.wait()
        if self.chat_error is not None:
            raise self.chat_error
        return {"message": {"role": "assistant", "content": self.reply}}

    @property
    def unload_calls(self) -> list[dict[str, Any]]:
        return [call for call in self.generate_calls if call.get("keep_alive") == 0]


class GeminiStub:
    """Records ``generateContent`` calls and replies with canned text."""

    def __init__(self, text: str = json.dumps(VALID_ANALYSIS)) -> None:
        self.text = text
        self.status_code = 200
        self.payload: Any = None
        self.requests: list[httpx.Request] = []

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.payload is not None:
            return httpx.Response(self.status_code, json=self.payload)
        return httpx.Response(
            self.status_code,
            json={"candidates": [{"content": {"parts": [{"text": self.text}]}}]},
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        gemini_api_key=None,
        cloud_model=CLOUD_MODEL,
        cloud_api_base_url="https://gemini.test/v1beta",
        on_device_model=ON_DEVICE_MODEL,
        capability_probe_timeout=0.2,
        session_create_timeout=0.2,
        reprobe_interval_seconds=0.01,
        credential_store_path=str(tmp_path / "credentials.json"),
    )


@pytest.fixture
def fake_ollama() -> FakeOllamaClient:
    return FakeOllamaClient()


@pytest.fixture
def gemini() -> GeminiStub:
    return GeminiStub()


@pytest.fixture
def make_service(
    settings: Settings, gemini: GeminiStub
) -> Callable[..., HybridAIService]:
    """Build services wired to fakes; ``ollama=None`` disables on-device."""

    def _make(
        *,
        ollama: FakeOllamaClient | None = None,
        credential: str | None = None,
        store: Any | None = None,
        supports_images: bool = True,
    ) -> HybridAIService:
        runtime = None
        if ollama is not None:
            runtime = OnDeviceRuntime(
                ollama,
                model=settings.on_device_model,
                capability_timeout=settings.capability_probe_timeout,
                session_timeout=settings.session_create_timeout,
                supports_images=supports_images,
            )
        return HybridAIService(
            settings,
            credential_store=store or MemoryCredentialStore(credential),
            on_device=runtime,
            http_client=gemini.client(),
        )

    return _make
