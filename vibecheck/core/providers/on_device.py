"""On-device provider backed by a local Ollama runtime."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import ollama

from vibecheck.config import Settings

from ..capabilities import CapabilityReport, detect_on_device_capability
from ..errors import ProbeTimeoutError, ProviderRequestError
from ..types import ImageAttachment, ProviderKind
from .base import ProviderClient

logger = logging.getLogger(__name__)

SESSION_OPTIONS: Mapping[str, float | int] = {"temperature": 0.7, "top_k": 3}
KEEP_ALIVE = "30m"


def build_prompt_text(user_prompt: str, system_prompt: str | None) -> str:
    if system_prompt:
        return f"{system_prompt}\n\nUser request: {user_prompt}"
    return user_prompt


def _response_text(response: Any) -> str:
    try:
        content = response["message"]["content"]
    except (KeyError, TypeError) as exc:
        raise ProviderRequestError(
            ProviderKind.ON_DEVICE.value, "On-device model returned no message"
        ) from exc
    if not isinstance(content, str):
        raise ProviderRequestError(
            ProviderKind.ON_DEVICE.value, "On-device model returned no text"
        )
    return content


class OnDeviceSession:
    """A loaded model held open for repeated prompts.

    Closing is deferred while prompts are in flight: the model is released
    only once the last outstanding prompt returns.
    """

    def __init__(self, client: Any, model: str) -> None:
        self._client = client
        self._model = model
        self._inflight = 0
        self._closed = False
        self._released = False
        self._unload_on_release = True

    @classmethod
    async def create(cls, client: Any, model: str, *, timeout: float) -> "OnDeviceSession":
        """Load ``model`` into memory and return a session bound to it."""

        try:
            await asyncio.wait_for(
                client.generate(model=model, prompt="", keep_alive=KEEP_ALIVE),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProbeTimeoutError("session", timeout) from exc
        logger.info("on_device.session.created", extra={"model": model})
        return cls(client, model)

    @property
    def model(self) -> str:
        return self._model

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def inflight(self) -> int:
        return self._inflight

    async def prompt(
        self, text: str, images: Sequence[ImageAttachment] = ()
    ) -> str:
        if self._closed:
            raise ProviderRequestError(
                ProviderKind.ON_DEVICE.value, "On-device session is closed"
            )
        self._inflight += 1
        try:
            message = ollama.Message(
                role="user",
                content=text,
                images=[ollama.Image(value=image.data) for image in images] or None,
            )
            response = await self._client.chat(
                model=self._model,
                messages=[message],
                options=dict(SESSION_OPTIONS),
                keep_alive=KEEP_ALIVE,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "on_device.session.prompt_failed",
                extra={"model": self._model, "error": type(exc).__name__},
            )
            raise ProviderRequestError(
                ProviderKind.ON_DEVICE.value, f"On-device model error: {exc}"
            ) from exc
        finally:
            self._inflight -= 1
            if self._closed and self._inflight == 0:
                await self._release()
        return _response_text(response)

    async def close(self, *, unload: bool = True) -> None:
        """Release the session; ``unload=False`` keeps the shared model warm."""

        if self._closed:
            return
        self._closed = True
        self._unload_on_release = unload
        if self._inflight == 0:
            await self._release()
        else:
            logger.debug(
                "on_device.session.release_deferred",
                extra={"model": self._model, "inflight": self._inflight},
            )

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        if not self._unload_on_release:
            return
        try:
            await self._client.generate(model=self._model, prompt="", keep_alive=0)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning(
                "on_device.session.unload_failed",
                extra={"model": self._model},
                exc_info=True,
            )
        else:
            logger.info("on_device.session.released", extra={"model": self._model})


class OnDeviceRuntime:
    """Probe and session factory for the local model runtime."""

    def __init__(
        self,
        client: Any,
        *,
        model: str,
        capability_timeout: float = 2.0,
        session_timeout: float = 3.0,
        supports_images: bool = True,
    ) -> None:
        self._client = client
        self.model = model
        self.capability_timeout = capability_timeout
        self.session_timeout = session_timeout
        self.supports_images = supports_images

    @classmethod
    def from_settings(cls, settings: Settings) -> "OnDeviceRuntime | None":
        if not settings.on_device_enabled:
            return None
        return cls(
            ollama.AsyncClient(host=settings.on_device_host),
            model=settings.on_device_model,
            capability_timeout=settings.capability_probe_timeout,
            session_timeout=settings.session_create_timeout,
            supports_images=settings.on_device_supports_images,
        )

    async def detect(self) -> CapabilityReport:
        return await detect_on_device_capability(
            self._client, self.model, timeout=self.capability_timeout
        )

    async def open_session(self) -> OnDeviceSession:
        return await OnDeviceSession.create(
            self._client, self.model, timeout=self.session_timeout
        )


class OnDeviceClient(ProviderClient):
    """Provider client bound to one session for the lifetime of a request."""

    kind = ProviderKind.ON_DEVICE

    def __init__(
        self, session: OnDeviceSession | None, *, supports_images: bool = True
    ) -> None:
        self._session = session
        self._supports_images = supports_images

    @property
    def model(self) -> str:
        name = self._session.model if self._session else "unknown"
        return f"{name} (on-device)"

    def supports_images(self) -> bool:
        return self._supports_images

    async def complete(
        self,
        user_prompt: str,
        *,
        system_prompt: str | None = None,
        images: Sequence[ImageAttachment] = (),
    ) -> str:
        if self._session is None:
            raise ProviderRequestError(
                self.kind.value, "On-device session lost. Falling back to cloud."
            )
        text = build_prompt_text(user_prompt, system_prompt)
        logger.debug(
            "on_device.request.sending",
            extra={"model": self._session.model, "image_count": len(images)},
        )
        return await self._session.prompt(
            text, images if self._supports_images else ()
        )
