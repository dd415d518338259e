"""Gemini ``generateContent`` client used as the cloud provider."""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from ..errors import ProviderRequestError
from ..types import ImageAttachment, ProviderKind
from .base import ProviderClient

logger = logging.getLogger(__name__)

USER_AGENT = "VibeCheck/1.0"

TEMPERATURE = 0.7
TOP_K = 40
TOP_P = 0.95
MAX_OUTPUT_TOKENS = 800

GENERATION_CONFIG: Mapping[str, float | int] = {
    "temperature": TEMPERATURE,
    "maxOutputTokens": MAX_OUTPUT_TOKENS,
    "topK": TOP_K,
    "topP": TOP_P,
}


@dataclass(frozen=True, slots=True)
class CloudConfig:
    """Connection options for the Gemini REST API."""

    base_url: str
    model: str
    timeout: float = 60.0


def build_prompt_text(user_prompt: str, system_prompt: str | None) -> str:
    if system_prompt:
        return f"{system_prompt}\n\n{user_prompt}"
    return user_prompt


def build_request_body(
    user_prompt: str,
    *,
    system_prompt: str | None = None,
    images: Sequence[ImageAttachment] = (),
) -> dict[str, Any]:
    """Return the JSON body for a ``generateContent`` call.

    The combined prompt is the first part; images follow as ``inline_data``
    parts in input order.
    """

    parts: list[dict[str, Any]] = [
        {"text": build_prompt_text(user_prompt, system_prompt)}
    ]
    for image in images:
        parts.append(
            {
                "inline_data": {
                    "mime_type": image.mime_type,
                    "data": base64.b64encode(image.data).decode("ascii"),
                }
            }
        )
    return {
        "contents": [{"parts": parts}],
        "generationConfig": dict(GENERATION_CONFIG),
    }


def extract_text(payload: object) -> str:
    """Return ``candidates[0].content.parts[0].text`` or raise."""

    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]  # type: ignore[index]
    except (KeyError, IndexError, TypeError):
        text = None
    if not isinstance(text, str) or not text:
        raise ProviderRequestError(ProviderKind.CLOUD.value, "No text in response")
    return text


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except json.JSONDecodeError:
        return response.text[:200] or "Unknown error"
    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
    return "Unknown error"


class CloudClient(ProviderClient):
    """Stateless JSON-over-HTTP client; one POST per completion."""

    kind = ProviderKind.CLOUD

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        config: CloudConfig,
        api_key: str,
    ) -> None:
        if not api_key:
            msg = "Gemini API key must be provided"
            raise ValueError(msg)
        self._client = client
        self._config = config
        self._api_key = api_key
        self._endpoint = (
            f"{config.base_url.rstrip('/')}/models/{config.model}:generateContent"
        )

    @property
    def model(self) -> str:
        return self._config.model

    def supports_images(self) -> bool:
        return True

    async def complete(
        self,
        user_prompt: str,
        *,
        system_prompt: str | None = None,
        images: Sequence[ImageAttachment] = (),
    ) -> str:
        body = build_request_body(
            user_prompt, system_prompt=system_prompt, images=images
        )
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "x-goog-api-key": self._api_key,
        }
        logger.debug(
            "cloud.request.sending",
            extra={"model": self.model, "image_count": len(images)},
        )
        try:
            response = await self._client.post(
                self._endpoint,
                json=body,
                headers=headers,
                timeout=self._config.timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "cloud.request.transport_error",
                extra={"model": self.model, "error": type(exc).__name__},
            )
            raise ProviderRequestError(
                self.kind.value, f"Gemini API request failed: {exc}"
            ) from exc

        if not response.is_success:
            detail = _error_detail(response)
            logger.warning(
                "cloud.request.failed",
                extra={"model": self.model, "status_code": response.status_code},
            )
            raise ProviderRequestError(
                self.kind.value,
                f"Gemini API error: {response.status_code} - {detail}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise ProviderRequestError(
                self.kind.value, "Gemini API returned invalid JSON"
            ) from exc
        text = extract_text(payload)
        logger.debug(
            "cloud.request.completed",
            extra={"model": self.model, "response_chars": len(text)},
        )
        return text
