"""Capability detection for the local model runtime."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import ProbeTimeoutError

logger = logging.getLogger(__name__)


class CapabilityStatus(str, Enum):
    AVAILABLE = "available"
    AFTER_DOWNLOAD = "after_download"
    UNAVAILABLE = "unavailable"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True, slots=True)
class CapabilityReport:
    """Tagged probe result; only ``AVAILABLE`` may proceed to session creation."""

    status: CapabilityStatus
    detail: str | None = None

    @property
    def usable(self) -> bool:
        return self.status is CapabilityStatus.AVAILABLE


def _iter_listed_models(response: Any) -> Iterable[Any]:
    if isinstance(response, Mapping):
        models = response.get("models")
    else:
        models = getattr(response, "models", None)
    if isinstance(models, Mapping):
        models = models.values()
    return models or ()


def listed_model_names(response: Any) -> set[str]:
    """Collect model identifiers from an ``ollama`` list response."""

    names: set[str] = set()
    for item in _iter_listed_models(response):
        if isinstance(item, Mapping):
            name = item.get("model") or item.get("name")
        else:
            name = getattr(item, "model", None) or getattr(item, "name", None)
            if name is None and isinstance(item, str):
                name = item
        if name:
            names.add(str(name))
    return names


def model_is_listed(model: str, names: Iterable[str]) -> bool:
    candidates = {model}
    if ":" not in model:
        candidates.add(f"{model}:latest")
    return any(name in candidates for name in names)


async def detect_on_device_capability(
    client: Any | None, model: str, *, timeout: float
) -> CapabilityReport:
    """Classify whether ``model`` can be served by the local runtime.

    ``client`` is any object exposing an awaitable ``list()`` in the shape of
    :class:`ollama.AsyncClient`. ``None`` means the runtime is not supported
    on this host. Exceeding ``timeout`` raises :class:`ProbeTimeoutError`.
    """

    if client is None:
        return CapabilityReport(CapabilityStatus.UNSUPPORTED, "runtime_disabled")
    try:
        response = await asyncio.wait_for(client.list(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ProbeTimeoutError("capability", timeout) from exc
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.info(
            "capability.runtime_unreachable",
            extra={"model": model, "error": type(exc).__name__},
        )
        return CapabilityReport(CapabilityStatus.UNAVAILABLE, str(exc)[:200] or None)

    if model_is_listed(model, listed_model_names(response)):
        return CapabilityReport(CapabilityStatus.AVAILABLE)
    return CapabilityReport(CapabilityStatus.AFTER_DOWNLOAD, "model_not_pulled")
