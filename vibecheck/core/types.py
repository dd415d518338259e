"""Shared data model for the provider layer."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProviderKind(str, Enum):
    """Backends able to serve a request."""

    ON_DEVICE = "on_device"
    CLOUD = "cloud"
    NONE = "none"


class ServiceState(str, Enum):
    """Lifecycle states of :class:`~vibecheck.core.hybrid_service.HybridAIService`."""

    UNINITIALIZED = "uninitialized"
    ON_DEVICE_ACTIVE = "on_device_active"
    CLOUD_ACTIVE = "cloud_active"
    UNAVAILABLE = "unavailable"

    @property
    def provider(self) -> ProviderKind:
        if self is ServiceState.ON_DEVICE_ACTIVE:
            return ProviderKind.ON_DEVICE
        if self is ServiceState.CLOUD_ACTIVE:
            return ProviderKind.CLOUD
        return ProviderKind.NONE


@dataclass(frozen=True, slots=True)
class ServiceStatus:
    """Point-in-time snapshot of the provider selection."""

    active_provider: ProviderKind
    available: bool
    has_cloud_credential: bool
    is_reprobing: bool

    def to_payload(self) -> dict[str, Any]:
        """Serialise the snapshot for message responses."""

        return {
            "activeProvider": self.active_provider.value,
            "available": self.available,
            "hasCloudCredential": self.has_cloud_credential,
            "isReprobing": self.is_reprobing,
        }


@dataclass(frozen=True, slots=True)
class ImageAttachment:
    """Raw image bytes attached to an analysis request."""

    data: bytes
    mime_type: str = "image/jpeg"
    name: str | None = None


@dataclass(frozen=True, slots=True)
class AnalysisRequest:
    """Text to score plus optional media attachments."""

    text: str
    images: Sequence[ImageAttachment] = field(default_factory=tuple)
    audios: Sequence[Any] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.text, str) or not self.text.strip():
            raise ValueError("text cannot be empty")
        object.__setattr__(self, "images", tuple(self.images))
        object.__setattr__(self, "audios", tuple(self.audios))


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Raw text answer attributed to the provider that produced it."""

    text: str
    provider: ProviderKind
    model: str

    def to_payload(self) -> dict[str, Any]:
        return {"text": self.text, "provider": self.provider.value, "model": self.model}


@dataclass(frozen=True, slots=True)
class ProviderChangeEvent:
    """Notification delivered to listeners when the active provider changes."""

    old_provider: ProviderKind | None
    new_provider: ProviderKind | None
    status: ServiceStatus

    def to_payload(self) -> dict[str, Any]:
        return {
            "oldProvider": self.old_provider.value if self.old_provider else None,
            "newProvider": self.new_provider.value if self.new_provider else None,
            "status": self.status.to_payload(),
        }
