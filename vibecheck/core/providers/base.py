"""Common contract shared by the provider clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from ..types import ImageAttachment, ProviderKind


class ProviderClient(ABC):
    """Executes a single completion against one backend.

    Clients never retry; fallback decisions belong to the hybrid service.
    """

    kind: ProviderKind

    @property
    @abstractmethod
    def model(self) -> str:
        """Identifier of the concrete backend model."""

    @abstractmethod
    def supports_images(self) -> bool:
        """Return ``True`` when image attachments can be forwarded."""

    @abstractmethod
    async def complete(
        self,
        user_prompt: str,
        *,
        system_prompt: str | None = None,
        images: Sequence[ImageAttachment] = (),
    ) -> str:
        """Return the raw model text for the prompt."""
