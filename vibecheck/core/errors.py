"""Exceptions raised by the VibeCheck provider layer."""

from __future__ import annotations


class VibeCheckError(Exception):
    """Base class for all VibeCheck errors."""


class ConfigurationError(VibeCheckError):
    """Raised when neither a cloud credential nor an on-device model is usable."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "No AI provider available. Please set up a Gemini API key or "
            "enable the on-device model."
        )


class ServiceNotInitializedError(VibeCheckError):
    """Raised when requests arrive before the service has been initialised."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "AI service not initialized")


class ProbeTimeoutError(VibeCheckError):
    """Raised when an availability probe exceeds its time budget."""

    def __init__(self, stage: str, timeout: float) -> None:
        super().__init__(f"{stage} probe timed out after {timeout:g}s")
        self.stage = stage
        self.timeout = timeout


class ProviderRequestError(VibeCheckError):
    """Raised when a provider fails while serving an actual request."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class MalformedResponseError(VibeCheckError):
    """Raised internally when model output does not match the analysis schema."""


class StorageError(VibeCheckError):
    """Raised when the credential store cannot be read or written."""
