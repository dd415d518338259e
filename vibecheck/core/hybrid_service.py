"""Provider selection between the on-device runtime and the cloud API.

The service owns the active-provider decision, the on-device session, the
cloud credential and the background re-probe task. One instance lives per
host process; resetting means calling :meth:`HybridAIService.cleanup` and
building a new instance, never mutating an old one back to a clean state.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

import httpx

from vibecheck.config import Settings, get_settings
from vibecheck.telemetry import ON_DEVICE_PROBES_TOTAL, PROVIDER_CHANGES_TOTAL

from .credentials import CredentialStore, JsonFileCredentialStore, mask_secret
from .errors import ConfigurationError, ProbeTimeoutError, ServiceNotInitializedError
from .providers.base import ProviderClient
from .providers.cloud import CloudClient, CloudConfig
from .providers.on_device import OnDeviceClient, OnDeviceRuntime, OnDeviceSession
from .types import ProviderChangeEvent, ProviderKind, ServiceState, ServiceStatus

logger = logging.getLogger(__name__)

ProviderChangeListener = Callable[[ProviderChangeEvent], None]

_SERVING_STATES = frozenset(
    {ServiceState.ON_DEVICE_ACTIVE, ServiceState.CLOUD_ACTIVE}
)


class HybridAIService:
    """Keep the best available provider active without caller involvement."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        credential_store: CredentialStore,
        on_device: OnDeviceRuntime | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = credential_store
        self._on_device = on_device
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._state = ServiceState.UNINITIALIZED
        self._credential: str | None = None
        self._session: OnDeviceSession | None = None
        self._reprobe_task: asyncio.Task[None] | None = None
        self._listeners: list[ProviderChangeListener] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        credential_store: CredentialStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "HybridAIService":
        settings = settings or get_settings()
        store = credential_store or JsonFileCredentialStore(
            settings.credential_store_path, key=settings.credential_key
        )
        return cls(
            settings,
            credential_store=store,
            on_device=OnDeviceRuntime.from_settings(settings),
            http_client=http_client,
        )

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is not ServiceState.UNINITIALIZED

    @property
    def session(self) -> OnDeviceSession | None:
        return self._session

    def get_status(self) -> ServiceStatus:
        task = self._reprobe_task
        return ServiceStatus(
            active_provider=self._state.provider,
            available=self._state in _SERVING_STATES,
            has_cloud_credential=bool(self._credential),
            is_reprobing=task is not None and not task.done(),
        )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_provider_change(self, listener: ProviderChangeListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unregisters it."""

        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    def _notify(
        self, old_provider: ProviderKind | None, new_provider: ProviderKind | None
    ) -> None:
        event = ProviderChangeEvent(old_provider, new_provider, self.get_status())
        PROVIDER_CHANGES_TOTAL.labels(
            new_provider=new_provider.value if new_provider else "unset"
        ).inc()
        for listener in tuple(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "hybrid.listener_failed",
                    extra={"listener": getattr(listener, "__qualname__", repr(listener))},
                )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, credential: str | None = None) -> ServiceStatus:
        """Select the initial provider and notify listeners of the outcome.

        "No provider" is a valid terminal state, not an error. Storage
        failures while loading the persisted credential propagate.
        """

        logger.info("hybrid.initialize.started")
        previous = self._state.provider if self.is_initialized else None
        if credential:
            self._credential = credential
        else:
            stored = await self._store.load()
            self._credential = stored or self._settings.gemini_api_key

        if not self._credential:
            logger.warning("hybrid.initialize.no_credential")

        self._stop_reprobe()
        if await self.probe_on_device():
            self._state = ServiceState.ON_DEVICE_ACTIVE
            logger.info("hybrid.initialize.on_device")
        elif self._credential:
            self._state = ServiceState.CLOUD_ACTIVE
            logger.info(
                "hybrid.initialize.cloud",
                extra={"credential": mask_secret(self._credential)},
            )
            self.start_reprobe_loop()
        else:
            self._state = ServiceState.UNAVAILABLE
            logger.warning("hybrid.initialize.unavailable")

        self._notify(previous, self._state.provider)
        return self.get_status()

    async def cleanup(self) -> None:
        """Stop background work, release the session and drop all listeners."""

        self._listeners.clear()
        task, self._reprobe_task = self._reprobe_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        session, self._session = self._session, None
        if session is not None:
            await session.close()
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        self._state = ServiceState.UNINITIALIZED
        logger.info("hybrid.cleanup.completed")

    async def set_credential(self, key: str | None) -> ServiceStatus:
        """Persist ``key``; an empty value clears the stored credential."""

        value = (key or "").strip() or None
        await self._store.save(value)
        self._credential = value
        logger.info(
            "hybrid.credential.updated", extra={"credential": mask_secret(value)}
        )
        if value and self._state in (
            ServiceState.UNINITIALIZED,
            ServiceState.UNAVAILABLE,
        ):
            return await self.initialize(value)
        if value is None and self._state is ServiceState.CLOUD_ACTIVE:
            self._stop_reprobe()
            self._state = ServiceState.UNAVAILABLE
            self._notify(ProviderKind.CLOUD, ProviderKind.NONE)
        return self.get_status()

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    async def probe_on_device(self) -> bool:
        """Run one bounded on-device probe; on success the new session is swapped in."""

        runtime = self._on_device
        if runtime is None:
            ON_DEVICE_PROBES_TOTAL.labels(result="unsupported").inc()
            return False
        try:
            report = await runtime.detect()
            if not report.usable:
                logger.info(
                    "hybrid.probe.not_ready",
                    extra={"status": report.status.value, "detail": report.detail},
                )
                ON_DEVICE_PROBES_TOTAL.labels(result=report.status.value).inc()
                return False
            session = await runtime.open_session()
        except ProbeTimeoutError as exc:
            logger.info(
                "hybrid.probe.timeout",
                extra={"stage": exc.stage, "timeout": exc.timeout},
            )
            ON_DEVICE_PROBES_TOTAL.labels(result="timeout").inc()
            return False
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "hybrid.probe.failed",
                extra={"error": type(exc).__name__, "detail": str(exc)[:200]},
            )
            ON_DEVICE_PROBES_TOTAL.labels(result="error").inc()
            return False

        previous, self._session = self._session, session
        if previous is not None:
            await previous.close(unload=previous.model != session.model)
        ON_DEVICE_PROBES_TOTAL.labels(result="available").inc()
        return True

    def start_reprobe_loop(self) -> None:
        """(Re)start the background probe task, replacing any running one."""

        self._stop_reprobe()
        self._reprobe_task = asyncio.get_running_loop().create_task(
            self._reprobe_loop(), name="vibecheck-reprobe"
        )

    def _stop_reprobe(self) -> None:
        task, self._reprobe_task = self._reprobe_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _reprobe_loop(self) -> None:
        interval = self._settings.reprobe_interval_seconds
        logger.info("hybrid.reprobe.started", extra={"interval_seconds": interval})
        while self._state is ServiceState.CLOUD_ACTIVE:
            await asyncio.sleep(interval)
            if self._state is not ServiceState.CLOUD_ACTIVE:
                break
            if not await self.probe_on_device():
                continue
            # state may have moved while the probe was awaiting
            if self._state is not ServiceState.CLOUD_ACTIVE:
                break
            self._state = ServiceState.ON_DEVICE_ACTIVE
            self._reprobe_task = None
            logger.info(
                "hybrid.reprobe.switched",
                extra={"old_provider": "cloud", "new_provider": "on_device"},
            )
            self._notify(ProviderKind.CLOUD, ProviderKind.ON_DEVICE)
            return
        logger.info("hybrid.reprobe.stopped", extra={"state": self._state.value})

    # ------------------------------------------------------------------
    # Request routing
    # ------------------------------------------------------------------

    def active_client(self) -> ProviderClient:
        """Return a client bound to the provider serving requests right now."""

        if self._state is ServiceState.UNINITIALIZED:
            raise ServiceNotInitializedError()
        if self._state is ServiceState.ON_DEVICE_ACTIVE:
            return OnDeviceClient(
                self._session,
                supports_images=self._on_device.supports_images
                if self._on_device
                else False,
            )
        if self._state is ServiceState.CLOUD_ACTIVE:
            return self._cloud_client()
        raise ConfigurationError()

    def _cloud_client(self) -> CloudClient:
        if not self._credential:
            raise ConfigurationError("Gemini API key not configured")
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
        return CloudClient(
            self._http_client,
            config=CloudConfig(
                base_url=self._settings.cloud_api_base_url,
                model=self._settings.cloud_model,
                timeout=self._settings.cloud_request_timeout,
            ),
            api_key=self._credential,
        )

    def demote(self, failed: ProviderKind) -> bool:
        """Move off a failed on-device provider.

        Returns ``True`` when the cloud provider is now active and the failed
        request may be retried against it.
        """

        if failed is not ProviderKind.ON_DEVICE:
            return False
        if self._state is ServiceState.CLOUD_ACTIVE:
            # another request already demoted
            return True
        if self._state is not ServiceState.ON_DEVICE_ACTIVE:
            return False
        if not self._credential:
            logger.warning("hybrid.demote.no_credential")
            return False
        self._state = ServiceState.CLOUD_ACTIVE
        self.start_reprobe_loop()
        logger.warning(
            "hybrid.demoted",
            extra={"old_provider": "on_device", "new_provider": "cloud"},
        )
        self._notify(ProviderKind.ON_DEVICE, ProviderKind.CLOUD)
        return True
