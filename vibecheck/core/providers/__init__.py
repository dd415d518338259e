"""Provider clients for the on-device runtime and the cloud API."""

from .base import ProviderClient
from .cloud import CloudClient, CloudConfig
from .on_device import OnDeviceClient, OnDeviceRuntime, OnDeviceSession

__all__ = [
    "CloudClient",
    "CloudConfig",
    "OnDeviceClient",
    "OnDeviceRuntime",
    "OnDeviceSession",
    "ProviderClient",
]
