"""Stable public API for building tooling on top of donglectl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

from donglectl.core.errors import (
    ApplyCancelledError,
    DeviceSelectionError,
    DonglectlError,
    FamilyLoadError,
    FamilyValidationError,
    OutOfRangeError,
    PartialApplyError,
    ProfileStoreError,
    ProtocolMismatchError,
    TransportError,
    TransportIoError,
    TransportTimeoutError,
    TransportUnavailableError,
    UnsupportedUsbDongleError,
)
from donglectl.core.model import (
    DeviceDescriptor,
    DongleFamily,
    FiioKa5,
    MoondropDawn,
    Profile,
    ResolvedTarget,
    UnsupportedUsbDongle,
    UsbDongle,
)
from donglectl.core.profile_store import JSONProfileStore, ProfileStore
from donglectl.core.profiles import ProfileEngine
from donglectl.core.repository import DongleRepository
from donglectl.core.volume import HardwareVolumeControl
from donglectl.transports.base import Transport

__all__ = [
    "ApplyCancelledError",
    "DeviceSelectionError",
    "DonglectlError",
    "FamilyLoadError",
    "FamilyValidationError",
    "OutOfRangeError",
    "PartialApplyError",
    "ProfileStoreError",
    "ProtocolMismatchError",
    "TransportError",
    "TransportIoError",
    "TransportTimeoutError",
    "TransportUnavailableError",
    "UnsupportedUsbDongleError",
    "DeviceDescriptor",
    "DongleFamily",
    "FiioKa5",
    "MoondropDawn",
    "Profile",
    "ResolvedTarget",
    "UnsupportedUsbDongle",
    "UsbDongle",
    "JSONProfileStore",
    "ProfileStore",
    "AsyncClient",
    "Client",
]

_T = TypeVar("_T")


class Client:
    """Public client for interacting with donglectl core capabilities.

    A `Client` instance wraps family loading, device discovery, state refresh,
    feature writes, volume stepping and profiles behind a stable API intended
    for third-party tools (GUI/TUI/services/scripts). Calls block on device I/O.
    """

    def __init__(
        self,
        *,
        transport: Transport | None = None,
        families: dict[str, DongleFamily] | None = None,
        store: ProfileStore | None = None,
    ) -> None:
        self._repository = DongleRepository(transport=transport, families=families)
        self._profiles = ProfileEngine(self._repository, store)
        self._volume = HardwareVolumeControl(self._repository)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._repository.load_warnings

    def list_families(self) -> list[DongleFamily]:
        return self._repository.list_families()

    def list_devices(self) -> list[DeviceDescriptor]:
        return self._repository.list_devices()

    def resolve_target(self, *, device_hint: str | None = None) -> ResolvedTarget:
        return self._repository.resolve_target(device_hint)

    def resolve_identity(self, descriptor: DeviceDescriptor) -> UsbDongle:
        return self._repository.resolve_identity(descriptor)

    def refresh_state(self, dongle: UsbDongle, descriptor: DeviceDescriptor) -> UsbDongle:
        return self._repository.refresh_state(dongle, descriptor)

    def refresh_volume(self, dongle: UsbDongle, descriptor: DeviceDescriptor) -> UsbDongle:
        return self._repository.refresh_volume(dongle, descriptor)

    def set_feature(self, dongle: UsbDongle, descriptor: DeviceDescriptor, value: Any) -> UsbDongle:
        return self._repository.set_feature(dongle, descriptor, value)

    def volume_up(self, dongle: UsbDongle, descriptor: DeviceDescriptor, steps: int = 1) -> UsbDongle:
        return self._volume.step_up(dongle, descriptor, steps)

    def volume_down(self, dongle: UsbDongle, descriptor: DeviceDescriptor, steps: int = 1) -> UsbDongle:
        return self._volume.step_down(dongle, descriptor, steps)

    def volume_percent(self, dongle: UsbDongle) -> str:
        return self._volume.volume_percent(dongle)

    def capture_profile(self, dongle: UsbDongle, name: str) -> Profile:
        return self._profiles.capture(dongle, name)

    def default_profile(self, dongle: UsbDongle) -> Profile:
        return self._profiles.default_profile(dongle)

    def apply_profile(
        self,
        dongle: UsbDongle,
        descriptor: DeviceDescriptor,
        profile: Profile,
        cancel: threading.Event | None = None,
    ) -> UsbDongle:
        return self._profiles.apply_profile(dongle, descriptor, profile, cancel)

    def list_profiles(self, dongle: UsbDongle) -> list[Profile]:
        return self._profiles.list_profiles(dongle)

    def save_profile(self, profile: Profile) -> None:
        self._profiles.save_profile(profile)

    def delete_profile(self, profile: Profile) -> None:
        self._profiles.delete_profile(profile)


class AsyncClient:
    """Awaitable facade over :class:`Client`.

    Device I/O runs on one dedicated worker thread, so calls from any number
    of tasks reach the device strictly one after another. Cancelling an
    awaiting :meth:`apply_profile` stops the replay after the command in flight.
    """

    def __init__(self, client: Client | None = None, **client_kwargs: Any) -> None:
        self.client = client or Client(**client_kwargs)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="donglectl-io")

    async def _run(self, func: Callable[..., _T], *args: Any) -> _T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def list_devices(self) -> list[DeviceDescriptor]:
        return await self._run(self.client.list_devices)

    async def resolve_target(self, *, device_hint: str | None = None) -> ResolvedTarget:
        return await self._run(lambda: self.client.resolve_target(device_hint=device_hint))

    async def refresh_state(self, dongle: UsbDongle, descriptor: DeviceDescriptor) -> UsbDongle:
        return await self._run(self.client.refresh_state, dongle, descriptor)

    async def refresh_volume(self, dongle: UsbDongle, descriptor: DeviceDescriptor) -> UsbDongle:
        return await self._run(self.client.refresh_volume, dongle, descriptor)

    async def set_feature(self, dongle: UsbDongle, descriptor: DeviceDescriptor, value: Any) -> UsbDongle:
        return await self._run(self.client.set_feature, dongle, descriptor, value)

    async def volume_up(self, dongle: UsbDongle, descriptor: DeviceDescriptor, steps: int = 1) -> UsbDongle:
        return await self._run(self.client.volume_up, dongle, descriptor, steps)

    async def volume_down(self, dongle: UsbDongle, descriptor: DeviceDescriptor, steps: int = 1) -> UsbDongle:
        return await self._run(self.client.volume_down, dongle, descriptor, steps)

    async def apply_profile(self, dongle: UsbDongle, descriptor: DeviceDescriptor, profile: Profile) -> UsbDongle:
        """Replay ``profile`` on the worker thread.

        When the awaiting task is cancelled mid-replay, the worker stops after
        the command in flight and the raised ``CancelledError`` has the
        worker's :class:`ApplyCancelledError` (holding the applied prefix) as
        its ``__cause__``.
        """
        cancel = threading.Event()
        future = self._executor.submit(self.client.apply_profile, dongle, descriptor, profile, cancel)
        try:
            return await asyncio.wrap_future(future)
        except asyncio.CancelledError as cancelled:
            cancel.set()
            if future.cancelled():
                raise
            try:
                await asyncio.wrap_future(future)
            except DonglectlError as exc:
                raise cancelled from exc
            raise

    def close(self) -> None:
        self._executor.shutdown(wait=True)
