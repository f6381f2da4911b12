"""Dongle repository: the orchestrator between snapshots, codec and transport."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import Any

from donglectl.core import codec
from donglectl.core.device_match import family_for_device, family_for_dongle, hint_matches
from donglectl.core.errors import (
    DeviceSelectionError,
    OutOfRangeError,
    ProtocolMismatchError,
    TransportIoError,
    TransportTimeoutError,
    TransportUnavailableError,
    UnsupportedUsbDongleError,
)
from donglectl.core.family_loader import load_families
from donglectl.core.features import VolumeLevel, feature_key
from donglectl.core.model import (
    DeviceDescriptor,
    DongleFamily,
    GetCommand,
    ResolvedTarget,
    UnsupportedUsbDongle,
    UsbDongle,
)
from donglectl.transports.base import Transport
from donglectl.transports.hid_usb import HIDTransport

LOGGER = logging.getLogger(__name__)

_VOLUME_FEATURES = frozenset({"volume_level", "volume_mode"})


class DongleRepository:
    """Reads and writes dongle state over a scoped transport session.

    Every public operation opens the device, exchanges its reports and closes
    the device again, even on failure. Operations on one repository never
    interleave.
    """

    def __init__(
        self,
        *,
        transport: Transport | None = None,
        families: dict[str, DongleFamily] | None = None,
    ) -> None:
        if families is None:
            loaded = load_families()
            self.families = loaded.families
            self.load_warnings = loaded.warnings
        else:
            self.families = families
            self.load_warnings = ()
        self.transport = transport or HIDTransport()
        self._lock = threading.Lock()

    def list_families(self) -> list[DongleFamily]:
        return sorted(self.families.values(), key=lambda f: f.id)

    def list_devices(self) -> list[DeviceDescriptor]:
        return self.transport.enumerate()

    def resolve_identity(self, descriptor: DeviceDescriptor) -> UsbDongle:
        """Empty snapshot for the family matching ``descriptor``; never touches the device."""
        family = family_for_device(descriptor, self.families)
        if family is None:
            LOGGER.debug(
                "No family for %04x:%04x", descriptor.vendor_id, descriptor.product_id
            )
            return UnsupportedUsbDongle(
                vendor_id=descriptor.vendor_id,
                product_id=descriptor.product_id,
            )
        return family.empty_dongle(descriptor.vendor_id, descriptor.product_id)

    def resolve_target(self, device_hint: str | None = None) -> ResolvedTarget:
        devices = self.list_devices()
        if not devices:
            raise DeviceSelectionError("No USB HID devices found. Ensure your dongle is plugged in.")

        candidates: list[ResolvedTarget] = []
        for device in devices:
            family = family_for_device(device, self.families)
            if family is None:
                continue
            candidates.append(ResolvedTarget(device=device, family=family))

        if device_hint:
            hinted = [c for c in candidates if hint_matches(c.device, c.family, device_hint)]
            if not hinted:
                raise DeviceSelectionError(f"No dongle found matching '{device_hint}'")
            candidates = hinted

        if not candidates:
            raise DeviceSelectionError(
                "No attached device matched any family. Use 'donglectl families' to list supported dongles."
            )

        if len(candidates) > 1:
            candidate_desc = ", ".join(
                f"{c.device.vendor_id:04x}:{c.device.product_id:04x} ({c.device.product_name or c.family.name})"
                for c in candidates
            )
            raise DeviceSelectionError(
                f"Multiple candidate dongles found: {candidate_desc}. Use --device to choose one."
            )

        return candidates[0]

    def family_for(self, dongle: UsbDongle) -> DongleFamily:
        family = family_for_dongle(dongle, self.families)
        if family is None:
            raise UnsupportedUsbDongleError(
                f"Device {dongle.vendor_id:04x}:{dongle.product_id:04x} is not a supported dongle"
            )
        return family

    @contextmanager
    def session(self, descriptor: DeviceDescriptor) -> Iterator[Any]:
        """Open ``descriptor`` for the duration of the block, holding the repository lock."""
        with self._lock:
            handle = self.transport.open(descriptor)
            if handle is None:
                raise TransportUnavailableError(
                    f"Could not open device {descriptor.vendor_id:04x}:{descriptor.product_id:04x}"
                )
            try:
                yield handle
            finally:
                self.transport.close(handle)

    def refresh_state(self, dongle: UsbDongle, descriptor: DeviceDescriptor) -> UsbDongle:
        family = self.family_for(dongle)
        return self._refresh(dongle, descriptor, family, family.get_commands)

    def refresh_volume(self, dongle: UsbDongle, descriptor: DeviceDescriptor) -> UsbDongle:
        """Re-read only the commands carrying volume level or mode."""
        family = self.family_for(dongle)
        commands = tuple(c for c in family.get_commands if _VOLUME_FEATURES & set(c.fields))
        return self._refresh(dongle, descriptor, family, commands)

    def set_feature(self, dongle: UsbDongle, descriptor: DeviceDescriptor, value: Any) -> UsbDongle:
        family = self.family_for(dongle)
        key, value = self._prepare(dongle, family, value)
        with self.session(descriptor) as handle:
            return self._send_set(handle, family, dongle, key, value)

    def send_set(self, handle: Any, dongle: UsbDongle, value: Any) -> UsbDongle:
        """Send one set-command on a handle already opened by :meth:`session`."""
        family = self.family_for(dongle)
        key, value = self._prepare(dongle, family, value)
        return self._send_set(handle, family, dongle, key, value)

    def _refresh(
        self,
        dongle: UsbDongle,
        descriptor: DeviceDescriptor,
        family: DongleFamily,
        commands: tuple[GetCommand, ...],
    ) -> UsbDongle:
        decoded: dict[str, Any] = {}
        with self.session(descriptor) as handle:
            for command in commands:
                decoded.update(self._exchange(handle, family, command))
        try:
            return replace(dongle, **decoded)
        except OutOfRangeError as exc:
            raise ProtocolMismatchError(f"Inconsistent state from {family.name}: {exc}") from exc

    def _exchange(self, handle: Any, family: DongleFamily, command: GetCommand) -> dict[str, Any]:
        report = codec.encode_get(family, command)
        LOGGER.debug("-> %s %s", command.name, command.opcode.hex())
        if not self.transport.send(handle, report, report_id=family.transport.report_id):
            raise TransportIoError(f"Sending '{command.name}' to {family.name} failed")
        response = self.transport.receive(
            handle, family.transport.report_length, family.transport.timeout_s
        )
        if response is None:
            raise TransportTimeoutError(
                f"No answer to '{command.name}' from {family.name} within {family.transport.timeout_s}s"
            )
        LOGGER.debug("<- %s %s", command.name, response[: codec.OPCODE_LENGTH + 12].hex())
        return codec.decode_response(family, command, response)

    def _prepare(self, dongle: UsbDongle, family: DongleFamily, value: Any) -> tuple[str, Any]:
        key = feature_key(value)
        if key not in family.set_opcodes:
            raise UnsupportedUsbDongleError(f"{family.name} does not support setting '{key}'")
        if key == "volume_level":
            value = VolumeLevel.clamp(value.value, dongle.volume_mode_or_none())
        return key, value

    def _send_set(
        self,
        handle: Any,
        family: DongleFamily,
        dongle: UsbDongle,
        key: str,
        value: Any,
    ) -> UsbDongle:
        report = codec.encode_set(family, value)
        LOGGER.debug("-> set %s %s", key, report[: codec.OPCODE_LENGTH + 2].hex())
        if not self.transport.send(handle, report, report_id=family.transport.report_id):
            raise TransportIoError(f"Setting '{key}' on {family.name} failed")

        changes: dict[str, Any] = {key: value}
        if key == "volume_mode":
            changes["volume_level"] = VolumeLevel.clamp(dongle.volume_level.value, value)
        return replace(dongle, **changes)
