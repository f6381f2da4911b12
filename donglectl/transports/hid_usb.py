"""USB HID transport implementation using hidapi."""

from __future__ import annotations

import logging
from typing import Any

from donglectl.core.errors import TransportIoError, TransportUnavailableError
from donglectl.core.model import DeviceDescriptor

LOGGER = logging.getLogger(__name__)


def _hid() -> Any:
    try:
        import hid  # type: ignore
    except ImportError as exc:  # pragma: no cover - import failure path
        raise TransportUnavailableError(
            "USB HID transport requires 'hidapi'. Install dependency and retry."
        ) from exc
    return hid


class HIDTransport:
    def enumerate(self) -> list[DeviceDescriptor]:
        hid = _hid()
        entries = sorted(
            hid.enumerate(),
            key=lambda d: (d["vendor_id"], d["product_id"], d.get("interface_number", 0)),
        )

        seen: set[tuple[int, int, str]] = set()
        devices: list[DeviceDescriptor] = []
        for entry in entries:
            serial = entry.get("serial_number") or ""
            key = (entry["vendor_id"], entry["product_id"], serial)
            # One descriptor per physical device.
            if key in seen:
                continue
            seen.add(key)
            devices.append(
                DeviceDescriptor(
                    vendor_id=entry["vendor_id"],
                    product_id=entry["product_id"],
                    path=entry.get("path"),
                    product_name=entry.get("product_string") or "",
                    serial_number=serial,
                )
            )
        return devices

    def open(self, descriptor: DeviceDescriptor) -> Any | None:
        hid = _hid()
        device = hid.device()
        try:
            if descriptor.path:
                device.open_path(descriptor.path)
            else:
                device.open(descriptor.vendor_id, descriptor.product_id)
        except OSError as exc:
            LOGGER.warning(
                "Could not open %04x:%04x: %s", descriptor.vendor_id, descriptor.product_id, exc
            )
            return None
        return device

    def send(self, handle: Any, report: bytes, *, report_id: int = 0) -> bool:
        try:
            written = handle.write([report_id, *report])
        except (OSError, ValueError) as exc:
            LOGGER.debug("HID write failed: %s", exc)
            return False
        return written > 0

    def receive(self, handle: Any, length: int, timeout_s: float) -> bytes | None:
        try:
            data = handle.read(length, int(timeout_s * 1000))
        except OSError as exc:
            raise TransportIoError(f"HID read failed: {exc}") from exc
        return bytes(data) if data else None

    def close(self, handle: Any) -> None:
        try:
            handle.close()
        except OSError as exc:
            LOGGER.warning("HID close failed: %s", exc)
