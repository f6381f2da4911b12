"""Transport interfaces."""

from __future__ import annotations

from typing import Any, Protocol

from donglectl.core.model import DeviceDescriptor


class Transport(Protocol):
    def enumerate(self) -> list[DeviceDescriptor]:
        """List attached devices the transport can open."""

    def open(self, descriptor: DeviceDescriptor) -> Any | None:
        """Open a connection handle, or return None if the device cannot be opened."""

    def send(self, handle: Any, report: bytes, *, report_id: int = 0) -> bool:
        """Write one fixed-length report; False if the write failed."""

    def receive(self, handle: Any, length: int, timeout_s: float) -> bytes | None:
        """Read one report, or return None when nothing arrives before the timeout."""

    def close(self, handle: Any) -> None:
        """Release a handle returned by ``open``."""
