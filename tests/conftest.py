from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from donglectl.core.family_loader import load_families
from donglectl.core.model import DeviceDescriptor, DongleFamily

KA5_DESCRIPTOR = DeviceDescriptor(
    vendor_id=0x2972, product_id=0x0055, path=b"/dev/hidraw3", product_name="FiiO KA5"
)
DAWN_DESCRIPTOR = DeviceDescriptor(
    vendor_id=0x2FC6, product_id=0xF06A, path=b"/dev/hidraw4", product_name="MOONDROP Dawn Pro"
)


def report(opcode_hex: str, fields: dict[int, int] | None = None, length: int = 64) -> bytes:
    data = bytearray(length)
    data[:3] = bytes.fromhex(opcode_hex)
    for offset, byte in (fields or {}).items():
        data[offset] = byte
    return bytes(data)


# Device answers for a KA5 at firmware 1.2, 96 kHz, volume 45 of 120.
KA5_RESPONSES = {
    bytes.fromhex("c7a5a0"): report("c7a5a0", {3: 1, 4: 2}),
    bytes.fromhex("c7a5a1"): report("c7a5a1", {3: 3}),
    bytes.fromhex("c7a5a2"): report("c7a5a2", {3: 45}),
    bytes.fromhex("c7a5a3"): report("c7a5a3", {3: 2}),
    bytes.fromhex("c7a5a4"): report(
        "c7a5a4",
        {3: 1, 4: 0, 5: 1, 6: 0xFD, 7: 0, 8: 20, 9: 1, 10: 200, 11: 1, 12: 0},
    ),
}

# Dawn Pro: filter 1, high gain, indicator off, raw 20 (level 40 of 60).
DAWN_RESPONSES = {
    bytes.fromhex("c0a5a3"): report("c0a5a3", {3: 1, 4: 1, 5: 2, 6: 20}),
}


class FakeTransport:
    """Records every call; answers each get with the report keyed by its opcode."""

    def __init__(
        self,
        responses: dict[bytes, bytes] | None = None,
        *,
        devices: list[DeviceDescriptor] | None = None,
        fail_send_at: int | None = None,
        open_ok: bool = True,
    ) -> None:
        self.responses = dict(responses or {})
        self.devices = list(devices or [])
        self.fail_send_at = fail_send_at
        self.open_ok = open_ok
        self.calls: list[tuple[str, Any]] = []
        self.sent: list[bytes] = []

    def enumerate(self) -> list[DeviceDescriptor]:
        self.calls.append(("enumerate", None))
        return list(self.devices)

    def open(self, descriptor: DeviceDescriptor) -> object | None:
        self.calls.append(("open", descriptor))
        return object() if self.open_ok else None

    def send(self, handle: object, report: bytes, *, report_id: int = 0) -> bool:
        self.calls.append(("send", report))
        self.sent.append(report)
        return len(self.sent) != self.fail_send_at

    def receive(self, handle: object, length: int, timeout_s: float) -> bytes | None:
        self.calls.append(("receive", length))
        return self.responses.get(self.sent[-1][:3])

    def close(self, handle: object) -> None:
        self.calls.append(("close", None))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture(autouse=True)
def isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return tmp_path


@pytest.fixture
def families(isolated_xdg: Path) -> dict[str, DongleFamily]:
    return load_families().families
