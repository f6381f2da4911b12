"""Command report codec.

Pure functions with no transport state. A report is the 3-byte opcode, the
feature payload, and zero padding up to the family's report length. Telemetry
responses echo the opcode of the get-command that requested them and carry
each feature at a fixed offset declared by the family table.
"""

from __future__ import annotations

import struct
from typing import Any

from donglectl.core.errors import OutOfRangeError, ProtocolMismatchError, UnsupportedUsbDongleError
from donglectl.core.features import (
    FEATURE_TYPES,
    BoundedInt,
    ChannelBalance,
    FirmwareVersion,
    IdEnum,
    SampleRate,
    Switch,
    VolumeLevel,
    feature_key,
)
from donglectl.core.model import DongleFamily, GetCommand

OPCODE_LENGTH = 3
_TWO_BYTE_FIELDS = frozenset({"firmware_version"})


def field_width(key: str) -> int:
    return 2 if key in _TWO_BYTE_FIELDS else 1


def _volume_scale(family: DongleFamily) -> int:
    mode = family.fixed_volume_mode
    if mode is None:
        raise UnsupportedUsbDongleError(f"{family.name} has no fixed volume scale")
    return mode.steps


def volume_to_raw(family: DongleFamily, level: VolumeLevel) -> int:
    """Device value for a volume level; descending families count attenuation."""
    if family.volume.ascending:
        return level.value
    scale = _volume_scale(family)
    if level.value > scale:
        raise OutOfRangeError(f"Volume level {level.value} exceeds the {scale}-step scale of {family.name}")
    return scale - level.value


def volume_from_raw(family: DongleFamily, raw: int) -> VolumeLevel:
    if family.volume.ascending:
        return VolumeLevel(raw)
    return VolumeLevel(_volume_scale(family) - raw)


def _pad(family: DongleFamily, body: bytes) -> bytes:
    return body.ljust(family.transport.report_length, b"\x00")


def _encode_field(family: DongleFamily, key: str, value: Any) -> bytes:
    if key == "volume_level":
        return bytes([volume_to_raw(family, value)])
    if isinstance(value, ChannelBalance):
        return struct.pack("b", value.value)
    if isinstance(value, FirmwareVersion):
        return bytes([value.major, value.minor])
    if isinstance(value, SampleRate):
        return bytes([value.code])
    if isinstance(value, IdEnum):
        return bytes([value.id])
    if isinstance(value, Switch):
        return b"\x01" if value.enabled else b"\x00"
    if isinstance(value, BoundedInt):
        return bytes([value.value])
    raise OutOfRangeError(f"Cannot encode {key}={value!r}")


def _decode_field(family: DongleFamily, key: str, data: bytes) -> Any:
    cls = FEATURE_TYPES[key]
    if key == "volume_level":
        return volume_from_raw(family, data[0])
    if cls is ChannelBalance:
        return ChannelBalance(struct.unpack("b", data[:1])[0])
    if cls is FirmwareVersion:
        return FirmwareVersion(data[0], data[1])
    if cls is SampleRate:
        return SampleRate(data[0])
    if issubclass(cls, IdEnum):
        return cls.from_id(data[0])
    if issubclass(cls, Switch):
        if data[0] not in (0, 1):
            raise OutOfRangeError(f"{key} flag must be 0 or 1, got {data[0]}")
        return cls(data[0] == 1)
    return cls(data[0])


def encode_get(family: DongleFamily, command: GetCommand) -> bytes:
    return _pad(family, command.opcode)


def encode_set(family: DongleFamily, value: Any) -> bytes:
    key = feature_key(value)
    opcode = family.set_opcodes.get(key)
    if opcode is None:
        raise UnsupportedUsbDongleError(f"{family.name} does not support setting '{key}'")
    return _pad(family, opcode + _encode_field(family, key, value))


def decode_fields(
    family: DongleFamily,
    opcode: bytes,
    fields: dict[str, int],
    report: bytes | None,
) -> dict[str, Any]:
    """Decode the features at ``fields`` offsets from a report echoing ``opcode``."""
    needed = max(offset + field_width(key) for key, offset in fields.items())
    if report is None or len(report) < needed:
        size = 0 if report is None else len(report)
        raise ProtocolMismatchError(
            f"Report for opcode {opcode.hex()} too short: {size} bytes, need {needed}"
        )
    if report[:OPCODE_LENGTH] != opcode:
        raise ProtocolMismatchError(
            f"Expected echo of opcode {opcode.hex()}, got {report[:OPCODE_LENGTH].hex()}"
        )

    decoded: dict[str, Any] = {}
    for key, offset in fields.items():
        data = report[offset : offset + field_width(key)]
        try:
            decoded[key] = _decode_field(family, key, data)
        except OutOfRangeError as exc:
            raise ProtocolMismatchError(f"Invalid {key} in report {opcode.hex()}: {exc}") from exc
    return decoded


def decode_response(family: DongleFamily, command: GetCommand, report: bytes | None) -> dict[str, Any]:
    return decode_fields(family, command.opcode, command.fields, report)


def decode_set(family: DongleFamily, key: str, report: bytes | None) -> Any:
    """Decode the payload of a set-command report (or its echo)."""
    opcode = family.set_opcodes.get(key)
    if opcode is None:
        raise UnsupportedUsbDongleError(f"{family.name} does not support setting '{key}'")
    return decode_fields(family, opcode, {key: OPCODE_LENGTH}, report)[key]
