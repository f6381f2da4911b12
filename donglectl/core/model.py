"""Core data models used across loader, repository, profiles, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar

from donglectl.core.errors import OutOfRangeError
from donglectl.core.features import (
    ChannelBalance,
    DacMode,
    DisplayBrightness,
    DisplayInvert,
    DisplayTimeout,
    Filter,
    FirmwareVersion,
    Gain,
    HardwareMute,
    HidMode,
    IndicatorState,
    SampleRate,
    SpdifOut,
    VolumeLevel,
    VolumeMode,
)

_IDENTITY_FIELDS = frozenset({"vendor_id", "product_id", "model_name"})


@dataclass(frozen=True)
class DeviceDescriptor:
    vendor_id: int
    product_id: int
    path: bytes | None = None
    product_name: str = ""
    serial_number: str = ""


@dataclass(frozen=True)
class UsbDongle:
    """Immutable snapshot of one attached dongle."""

    vendor_id: int
    product_id: int
    model_name: str

    family_id: ClassVar[str] = ""
    fixed_volume_mode: ClassVar[VolumeMode | None] = None

    def __post_init__(self) -> None:
        level = getattr(self, "volume_level", None)
        mode = self.volume_mode_or_none()
        if level is not None and mode is not None and level.value > mode.steps:
            raise OutOfRangeError(
                f"Volume level {level.value} exceeds {mode.steps} steps of {mode.name}"
            )

    @classmethod
    def feature_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.name not in _IDENTITY_FIELDS)

    def features(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.feature_names()}

    def volume_mode_or_none(self) -> VolumeMode | None:
        mode = getattr(self, "volume_mode", None)
        return mode if mode is not None else self.fixed_volume_mode


@dataclass(frozen=True)
class UnsupportedUsbDongle(UsbDongle):
    model_name: str = "Unsupported"

    family_id: ClassVar[str] = "unsupported"


@dataclass(frozen=True)
class FiioKa5(UsbDongle):
    model_name: str = "KA5"
    channel_balance: ChannelBalance = field(default_factory=ChannelBalance.default)
    dac_mode: DacMode = DacMode.CLASS_AB
    display_brightness: DisplayBrightness = field(default_factory=DisplayBrightness.default)
    display_invert: DisplayInvert = field(default_factory=DisplayInvert)
    display_timeout: DisplayTimeout = field(default_factory=DisplayTimeout.default)
    filter: Filter = Filter.FAST_ROLL_OFF_LOW_LATENCY
    firmware_version: FirmwareVersion = field(default_factory=FirmwareVersion)
    gain: Gain = Gain.LOW
    hardware_mute: HardwareMute = field(default_factory=HardwareMute)
    hid_mode: HidMode = HidMode.A
    sample_rate: SampleRate = field(default_factory=SampleRate)
    spdif_out: SpdifOut = field(default_factory=SpdifOut)
    volume_level: VolumeLevel = field(default_factory=VolumeLevel.default)
    volume_mode: VolumeMode = VolumeMode.S120

    family_id: ClassVar[str] = "fiio_ka5"


@dataclass(frozen=True)
class MoondropDawn(UsbDongle):
    model_name: str = "Dawn Pro"
    filter: Filter = Filter.FAST_ROLL_OFF_LOW_LATENCY
    gain: Gain = Gain.LOW
    indicator_state: IndicatorState = IndicatorState.ENABLED
    volume_level: VolumeLevel = field(default_factory=VolumeLevel.default)

    family_id: ClassVar[str] = "moondrop_dawn"
    fixed_volume_mode: ClassVar[VolumeMode | None] = VolumeMode.S60


DONGLE_TYPES: dict[str, type[UsbDongle]] = {
    FiioKa5.family_id: FiioKa5,
    MoondropDawn.family_id: MoondropDawn,
}


@dataclass(frozen=True)
class MatchRules:
    vendor_id: int
    product_ids: tuple[int, ...]


@dataclass(frozen=True)
class TransportSpec:
    report_length: int = 64
    report_id: int = 0
    timeout_s: float = 1.0


@dataclass(frozen=True)
class VolumePolicy:
    ascending: bool = True
    max_step_size: int = 1


@dataclass(frozen=True)
class GetCommand:
    """One telemetry request and where each feature sits in its response."""

    name: str
    opcode: bytes
    fields: dict[str, int]


@dataclass(frozen=True)
class DongleFamily:
    id: str
    name: str
    model_name: str
    match: MatchRules
    transport: TransportSpec
    volume: VolumePolicy
    get_commands: tuple[GetCommand, ...]
    set_opcodes: dict[str, bytes]
    defaults: dict[str, Any]

    @property
    def dongle_type(self) -> type[UsbDongle]:
        return DONGLE_TYPES[self.id]

    @property
    def fixed_volume_mode(self) -> VolumeMode | None:
        return self.dongle_type.fixed_volume_mode

    def empty_dongle(self, vendor_id: int, product_id: int) -> UsbDongle:
        return self.dongle_type(
            vendor_id=vendor_id,
            product_id=product_id,
            model_name=self.model_name,
            **self.defaults,
        )


@dataclass(frozen=True)
class Profile:
    """Named, persisted full feature snapshot for one device family."""

    name: str
    vendor_id: int
    product_id: int
    channel_balance: int | None = None
    dac_mode_id: int | None = None
    display_brightness: int | None = None
    display_invert_enabled: bool | None = None
    display_timeout: int | None = None
    filter_id: int | None = None
    firmware_version: str | None = None
    gain_id: int | None = None
    hardware_mute_enabled: bool | None = None
    hid_mode_id: int | None = None
    indicator_state_id: int | None = None
    sample_rate: str | None = None
    spdif_out_enabled: bool | None = None
    volume_level: int | None = None
    volume_mode_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Profile:
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


# Feature name -> Profile attribute holding its persisted form.
PROFILE_FIELDS: dict[str, str] = {
    "channel_balance": "channel_balance",
    "dac_mode": "dac_mode_id",
    "display_brightness": "display_brightness",
    "display_invert": "display_invert_enabled",
    "display_timeout": "display_timeout",
    "filter": "filter_id",
    "firmware_version": "firmware_version",
    "gain": "gain_id",
    "hardware_mute": "hardware_mute_enabled",
    "hid_mode": "hid_mode_id",
    "indicator_state": "indicator_state_id",
    "sample_rate": "sample_rate",
    "spdif_out": "spdif_out_enabled",
    "volume_level": "volume_level",
    "volume_mode": "volume_mode_id",
}


@dataclass(frozen=True)
class ResolvedTarget:
    device: DeviceDescriptor
    family: DongleFamily
