"""Bounded feature values understood by the supported dongles.

Every value type validates itself on construction, so a snapshot can never hold
an out-of-range feature. ``clamp``/``from_id`` build values from raw input,
``display_value`` is what the UI shows, and ``feature_to_setting`` /
``feature_from_setting`` convert to and from the persisted form used by family
tables and profiles.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from donglectl.core.errors import OutOfRangeError

VOLUME_MIN = 0


class IdEnum(Enum):
    """Enumerated feature whose member value is its wire and persisted id."""

    @classmethod
    def from_id(cls, feature_id: int) -> Any:
        try:
            return cls(feature_id)
        except ValueError as exc:
            raise OutOfRangeError(f"{cls.__name__} has no id {feature_id!r}") from exc

    @classmethod
    def default(cls) -> Any:
        return next(iter(cls))

    @property
    def id(self) -> int:
        return self.value

    @property
    def display_value(self) -> str:
        return _LABELS[self]


class Filter(IdEnum):
    FAST_ROLL_OFF_LOW_LATENCY = 0
    FAST_ROLL_OFF_PHASE_COMPENSATED = 1
    SLOW_ROLL_OFF_LOW_LATENCY = 2
    SLOW_ROLL_OFF_PHASE_COMPENSATED = 3
    NON_OVERSAMPLING = 4


class Gain(IdEnum):
    LOW = 0
    HIGH = 1


class DacMode(IdEnum):
    CLASS_H = 0
    CLASS_AB = 1

    @classmethod
    def default(cls) -> DacMode:
        return cls.CLASS_AB


class HidMode(IdEnum):
    A = 0
    B = 1


class IndicatorState(IdEnum):
    ENABLED = 0
    DISABLED_TEMP = 1
    DISABLED = 2


class VolumeMode(IdEnum):
    S120 = 0
    S60 = 1

    @property
    def steps(self) -> int:
        return _VOLUME_STEPS[self]


_VOLUME_STEPS = {VolumeMode.S120: 120, VolumeMode.S60: 60}

_LABELS: dict[IdEnum, str] = {
    Filter.FAST_ROLL_OFF_LOW_LATENCY: "Fast roll-off, low latency",
    Filter.FAST_ROLL_OFF_PHASE_COMPENSATED: "Fast roll-off, phase-compensated",
    Filter.SLOW_ROLL_OFF_LOW_LATENCY: "Slow roll-off, low latency",
    Filter.SLOW_ROLL_OFF_PHASE_COMPENSATED: "Slow roll-off, phase-compensated",
    Filter.NON_OVERSAMPLING: "Non-oversampling",
    Gain.LOW: "Low",
    Gain.HIGH: "High",
    DacMode.CLASS_H: "Class H",
    DacMode.CLASS_AB: "Class AB",
    HidMode.A: "A",
    HidMode.B: "B",
    IndicatorState.ENABLED: "Enabled",
    IndicatorState.DISABLED_TEMP: "Disabled until replug",
    IndicatorState.DISABLED: "Disabled",
    VolumeMode.S120: "120 steps",
    VolumeMode.S60: "60 steps",
}


@dataclass(frozen=True)
class BoundedInt:
    """Integer feature constrained to ``MIN..MAX``."""

    value: int

    MIN: ClassVar[int] = 0
    MAX: ClassVar[int] = 255
    DEFAULT: ClassVar[int] = 0

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise OutOfRangeError(f"{type(self).__name__} must be an integer, got {self.value!r}")
        if not self.MIN <= self.value <= self.MAX:
            raise OutOfRangeError(
                f"{type(self).__name__} {self.value} outside {self.MIN}..{self.MAX}"
            )

    @classmethod
    def default(cls) -> Any:
        return cls(cls.DEFAULT)

    @classmethod
    def clamp(cls, raw: int) -> Any:
        return cls(max(cls.MIN, min(cls.MAX, int(raw))))

    @property
    def display_value(self) -> int:
        return self.value


@dataclass(frozen=True)
class VolumeLevel(BoundedInt):
    MIN: ClassVar[int] = VOLUME_MIN
    MAX: ClassVar[int] = 120
    DEFAULT: ClassVar[int] = 30

    @classmethod
    def clamp(cls, raw: int, mode: VolumeMode | None = None) -> VolumeLevel:
        upper = mode.steps if mode is not None else cls.MAX
        return cls(max(cls.MIN, min(upper, int(raw))))

    def to_percent(self, mode: VolumeMode) -> int:
        return self.value * 100 // mode.steps


@dataclass(frozen=True)
class ChannelBalance(BoundedInt):
    MIN: ClassVar[int] = -12
    MAX: ClassVar[int] = 12
    DEFAULT: ClassVar[int] = 0


@dataclass(frozen=True)
class DisplayBrightness(BoundedInt):
    MIN: ClassVar[int] = 0
    MAX: ClassVar[int] = 255
    DEFAULT: ClassVar[int] = 96


@dataclass(frozen=True)
class DisplayTimeout(BoundedInt):
    # Seconds.
    MIN: ClassVar[int] = 10
    MAX: ClassVar[int] = 60
    DEFAULT: ClassVar[int] = 30


@dataclass(frozen=True)
class Switch:
    """On/off feature."""

    enabled: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.enabled, bool):
            raise OutOfRangeError(f"{type(self).__name__} must be a boolean, got {self.enabled!r}")

    @classmethod
    def default(cls) -> Any:
        return cls()

    @property
    def display_value(self) -> bool:
        return self.enabled


class DisplayInvert(Switch):
    pass


class HardwareMute(Switch):
    pass


class SpdifOut(Switch):
    pass


_SAMPLE_RATES = {
    0: "44.1 kHz",
    1: "48 kHz",
    2: "88.2 kHz",
    3: "96 kHz",
    4: "176.4 kHz",
    5: "192 kHz",
    6: "352.8 kHz",
    7: "384 kHz",
    8: "705.6 kHz",
    9: "768 kHz",
    10: "DSD64",
    11: "DSD128",
    12: "DSD256",
    255: "N/A",
}


@dataclass(frozen=True)
class SampleRate:
    """Read-only sample rate of the current stream, as a device code."""

    code: int = 255

    def __post_init__(self) -> None:
        if self.code not in _SAMPLE_RATES:
            raise OutOfRangeError(f"Unknown sample rate code {self.code!r}")

    @classmethod
    def default(cls) -> SampleRate:
        return cls()

    @classmethod
    def from_display(cls, text: str) -> SampleRate:
        for code, label in _SAMPLE_RATES.items():
            if label == text:
                return cls(code)
        raise OutOfRangeError(f"Unknown sample rate {text!r}")

    @property
    def display_value(self) -> str:
        return _SAMPLE_RATES[self.code]


@dataclass(frozen=True)
class FirmwareVersion:
    """Read-only firmware version, one byte each for major and minor."""

    major: int = 0
    minor: int = 0

    def __post_init__(self) -> None:
        for part in (self.major, self.minor):
            if isinstance(part, bool) or not isinstance(part, int) or not 0 <= part <= 255:
                raise OutOfRangeError(f"Invalid firmware version part {part!r}")

    @classmethod
    def default(cls) -> FirmwareVersion:
        return cls()

    @classmethod
    def from_display(cls, text: str) -> FirmwareVersion:
        major, sep, minor = text.partition(".")
        if not sep or not major.isdigit() or not minor.isdigit():
            raise OutOfRangeError(f"Invalid firmware version {text!r}")
        return cls(int(major), int(minor))

    @property
    def display_value(self) -> str:
        return f"{self.major}.{self.minor}"


FEATURE_TYPES: dict[str, type] = {
    "channel_balance": ChannelBalance,
    "dac_mode": DacMode,
    "display_brightness": DisplayBrightness,
    "display_invert": DisplayInvert,
    "display_timeout": DisplayTimeout,
    "filter": Filter,
    "firmware_version": FirmwareVersion,
    "gain": Gain,
    "hardware_mute": HardwareMute,
    "hid_mode": HidMode,
    "indicator_state": IndicatorState,
    "sample_rate": SampleRate,
    "spdif_out": SpdifOut,
    "volume_level": VolumeLevel,
    "volume_mode": VolumeMode,
}
FEATURE_KEYS: dict[type, str] = {cls: key for key, cls in FEATURE_TYPES.items()}
READ_ONLY_FEATURES = frozenset({"firmware_version", "sample_rate"})

_TRUE_WORDS = frozenset({"on", "true", "yes", "1", "enabled"})
_FALSE_WORDS = frozenset({"off", "false", "no", "0", "disabled"})


def feature_key(value: Any) -> str:
    try:
        return FEATURE_KEYS[type(value)]
    except KeyError:
        raise OutOfRangeError(f"Not a feature value: {value!r}") from None


def _feature_type(key: str) -> type:
    try:
        return FEATURE_TYPES[key]
    except KeyError:
        raise OutOfRangeError(f"Unknown feature '{key}'") from None


def feature_to_setting(value: Any) -> int | bool | str:
    """Persisted form of a feature: enum id, display number, flag or label."""
    if isinstance(value, IdEnum):
        return value.id
    if isinstance(value, (BoundedInt, Switch, SampleRate, FirmwareVersion)):
        return value.display_value
    raise OutOfRangeError(f"Not a feature value: {value!r}")


def feature_from_setting(key: str, setting: Any) -> Any:
    cls = _feature_type(key)
    if issubclass(cls, IdEnum):
        if isinstance(setting, bool) or not isinstance(setting, int):
            raise OutOfRangeError(f"{key} id must be an integer, got {setting!r}")
        return cls.from_id(setting)
    if issubclass(cls, (SampleRate, FirmwareVersion)):
        if not isinstance(setting, str):
            raise OutOfRangeError(f"{key} must be a string, got {setting!r}")
        return cls.from_display(setting)
    return cls(setting)


def feature_from_text(key: str, text: str) -> Any:
    """Parse user input such as ``high``, ``3`` or ``on`` into a feature value."""
    cls = _feature_type(key)
    if key in READ_ONLY_FEATURES:
        raise OutOfRangeError(f"Feature '{key}' is read-only")
    normalized = text.strip().lower()
    if issubclass(cls, IdEnum):
        for member in cls:
            names = {member.name.lower(), member.name.lower().replace("_", "-"), member.display_value.lower()}
            if normalized in names:
                return member
        if normalized.isdigit():
            return cls.from_id(int(normalized))
        allowed = ", ".join(feature_choices(key))
        raise OutOfRangeError(f"Feature '{key}' does not support value '{text}'. Allowed: {allowed}")
    if issubclass(cls, Switch):
        if normalized in _TRUE_WORDS:
            return cls(True)
        if normalized in _FALSE_WORDS:
            return cls(False)
        raise OutOfRangeError(f"Feature '{key}' expects on/off, got '{text}'")
    try:
        number = int(normalized)
    except ValueError:
        raise OutOfRangeError(f"Feature '{key}' expects an integer, got '{text}'") from None
    return cls(number)


def feature_choices(key: str) -> tuple[str, ...]:
    cls = _feature_type(key)
    if issubclass(cls, IdEnum):
        return tuple(member.name.lower() for member in cls)
    if issubclass(cls, Switch):
        return ("off", "on")
    if issubclass(cls, BoundedInt):
        return (f"{cls.MIN}..{cls.MAX}",)
    return ()
