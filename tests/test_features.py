from __future__ import annotations

import pytest

from donglectl.core.errors import OutOfRangeError
from donglectl.core.features import (
    ChannelBalance,
    DacMode,
    DisplayTimeout,
    Filter,
    FirmwareVersion,
    HardwareMute,
    SampleRate,
    VolumeLevel,
    VolumeMode,
    feature_choices,
    feature_from_setting,
    feature_from_text,
    feature_to_setting,
)


def test_from_id_rejects_unknown_id() -> None:
    assert Filter.from_id(4) is Filter.NON_OVERSAMPLING
    with pytest.raises(OutOfRangeError):
        Filter.from_id(5)


def test_dac_mode_defaults_to_class_ab() -> None:
    assert DacMode.default() is DacMode.CLASS_AB


def test_bounded_values_validate_on_construction() -> None:
    with pytest.raises(OutOfRangeError):
        ChannelBalance(13)
    with pytest.raises(OutOfRangeError):
        DisplayTimeout(5)
    with pytest.raises(OutOfRangeError):
        VolumeLevel(True)
    assert ChannelBalance.clamp(-40) == ChannelBalance(-12)


def test_out_of_range_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        VolumeLevel(121)


def test_volume_clamp_respects_mode() -> None:
    assert VolumeLevel.clamp(90, VolumeMode.S60) == VolumeLevel(60)
    assert VolumeLevel.clamp(-1, VolumeMode.S120) == VolumeLevel(0)
    assert VolumeLevel.clamp(150) == VolumeLevel(120)


@pytest.mark.parametrize(
    ("level", "mode", "percent"),
    [(0, VolumeMode.S120, 0), (60, VolumeMode.S120, 50), (120, VolumeMode.S120, 100), (45, VolumeMode.S60, 75)],
)
def test_volume_percent(level: int, mode: VolumeMode, percent: int) -> None:
    assert VolumeLevel(level).to_percent(mode) == percent


def test_display_values() -> None:
    assert FirmwareVersion(1, 12).display_value == "1.12"
    assert SampleRate().display_value == "N/A"
    assert SampleRate(3).display_value == "96 kHz"
    assert DacMode.CLASS_H.display_value == "Class H"


def test_settings_round_trip() -> None:
    values = [Filter.SLOW_ROLL_OFF_LOW_LATENCY, ChannelBalance(-4), HardwareMute(True), SampleRate(1), FirmwareVersion(2, 0)]
    keys = ["filter", "channel_balance", "hardware_mute", "sample_rate", "firmware_version"]
    for key, value in zip(keys, values):
        assert feature_from_setting(key, feature_to_setting(value)) == value


def test_from_setting_is_strict_about_types() -> None:
    with pytest.raises(OutOfRangeError):
        feature_from_setting("gain", "1")
    with pytest.raises(OutOfRangeError):
        feature_from_setting("hardware_mute", 1)
    with pytest.raises(OutOfRangeError):
        feature_from_setting("nope", 1)


def test_from_text_accepts_names_labels_and_ids() -> None:
    assert feature_from_text("dac_mode", "class-h") is DacMode.CLASS_H
    assert feature_from_text("dac_mode", "Class AB") is DacMode.CLASS_AB
    assert feature_from_text("filter", "4") is Filter.NON_OVERSAMPLING
    assert feature_from_text("spdif_out", "on").enabled is True
    assert feature_from_text("channel_balance", "-3") == ChannelBalance(-3)


def test_from_text_rejects_bad_input() -> None:
    with pytest.raises(OutOfRangeError) as exc:
        feature_from_text("gain", "medium")
    assert "Allowed: low, high" in str(exc.value)
    with pytest.raises(OutOfRangeError):
        feature_from_text("firmware_version", "1.0")
    with pytest.raises(OutOfRangeError):
        feature_from_text("hardware_mute", "maybe")


def test_choices() -> None:
    assert feature_choices("hid_mode") == ("a", "b")
    assert feature_choices("display_timeout") == ("10..60",)
