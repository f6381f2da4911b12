from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path

import pytest

from conftest import DAWN_DESCRIPTOR, KA5_DESCRIPTOR, KA5_RESPONSES, FakeTransport
from donglectl.core.errors import (
    ApplyCancelledError,
    OutOfRangeError,
    PartialApplyError,
    ProfileStoreError,
    TransportIoError,
    UnsupportedUsbDongleError,
)
from donglectl.core.features import ChannelBalance, DacMode, Filter, Gain, HidMode, VolumeLevel, VolumeMode
from donglectl.core.profile_store import JSONProfileStore
from donglectl.core.profiles import APPLY_ORDER, ProfileEngine
from donglectl.core.repository import DongleRepository


def _engine(families, transport: FakeTransport, tmp_path: Path) -> tuple[ProfileEngine, DongleRepository]:
    repository = DongleRepository(transport=transport, families=families)
    return ProfileEngine(repository, JSONProfileStore(tmp_path / "profiles.json")), repository


def _ka5_state(repository: DongleRepository):
    return repository.refresh_state(repository.resolve_identity(KA5_DESCRIPTOR), KA5_DESCRIPTOR)


def test_capture_projects_every_feature(families, tmp_path: Path) -> None:
    engine, repository = _engine(families, FakeTransport(KA5_RESPONSES), tmp_path)
    profile = engine.capture(_ka5_state(repository), "Evening")

    assert profile.name == "Evening"
    assert (profile.vendor_id, profile.product_id) == (0x2972, 0x0055)
    assert profile.filter_id == 2
    assert profile.channel_balance == -3
    assert profile.spdif_out_enabled is True
    assert profile.firmware_version == "1.2"
    assert profile.sample_rate == "96 kHz"
    assert profile.volume_level == 45
    assert profile.indicator_state_id is None


def test_apply_sends_in_fixed_order(families, tmp_path: Path) -> None:
    transport = FakeTransport()
    engine, repository = _engine(families, transport, tmp_path)
    dongle = repository.resolve_identity(KA5_DESCRIPTOR)
    profile = engine.capture(replace(dongle, gain=Gain.HIGH, volume_level=VolumeLevel(80)), "Loud")

    updated = engine.apply_profile(dongle, KA5_DESCRIPTOR, profile)
    assert updated.gain is Gain.HIGH
    assert updated.volume_level == VolumeLevel(80)

    opcodes = [r[2] for r in transport.sent]
    family = families["fiio_ka5"]
    expected = [family.set_opcodes[key][2] for key in APPLY_ORDER if key in family.set_opcodes]
    assert opcodes == expected
    assert transport.call_names().count("open") == 1
    assert transport.call_names()[-1] == "close"


def test_capture_then_apply_is_idempotent(families, tmp_path: Path) -> None:
    engine, repository = _engine(families, FakeTransport(KA5_RESPONSES), tmp_path)
    dongle = _ka5_state(repository)

    assert engine.apply_profile(dongle, KA5_DESCRIPTOR, engine.capture(dongle, "Same")) == dongle


def test_apply_mismatched_profile_sends_nothing(families, tmp_path: Path) -> None:
    transport = FakeTransport()
    engine, repository = _engine(families, transport, tmp_path)
    ka5 = repository.resolve_identity(KA5_DESCRIPTOR)
    dawn_profile = engine.capture(repository.resolve_identity(DAWN_DESCRIPTOR), "Dawn")

    with pytest.raises(UnsupportedUsbDongleError):
        engine.apply_profile(ka5, KA5_DESCRIPTOR, dawn_profile)
    assert transport.calls == []


def test_apply_invalid_field_sends_nothing(families, tmp_path: Path) -> None:
    transport = FakeTransport()
    engine, repository = _engine(families, transport, tmp_path)
    dongle = repository.resolve_identity(KA5_DESCRIPTOR)
    profile = engine.capture(dongle, "Broken")

    with pytest.raises(OutOfRangeError):
        engine.apply_profile(dongle, KA5_DESCRIPTOR, replace(profile, display_timeout=3))
    with pytest.raises(OutOfRangeError):
        engine.apply_profile(dongle, KA5_DESCRIPTOR, replace(profile, volume_mode_id=1, volume_level=100))
    with pytest.raises(OutOfRangeError):
        engine.apply_profile(dongle, KA5_DESCRIPTOR, replace(profile, gain_id=None))
    assert transport.calls == []


def test_partial_apply_keeps_applied_prefix(families, tmp_path: Path) -> None:
    transport = FakeTransport(fail_send_at=4)
    engine, repository = _engine(families, transport, tmp_path)
    dongle = repository.resolve_identity(KA5_DESCRIPTOR)
    target = replace(
        dongle,
        filter=Filter.NON_OVERSAMPLING,
        gain=Gain.HIGH,
        channel_balance=ChannelBalance(5),
        dac_mode=DacMode.CLASS_H,
    )

    with pytest.raises(PartialApplyError) as exc:
        engine.apply_profile(dongle, KA5_DESCRIPTOR, engine.capture(target, "Partial"))

    err = exc.value
    assert err.applied == ("filter", "gain", "channel_balance")
    assert err.failed == "dac_mode"
    assert isinstance(err.__cause__, TransportIoError)
    assert err.dongle == replace(
        dongle, filter=Filter.NON_OVERSAMPLING, gain=Gain.HIGH, channel_balance=ChannelBalance(5)
    )
    assert len(transport.sent) == 4
    assert transport.call_names()[-1] == "close"


def test_cancelled_apply_stops_between_commands(families, tmp_path: Path) -> None:
    cancel = threading.Event()

    class CancellingTransport(FakeTransport):
        def send(self, handle, report, *, report_id=0):
            if len(self.sent) == 1:
                cancel.set()
            return super().send(handle, report, report_id=report_id)

    transport = CancellingTransport()
    engine, repository = _engine(families, transport, tmp_path)
    dongle = repository.resolve_identity(KA5_DESCRIPTOR)
    profile = engine.capture(replace(dongle, filter=Filter.NON_OVERSAMPLING, gain=Gain.HIGH), "Cancel")

    with pytest.raises(ApplyCancelledError) as exc:
        engine.apply_profile(dongle, KA5_DESCRIPTOR, profile, cancel)
    assert exc.value.applied == ("filter", "gain")
    assert exc.value.dongle.gain is Gain.HIGH
    assert len(transport.sent) == 2


def test_default_profile_keeps_hid_mode(families, tmp_path: Path) -> None:
    engine, repository = _engine(families, FakeTransport(KA5_RESPONSES), tmp_path)
    dongle = _ka5_state(repository)
    assert dongle.hid_mode is HidMode.B

    profile = engine.default_profile(dongle)
    assert profile.hid_mode_id == HidMode.B.id
    assert profile.dac_mode_id == DacMode.CLASS_AB.id
    assert profile.volume_level == 30
    assert profile.volume_mode_id == VolumeMode.S120.id


def test_profiles_persist_through_store(families, tmp_path: Path) -> None:
    engine, repository = _engine(families, FakeTransport(), tmp_path)
    dongle = repository.resolve_identity(KA5_DESCRIPTOR)

    engine.save_profile(engine.capture(dongle, "b"))
    engine.save_profile(engine.capture(dongle, "a"))
    assert [p.name for p in engine.list_profiles(dongle)] == ["a", "b"]

    engine.delete_profile(engine.capture(dongle, "a"))
    assert [p.name for p in engine.list_profiles(dongle)] == ["b"]
    assert engine.list_profiles(repository.resolve_identity(DAWN_DESCRIPTOR)) == []


def test_unnamed_profile_rejected_and_store_stays_usable(families, tmp_path: Path) -> None:
    engine, repository = _engine(families, FakeTransport(), tmp_path)
    dongle = repository.resolve_identity(KA5_DESCRIPTOR)
    engine.save_profile(engine.capture(dongle, "Desk"))

    with pytest.raises(ProfileStoreError):
        engine.save_profile(engine.capture(dongle, ""))
    assert [p.name for p in engine.list_profiles(dongle)] == ["Desk"]
