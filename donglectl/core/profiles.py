"""Profile capture, replay and persistence."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any

from donglectl.core.errors import (
    ApplyCancelledError,
    OutOfRangeError,
    PartialApplyError,
    TransportError,
    UnsupportedUsbDongleError,
)
from donglectl.core.features import feature_from_setting, feature_to_setting
from donglectl.core.model import PROFILE_FIELDS, DeviceDescriptor, DongleFamily, Profile, UsbDongle
from donglectl.core.profile_store import JSONProfileStore, ProfileStore
from donglectl.core.repository import DongleRepository

LOGGER = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "Default"

# Replay order. Volume mode precedes volume level so the level is clamped
# against the mode being applied.
APPLY_ORDER: tuple[str, ...] = (
    "filter",
    "gain",
    "channel_balance",
    "dac_mode",
    "hardware_mute",
    "spdif_out",
    "display_brightness",
    "display_timeout",
    "display_invert",
    "indicator_state",
    "hid_mode",
    "volume_mode",
    "volume_level",
)


class ProfileEngine:
    def __init__(self, repository: DongleRepository, store: ProfileStore | None = None) -> None:
        self._repository = repository
        self._store = store or JSONProfileStore()

    @staticmethod
    def capture(dongle: UsbDongle, name: str) -> Profile:
        settings = {
            PROFILE_FIELDS[key]: feature_to_setting(value) for key, value in dongle.features().items()
        }
        return Profile(name=name, vendor_id=dongle.vendor_id, product_id=dongle.product_id, **settings)

    def default_profile(self, dongle: UsbDongle) -> Profile:
        """Factory settings of the dongle's family, keeping its current HID mode."""
        family = self._repository.family_for(dongle)
        factory = family.empty_dongle(dongle.vendor_id, dongle.product_id)
        if "hid_mode" in factory.features():
            factory = replace(factory, hid_mode=dongle.hid_mode)
        return self.capture(factory, DEFAULT_PROFILE_NAME)

    def apply_profile(
        self,
        dongle: UsbDongle,
        descriptor: DeviceDescriptor,
        profile: Profile,
        cancel: threading.Event | None = None,
    ) -> UsbDongle:
        """Replay ``profile`` onto the device, one set-command per feature.

        Stops at the first failing command and raises :class:`PartialApplyError`
        whose ``dongle`` reflects exactly the commands that succeeded. Nothing
        already applied is rolled back.
        """
        family = self._repository.family_for(dongle)
        if (profile.vendor_id, profile.product_id) != (dongle.vendor_id, dongle.product_id):
            raise UnsupportedUsbDongleError(
                f"Profile '{profile.name}' belongs to {profile.vendor_id:04x}:{profile.product_id:04x}, "
                f"not {dongle.vendor_id:04x}:{dongle.product_id:04x}"
            )
        values = self._profile_values(family, profile)

        current = dongle
        applied: list[str] = []
        with self._repository.session(descriptor) as handle:
            for key, value in values:
                if cancel is not None and cancel.is_set():
                    LOGGER.info("Applying profile '%s' cancelled after %d commands", profile.name, len(applied))
                    raise ApplyCancelledError(
                        f"Applying profile '{profile.name}' was cancelled before '{key}'",
                        dongle=current,
                        applied=tuple(applied),
                        failed=key,
                    )
                try:
                    current = self._repository.send_set(handle, current, value)
                except TransportError as exc:
                    raise PartialApplyError(
                        f"Applying profile '{profile.name}' failed at '{key}': {exc}",
                        dongle=current,
                        applied=tuple(applied),
                        failed=key,
                    ) from exc
                applied.append(key)

        LOGGER.debug("Applied profile '%s': %s", profile.name, ", ".join(applied))
        return current

    def list_profiles(self, dongle: UsbDongle) -> list[Profile]:
        return self._store.list_profiles(dongle.vendor_id, dongle.product_id)

    def save_profile(self, profile: Profile) -> None:
        self._store.upsert(profile)

    def delete_profile(self, profile: Profile) -> None:
        self._store.delete(profile)

    @staticmethod
    def _profile_values(family: DongleFamily, profile: Profile) -> list[tuple[str, Any]]:
        values: list[tuple[str, Any]] = []
        for key in APPLY_ORDER:
            if key not in family.set_opcodes:
                continue
            setting = getattr(profile, PROFILE_FIELDS[key])
            if setting is None:
                raise OutOfRangeError(f"Profile '{profile.name}' has no value for '{key}'")
            values.append((key, feature_from_setting(key, setting)))

        converted = dict(values)
        mode = converted.get("volume_mode", family.fixed_volume_mode)
        level = converted.get("volume_level")
        if mode is not None and level is not None and level.value > mode.steps:
            raise OutOfRangeError(
                f"Profile '{profile.name}' volume level {level.value} exceeds {mode.steps} steps"
            )
        return values
