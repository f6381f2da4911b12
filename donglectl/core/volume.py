"""Stepwise hardware volume control."""

from __future__ import annotations

import logging

from donglectl.core import codec
from donglectl.core.errors import OutOfRangeError, UnsupportedUsbDongleError
from donglectl.core.features import VOLUME_MIN, VolumeLevel, VolumeMode
from donglectl.core.model import DeviceDescriptor, UsbDongle
from donglectl.core.repository import DongleRepository

LOGGER = logging.getLogger(__name__)


class HardwareVolumeControl:
    def __init__(self, repository: DongleRepository) -> None:
        self._repository = repository

    def step_up(self, dongle: UsbDongle, descriptor: DeviceDescriptor, steps: int = 1) -> UsbDongle:
        return self._step(dongle, descriptor, steps, louder=True)

    def step_down(self, dongle: UsbDongle, descriptor: DeviceDescriptor, steps: int = 1) -> UsbDongle:
        return self._step(dongle, descriptor, steps, louder=False)

    def next_level(self, dongle: UsbDongle, steps: int, *, louder: bool) -> VolumeLevel:
        """Level after moving ``steps`` (capped by the family) toward louder or quieter."""
        if steps < 1:
            raise OutOfRangeError(f"Volume steps must be positive, got {steps}")
        family = self._repository.family_for(dongle)
        mode = self._mode(dongle)

        step = min(steps, family.volume.max_step_size)
        # Raw values grow with loudness only on ascending families.
        delta = step if louder == family.volume.ascending else -step
        raw = codec.volume_to_raw(family, dongle.volume_level) + delta
        return codec.volume_from_raw(family, max(VOLUME_MIN, min(mode.steps, raw)))

    def volume_percent(self, dongle: UsbDongle) -> str:
        mode = self._mode(dongle)
        return f"{dongle.volume_level.to_percent(mode)}%"

    def _step(self, dongle: UsbDongle, descriptor: DeviceDescriptor, steps: int, *, louder: bool) -> UsbDongle:
        level = self.next_level(dongle, steps, louder=louder)
        if level == dongle.volume_level:
            LOGGER.debug("Volume already at %d, nothing to send", level.value)
            return dongle
        return self._repository.set_feature(dongle, descriptor, level)

    @staticmethod
    def _mode(dongle: UsbDongle) -> VolumeMode:
        mode = dongle.volume_mode_or_none()
        if mode is None:
            raise UnsupportedUsbDongleError(f"{dongle.model_name} has no hardware volume")
        return mode
