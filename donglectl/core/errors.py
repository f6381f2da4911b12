"""Domain-specific errors for donglectl."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from donglectl.core.model import UsbDongle


class DonglectlError(Exception):
    """Base error for donglectl."""


class FamilyValidationError(DonglectlError):
    """Raised when a device family file does not conform to schema or semantics."""


class FamilyLoadError(DonglectlError):
    """Raised when reading device family sources fails."""


class DeviceSelectionError(DonglectlError):
    """Raised when the attached devices cannot be narrowed down to one target."""


class ProfileStoreError(DonglectlError):
    """Raised when the profile store cannot be read or written."""


class UnsupportedUsbDongleError(DonglectlError):
    """Raised when a device or profile does not belong to a known family."""


class OutOfRangeError(DonglectlError, ValueError):
    """Raised when a feature value has no valid in-bounds representation."""


class ProtocolMismatchError(DonglectlError):
    """Raised when a device report does not match the expected opcode or shape."""


class TransportError(DonglectlError):
    """Base transport error."""


class TransportUnavailableError(TransportError):
    """Raised when no device is attached or opening it fails."""


class TransportIoError(TransportError):
    """Raised when sending or receiving a report fails."""


class TransportTimeoutError(TransportError):
    """Raised when the device does not answer within the receive timeout."""


class PartialApplyError(DonglectlError):
    """Raised when a profile was applied only up to a failing command.

    ``dongle`` is the snapshot with every feature applied before the failure;
    ``applied`` lists those feature names in order.
    """

    def __init__(
        self,
        message: str,
        *,
        dongle: UsbDongle,
        applied: tuple[str, ...],
        failed: str | None = None,
    ) -> None:
        super().__init__(message)
        self.dongle = dongle
        self.applied = applied
        self.failed = failed


class ApplyCancelledError(PartialApplyError):
    """Raised when a profile apply was cancelled between two commands."""
