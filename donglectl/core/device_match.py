"""Device-to-family matching logic."""

from __future__ import annotations

from donglectl.core.model import DeviceDescriptor, DongleFamily, UsbDongle


def matches_identity(vendor_id: int, product_id: int, family: DongleFamily) -> bool:
    return vendor_id == family.match.vendor_id and product_id in family.match.product_ids


def family_for_device(
    descriptor: DeviceDescriptor,
    families: dict[str, DongleFamily],
) -> DongleFamily | None:
    for family in families.values():
        if matches_identity(descriptor.vendor_id, descriptor.product_id, family):
            return family
    return None


def family_for_dongle(dongle: UsbDongle, families: dict[str, DongleFamily]) -> DongleFamily | None:
    family = families.get(dongle.family_id)
    if family is None or not matches_identity(dongle.vendor_id, dongle.product_id, family):
        return None
    return family


def hint_matches(descriptor: DeviceDescriptor, family: DongleFamily, hint: str) -> bool:
    """Case-insensitive match against product name, family, model, or ``vid:pid``."""
    lowered = hint.lower()
    usb_id = f"{descriptor.vendor_id:04x}:{descriptor.product_id:04x}"
    return (
        lowered == usb_id
        or lowered in descriptor.product_name.lower()
        or lowered in descriptor.serial_number.lower()
        or lowered in family.id.lower()
        or lowered in family.name.lower()
        or lowered in family.model_name.lower()
    )
