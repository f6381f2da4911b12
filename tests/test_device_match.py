from __future__ import annotations

from conftest import DAWN_DESCRIPTOR, KA5_DESCRIPTOR
from donglectl.core.device_match import family_for_device, family_for_dongle, hint_matches
from donglectl.core.model import DeviceDescriptor, UnsupportedUsbDongle


def test_family_for_device_by_usb_ids(families) -> None:
    assert family_for_device(KA5_DESCRIPTOR, families).id == "fiio_ka5"
    assert family_for_device(DAWN_DESCRIPTOR, families).id == "moondrop_dawn"
    assert family_for_device(DeviceDescriptor(vendor_id=0x2972, product_id=0x0056), families) is None


def test_family_for_dongle_checks_identity(families) -> None:
    ka5 = families["fiio_ka5"].empty_dongle(0x2972, 0x0055)
    assert family_for_dongle(ka5, families) is families["fiio_ka5"]
    assert family_for_dongle(families["fiio_ka5"].empty_dongle(0x2972, 0x0099), families) is None
    assert family_for_dongle(UnsupportedUsbDongle(vendor_id=0x2972, product_id=0x0055), families) is None


def test_hint_matches(families) -> None:
    family = families["moondrop_dawn"]
    assert hint_matches(DAWN_DESCRIPTOR, family, "2fc6:f06a")
    assert hint_matches(DAWN_DESCRIPTOR, family, "DAWN")
    assert not hint_matches(DAWN_DESCRIPTOR, family, "ka5")
