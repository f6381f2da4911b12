"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from typing import Any

import typer

from donglectl.api import Client
from donglectl.core.device_match import family_for_device
from donglectl.core.errors import DonglectlError, PartialApplyError, ProfileStoreError
from donglectl.core.features import feature_choices, feature_from_text
from donglectl.core.model import DeviceDescriptor, Profile, UsbDongle

app = typer.Typer(help="USB DAC dongle control over HID reports")
volume_app = typer.Typer(help="Step the hardware volume")
profile_app = typer.Typer(help="Manage saved profiles")
app.add_typer(volume_app, name="volume")
app.add_typer(profile_app, name="profile")

DEVICE_OPTION = typer.Option(None, "--device", help="vid:pid, product name or family")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log device traffic")) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


def _build_client() -> Client:
    client = Client()
    for warning in getattr(client, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return client


def _connect(client: Client, device: str | None) -> tuple[UsbDongle, DeviceDescriptor]:
    target = client.resolve_target(device_hint=device)
    dongle = client.resolve_identity(target.device)
    return client.refresh_state(dongle, target.device), target.device


def _display(value: Any) -> str:
    shown = value.display_value
    if isinstance(shown, bool):
        return "on" if shown else "off"
    return str(shown)


def _find_profile(client: Client, dongle: UsbDongle, name: str) -> Profile:
    for profile in client.list_profiles(dongle):
        if profile.name == name:
            return profile
    raise ProfileStoreError(f"No profile named '{name}' for {dongle.model_name}")


def _fail(exc: DonglectlError) -> typer.Exit:
    typer.echo(f"Error: {exc}", err=True)
    if isinstance(exc, PartialApplyError) and exc.applied:
        typer.echo(f"Applied before failure: {', '.join(exc.applied)}", err=True)
    return typer.Exit(code=1)


@app.command("families")
def list_families() -> None:
    """List supported dongle families and their features."""
    try:
        client = _build_client()
        families = client.list_families()
        if not families:
            typer.echo("No device families loaded")
            raise typer.Exit(code=1)

        for family in families:
            product_ids = ", ".join(f"{pid:04x}" for pid in family.match.product_ids)
            typer.echo(f"{family.id}: {family.name} ({family.match.vendor_id:04x}:{product_ids})")
            for feature in family.dongle_type.feature_names():
                access = "rw" if feature in family.set_opcodes else "ro"
                typer.echo(f"  {feature} [{access}]")
    except DonglectlError as exc:
        raise _fail(exc) from None


@app.command("devices")
def list_devices() -> None:
    """List attached USB HID devices and the matched family."""
    try:
        client = _build_client()
        devices = client.list_devices()
        if not devices:
            typer.echo("No USB HID devices found")
            return

        families = {family.id: family for family in client.list_families()}
        for device in devices:
            family = family_for_device(device, families)
            matched = family.id if family else "<no-match>"
            name = device.product_name or "<unknown-device>"
            typer.echo(f"{device.vendor_id:04x}:{device.product_id:04x} {name} -> {matched}")
    except DonglectlError as exc:
        raise _fail(exc) from None


@app.command("state")
def show_state(device: str | None = DEVICE_OPTION) -> None:
    """Read and print every feature of the target dongle."""
    try:
        client = _build_client()
        dongle, descriptor = _connect(client, device)
        typer.echo(f"{dongle.model_name} ({descriptor.vendor_id:04x}:{descriptor.product_id:04x})")
        for key, value in dongle.features().items():
            typer.echo(f"  {key}: {_display(value)}")
        typer.echo(f"  volume: {client.volume_percent(dongle)}")
    except DonglectlError as exc:
        raise _fail(exc) from None


@app.command("set")
def set_feature(
    feature: str,
    value: str | None = typer.Argument(None),
    device: str | None = DEVICE_OPTION,
) -> None:
    """Set FEATURE to VALUE on the target dongle.

    If VALUE is omitted, prints the accepted values for FEATURE.
    """
    try:
        if value is None:
            typer.echo(f"Accepted values for '{feature}': {', '.join(feature_choices(feature))}")
            return
        parsed = feature_from_text(feature, value)
        client = _build_client()
        dongle, descriptor = _connect(client, device)
        updated = client.set_feature(dongle, descriptor, parsed)
        typer.echo(f"Set {feature}={_display(getattr(updated, feature))} on {updated.model_name}")
    except DonglectlError as exc:
        raise _fail(exc) from None


def _step_volume(louder: bool, steps: int, device: str | None) -> None:
    try:
        client = _build_client()
        target = client.resolve_target(device_hint=device)
        dongle = client.refresh_volume(client.resolve_identity(target.device), target.device)
        if louder:
            updated = client.volume_up(dongle, target.device, steps)
        else:
            updated = client.volume_down(dongle, target.device, steps)
        typer.echo(f"Volume {updated.volume_level.value} ({client.volume_percent(updated)})")
    except DonglectlError as exc:
        raise _fail(exc) from None


@volume_app.command("up")
def volume_up(
    steps: int = typer.Option(1, "--steps", min=1, help="Steps to move, capped per family"),
    device: str | None = DEVICE_OPTION,
) -> None:
    """Raise the volume."""
    _step_volume(True, steps, device)


@volume_app.command("down")
def volume_down(
    steps: int = typer.Option(1, "--steps", min=1, help="Steps to move, capped per family"),
    device: str | None = DEVICE_OPTION,
) -> None:
    """Lower the volume."""
    _step_volume(False, steps, device)


@profile_app.command("list")
def list_profiles(device: str | None = DEVICE_OPTION) -> None:
    """List saved profiles for the target dongle."""
    try:
        client = _build_client()
        target = client.resolve_target(device_hint=device)
        profiles = client.list_profiles(client.resolve_identity(target.device))
        if not profiles:
            typer.echo("No saved profiles")
            return
        for profile in profiles:
            typer.echo(profile.name)
    except DonglectlError as exc:
        raise _fail(exc) from None


@profile_app.command("save")
def save_profile(name: str, device: str | None = DEVICE_OPTION) -> None:
    """Save the dongle's current state as profile NAME."""
    try:
        client = _build_client()
        dongle, _ = _connect(client, device)
        client.save_profile(client.capture_profile(dongle, name))
        typer.echo(f"Saved profile '{name}' for {dongle.model_name}")
    except DonglectlError as exc:
        raise _fail(exc) from None


@profile_app.command("apply")
def apply_profile(name: str, device: str | None = DEVICE_OPTION) -> None:
    """Apply saved profile NAME to the dongle."""
    try:
        client = _build_client()
        dongle, descriptor = _connect(client, device)
        profile = _find_profile(client, dongle, name)
        client.apply_profile(dongle, descriptor, profile)
        typer.echo(f"Applied profile '{name}' to {dongle.model_name}")
    except DonglectlError as exc:
        raise _fail(exc) from None


@profile_app.command("delete")
def delete_profile(name: str, device: str | None = DEVICE_OPTION) -> None:
    """Delete saved profile NAME."""
    try:
        client = _build_client()
        target = client.resolve_target(device_hint=device)
        dongle = client.resolve_identity(target.device)
        client.delete_profile(_find_profile(client, dongle, name))
        typer.echo(f"Deleted profile '{name}'")
    except DonglectlError as exc:
        raise _fail(exc) from None


@profile_app.command("reset")
def reset_profile(device: str | None = DEVICE_OPTION) -> None:
    """Restore factory settings, keeping the current HID mode."""
    try:
        client = _build_client()
        dongle, descriptor = _connect(client, device)
        client.apply_profile(dongle, descriptor, client.default_profile(dongle))
        typer.echo(f"Restored factory settings on {dongle.model_name}")
    except DonglectlError as exc:
        raise _fail(exc) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
