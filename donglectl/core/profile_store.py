"""Persistence of named profiles."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Protocol

from jsonschema import ValidationError

from donglectl.core.errors import ProfileStoreError
from donglectl.core.family_loader import load_schema_validator
from donglectl.core.model import Profile

_STORE_VERSION = 1


class ProfileStore(Protocol):
    def list_profiles(self, vendor_id: int, product_id: int) -> list[Profile]:
        """Profiles of one device identity, sorted by name."""

    def upsert(self, profile: Profile) -> None:
        """Insert or replace the profile with the same identity and name."""

    def delete(self, profile: Profile) -> None:
        """Remove the profile with the same identity and name, if present."""


def default_profiles_path() -> Path:
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_data / "donglectl/profiles.json"


def _profile_key(profile: Profile) -> tuple[int, int, str]:
    return profile.vendor_id, profile.product_id, profile.name


def _validate(doc: Any, context: str) -> None:
    try:
        load_schema_validator("profile.schema.json").validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileStoreError(f"{context}{where}: {exc.message}") from exc


class JSONProfileStore:
    """All profiles in one JSON document, replaced atomically on every write."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or default_profiles_path()

    def list_profiles(self, vendor_id: int, product_id: int) -> list[Profile]:
        profiles = [
            p for p in self._read() if p.vendor_id == vendor_id and p.product_id == product_id
        ]
        return sorted(profiles, key=lambda p: p.name)

    def upsert(self, profile: Profile) -> None:
        profiles = [p for p in self._read() if _profile_key(p) != _profile_key(profile)]
        profiles.append(profile)
        self._write(profiles)

    def delete(self, profile: Profile) -> None:
        profiles = self._read()
        remaining = [p for p in profiles if _profile_key(p) != _profile_key(profile)]
        if len(remaining) != len(profiles):
            self._write(remaining)

    def _read(self) -> list[Profile]:
        if not self.path.exists():
            return []
        try:
            doc: Any = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ProfileStoreError(f"Could not read profiles from {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ProfileStoreError(f"Invalid JSON in {self.path}: {exc}") from exc

        _validate(doc, f"Schema validation failed for {self.path}")
        return [Profile.from_dict(entry) for entry in doc["profiles"]]

    def _write(self, profiles: list[Profile]) -> None:
        ordered = sorted(profiles, key=lambda p: (p.vendor_id, p.product_id, p.name))
        doc = {"version": _STORE_VERSION, "profiles": [p.to_dict() for p in ordered]}
        _validate(doc, "Refusing to write invalid profile")
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(doc, indent=2, sort_keys=True) + "\n", encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise ProfileStoreError(f"Could not write profiles to {self.path}: {exc}") from exc
