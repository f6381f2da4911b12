"""Loading and validation of YAML device family tables."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from donglectl.core.codec import OPCODE_LENGTH, field_width
from donglectl.core.errors import FamilyLoadError, FamilyValidationError, OutOfRangeError
from donglectl.core.features import FEATURE_TYPES, READ_ONLY_FEATURES, Switch, feature_from_setting
from donglectl.core.model import (
    DONGLE_TYPES,
    DongleFamily,
    GetCommand,
    MatchRules,
    TransportSpec,
    VolumePolicy,
)

_HEX_RE = re.compile(r"^[0-9a-f]+$")
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

# "on"/"off"/"yes"/"no" stay strings; booleans are normalized explicitly.
for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise FamilyValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedFamilies:
    families: dict[str, DongleFamily]
    warnings: tuple[str, ...]


def load_schema_validator(filename: str = "family.schema.json") -> Any:
    schema_text = resources.files("donglectl.schemas").joinpath(filename).read_text(encoding="utf-8")
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _family_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "donglectl/families", xdg_data / "donglectl/families"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FamilyLoadError(f"Could not read family file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise FamilyValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise FamilyValidationError(f"Family file {path} must contain a mapping at root")
    return loaded


def _normalize_opcode(value: str, *, context: str) -> bytes:
    normalized = value.strip().lower().replace(" ", "")
    if not _HEX_RE.match(normalized) or len(normalized) % 2 != 0:
        raise FamilyValidationError(f"{context} must be even-length hex [0-9a-f]")
    opcode = bytes.fromhex(normalized)
    if len(opcode) != OPCODE_LENGTH:
        raise FamilyValidationError(f"{context} must be exactly {OPCODE_LENGTH} bytes")
    return opcode


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise FamilyValidationError(f"{context} must be boolean true/false")


def _build_get_commands(doc: dict[str, Any], features: set[str], report_length: int) -> tuple[GetCommand, ...]:
    commands: list[GetCommand] = []
    covered: set[str] = set()
    for entry in doc["commands"]["get"]:
        context = f"{doc['id']}.commands.get.{entry['name']}"
        for key, offset in entry["fields"].items():
            if key not in features:
                raise FamilyValidationError(f"{context} reads unknown feature '{key}'")
            if offset < OPCODE_LENGTH or offset + field_width(key) > report_length:
                raise FamilyValidationError(
                    f"{context}.{key} offset {offset} does not fit a {report_length}-byte report"
                )
        covered.update(entry["fields"])
        commands.append(
            GetCommand(
                name=entry["name"],
                opcode=_normalize_opcode(entry["opcode"], context=f"{context}.opcode"),
                fields=dict(entry["fields"]),
            )
        )

    missing = sorted(features - covered)
    if missing:
        raise FamilyValidationError(f"{doc['id']} has no get-command reading: {', '.join(missing)}")
    return tuple(commands)


def _build_set_opcodes(doc: dict[str, Any], features: set[str]) -> dict[str, bytes]:
    opcodes: dict[str, bytes] = {}
    for key, hex_opcode in doc["commands"]["set"].items():
        context = f"{doc['id']}.commands.set.{key}"
        if key not in features or key in READ_ONLY_FEATURES:
            raise FamilyValidationError(f"{context} is not a settable feature of {doc['id']}")
        opcodes[key] = _normalize_opcode(hex_opcode, context=context)
    return opcodes


def _build_defaults(doc: dict[str, Any], features: set[str]) -> dict[str, Any]:
    defaults: dict[str, Any] = {}
    for key, setting in doc["defaults"].items():
        context = f"{doc['id']}.defaults.{key}"
        if key not in features:
            raise FamilyValidationError(f"{context} is not a feature of {doc['id']}")
        if issubclass(FEATURE_TYPES[key], Switch):
            setting = _normalize_bool(setting, context=context)
        try:
            defaults[key] = feature_from_setting(key, setting)
        except OutOfRangeError as exc:
            raise FamilyValidationError(f"{context}: {exc}") from exc
    return defaults


def _build_family(doc: dict[str, Any], source: Path | Traversable) -> DongleFamily:
    validator = load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise FamilyValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    dongle_type = DONGLE_TYPES.get(doc["id"])
    if dongle_type is None:
        known = ", ".join(sorted(DONGLE_TYPES))
        raise FamilyValidationError(f"Unknown device family '{doc['id']}' in {source}. Known: {known}")
    features = set(dongle_type.feature_names())

    transport_doc = doc["transport"]
    transport = TransportSpec(
        report_length=int(transport_doc.get("report_length", 64)),
        report_id=int(transport_doc.get("report_id", 0)),
        timeout_s=float(transport_doc.get("timeout_s", 1.0)),
    )
    volume = VolumePolicy(
        ascending=_normalize_bool(doc["volume"]["ascending"], context=f"{doc['id']}.volume.ascending"),
        max_step_size=int(doc["volume"]["max_step_size"]),
    )
    if not volume.ascending and dongle_type.fixed_volume_mode is None:
        raise FamilyValidationError(
            f"{doc['id']} declares descending volume but has no fixed volume scale"
        )

    set_opcodes = _build_set_opcodes(doc, features)
    for key in set_opcodes:
        if OPCODE_LENGTH + field_width(key) > transport.report_length:
            raise FamilyValidationError(f"{doc['id']}.commands.set.{key} does not fit the report")

    family = DongleFamily(
        id=doc["id"],
        name=doc["name"],
        model_name=doc["model_name"],
        match=MatchRules(
            vendor_id=int(doc["match"]["vendor_id"]),
            product_ids=tuple(int(p) for p in doc["match"]["product_ids"]),
        ),
        transport=transport,
        volume=volume,
        get_commands=_build_get_commands(doc, features, transport.report_length),
        set_opcodes=set_opcodes,
        defaults=_build_defaults(doc, features),
    )

    try:
        family.empty_dongle(family.match.vendor_id, family.match.product_ids[0])
    except OutOfRangeError as exc:
        raise FamilyValidationError(f"Inconsistent defaults in {source}: {exc}") from exc
    return family


def _iter_packaged_family_paths() -> list[Traversable]:
    family_root = resources.files("donglectl.families")
    return [item for item in family_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_family_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _family_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_families() -> LoadedFamilies:
    families: dict[str, DongleFamily] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_family_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        family = _build_family(doc, path)
        families[family.id] = family

    for path in _iter_user_family_paths():
        doc = _read_yaml(path)
        family = _build_family(doc, path)
        if family.id in families:
            warning = f"User family '{family.id}' overrides packaged family"
            LOGGER.warning(warning)
            warnings.append(warning)
        families[family.id] = family

    LOGGER.debug("Loaded device families: %s", ", ".join(sorted(families)))
    return LoadedFamilies(families=families, warnings=tuple(warnings))
