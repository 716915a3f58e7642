"""
Hierarchy Kernel — Snapshot Encoder / Decoder

Pure-data canonical JSON serialization and deserialization of
HierarchyState. Used for fixtures, the CLI dump, and bulk import of an
org chart into the store.

Rules:
  - People and departments serialized as objects keyed by id.
  - Set-valued fields serialized as sorted lists.
  - No mutation. No side effects. No defaults injected.
  - Invariants checked explicitly via restore_snapshot only.
"""

from __future__ import annotations

import hashlib
import json
import pathlib
from typing import Any, Dict, List

from .domain_types import ALL_ROLES, Department, HierarchyState, Person
from .errors import HierarchyError
from .invariants import InvariantViolationError, validate_invariants

SNAPSHOT_VERSION = 1


# ══════════════════════════════════════════════════════════════
# Exception Hierarchy
# ══════════════════════════════════════════════════════════════

class SnapshotError(HierarchyError):
    """Base exception for all snapshot operations."""

    error = "invalid_snapshot"


class SerializationError(SnapshotError):
    """Raised when encoding a HierarchyState to JSON fails."""

    status_code = 500


class DeserializationError(SnapshotError):
    """Raised when decoding JSON to HierarchyState fails."""


class InvalidSnapshotError(SnapshotError):
    """A well-formed snapshot whose contents break a hierarchy invariant."""

    def __init__(self, original: InvariantViolationError) -> None:
        self.original = original
        super().__init__(
            f"Invariant violation during snapshot restore: {original}"
        )


# ══════════════════════════════════════════════════════════════
# Encoder
# ══════════════════════════════════════════════════════════════

def encode_snapshot(state: HierarchyState) -> str:
    """
    Serialize a HierarchyState into a canonical JSON string.

    Byte-for-byte identical output for identical states.
    """
    try:
        obj = snapshot_dict(state)
        return json.dumps(
            obj,
            ensure_ascii=False,
            separators=(",", ":"),
            sort_keys=True,
        )
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to encode snapshot: {exc}") from exc


def snapshot_dict(state: HierarchyState) -> Dict[str, Any]:
    """Build the snapshot document as plain JSON-ready data."""
    return {
        "snapshot_version": SNAPSHOT_VERSION,
        "people": {
            pid: state.people[pid].to_dict() for pid in sorted(state.people)
        },
        "departments": {
            did: state.departments[did].to_dict()
            for did in sorted(state.departments)
        },
    }


# ══════════════════════════════════════════════════════════════
# Decoder
# ══════════════════════════════════════════════════════════════

# -- Field whitelists (exact sets, no extras, no omissions) --

_SNAPSHOT_FIELDS = frozenset({"snapshot_version", "people", "departments"})

_PERSON_FIELDS = frozenset({
    "id", "name", "role", "department_id", "manager_id",
    "managed_manager_ids", "managed_member_ids",
})

_DEPARTMENT_FIELDS = frozenset({
    "id", "name", "head_id", "manager_ids", "member_ids",
})


def decode_snapshot(json_str: str) -> HierarchyState:
    """Strict deserialization of snapshot JSON text to HierarchyState."""
    try:
        raw = json.loads(json_str)
    except json.JSONDecodeError as exc:
        raise DeserializationError(f"Invalid JSON: {exc}") from exc
    return decode_snapshot_dict(raw)


def decode_snapshot_dict(raw: Any) -> HierarchyState:
    """
    Strict deserialization of an already-parsed snapshot document.

    Fails on: missing fields, unknown fields, wrong types, unknown roles,
    duplicate set entries, key/id mismatch, unsupported version.
    """
    if not isinstance(raw, dict):
        raise DeserializationError(
            f"Top-level JSON must be object, got {type(raw).__name__}"
        )
    _check_fields(raw, _SNAPSHOT_FIELDS, "snapshot")

    version = raw["snapshot_version"]
    if version != SNAPSHOT_VERSION:
        raise DeserializationError(
            f"Unsupported snapshot_version {version!r}; expected {SNAPSHOT_VERSION}"
        )

    raw_people = raw["people"]
    if not isinstance(raw_people, dict):
        raise DeserializationError("'people' must be a JSON object")
    people: Dict[str, Person] = {}
    for pid, pdata in raw_people.items():
        context = f"person '{pid}'"
        if not isinstance(pdata, dict):
            raise DeserializationError(f"{context.capitalize()} must be a JSON object")
        _check_fields(pdata, _PERSON_FIELDS, context)
        _check_key(pid, pdata, context)
        role = _require_str(pdata, "role", context)
        if role not in ALL_ROLES:
            raise DeserializationError(f"Unknown role {role!r} in {context}")
        people[pid] = Person(
            id=pid,
            role=role,
            name=_require_str(pdata, "name", context),
            department_id=_optional_str(pdata, "department_id", context),
            manager_id=_optional_str(pdata, "manager_id", context),
            managed_manager_ids=_id_set(pdata, "managed_manager_ids", context),
            managed_member_ids=_id_set(pdata, "managed_member_ids", context),
        )

    raw_departments = raw["departments"]
    if not isinstance(raw_departments, dict):
        raise DeserializationError("'departments' must be a JSON object")
    departments: Dict[str, Department] = {}
    for did, ddata in raw_departments.items():
        context = f"department '{did}'"
        if not isinstance(ddata, dict):
            raise DeserializationError(f"{context.capitalize()} must be a JSON object")
        _check_fields(ddata, _DEPARTMENT_FIELDS, context)
        _check_key(did, ddata, context)
        departments[did] = Department(
            id=did,
            name=_require_str(ddata, "name", context),
            head_id=_optional_str(ddata, "head_id", context),
            manager_ids=_id_set(ddata, "manager_ids", context),
            member_ids=_id_set(ddata, "member_ids", context),
        )

    return HierarchyState(people=people, departments=departments)


# ══════════════════════════════════════════════════════════════
# Restore (decode + validate)
# ══════════════════════════════════════════════════════════════

def restore_snapshot(json_str: str) -> HierarchyState:
    """
    Decode a snapshot and immediately validate invariants.

    Hard fail on first invariant violation.
    """
    return _validated(decode_snapshot(json_str))


def restore_snapshot_dict(raw: Any) -> HierarchyState:
    """restore_snapshot for an already-parsed document (API import)."""
    return _validated(decode_snapshot_dict(raw))


def _validated(state: HierarchyState) -> HierarchyState:
    try:
        validate_invariants(state)
    except InvariantViolationError as exc:
        raise InvalidSnapshotError(exc) from exc
    return state


# ══════════════════════════════════════════════════════════════
# File I/O
# ══════════════════════════════════════════════════════════════

def export_snapshot_to_file(state: HierarchyState, path: pathlib.Path) -> None:
    """
    Export canonical snapshot JSON to a file.

    No metadata. No validation on export. UTF-8 only.
    """
    path.write_text(encode_snapshot(state), encoding="utf-8")


def import_snapshot_from_file(path: pathlib.Path) -> HierarchyState:
    """
    Import a snapshot from a file and validate invariants.

    Fails if malformed. No fallback. No silent repair.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DeserializationError(
            f"Failed to read snapshot file {path}: {exc}"
        ) from exc
    return restore_snapshot(text)


def snapshot_hash(state: HierarchyState) -> str:
    """SHA-256 of the snapshot JSON bytes. Lowercase hex."""
    return hashlib.sha256(encode_snapshot(state).encode("utf-8")).hexdigest()


# ══════════════════════════════════════════════════════════════
# Internal Validation Helpers
# ══════════════════════════════════════════════════════════════

def _check_fields(data: dict, expected: frozenset, context: str) -> None:
    """Fail if data has missing or unknown fields vs expected set."""
    actual = set(data.keys())
    missing = expected - actual
    unknown = actual - expected
    if missing:
        raise DeserializationError(
            f"Missing fields in {context}: {sorted(missing)}"
        )
    if unknown:
        raise DeserializationError(
            f"Unknown fields in {context}: {sorted(unknown)}"
        )


def _check_key(key: str, data: dict, context: str) -> None:
    if data["id"] != key:
        raise DeserializationError(
            f"Key '{key}' does not match id {data['id']!r} in {context}"
        )


def _require_str(data: dict, name: str, context: str) -> str:
    value = data[name]
    if not isinstance(value, str):
        raise DeserializationError(
            f"Field '{name}' in {context} must be string, got {type(value).__name__}"
        )
    return value


def _optional_str(data: dict, name: str, context: str) -> str | None:
    if data[name] is None:
        return None
    return _require_str(data, name, context)


def _id_set(data: dict, name: str, context: str) -> set:
    value = data[name]
    if not isinstance(value, list):
        raise DeserializationError(
            f"Field '{name}' in {context} must be a JSON array"
        )
    ids: List[str] = []
    for item in value:
        if not isinstance(item, str):
            raise DeserializationError(
                f"Field '{name}' in {context} must contain only strings"
            )
        ids.append(item)
    if len(set(ids)) != len(ids):
        raise DeserializationError(f"Duplicate ids in '{name}' of {context}")
    return set(ids)
