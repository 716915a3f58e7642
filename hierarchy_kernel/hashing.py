"""
Hierarchy Kernel — Canonical Hashing

Deterministic canonical serialization + SHA-256 hashing.
Produces byte-identical output across platforms.

Rules:
  - People and departments sorted by id (UTF-8 byte order)
  - Set-valued fields emitted as sorted lists
  - Fields in fixed order
  - UTF-8 JSON, no whitespace, no platform newline
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, List

from .domain_types import HierarchyState

CANONICAL_VERSION = 1


def canonical_serialize(state: HierarchyState) -> bytes:
    """
    Canonical serialization of HierarchyState to UTF-8 JSON bytes.
    No whitespace. Deterministic field order.
    """
    obj = _build_canonical_dict(state)
    return json.dumps(obj, ensure_ascii=True, separators=(",", ":"), sort_keys=False).encode("utf-8")


def canonical_hash(state: HierarchyState) -> str:
    """SHA-256 of canonical serialization. Lowercase hex string."""
    return hashlib.sha256(canonical_serialize(state)).hexdigest()


def _build_canonical_dict(state: HierarchyState) -> Dict[str, Any]:
    people: List[Dict[str, Any]] = []
    for pid in sorted(state.people.keys()):
        p = state.people[pid]
        people.append({
            "id": p.id,
            "name": p.name,
            "role": p.role,
            "department_id": p.department_id,
            "manager_id": p.manager_id,
            "managed_manager_ids": sorted(p.managed_manager_ids),
            "managed_member_ids": sorted(p.managed_member_ids),
        })

    departments: List[Dict[str, Any]] = []
    for did in sorted(state.departments.keys()):
        d = state.departments[did]
        departments.append({
            "id": d.id,
            "name": d.name,
            "head_id": d.head_id,
            "manager_ids": sorted(d.manager_ids),
            "member_ids": sorted(d.member_ids),
        })

    return {
        "canonical_version": CANONICAL_VERSION,
        "people": people,
        "departments": departments,
    }
