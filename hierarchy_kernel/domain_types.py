"""
Hierarchy Kernel — Core Domain Types

Pure data. No behaviour, no transition logic.

────────────────────────────────────────────────
DOMAIN GLOSSARY
────────────────────────────────────────────────

Head (HOD):
    Person with role department_head, the single top of one department.

Manager:
    Person with role manager; supervises zero or more members of the
    same department and reports to the department head.

Member:
    Person with role member; optionally supervised by one manager and
    always counted under the department head.

Managed set:
    The managed_manager_ids / managed_member_ids cache carried by a
    head or manager. Mirrors the department sets and must be kept in
    step with them on every write.

Transition:
    A single role and/or department change for one person.

Exchange:
    A paired swap of two same-role people's departments.
────────────────────────────────────────────────
"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Dict, Optional, Set, Tuple


# ── Role vocabulary ───────────────────────────────────────────
DEPARTMENT_HEAD: str = "department_head"
MANAGER: str = "manager"
MEMBER: str = "member"

HIERARCHY_ROLES: Tuple[str, ...] = (DEPARTMENT_HEAD, MANAGER, MEMBER)

# Opaque to the engine: never a transition target, never in a department set.
OPAQUE_ROLES: Tuple[str, ...] = (
    "super_admin", "admin", "hr_manager", "hr", "person",
)

ALL_ROLES: Tuple[str, ...] = HIERARCHY_ROLES + OPAQUE_ROLES


class TransitionKind(str, enum.Enum):
    """Classification of a single-person transition."""

    PROMOTE_TO_HEAD = "promote_to_head"
    HEAD_TO_HEAD = "head_to_head"
    DEMOTE_HEAD = "demote_head"
    RANK_CHANGE = "rank_change"
    LATERAL_MOVE = "lateral_move"
    REASSIGN_MANAGER = "reassign_manager"


# ── Core Domain Types ─────────────────────────────────────────

@dataclass
class Person:
    """One employee record, restricted to its hierarchy-relevant fields."""

    id: str
    role: str
    name: str = ""
    department_id: Optional[str] = None
    manager_id: Optional[str] = None
    managed_manager_ids: Set[str] = field(default_factory=set)
    managed_member_ids: Set[str] = field(default_factory=set)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "department_id": self.department_id,
            "manager_id": self.manager_id,
            "managed_manager_ids": sorted(self.managed_manager_ids),
            "managed_member_ids": sorted(self.managed_member_ids),
        }


@dataclass
class Department:
    """One department record with its denormalized membership sets."""

    id: str
    name: str = ""
    head_id: Optional[str] = None
    manager_ids: Set[str] = field(default_factory=set)
    member_ids: Set[str] = field(default_factory=set)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "head_id": self.head_id,
            "manager_ids": sorted(self.manager_ids),
            "member_ids": sorted(self.member_ids),
        }


@dataclass
class HierarchyState:
    """
    Arena of Person and Department records.

    May hold the whole organization (in-memory engine) or only the
    neighbourhood of one unit of work (runtime session).
    """

    people: Dict[str, Person] = field(default_factory=dict)
    departments: Dict[str, Department] = field(default_factory=dict)

    def copy(self) -> "HierarchyState":
        """Deep-copy the entire state for immutable transitions."""
        return copy.deepcopy(self)

    def head_of(self, department_id: Optional[str]) -> Optional[Person]:
        """Return the head Person of a department, or None."""
        if department_id is None:
            return None
        dept = self.departments.get(department_id)
        if dept is None or dept.head_id is None:
            return None
        return self.people.get(dept.head_id)

    def to_dict(self) -> dict:
        """Serialise state to a plain dict (for API responses / logging)."""
        return {
            "people": {
                pid: p.to_dict() for pid, p in sorted(self.people.items())
            },
            "departments": {
                did: d.to_dict() for did, d in sorted(self.departments.items())
            },
        }


@dataclass(frozen=True)
class TransitionResult:
    """
    Structured, immutable outcome of ApplyTransition.

    touched_* lists every record whose stored form the transition
    may have changed; the runtime narrows this down to a real change set.
    """

    kind: TransitionKind
    person_id: str
    touched_person_ids: Tuple[str, ...] = ()
    touched_department_ids: Tuple[str, ...] = ()
    displaced_head_id: Optional[str] = None
    released_member_ids: Tuple[str, ...] = ()
    no_op: bool = False

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "person_id": self.person_id,
            "touched_person_ids": list(self.touched_person_ids),
            "touched_department_ids": list(self.touched_department_ids),
            "displaced_head_id": self.displaced_head_id,
            "released_member_ids": list(self.released_member_ids),
            "no_op": self.no_op,
        }


@dataclass(frozen=True)
class ExchangeResult:
    """Structured, immutable outcome of ExchangeHeads / ExchangeManagers."""

    exchange_type: str  # heads | managers
    source_id: str
    target_id: str
    source_department_id: str  # department the source person left
    target_department_id: str  # department the source person joined
    touched_person_ids: Tuple[str, ...] = ()
    touched_department_ids: Tuple[str, ...] = ()
    reassigned_member_ids: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "exchange_type": self.exchange_type,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "source_department_id": self.source_department_id,
            "target_department_id": self.target_department_id,
            "touched_person_ids": list(self.touched_person_ids),
            "touched_department_ids": list(self.touched_department_ids),
            "reassigned_member_ids": list(self.reassigned_member_ids),
        }
