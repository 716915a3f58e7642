"""
Change Set — pure functions, no side effects.

A unit of work reads a neighbourhood (ReadSet), runs the kernel on it,
and writes back only the records whose serialized form changed
(ChangeSet). The read versions travel with the change set so the store
can re-check them inside the commit transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from hierarchy_kernel.domain_types import Department, HierarchyState, Person


@dataclass
class ReadSet:
    """A loaded neighbourhood plus the version of every record in it."""

    state: HierarchyState
    person_versions: Dict[str, int] = field(default_factory=dict)
    department_versions: Dict[str, int] = field(default_factory=dict)


@dataclass
class ChangeSet:
    """Records to write, keyed by id."""

    people: Dict[str, Person] = field(default_factory=dict)
    departments: Dict[str, Department] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.people and not self.departments

    def to_dict(self) -> dict:
        return {
            "people": sorted(self.people),
            "departments": sorted(self.departments),
        }


def compute_changeset(before: HierarchyState, after: HierarchyState) -> ChangeSet:
    """
    Compare two states and collect every record whose to_dict() differs.

    Kernel operations never add or delete records, so both states are
    expected to hold the same ids.
    """
    changes = ChangeSet()
    for pid, person in after.people.items():
        old = before.people.get(pid)
        if old is None or old.to_dict() != person.to_dict():
            changes.people[pid] = person
    for did, dept in after.departments.items():
        old = before.departments.get(did)
        if old is None or old.to_dict() != dept.to_dict():
            changes.departments[did] = dept
    return changes


def describe_changeset(before: HierarchyState, changes: ChangeSet) -> List[str]:
    """One line per changed field, e.g. ``person U1 department_id: 'D1' -> 'D2'``."""
    lines: List[str] = []
    for pid in sorted(changes.people):
        old = before.people.get(pid)
        lines.extend(_field_lines(
            f"person {pid}", old.to_dict() if old else {}, changes.people[pid].to_dict(),
        ))
    for did in sorted(changes.departments):
        old = before.departments.get(did)
        lines.extend(_field_lines(
            f"department {did}",
            old.to_dict() if old else {},
            changes.departments[did].to_dict(),
        ))
    return lines


def _field_lines(label: str, old: dict, new: dict) -> List[str]:
    lines = []
    for key in sorted(set(old) | set(new)):
        if old.get(key) != new.get(key):
            lines.append(f"{label} {key}: {old.get(key)!r} -> {new.get(key)!r}")
    return lines
