"""
Hierarchy Kernel — Record Factory Helpers
"""

from __future__ import annotations

from typing import Iterable, Optional

from .domain_types import (
    ALL_ROLES, HIERARCHY_ROLES, Department, Person,
)


def is_hierarchy_role(role: str) -> bool:
    """True for department_head, manager and member."""
    return role in HIERARCHY_ROLES


def normalize_role(role: str) -> str:
    """Lower-case and validate a role name. Hard fail on unknown roles."""
    value = str(role).strip().lower()
    if value not in ALL_ROLES:
        raise ValueError(f"Invalid role {role!r}: must be one of {list(ALL_ROLES)}")
    return value


def create_person(
    person_id: str,
    role: str,
    name: str = "",
    department_id: Optional[str] = None,
    manager_id: Optional[str] = None,
    managed_manager_ids: Iterable[str] = (),
    managed_member_ids: Iterable[str] = (),
) -> Person:
    """Create a Person with sensible defaults."""
    return Person(
        id=person_id,
        role=normalize_role(role),
        name=name or person_id,
        department_id=department_id,
        manager_id=manager_id,
        managed_manager_ids=set(managed_manager_ids),
        managed_member_ids=set(managed_member_ids),
    )


def create_department(
    department_id: str,
    name: str = "",
    head_id: Optional[str] = None,
    manager_ids: Iterable[str] = (),
    member_ids: Iterable[str] = (),
) -> Department:
    """Create a Department with sensible defaults."""
    return Department(
        id=department_id,
        name=name or department_id,
        head_id=head_id,
        manager_ids=set(manager_ids),
        member_ids=set(member_ids),
    )
