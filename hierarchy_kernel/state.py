"""
Hierarchy Kernel — State Construction

Builders for invariant-satisfying states. These stand in for the user
and department creation flows: every helper writes both sides of each
reference, so a state built only through them passes validate_invariants.
"""

from __future__ import annotations

from typing import Optional

from .domain_types import (
    DEPARTMENT_HEAD, MANAGER, MEMBER, Department, HierarchyState, Person,
)
from .roles import create_department, create_person


def create_initial_state() -> HierarchyState:
    """Create a fresh, empty HierarchyState."""
    return HierarchyState(people={}, departments={})


def add_department(
    state: HierarchyState, department_id: str, name: str = "",
) -> Department:
    """Add an empty department. Hard fail on id collision."""
    if department_id in state.departments:
        raise ValueError(f"Department ID collision: {department_id!r} already exists")
    dept = create_department(department_id, name=name)
    state.departments[dept.id] = dept
    return dept


def enroll_person(
    state: HierarchyState,
    person_id: str,
    role: str,
    department_id: Optional[str] = None,
    manager_id: Optional[str] = None,
    name: str = "",
) -> Person:
    """
    Add a new person with an initial placement, wiring every
    denormalized reference on both sides.
    """
    if person_id in state.people:
        raise ValueError(f"Person ID collision: {person_id!r} already exists")

    person = create_person(person_id, role, name=name)
    if person.role not in (DEPARTMENT_HEAD, MANAGER, MEMBER):
        person.department_id = department_id
        state.people[person.id] = person
        return person

    if department_id is None:
        raise ValueError(f"Role {person.role!r} requires a department")
    dept = state.departments.get(department_id)
    if dept is None:
        raise KeyError(f"Department {department_id!r} does not exist")
    person.department_id = dept.id
    head = state.head_of(dept.id)

    if person.role == DEPARTMENT_HEAD:
        if head is not None:
            raise ValueError(
                f"Department {dept.id!r} already has head {head.id!r}"
            )
        dept.head_id = person.id
        person.managed_manager_ids = set(dept.manager_ids)
        person.managed_member_ids = set(dept.member_ids)

    elif person.role == MANAGER:
        dept.manager_ids.add(person.id)
        if head is not None:
            head.managed_manager_ids.add(person.id)

    else:
        dept.member_ids.add(person.id)
        if head is not None:
            head.managed_member_ids.add(person.id)
        if manager_id is not None:
            manager = state.people.get(manager_id)
            if (
                manager is None
                or manager.role != MANAGER
                or manager.department_id != dept.id
            ):
                raise ValueError(
                    f"Manager {manager_id!r} is not a manager of {dept.id!r}"
                )
            person.manager_id = manager.id
            manager.managed_member_ids.add(person.id)

    state.people[person.id] = person
    return person
