"""
Hierarchy Kernel — Paired Exchanges

Two same-role people swap departments in one step. Every precondition is
checked on the input state, in a fixed order, before the copy is made.
"""

from __future__ import annotations

import logging
from typing import Set, Tuple

from .commands import ExchangeHeadsCommand, ExchangeManagersCommand
from .domain_types import (
    DEPARTMENT_HEAD, MANAGER, Department, ExchangeResult, HierarchyState, Person,
)
from .errors import (
    DepartmentMismatchError, MissingHeadError, NotFoundError,
    RoleMismatchError, TransitionValidationError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def exchange_heads(
    state: HierarchyState, command: ExchangeHeadsCommand,
) -> Tuple[HierarchyState, ExchangeResult]:
    """
    Swap the departments of two heads.

    Each head's managed sets are recomputed from the department they
    arrive in; managers and members stay where they are.
    """
    a, b, dept_a, dept_b = _check_pair(
        state, command.source_head_id, command.target_head_id, DEPARTMENT_HEAD,
    )
    for head, dept in ((a, dept_a), (b, dept_b)):
        if dept.head_id != head.id:
            raise DepartmentMismatchError(
                f"Department {dept.id!r} head is {dept.head_id!r}, not {head.id!r}"
            )

    logger.debug("exchange heads %s (%s) <-> %s (%s)", a.id, dept_a.id, b.id, dept_b.id)

    new_state = state.copy()
    a = new_state.people[a.id]
    b = new_state.people[b.id]
    dept_a = new_state.departments[dept_a.id]
    dept_b = new_state.departments[dept_b.id]

    _seat_head(a, dept_b)
    _seat_head(b, dept_a)

    result = ExchangeResult(
        exchange_type="heads",
        source_id=a.id,
        target_id=b.id,
        source_department_id=dept_a.id,
        target_department_id=dept_b.id,
        touched_person_ids=tuple(sorted((a.id, b.id))),
        touched_department_ids=tuple(sorted((dept_a.id, dept_b.id))),
    )
    return new_state, result


def exchange_managers(
    state: HierarchyState, command: ExchangeManagersCommand,
) -> Tuple[HierarchyState, ExchangeResult]:
    """
    Swap the departments of two managers.

    Each manager takes over the members the other supervised, so every
    member keeps a manager inside their own department.
    """
    a, b, dept_a, dept_b = _check_pair(
        state, command.source_manager_id, command.target_manager_id, MANAGER,
    )
    for manager, dept in ((a, dept_a), (b, dept_b)):
        if manager.id not in dept.manager_ids:
            raise DepartmentMismatchError(
                f"Manager {manager.id!r} is not listed in department {dept.id!r}"
            )
    for dept in (dept_a, dept_b):
        if state.head_of(dept.id) is None:
            raise MissingHeadError(
                f"Department {dept.id!r} has no head; cannot exchange managers"
            )

    logger.debug("exchange managers %s (%s) <-> %s (%s)", a.id, dept_a.id, b.id, dept_b.id)

    new_state = state.copy()
    a = new_state.people[a.id]
    b = new_state.people[b.id]
    dept_a = new_state.departments[dept_a.id]
    dept_b = new_state.departments[dept_b.id]
    head_a = new_state.head_of(dept_a.id)
    head_b = new_state.head_of(dept_b.id)

    # Members are handed over by department, not by person.
    a_members = _members_in(new_state, a.managed_member_ids, dept_a.id)
    b_members = _members_in(new_state, b.managed_member_ids, dept_b.id)

    dept_a.manager_ids.discard(a.id)
    dept_a.manager_ids.add(b.id)
    dept_b.manager_ids.discard(b.id)
    dept_b.manager_ids.add(a.id)
    head_a.managed_manager_ids.discard(a.id)
    head_a.managed_manager_ids.add(b.id)
    head_b.managed_manager_ids.discard(b.id)
    head_b.managed_manager_ids.add(a.id)

    a.department_id = dept_b.id
    b.department_id = dept_a.id
    a.managed_member_ids = b_members
    b.managed_member_ids = a_members
    for mid in b_members:
        new_state.people[mid].manager_id = a.id
    for mid in a_members:
        new_state.people[mid].manager_id = b.id

    reassigned = a_members | b_members
    touched = {a.id, b.id, head_a.id, head_b.id} | reassigned
    result = ExchangeResult(
        exchange_type="managers",
        source_id=a.id,
        target_id=b.id,
        source_department_id=dept_a.id,
        target_department_id=dept_b.id,
        touched_person_ids=tuple(sorted(touched)),
        touched_department_ids=tuple(sorted((dept_a.id, dept_b.id))),
        reassigned_member_ids=tuple(sorted(reassigned)),
    )
    return new_state, result


# ---------------------------------------------------------------------------
# Helpers (private)
# ---------------------------------------------------------------------------

def _check_pair(
    state: HierarchyState, source_id: str, target_id: str, role: str,
) -> Tuple[Person, Person, Department, Department]:
    """Shared preconditions 1-5 for both exchange flavours."""
    if source_id == target_id:
        raise TransitionValidationError(
            f"Cannot exchange {source_id!r} with themselves"
        )

    people = []
    for pid in (source_id, target_id):
        person = state.people.get(pid)
        if person is None:
            raise NotFoundError(f"Person {pid!r} does not exist")
        people.append(person)
    a, b = people

    for person in (a, b):
        if person.role != role:
            raise RoleMismatchError(
                f"Person {person.id!r} has role {person.role!r}; "
                f"both participants must be {role}"
            )

    if a.department_id is None or b.department_id is None:
        raise DepartmentMismatchError(
            "Both participants must belong to a department"
        )
    if a.department_id == b.department_id:
        raise DepartmentMismatchError(
            f"Both participants are in department {a.department_id!r}"
        )

    departments = []
    for person in (a, b):
        dept = state.departments.get(person.department_id)
        if dept is None:
            raise NotFoundError(f"Department {person.department_id!r} does not exist")
        departments.append(dept)

    return a, b, departments[0], departments[1]


def _seat_head(head: Person, dept: Department) -> None:
    dept.head_id = head.id
    head.department_id = dept.id
    head.managed_manager_ids = set(dept.manager_ids)
    head.managed_member_ids = set(dept.member_ids)


def _members_in(state: HierarchyState, member_ids: Set[str], department_id: str) -> Set[str]:
    return {
        mid for mid in member_ids
        if mid in state.people and state.people[mid].department_id == department_id
    }
