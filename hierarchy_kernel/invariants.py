"""
Hierarchy Kernel — Invariant Checks

Hard-fail validation. Every check raises InvariantViolationError on the
first failure. Checks are pure functions over a HierarchyState; they are
run on the proposed after-state of every transition and exchange before
anything is committed.

The state may be a neighbourhood rather than the whole organization:
records are checked against what is loaded, and a reference to a record
that is not loaded counts as a violation.
"""

from __future__ import annotations

from .domain_types import (
    DEPARTMENT_HEAD, MANAGER, MEMBER, HierarchyState,
)
from .errors import HierarchyError


class InvariantViolationError(HierarchyError):
    """Raised when a hierarchy invariant would be violated."""

    status_code = 500
    error = "invariant_violation"

    def __init__(self, rule: str, detail: str) -> None:
        self.rule = rule
        self.detail = detail
        super().__init__(f"[INVARIANT:{rule}] {detail}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_invariants(state: HierarchyState) -> None:
    """
    Run all hierarchy checks. Raises InvariantViolationError on the
    first failure.
    """
    _check_head_reference(state)
    _check_manager_containment(state)
    _check_member_containment(state)
    _check_managed_sets(state)
    _check_manager_link(state)


def collect_violations(state: HierarchyState) -> list[InvariantViolationError]:
    """Run every check independently and return all failures found."""
    found: list[InvariantViolationError] = []
    for check in (
        _check_head_reference,
        _check_manager_containment,
        _check_member_containment,
        _check_managed_sets,
        _check_manager_link,
    ):
        try:
            check(state)
        except InvariantViolationError as exc:
            found.append(exc)
    return found


# ---------------------------------------------------------------------------
# Individual checks (private)
# ---------------------------------------------------------------------------

def _check_head_reference(state: HierarchyState) -> None:
    """I1: head_id points at a head of this department, and back."""
    for dept in state.departments.values():
        if dept.head_id is None:
            continue
        head = state.people.get(dept.head_id)
        if head is None:
            raise InvariantViolationError(
                "head_reference",
                f"Department {dept.id!r} head_id={dept.head_id!r} does not exist"
            )
        if head.role != DEPARTMENT_HEAD or head.department_id != dept.id:
            raise InvariantViolationError(
                "head_reference",
                f"Department {dept.id!r} head {head.id!r} has role={head.role!r} "
                f"department_id={head.department_id!r}"
            )

    for person in state.people.values():
        if person.role != DEPARTMENT_HEAD:
            continue
        if person.department_id is None:
            raise InvariantViolationError(
                "head_reference", f"Head {person.id!r} has no department"
            )
        dept = state.departments.get(person.department_id)
        if dept is None:
            raise InvariantViolationError(
                "head_reference",
                f"Head {person.id!r} references missing department "
                f"{person.department_id!r}"
            )
        if dept.head_id != person.id:
            raise InvariantViolationError(
                "head_reference",
                f"Head {person.id!r} is not the head of department {dept.id!r} "
                f"(head_id={dept.head_id!r})"
            )


def _check_manager_containment(state: HierarchyState) -> None:
    """I2: Department.manager_ids <-> managers of that department."""
    for person in state.people.values():
        if person.role == MANAGER and person.department_id is None:
            raise InvariantViolationError(
                "manager_containment", f"Manager {person.id!r} has no department"
            )
    _check_containment(state, MANAGER, "manager_ids", "manager_containment")


def _check_member_containment(state: HierarchyState) -> None:
    """I3: Department.member_ids <-> members of that department."""
    _check_containment(state, MEMBER, "member_ids", "member_containment")


def _check_containment(
    state: HierarchyState, role: str, attr: str, rule: str,
) -> None:
    for dept in state.departments.values():
        for pid in getattr(dept, attr):
            person = state.people.get(pid)
            if person is None:
                raise InvariantViolationError(
                    rule,
                    f"Department {dept.id!r} {attr} lists missing person {pid!r}"
                )
            if person.role != role or person.department_id != dept.id:
                raise InvariantViolationError(
                    rule,
                    f"Department {dept.id!r} {attr} lists {pid!r} with "
                    f"role={person.role!r} department_id={person.department_id!r}"
                )

    for person in state.people.values():
        if person.role != role or person.department_id is None:
            continue
        dept = state.departments.get(person.department_id)
        if dept is None:
            raise InvariantViolationError(
                rule,
                f"{role.capitalize()} {person.id!r} references missing "
                f"department {person.department_id!r}"
            )
        if person.id not in getattr(dept, attr):
            raise InvariantViolationError(
                rule,
                f"{role.capitalize()} {person.id!r} is not listed in "
                f"department {dept.id!r} {attr}"
            )


def _check_managed_sets(state: HierarchyState) -> None:
    """I4: head sets mirror the department; manager sets are a subset."""
    for person in state.people.values():
        dept = state.departments.get(person.department_id or "")
        if person.role == DEPARTMENT_HEAD and dept is not None:
            if person.managed_manager_ids != dept.manager_ids:
                raise InvariantViolationError(
                    "managed_sets",
                    f"Head {person.id!r} managed_manager_ids "
                    f"{sorted(person.managed_manager_ids)} != department "
                    f"{dept.id!r} manager_ids {sorted(dept.manager_ids)}"
                )
            if person.managed_member_ids != dept.member_ids:
                raise InvariantViolationError(
                    "managed_sets",
                    f"Head {person.id!r} managed_member_ids "
                    f"{sorted(person.managed_member_ids)} != department "
                    f"{dept.id!r} member_ids {sorted(dept.member_ids)}"
                )
        elif person.role == DEPARTMENT_HEAD:
            continue
        elif person.role == MANAGER:
            if person.managed_manager_ids:
                raise InvariantViolationError(
                    "managed_sets",
                    f"Manager {person.id!r} has managed_manager_ids"
                )
            if dept is None:
                if person.managed_member_ids:
                    raise InvariantViolationError(
                        "managed_sets",
                        f"Manager {person.id!r} without a department manages members"
                    )
                continue
            stray = person.managed_member_ids - dept.member_ids
            if stray:
                raise InvariantViolationError(
                    "managed_sets",
                    f"Manager {person.id!r} manages {sorted(stray)} outside "
                    f"department {dept.id!r}"
                )
        elif person.managed_manager_ids or person.managed_member_ids:
            raise InvariantViolationError(
                "managed_sets",
                f"{person.role} {person.id!r} carries managed sets"
            )


def _check_manager_link(state: HierarchyState) -> None:
    """I5 plus the member <-> manager back-reference."""
    for person in state.people.values():
        if person.manager_id is None:
            continue
        if person.role != MEMBER:
            raise InvariantViolationError(
                "manager_link",
                f"{person.role} {person.id!r} has manager_id={person.manager_id!r}"
            )
        manager = state.people.get(person.manager_id)
        if manager is None:
            raise InvariantViolationError(
                "manager_link",
                f"Member {person.id!r} manager_id={person.manager_id!r} does not exist"
            )
        if manager.role != MANAGER or manager.department_id != person.department_id:
            raise InvariantViolationError(
                "manager_link",
                f"Member {person.id!r} manager {manager.id!r} has role="
                f"{manager.role!r} department_id={manager.department_id!r}"
            )
        if person.id not in manager.managed_member_ids:
            raise InvariantViolationError(
                "manager_link",
                f"Manager {manager.id!r} does not list member {person.id!r}"
            )

    for manager in state.people.values():
        if manager.role != MANAGER:
            continue
        for mid in manager.managed_member_ids:
            member = state.people.get(mid)
            if member is None or member.manager_id != manager.id:
                raise InvariantViolationError(
                    "manager_link",
                    f"Manager {manager.id!r} lists {mid!r} whose manager_id is "
                    f"{None if member is None else member.manager_id!r}"
                )
