"""
Hierarchy Kernel — Diagnostics

Compute a diagnostic snapshot of the current hierarchy state.
"""

from __future__ import annotations

from .domain_types import DEPARTMENT_HEAD, HIERARCHY_ROLES, MANAGER, MEMBER, HierarchyState


def compute_diagnostics(state: HierarchyState) -> dict:
    """Return a diagnostic dict summarising the current state health."""
    role_counts = {role: 0 for role in HIERARCHY_ROLES}
    other_count = 0
    for person in state.people.values():
        if person.role in role_counts:
            role_counts[person.role] += 1
        else:
            other_count += 1

    headless = sorted(
        d.id for d in state.departments.values() if d.head_id is None
    )
    unassigned = sorted(
        p.id for p in state.people.values()
        if p.role == MEMBER and p.department_id is None
    )
    unmanaged = sorted(
        p.id for p in state.people.values()
        if p.role == MEMBER and p.department_id is not None and p.manager_id is None
    )
    idle_managers = sorted(
        p.id for p in state.people.values()
        if p.role == MANAGER and not p.managed_member_ids
    )

    warnings: list[str] = []

    if headless:
        warnings.append(
            f"{len(headless)} department(s) without a head: {', '.join(headless)}"
        )
    if unassigned:
        warnings.append(
            f"{len(unassigned)} unassigned member(s): {', '.join(unassigned)}"
        )
    if unmanaged:
        warnings.append(f"{len(unmanaged)} member(s) without a manager")

    return {
        "person_count": len(state.people),
        "department_count": len(state.departments),
        "head_count": role_counts[DEPARTMENT_HEAD],
        "manager_count": role_counts[MANAGER],
        "member_count": role_counts[MEMBER],
        "other_role_count": other_count,
        "headless_departments": headless,
        "unassigned_members": unassigned,
        "members_without_manager": unmanaged,
        "managers_without_members": idle_managers,
        "warnings": warnings,
    }
