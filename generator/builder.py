"""
Org Builder — Deterministic generator producing valid hierarchies.

build_org(template, seed) → HierarchyState

Departments are filled head first, then managers, then members, so
every enrollment sees the references it must wire. Some departments are
left headless and some members without a manager, matching the shapes
the transition engine has to cope with.

Output is checked with validate_invariants before returning.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from hierarchy_kernel.domain_types import DEPARTMENT_HEAD, MANAGER, MEMBER, HierarchyState
from hierarchy_kernel.invariants import InvariantViolationError, validate_invariants
from hierarchy_kernel.state import add_department, create_initial_state, enroll_person

from .deterministic_rng import DeterministicRNG
from .org_template import OrgTemplate

logger = logging.getLogger(__name__)


class GeneratorInvariantError(Exception):
    """Raised when a generated org chart fails invariant validation."""

    def __init__(self, cause: InvariantViolationError) -> None:
        self.cause = cause
        super().__init__(f"Generated org chart is invalid: {cause}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_org(template: OrgTemplate, seed: int) -> HierarchyState:
    """
    Build an org chart from *template*, all randomness drawn from *seed*.

    Person ids are derived from department ids (``D2-M1``, ``D2-U3``),
    so two builds with the same inputs are identical record for record.

    Raises GeneratorInvariantError if the result breaks an invariant.
    """
    rng = DeterministicRNG(seed)
    state = create_initial_state()

    for index in range(1, template.department_count + 1):
        _build_department(state, template, rng, index)

    for index, role in enumerate(template.staff_roles, start=1):
        enroll_person(state, f"S{index}", role, name=f"{role} {index}")

    try:
        validate_invariants(state)
    except InvariantViolationError as exc:
        raise GeneratorInvariantError(exc) from exc

    logger.debug(
        "built org: seed=%d, %d departments, %d people",
        seed, len(state.departments), len(state.people),
    )
    return state


# ---------------------------------------------------------------------------
# Per-department steps
# ---------------------------------------------------------------------------

def _build_department(
    state: HierarchyState,
    template: OrgTemplate,
    rng: DeterministicRNG,
    index: int,
) -> None:
    did = f"D{index}"
    label = template.department_name(index)
    add_department(state, did, label)

    if rng.chance(template.head_percent):
        enroll_person(state, f"{did}-H", DEPARTMENT_HEAD, did, name=f"Head of {label}")

    managers: List[str] = []
    for m in range(1, rng.rand_int(template.min_managers, template.max_managers) + 1):
        pid = f"{did}-M{m}"
        enroll_person(state, pid, MANAGER, did, name=f"{label} Manager {m}")
        managers.append(pid)

    for u in range(1, rng.rand_int(template.min_members, template.max_members) + 1):
        enroll_person(
            state, f"{did}-U{u}", MEMBER, did,
            manager_id=_pick_manager(template, rng, managers),
            name=f"{label} Member {u}",
        )


def _pick_manager(
    template: OrgTemplate, rng: DeterministicRNG, managers: List[str],
) -> Optional[str]:
    if not managers or not rng.chance(template.managed_percent):
        return None
    return rng.rand_choice(managers)
