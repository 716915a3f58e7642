"""
Hierarchy Kernel — Centralized Transition Logic

ALL single-person role/department mutation lives here.

A request is classified through an explicit table keyed by
(old role class, target role, department changed) into a TransitionKind.
Each kind has its own handler. Handlers are built from a small set of
two-sided primitives (_detach, _attach_manager, _attach_member,
_install_head) so that every reference is written on both sides in the
same step.

The input state is never mutated — a deep copy is made first.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Set, Tuple

from .commands import TransitionCommand
from .domain_types import (
    DEPARTMENT_HEAD, HIERARCHY_ROLES, MANAGER, MEMBER,
    HierarchyState, Person, TransitionKind, TransitionResult,
)
from .errors import (
    MissingTargetHeadError, NotFoundError, SameDepartmentHeadChangeError,
    TransitionValidationError,
)
from .roles import normalize_role

logger = logging.getLogger(__name__)

_OPAQUE = "opaque"

# Marks table entries that are forbidden because a head may not change
# role (or re-become head) inside their own department.
_SAME_DEPARTMENT_LOCK = "same_department_lock"


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

_TRANSITION_TABLE: Dict[Tuple[str, str, bool], object] = {
    (DEPARTMENT_HEAD, DEPARTMENT_HEAD, True): TransitionKind.HEAD_TO_HEAD,
    (DEPARTMENT_HEAD, DEPARTMENT_HEAD, False): _SAME_DEPARTMENT_LOCK,
    (DEPARTMENT_HEAD, MANAGER, True): TransitionKind.DEMOTE_HEAD,
    (DEPARTMENT_HEAD, MANAGER, False): _SAME_DEPARTMENT_LOCK,
    (DEPARTMENT_HEAD, MEMBER, True): TransitionKind.DEMOTE_HEAD,
    (DEPARTMENT_HEAD, MEMBER, False): _SAME_DEPARTMENT_LOCK,

    (MANAGER, DEPARTMENT_HEAD, True): TransitionKind.PROMOTE_TO_HEAD,
    (MANAGER, DEPARTMENT_HEAD, False): TransitionKind.PROMOTE_TO_HEAD,
    (MANAGER, MANAGER, True): TransitionKind.LATERAL_MOVE,
    (MANAGER, MANAGER, False): TransitionKind.REASSIGN_MANAGER,
    (MANAGER, MEMBER, True): TransitionKind.RANK_CHANGE,
    (MANAGER, MEMBER, False): TransitionKind.RANK_CHANGE,

    (MEMBER, DEPARTMENT_HEAD, True): TransitionKind.PROMOTE_TO_HEAD,
    (MEMBER, DEPARTMENT_HEAD, False): TransitionKind.PROMOTE_TO_HEAD,
    (MEMBER, MANAGER, True): TransitionKind.RANK_CHANGE,
    (MEMBER, MANAGER, False): TransitionKind.RANK_CHANGE,
    (MEMBER, MEMBER, True): TransitionKind.LATERAL_MOVE,
    (MEMBER, MEMBER, False): TransitionKind.REASSIGN_MANAGER,

    (_OPAQUE, DEPARTMENT_HEAD, True): TransitionKind.PROMOTE_TO_HEAD,
    (_OPAQUE, DEPARTMENT_HEAD, False): TransitionKind.PROMOTE_TO_HEAD,
    (_OPAQUE, MANAGER, True): TransitionKind.RANK_CHANGE,
    (_OPAQUE, MANAGER, False): TransitionKind.RANK_CHANGE,
    (_OPAQUE, MEMBER, True): TransitionKind.RANK_CHANGE,
    (_OPAQUE, MEMBER, False): TransitionKind.RANK_CHANGE,
}


def classify_transition(
    old_role: str,
    old_department_id: Optional[str],
    target_role: str,
    target_department_id: Optional[str],
) -> TransitionKind:
    """
    Look up the TransitionKind for a (before, after) pair.

    Raises SameDepartmentHeadChangeError for the locked head entries.
    """
    role_class = old_role if old_role in HIERARCHY_ROLES else _OPAQUE
    department_changed = old_department_id != target_department_id
    entry = _TRANSITION_TABLE[(role_class, target_role, department_changed)]
    if entry is _SAME_DEPARTMENT_LOCK:
        raise SameDepartmentHeadChangeError(
            "A department head cannot change role within the same department. "
            "The head must either stay head or move to a different department."
        )
    return entry  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Public dispatcher
# ---------------------------------------------------------------------------

def apply_transition(
    state: HierarchyState, command: TransitionCommand,
) -> Tuple[HierarchyState, TransitionResult]:
    """
    Apply *command* to *state* and return ``(new_state, result)``.

    All request validation happens before the copy is touched; a raised
    HierarchyError therefore never leaves partial changes anywhere.
    """
    target_role = _resolve_target_role(command.target_role)
    person = _require_person(state, command.person_id)
    # an empty manager id means "none given"
    explicit_manager_id = command.explicit_manager_id or None

    if target_role == DEPARTMENT_HEAD and not command.target_department_id:
        raise TransitionValidationError(
            "Department ID is required when assigning the department head role"
        )
    target_department_id = command.target_department_id or person.department_id
    if target_department_id is None:
        raise TransitionValidationError(
            f"Role {target_role!r} requires a department; "
            f"person {person.id!r} has none"
        )
    if target_department_id not in state.departments:
        raise NotFoundError(f"Department {target_department_id!r} does not exist")

    kind = classify_transition(
        person.role, person.department_id, target_role, target_department_id,
    )
    _validate_explicit_manager(
        state, person, target_role, target_department_id, explicit_manager_id,
    )
    if kind is TransitionKind.LATERAL_MOVE and state.head_of(target_department_id) is None:
        raise MissingTargetHeadError(
            f"No department head found for target department {target_department_id!r}"
        )

    logger.debug(
        "transition %s: %s/%s -> %s/%s",
        kind.value, person.role, person.department_id,
        target_role, target_department_id,
    )

    new_state = state.copy()
    touched = _Touched()
    handler = _HANDLERS[kind]
    result = handler(
        new_state,
        new_state.people[person.id],
        target_role,
        target_department_id,
        explicit_manager_id,
        touched,
    )
    return new_state, result


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _resolve_target_role(raw: str) -> str:
    try:
        role = normalize_role(raw)
    except ValueError as exc:
        raise TransitionValidationError(str(exc)) from exc
    if role not in HIERARCHY_ROLES:
        raise TransitionValidationError(
            f"Role {role!r} is not a hierarchy role; transitions target "
            f"{list(HIERARCHY_ROLES)} only"
        )
    return role


def _require_person(state: HierarchyState, person_id: str) -> Person:
    person = state.people.get(person_id)
    if person is None:
        raise NotFoundError(f"Person {person_id!r} does not exist")
    return person


def _validate_explicit_manager(
    state: HierarchyState,
    person: Person,
    target_role: str,
    target_department_id: str,
    explicit_manager_id: Optional[str],
) -> None:
    if not explicit_manager_id:
        return
    if target_role != MEMBER:
        raise TransitionValidationError(
            f"An explicit manager can only be assigned to a member, not a {target_role}"
        )
    if explicit_manager_id == person.id:
        raise TransitionValidationError("A member cannot be their own manager")
    manager = state.people.get(explicit_manager_id)
    if manager is None:
        raise NotFoundError(f"Manager {explicit_manager_id!r} does not exist")
    if manager.role != MANAGER or manager.department_id != target_department_id:
        raise TransitionValidationError(
            f"Person {manager.id!r} is not a manager of department "
            f"{target_department_id!r}"
        )


# ---------------------------------------------------------------------------
# Two-sided primitives (private)
# ---------------------------------------------------------------------------

class _Touched:
    """Collects the ids of every record a handler wrote."""

    def __init__(self) -> None:
        self.people: Set[str] = set()
        self.departments: Set[str] = set()

    def person(self, person: Optional[Person]) -> None:
        if person is not None:
            self.people.add(person.id)

    def department(self, department_id: Optional[str]) -> None:
        if department_id is not None:
            self.departments.add(department_id)


def _detach(state: HierarchyState, person: Person, touched: _Touched) -> Tuple[str, ...]:
    """
    Remove *person* from every hierarchy relationship of their current
    role. Returns the ids of members released from a manager.
    """
    touched.person(person)
    dept = state.departments.get(person.department_id or "")
    head = state.head_of(person.department_id)
    released: Tuple[str, ...] = ()

    if person.role == DEPARTMENT_HEAD:
        if dept is not None and dept.head_id == person.id:
            dept.head_id = None
            touched.department(dept.id)

    elif person.role == MANAGER:
        if dept is not None:
            dept.manager_ids.discard(person.id)
            touched.department(dept.id)
        if head is not None and head.id != person.id:
            head.managed_manager_ids.discard(person.id)
            touched.person(head)
        released = _release_members(state, person, touched)

    elif person.role == MEMBER:
        if dept is not None:
            dept.member_ids.discard(person.id)
            touched.department(dept.id)
        if head is not None:
            head.managed_member_ids.discard(person.id)
            touched.person(head)
        _unlink_manager(state, person, touched)

    person.manager_id = None
    person.managed_manager_ids = set()
    person.managed_member_ids = set()
    return released


def _release_members(
    state: HierarchyState, manager: Person, touched: _Touched,
) -> Tuple[str, ...]:
    """Clear manager_id on every member *manager* supervises."""
    released = tuple(sorted(manager.managed_member_ids))
    for mid in released:
        member = state.people.get(mid)
        if member is not None and member.manager_id == manager.id:
            member.manager_id = None
            touched.person(member)
    manager.managed_member_ids = set()
    return released


def _unlink_manager(state: HierarchyState, member: Person, touched: _Touched) -> None:
    if member.manager_id is None:
        return
    manager = state.people.get(member.manager_id)
    if manager is not None:
        manager.managed_member_ids.discard(member.id)
        touched.person(manager)
    member.manager_id = None


def _attach_manager(
    state: HierarchyState, person: Person, department_id: str, touched: _Touched,
) -> None:
    dept = state.departments[department_id]
    person.role = MANAGER
    person.department_id = dept.id
    person.manager_id = None
    dept.manager_ids.add(person.id)
    touched.department(dept.id)
    head = state.head_of(dept.id)
    if head is not None:
        head.managed_manager_ids.add(person.id)
        touched.person(head)


def _attach_member(
    state: HierarchyState,
    person: Person,
    department_id: str,
    manager_id: Optional[str],
    touched: _Touched,
) -> None:
    dept = state.departments[department_id]
    person.role = MEMBER
    person.department_id = dept.id
    dept.member_ids.add(person.id)
    touched.department(dept.id)
    head = state.head_of(dept.id)
    if head is not None:
        head.managed_member_ids.add(person.id)
        touched.person(head)
    _link_manager(state, person, manager_id, touched)


def _link_manager(
    state: HierarchyState, member: Person, manager_id: Optional[str], touched: _Touched,
) -> None:
    member.manager_id = manager_id
    if manager_id is not None:
        manager = state.people[manager_id]
        manager.managed_member_ids.add(member.id)
        touched.person(manager)


def _install_head(
    state: HierarchyState, person: Person, department_id: str, touched: _Touched,
) -> Optional[str]:
    """
    Make *person* the head of *department_id*.

    A head already in place is displaced to an unassigned member and the
    newcomer inherits that head's managed sets (transfer). Without a
    previous head the sets are taken from the department itself.
    Returns the displaced head id, if any.
    """
    dept = state.departments[department_id]
    previous = state.head_of(dept.id)
    displaced_id: Optional[str] = None

    if previous is not None and previous.id != person.id:
        inherited_managers = set(previous.managed_manager_ids)
        inherited_members = set(previous.managed_member_ids)
        previous.role = MEMBER
        previous.department_id = None
        previous.manager_id = None
        previous.managed_manager_ids = set()
        previous.managed_member_ids = set()
        touched.person(previous)
        displaced_id = previous.id
    else:
        inherited_managers = set(dept.manager_ids)
        inherited_members = set(dept.member_ids)

    inherited_managers.discard(person.id)
    inherited_members.discard(person.id)

    dept.head_id = person.id
    touched.department(dept.id)
    person.role = DEPARTMENT_HEAD
    person.department_id = dept.id
    person.manager_id = None
    person.managed_manager_ids = inherited_managers
    person.managed_member_ids = inherited_members
    touched.person(person)
    return displaced_id


def _result(
    kind: TransitionKind,
    person: Person,
    touched: _Touched,
    displaced_head_id: Optional[str] = None,
    released: Tuple[str, ...] = (),
    no_op: bool = False,
) -> TransitionResult:
    return TransitionResult(
        kind=kind,
        person_id=person.id,
        touched_person_ids=tuple(sorted(touched.people)),
        touched_department_ids=tuple(sorted(touched.departments)),
        displaced_head_id=displaced_head_id,
        released_member_ids=released,
        no_op=no_op,
    )


# ---------------------------------------------------------------------------
# Individual transition handlers (private)
# ---------------------------------------------------------------------------

def _apply_promote_to_head(
    state: HierarchyState,
    person: Person,
    target_role: str,
    target_department_id: str,
    explicit_manager_id: Optional[str],
    touched: _Touched,
) -> TransitionResult:
    """Any non-head role becomes head; a sitting head is displaced."""
    released = _detach(state, person, touched)
    displaced = _install_head(state, person, target_department_id, touched)
    return _result(
        TransitionKind.PROMOTE_TO_HEAD, person, touched,
        displaced_head_id=displaced, released=released,
    )


def _apply_head_to_head(
    state: HierarchyState,
    person: Person,
    target_role: str,
    target_department_id: str,
    explicit_manager_id: Optional[str],
    touched: _Touched,
) -> TransitionResult:
    """A head moves to head another department; the old one goes headless."""
    _detach(state, person, touched)
    displaced = _install_head(state, person, target_department_id, touched)
    return _result(
        TransitionKind.HEAD_TO_HEAD, person, touched, displaced_head_id=displaced,
    )


def _apply_demote_head(
    state: HierarchyState,
    person: Person,
    target_role: str,
    target_department_id: str,
    explicit_manager_id: Optional[str],
    touched: _Touched,
) -> TransitionResult:
    """A head becomes manager/member of a different department."""
    _detach(state, person, touched)
    if target_role == MANAGER:
        _attach_manager(state, person, target_department_id, touched)
    else:
        _attach_member(state, person, target_department_id, explicit_manager_id, touched)
    return _result(TransitionKind.DEMOTE_HEAD, person, touched)


def _apply_rank_change(
    state: HierarchyState,
    person: Person,
    target_role: str,
    target_department_id: str,
    explicit_manager_id: Optional[str],
    touched: _Touched,
) -> TransitionResult:
    """manager <-> member, or an opaque role entering the hierarchy."""
    released = _detach(state, person, touched)
    if target_role == MANAGER:
        _attach_manager(state, person, target_department_id, touched)
    else:
        _attach_member(state, person, target_department_id, explicit_manager_id, touched)
    return _result(TransitionKind.RANK_CHANGE, person, touched, released=released)


def _apply_lateral_move(
    state: HierarchyState,
    person: Person,
    target_role: str,
    target_department_id: str,
    explicit_manager_id: Optional[str],
    touched: _Touched,
) -> TransitionResult:
    """Same role, new department. The target head is checked by the dispatcher."""
    released = _detach(state, person, touched)
    if target_role == MANAGER:
        _attach_manager(state, person, target_department_id, touched)
    else:
        _attach_member(state, person, target_department_id, explicit_manager_id, touched)
    return _result(TransitionKind.LATERAL_MOVE, person, touched, released=released)


def _apply_reassign_manager(
    state: HierarchyState,
    person: Person,
    target_role: str,
    target_department_id: str,
    explicit_manager_id: Optional[str],
    touched: _Touched,
) -> TransitionResult:
    """Role and department unchanged: re-point a member's manager, else no-op."""
    if (
        person.role != MEMBER
        or explicit_manager_id is None
        or explicit_manager_id == person.manager_id
    ):
        return _result(TransitionKind.REASSIGN_MANAGER, person, touched, no_op=True)

    touched.person(person)
    _unlink_manager(state, person, touched)
    _link_manager(state, person, explicit_manager_id, touched)
    return _result(TransitionKind.REASSIGN_MANAGER, person, touched)


_Handler = Callable[
    [HierarchyState, Person, str, str, Optional[str], _Touched], TransitionResult,
]

_HANDLERS: Dict[TransitionKind, _Handler] = {
    TransitionKind.PROMOTE_TO_HEAD: _apply_promote_to_head,
    TransitionKind.HEAD_TO_HEAD: _apply_head_to_head,
    TransitionKind.DEMOTE_HEAD: _apply_demote_head,
    TransitionKind.RANK_CHANGE: _apply_rank_change,
    TransitionKind.LATERAL_MOVE: _apply_lateral_move,
    TransitionKind.REASSIGN_MANAGER: _apply_reassign_manager,
}
