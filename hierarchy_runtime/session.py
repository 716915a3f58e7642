"""
Hierarchy Session — orchestrates kernel + persistence.

One call = one unit of work:
  1. repository.load_neighbourhood(...)  — records + versions
  2. kernel function on the loaded sub-state (pure, may raise)
  3. validate_invariants(after)          — may raise InvariantViolationError
  4. compute_changeset(before, after)
  5. repository.commit(read_set, changes) — one transaction, read-set
     validation; raises TransactionConflictError on a stale read

Nothing is written unless every step succeeds. A conflicted unit is
reloaded and recomputed up to max_conflict_retries times.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple, Union

from hierarchy_kernel.commands import (
    ExchangeHeadsCommand, ExchangeManagersCommand, TransitionCommand,
)
from hierarchy_kernel.diagnostics import compute_diagnostics
from hierarchy_kernel.domain_types import (
    Department, ExchangeResult, HierarchyState, Person, TransitionResult,
)
from hierarchy_kernel.errors import HierarchyError, TransactionConflictError
from hierarchy_kernel.exchanges import exchange_heads, exchange_managers
from hierarchy_kernel.invariants import validate_invariants
from hierarchy_kernel.snapshot import restore_snapshot_dict
from hierarchy_kernel.transitions import apply_transition

from .changeset import ChangeSet, compute_changeset, describe_changeset
from .entity_repository import EntityRepository
from .observability import MetricsRecorder, SessionMetrics, collect_metrics

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONFLICT_RETRIES = 3

OperationResult = Union[TransitionResult, ExchangeResult]
_KernelFn = Callable[[HierarchyState], Tuple[HierarchyState, OperationResult]]
Authorizer = Callable[[str, str], None]


@dataclass(frozen=True)
class CommittedUnit:
    """What a successful unit of work produced."""

    result: OperationResult
    state: HierarchyState        # the neighbourhood after the change
    changes: ChangeSet
    attempts: int


class HierarchySession:
    """
    Runs kernel operations against a persistent store.

    The repository may be the sqlite EntityRepository or the PostgreSQL
    adapter in backend/; both expose load_neighbourhood / load_all /
    commit / replace_all.
    """

    def __init__(
        self,
        repository: EntityRepository,
        max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
        metrics: Optional[MetricsRecorder] = None,
    ) -> None:
        if max_conflict_retries < 0:
            raise ValueError("max_conflict_retries must be >= 0")
        self._repo = repository
        self._max_conflict_retries = max_conflict_retries
        self.metrics = metrics or MetricsRecorder()

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    def apply_transition(
        self,
        command: TransitionCommand,
        authorize: Optional[Authorizer] = None,
    ) -> CommittedUnit:
        """
        *authorize(current_role, target_role)* is called on every attempt
        with the role as loaded for that attempt, so the permission check
        and the write rest on the same versioned read. It raises to refuse.
        """
        people = [command.person_id]
        if command.explicit_manager_id:
            people.append(command.explicit_manager_id)

        def kernel_fn(state: HierarchyState):
            person = state.people.get(command.person_id)
            if authorize is not None and person is not None:
                authorize(person.role, command.target_role.strip().lower())
            return apply_transition(state, command)

        return self._run(
            "apply_transition", people, [command.target_department_id], kernel_fn,
        )

    def exchange_heads(self, command: ExchangeHeadsCommand) -> CommittedUnit:
        return self._run(
            "exchange_heads",
            [command.source_head_id, command.target_head_id],
            [],
            lambda state: exchange_heads(state, command),
        )

    def exchange_managers(self, command: ExchangeManagersCommand) -> CommittedUnit:
        return self._run(
            "exchange_managers",
            [command.source_manager_id, command.target_manager_id],
            [],
            lambda state: exchange_managers(state, command),
        )

    def _run(
        self,
        operation: str,
        person_ids: Iterable[str],
        department_ids: Iterable[Optional[str]],
        kernel_fn: _KernelFn,
    ) -> CommittedUnit:
        person_ids = list(person_ids)
        department_ids = list(department_ids)
        attempt = 0
        while True:
            attempt += 1
            start = time.perf_counter()
            try:
                read_set = self._repo.load_neighbourhood(person_ids, department_ids)
                new_state, result = kernel_fn(read_set.state)
                validate_invariants(new_state)
                changes = compute_changeset(read_set.state, new_state)
                self._repo.commit(read_set, changes)
            except TransactionConflictError as exc:
                retry = attempt <= self._max_conflict_retries
                self.metrics.record_conflict(retried=retry)
                logger.warning(
                    "%s conflicted on attempt %d: %s", operation, attempt, exc,
                    extra={"operation": operation, "attempt": attempt},
                )
                if retry:
                    continue
                self.metrics.record_abort(exc.error)
                raise
            except HierarchyError as exc:
                self.metrics.record_abort(exc.error)
                logger.info(
                    "%s aborted: %s", operation, exc,
                    extra={"operation": operation, "error_code": exc.error},
                )
                raise

            duration_ms = round((time.perf_counter() - start) * 1000.0, 2)
            kind = _kind_of(operation, result)
            self.metrics.record_commit(
                kind, duration_ms, len(changes.people), len(changes.departments),
            )
            logger.info(
                "%s committed: %s wrote %d people, %d departments",
                operation, kind, len(changes.people), len(changes.departments),
                extra={
                    "operation": operation,
                    "kind": kind,
                    "attempt": attempt,
                    "duration_ms": duration_ms,
                    "people_written": len(changes.people),
                    "departments_written": len(changes.departments),
                },
            )
            if logger.isEnabledFor(logging.DEBUG):
                for line in describe_changeset(read_set.state, changes):
                    logger.debug(line)
            return CommittedUnit(
                result=result, state=new_state, changes=changes, attempts=attempt,
            )

    # ------------------------------------------------------------------
    # Whole-organization operations
    # ------------------------------------------------------------------

    def get_person(self, person_id: str) -> Optional[Person]:
        return self._repo.get_person(person_id)

    def get_department(self, department_id: str) -> Optional[Department]:
        return self._repo.get_department(department_id)

    def get_org_chart(self) -> HierarchyState:
        return self._repo.load_all().state

    def get_diagnostics(self) -> dict:
        return compute_diagnostics(self.get_org_chart())

    def import_snapshot(self, document: dict) -> HierarchyState:
        """Validate a snapshot document and make it the stored org chart."""
        try:
            state = restore_snapshot_dict(document)
        except HierarchyError as exc:
            self.metrics.record_abort(exc.error)
            raise
        self._repo.replace_all(state)
        self.metrics.record_commit("import", 0.0, len(state.people), len(state.departments))
        return state

    def get_metrics(self) -> SessionMetrics:
        return collect_metrics(self)


def _kind_of(operation: str, result: OperationResult) -> str:
    if isinstance(result, TransitionResult):
        return result.kind.value
    return operation
