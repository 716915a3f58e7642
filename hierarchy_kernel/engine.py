"""
Hierarchy Kernel — Engine

Top-level in-memory orchestrator. Delegates mutation to transitions.py
and exchanges.py, validates via invariants.py, reports via diagnostics.py.
"""

from __future__ import annotations

from typing import Tuple

from .commands import ExchangeHeadsCommand, ExchangeManagersCommand, TransitionCommand
from .diagnostics import compute_diagnostics
from .domain_types import ExchangeResult, HierarchyState, TransitionResult
from .exchanges import exchange_heads as _exchange_heads
from .exchanges import exchange_managers as _exchange_managers
from .invariants import validate_invariants
from .state import create_initial_state
from .transitions import apply_transition as _transition_apply


class HierarchyEngine:
    """
    Stateful engine that wraps the pure functional layer.

    Every call computes on a copy, validates the whole result, and only
    then replaces the held state. A raised error leaves it untouched.
    """

    def __init__(self) -> None:
        self._state: HierarchyState | None = None

    # -- State access -------------------------------------------------------

    @property
    def state(self) -> HierarchyState:
        if self._state is None:
            raise RuntimeError("Engine not initialised — call initialize_state() first")
        return self._state

    # -- Public API ---------------------------------------------------------

    def initialize_state(self) -> HierarchyState:
        """Create a fresh empty state and store it."""
        self._state = create_initial_state()
        return self._state

    def load(self, state: HierarchyState) -> HierarchyState:
        """Adopt an existing state after validating it."""
        validate_invariants(state)
        self._state = state.copy()
        return self._state

    def apply_transition(
        self, command: TransitionCommand,
    ) -> Tuple[HierarchyState, TransitionResult]:
        new_state, result = _transition_apply(self.state, command)
        validate_invariants(new_state)
        self._state = new_state
        return new_state, result

    def exchange_heads(
        self, command: ExchangeHeadsCommand,
    ) -> Tuple[HierarchyState, ExchangeResult]:
        new_state, result = _exchange_heads(self.state, command)
        validate_invariants(new_state)
        self._state = new_state
        return new_state, result

    def exchange_managers(
        self, command: ExchangeManagersCommand,
    ) -> Tuple[HierarchyState, ExchangeResult]:
        new_state, result = _exchange_managers(self.state, command)
        validate_invariants(new_state)
        self._state = new_state
        return new_state, result

    def get_diagnostics(self) -> dict:
        """Return diagnostic snapshot of the current state."""
        return compute_diagnostics(self.state)
