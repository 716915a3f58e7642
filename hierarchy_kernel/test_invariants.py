"""
Hierarchy Kernel — Invariant Checks

Each check is exercised against a hand-corrupted copy of the sample org.

Run:  python -m hierarchy_kernel.test_invariants
"""

from __future__ import annotations

import sys

from hierarchy_kernel.domain_types import MANAGER
from hierarchy_kernel.engine import HierarchyEngine
from hierarchy_kernel.invariants import (
    InvariantViolationError, collect_violations, validate_invariants,
)
from hierarchy_kernel.sample import build_sample_org


def _header(title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


def _expect_rule(state, rule: str) -> None:
    try:
        validate_invariants(state)
    except InvariantViolationError as exc:
        assert exc.rule == rule, f"expected {rule}, got {exc.rule}: {exc}"
        assert str(exc).startswith(f"[INVARIANT:{rule}]")
        print(f"  Caught expected error: {exc}")
        return
    raise AssertionError(f"expected [INVARIANT:{rule}]")


def test_01_sample_org_is_valid() -> None:
    _header("Test 1 — Sample org passes every check")
    state = build_sample_org()
    validate_invariants(state)
    assert collect_violations(state) == []
    print("\n[PASS] Test 1 PASSED")


def test_02_head_reference() -> None:
    _header("Test 2 — head_reference")
    state = build_sample_org()
    state.departments["D1"].head_id = "U1"
    _expect_rule(state, "head_reference")

    state = build_sample_org()
    state.departments["D1"].head_id = None
    _expect_rule(state, "head_reference")

    state = build_sample_org()
    state.departments["D1"].head_id = "ghost"
    _expect_rule(state, "head_reference")
    print("\n[PASS] Test 2 PASSED")


def test_03_manager_containment() -> None:
    _header("Test 3 — manager_containment")
    state = build_sample_org()
    state.departments["D1"].manager_ids.discard("M4")
    state.people["H1"].managed_manager_ids.discard("M4")
    _expect_rule(state, "manager_containment")

    state = build_sample_org()
    state.departments["D2"].manager_ids.add("M1")
    _expect_rule(state, "manager_containment")
    print("\n[PASS] Test 3 PASSED")


def test_04_member_containment() -> None:
    _header("Test 4 — member_containment")
    state = build_sample_org()
    state.departments["D1"].member_ids.add("U3")
    _expect_rule(state, "member_containment")

    state = build_sample_org()
    state.people["U2"].department_id = "D3"
    _expect_rule(state, "member_containment")
    print("\n[PASS] Test 4 PASSED")


def test_05_managed_sets() -> None:
    _header("Test 5 — managed_sets")
    state = build_sample_org()
    state.people["H1"].managed_member_ids.discard("U2")
    _expect_rule(state, "managed_sets")

    state = build_sample_org()
    state.people["M1"].managed_manager_ids.add("M4")
    _expect_rule(state, "managed_sets")

    state = build_sample_org()
    state.people["hr1"].managed_member_ids.add("U1")
    _expect_rule(state, "managed_sets")
    print("\n[PASS] Test 5 PASSED")


def test_06_manager_link() -> None:
    _header("Test 6 — manager_link")
    state = build_sample_org()
    state.people["M1"].manager_id = "M4"
    _expect_rule(state, "manager_link")

    state = build_sample_org()
    state.people["U2"].manager_id = "M1"
    _expect_rule(state, "manager_link")

    state = build_sample_org()
    state.people["U2"].manager_id = "M2"
    _expect_rule(state, "manager_link")

    state = build_sample_org()
    state.people["M4"].managed_member_ids.add("U2")
    _expect_rule(state, "manager_link")
    print("\n[PASS] Test 6 PASSED")


def test_07_collect_reports_every_rule() -> None:
    _header("Test 7 — collect_violations")
    state = build_sample_org()
    state.departments["D1"].head_id = None
    state.people["M2"].role = MANAGER
    state.people["M2"].manager_id = "M2"
    state.departments["D3"].member_ids.add("U1")

    rules = sorted(exc.rule for exc in collect_violations(state))
    assert "head_reference" in rules
    assert "member_containment" in rules
    assert "manager_link" in rules
    print(f"  rules = {rules}")
    print("\n[PASS] Test 7 PASSED")


def test_08_engine_refuses_invalid_state() -> None:
    _header("Test 8 — HierarchyEngine.load validates")
    state = build_sample_org()
    state.people["U1"].manager_id = None
    engine = HierarchyEngine()
    try:
        engine.load(state)
    except InvariantViolationError as exc:
        assert exc.rule == "manager_link"
    else:
        raise AssertionError("expected InvariantViolationError")
    print("\n[PASS] Test 8 PASSED")


def main() -> None:
    results = []
    for fn in [
        test_01_sample_org_is_valid,
        test_02_head_reference,
        test_03_manager_containment,
        test_04_member_containment,
        test_05_managed_sets,
        test_06_manager_link,
        test_07_collect_reports_every_rule,
        test_08_engine_refuses_invalid_state,
    ]:
        try:
            fn()
            results.append(True)
        except Exception as e:
            print(f"\n[ERROR] UNEXPECTED ERROR in {fn.__name__}: {e}")
            import traceback
            traceback.print_exc()
            results.append(False)

    print(f"\n{'='*60}")
    print(f"  RESULTS: {sum(results)}/{len(results)} tests passed")
    print(f"{'='*60}")
    sys.exit(0 if all(results) else 1)


if __name__ == "__main__":
    main()
