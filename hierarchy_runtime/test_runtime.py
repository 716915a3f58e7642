"""
Hierarchy Runtime — Integration Tests

  1. Persisted transition matches the in-memory engine
  2. Atomicity under a simulated store failure
  3. Stale read set is rejected at commit
  4. Session retries a conflicted unit of work
  5. Exhausted retries surface TransactionConflictError
  6. Rejected commands write nothing
  7. Exchanges through the store, and back
  8. Snapshot import (invalid rejected, valid replaces)
  9. No-op writes nothing
 10. Only changed rows get a new version
 11. Change set description
 12. Parallel workers keep the store valid
 13. A re-import never reuses a version an earlier read holds
 14. Seeded command stream: store-backed session == in-memory engine
 15. JSON log lines carry the unit-of-work fields

Run:  python -m hierarchy_runtime.test_runtime
Exit 0 on success, 1 on failure.
"""

from __future__ import annotations

import io
import json
import logging
import os
import random
import sqlite3
import sys
import tempfile
import threading

from hierarchy_kernel.commands import (
    ExchangeHeadsCommand, ExchangeManagersCommand, TransitionCommand,
)
from hierarchy_kernel.domain_types import DEPARTMENT_HEAD, MANAGER, MEMBER
from hierarchy_kernel.engine import HierarchyEngine
from hierarchy_kernel.errors import (
    HierarchyError, SameDepartmentHeadChangeError, TransactionConflictError,
)
from hierarchy_kernel.hashing import canonical_hash
from hierarchy_kernel.invariants import collect_violations, validate_invariants
from hierarchy_kernel.sample import build_sample_org
from hierarchy_kernel.snapshot import InvalidSnapshotError, snapshot_dict
from hierarchy_kernel.state import create_initial_state
from hierarchy_kernel.test_harness import HARNESS_TEMPLATE, dispatch_command, random_command
from hierarchy_kernel.transitions import apply_transition

from hierarchy_runtime.changeset import ChangeSet, compute_changeset, describe_changeset
from hierarchy_runtime.entity_repository import EntityRepository
from hierarchy_runtime.logging_config import UnitOfWorkFormatter
from hierarchy_runtime.session import HierarchySession

from generator import build_org


def _header(title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


class _TempStore:
    """Context manager yielding a repository seeded with the sample org."""

    def __init__(self, repo_cls=EntityRepository) -> None:
        self._repo_cls = repo_cls

    def __enter__(self) -> EntityRepository:
        self._tmp = tempfile.TemporaryDirectory()
        self.repo = self._repo_cls(os.path.join(self._tmp.name, "hierarchy.db"))
        self.repo.replace_all(build_sample_org())
        return self.repo

    def __exit__(self, *exc) -> None:
        self.repo.close()
        self._tmp.cleanup()


def _store_hash(repo: EntityRepository) -> str:
    return canonical_hash(repo.load_all().state)


def _rename_department(repo: EntityRepository, department_id: str, name: str) -> None:
    """Commit an unrelated write, as a concurrent request would."""
    read_set = EntityRepository.load_neighbourhood(repo, [], [department_id])
    dept = read_set.state.departments[department_id]
    dept.name = name
    repo.commit(read_set, ChangeSet(departments={department_id: dept}))


class _FailingRepository(EntityRepository):
    """Fails after the people rows of a commit have been written."""

    def _write_department(self, dept, read_version):
        raise sqlite3.OperationalError("disk I/O error")


class _ContendedRepository(EntityRepository):
    """Lets another writer slip in after each of the first N reads."""

    interfere_times = 0

    def load_neighbourhood(self, person_ids, department_ids=()):
        read_set = super().load_neighbourhood(person_ids, department_ids)
        if self.interfere_times > 0:
            self.interfere_times -= 1
            _rename_department(self, "D1", f"Engineering {self.interfere_times}")
        return read_set


# ───────────────────────────────────────────────────────────────
# Tests
# ───────────────────────────────────────────────────────────────

def test_01_persisted_transition_matches_engine() -> None:
    _header("Test 1 — store result == in-memory engine result")
    command = TransitionCommand("H2", DEPARTMENT_HEAD, target_department_id="D1")

    engine = HierarchyEngine()
    engine.load(build_sample_org())
    expected, _ = engine.apply_transition(command)

    with _TempStore() as repo:
        session = HierarchySession(repo)
        unit = session.apply_transition(command)
        assert unit.result.displaced_head_id == "H1"
        assert unit.attempts == 1
        stored = repo.load_all().state
        validate_invariants(stored)
        assert canonical_hash(stored) == canonical_hash(expected)
    print("\n[PASS] Test 1 PASSED")


def test_02_atomicity_under_store_failure() -> None:
    _header("Test 2 — failure mid-commit leaves the store untouched")
    with _TempStore(_FailingRepository) as repo:
        before = _store_hash(repo)
        session = HierarchySession(repo)
        try:
            session.apply_transition(
                TransitionCommand("U1", MEMBER, target_department_id="D2")
            )
        except sqlite3.OperationalError as exc:
            print(f"  Caught expected error: {exc}")
        else:
            raise AssertionError("expected the simulated failure")
        assert _store_hash(repo) == before
    print("\n[PASS] Test 2 PASSED")


def test_03_stale_read_set_is_rejected() -> None:
    _header("Test 3 — read-set validation")
    with _TempStore() as repo:
        read_set = repo.load_neighbourhood(["U2"], [])
        _rename_department(repo, "D1", "Platform")
        before = _store_hash(repo)

        person = read_set.state.people["U2"]
        person.name = "Late Writer"
        try:
            repo.commit(read_set, ChangeSet(people={"U2": person}))
        except TransactionConflictError as exc:
            assert exc.retryable is True
            print(f"  Caught expected error: {exc}")
        else:
            raise AssertionError("expected TransactionConflictError")
        assert _store_hash(repo) == before
    print("\n[PASS] Test 3 PASSED")


def test_04_session_retries_conflicts() -> None:
    _header("Test 4 — conflict then success")
    with _TempStore(_ContendedRepository) as repo:
        repo.interfere_times = 2
        session = HierarchySession(repo, max_conflict_retries=3)
        unit = session.apply_transition(
            TransitionCommand("U2", MEMBER, explicit_manager_id="M1")
        )
        assert unit.attempts == 3
        assert repo.get_person("U2").manager_id == "M1"
        metrics = session.get_metrics()
        assert metrics.conflicts == 2
        assert metrics.retries == 2
        assert metrics.committed == {"reassign_manager": 1}
    print("\n[PASS] Test 4 PASSED")


def test_05_exhausted_retries() -> None:
    _header("Test 5 — conflicts beyond the retry budget")
    with _TempStore(_ContendedRepository) as repo:
        repo.interfere_times = 10
        session = HierarchySession(repo, max_conflict_retries=2)
        try:
            session.apply_transition(
                TransitionCommand("U2", MEMBER, explicit_manager_id="M1")
            )
        except TransactionConflictError as exc:
            print(f"  Caught expected error: {exc}")
        else:
            raise AssertionError("expected TransactionConflictError")
        assert repo.get_person("U2").manager_id is None
        metrics = session.get_metrics()
        assert metrics.conflicts == 3
        assert metrics.retries == 2
        assert metrics.aborted == {"transaction_conflict": 1}

        # 0 disables retrying altogether
        repo.interfere_times = 1
        session = HierarchySession(repo, max_conflict_retries=0)
        try:
            session.apply_transition(
                TransitionCommand("U2", MEMBER, explicit_manager_id="M1")
            )
        except TransactionConflictError:
            pass
        else:
            raise AssertionError("expected TransactionConflictError")
    print("\n[PASS] Test 5 PASSED")


def test_06_rejected_command_writes_nothing() -> None:
    _header("Test 6 — kernel rejection")
    with _TempStore() as repo:
        before = _store_hash(repo)
        session = HierarchySession(repo)
        try:
            session.apply_transition(
                TransitionCommand("H1", MANAGER, target_department_id="D1")
            )
        except SameDepartmentHeadChangeError as exc:
            print(f"  Caught expected error: {exc}")
        else:
            raise AssertionError("expected SameDepartmentHeadChangeError")
        assert _store_hash(repo) == before
        assert session.get_metrics().aborted == {"same_department_head_change": 1}
    print("\n[PASS] Test 6 PASSED")


def test_07_exchanges_round_trip_through_store() -> None:
    _header("Test 7 — exchanges persisted")
    with _TempStore() as repo:
        original = _store_hash(repo)
        session = HierarchySession(repo)

        session.exchange_heads(ExchangeHeadsCommand("H1", "H3"))
        assert repo.get_department("D1").head_id == "H3"
        session.exchange_heads(ExchangeHeadsCommand("H3", "H1"))
        assert _store_hash(repo) == original

        unit = session.exchange_managers(ExchangeManagersCommand("M1", "M2"))
        assert unit.result.reassigned_member_ids == ("U1", "U3")
        assert repo.get_person("U1").manager_id == "M2"
        validate_invariants(repo.load_all().state)
    print("\n[PASS] Test 7 PASSED")


def test_08_snapshot_import() -> None:
    _header("Test 8 — import")
    with _TempStore() as repo:
        session = HierarchySession(repo)
        before = _store_hash(repo)

        bad = json.loads(json.dumps(snapshot_dict(build_sample_org())))
        bad["departments"]["D1"]["head_id"] = None
        try:
            session.import_snapshot(bad)
        except InvalidSnapshotError as exc:
            print(f"  Caught expected error: {exc}")
        else:
            raise AssertionError("expected InvalidSnapshotError")
        assert _store_hash(repo) == before

        smaller = build_sample_org(with_spare_manager=False)
        session.import_snapshot(json.loads(json.dumps(snapshot_dict(smaller))))
        assert _store_hash(repo) == canonical_hash(smaller)
        assert repo.get_person("M4") is None
    print("\n[PASS] Test 8 PASSED")


def test_09_noop_writes_nothing() -> None:
    _header("Test 9 — no-op")
    with _TempStore() as repo:
        versions = repo.load_all().person_versions
        session = HierarchySession(repo)
        unit = session.apply_transition(TransitionCommand("U2", MEMBER))
        assert unit.result.no_op is True
        assert unit.changes.is_empty()
        assert repo.load_all().person_versions == versions
    print("\n[PASS] Test 9 PASSED")


def test_10_versions_bump_on_changed_rows_only() -> None:
    _header("Test 10 — versions")
    with _TempStore() as repo:
        before = repo.load_all()
        session = HierarchySession(repo)
        unit = session.apply_transition(
            TransitionCommand("U1", MEMBER, explicit_manager_id="M4")
        )
        after = repo.load_all()
        assert set(unit.changes.people) == {"U1", "M1", "M4"}
        assert unit.changes.departments == {}
        for pid, version in after.person_versions.items():
            expected = before.person_versions[pid] + (1 if pid in unit.changes.people else 0)
            assert version == expected, (pid, version, expected)
        assert after.department_versions == before.department_versions
    print("\n[PASS] Test 10 PASSED")


def test_11_describe_changeset() -> None:
    _header("Test 11 — describe_changeset")
    before = build_sample_org()
    engine = HierarchyEngine()
    engine.load(before)
    after, _ = engine.apply_transition(
        TransitionCommand("U1", MEMBER, explicit_manager_id="M4")
    )
    changes = compute_changeset(before, after)
    lines = describe_changeset(before, changes)
    for line in lines:
        print(f"  {line}")
    assert "person U1 manager_id: 'M1' -> 'M4'" in lines
    assert "person M4 managed_member_ids: [] -> ['U1']" in lines
    assert changes.to_dict() == {"people": ["M1", "M4", "U1"], "departments": []}
    print("\n[PASS] Test 11 PASSED")


def test_12_parallel_workers() -> None:
    _header("Test 12 — parallel workers")
    with _TempStore() as repo:
        session = HierarchySession(repo, max_conflict_retries=50)
        errors = []

        def worker(member_id: str, managers: list) -> None:
            try:
                for i in range(10):
                    session.apply_transition(TransitionCommand(
                        member_id, MEMBER, explicit_manager_id=managers[i % 2],
                    ))
            except Exception as exc:  # collected and asserted below
                errors.append(exc)

        threads = [
            threading.Thread(target=worker, args=("U1", ["M4", "M1"])),
            threading.Thread(target=worker, args=("U2", ["M1", "M4"])),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == [], errors
        state = repo.load_all().state
        validate_invariants(state)
        assert state.people["U1"].manager_id == "M1"
        assert state.people["U2"].manager_id == "M4"
    print("\n[PASS] Test 12 PASSED")


def test_13_reimport_invalidates_earlier_reads() -> None:
    _header("Test 13 — re-import bumps versions past every earlier read")
    with _TempStore() as repo:
        read_set = repo.load_neighbourhood(["U2", "M1"], [])
        after, _ = apply_transition(
            read_set.state, TransitionCommand("U2", MEMBER, explicit_manager_id="M1"),
        )
        changes = compute_changeset(read_set.state, after)

        # same ids, different shape: M1 now works in D2
        engine = HierarchyEngine()
        engine.load(build_sample_org())
        moved, _ = engine.apply_transition(
            TransitionCommand("M1", MANAGER, target_department_id="D2")
        )
        repo.replace_all(moved)
        imported = repo.load_all()
        assert min(imported.person_versions.values()) > max(read_set.person_versions.values())

        try:
            repo.commit(read_set, changes)
        except TransactionConflictError as exc:
            print(f"  Caught expected error: {exc}")
        else:
            raise AssertionError("expected TransactionConflictError")
        stored = repo.load_all().state
        assert collect_violations(stored) == []
        assert canonical_hash(stored) == canonical_hash(moved)
        assert stored.people["U2"].manager_id is None

        # emptying the store in between does not restart the count
        high = max(repo.load_all().person_versions.values())
        repo.replace_all(create_initial_state())
        repo.replace_all(build_sample_org())
        assert min(repo.load_all().person_versions.values()) > high
    print("\n[PASS] Test 13 PASSED")


def _session_dispatch(session: HierarchySession, command) -> str:
    if isinstance(command, ExchangeHeadsCommand):
        session.exchange_heads(command)
        return "exchange_heads"
    if isinstance(command, ExchangeManagersCommand):
        session.exchange_managers(command)
        return "exchange_managers"
    return session.apply_transition(command).result.kind.value


def _outcome(dispatch, target, command) -> str:
    try:
        return dispatch(target, command)
    except HierarchyError as exc:
        return f"rejected:{exc.error}"


def test_14_session_matches_engine_on_seeded_stream() -> None:
    _header("Test 14 — store-backed session vs in-memory engine")
    for seed in (3, 42):
        org = build_org(HARNESS_TEMPLATE, seed)
        engine = HierarchyEngine()
        engine.load(org)
        rng = random.Random(seed)

        with _TempStore() as repo:
            repo.replace_all(org)
            session = HierarchySession(repo, max_conflict_retries=0)
            for step in range(150):
                command = random_command(rng, engine.state)
                expected = _outcome(dispatch_command, engine, command)
                actual = _outcome(_session_dispatch, session, command)
                assert actual == expected, (seed, step, command, expected, actual)
                assert _store_hash(repo) == canonical_hash(engine.state), (seed, step, command)

            metrics = session.get_metrics()
            print(f"  seed={seed}: committed={sum(metrics.committed.values())} "
                  f"aborted={sum(metrics.aborted.values())}")
            assert metrics.conflicts == 0
    print("\n[PASS] Test 14 PASSED")


def test_15_unit_of_work_log_lines() -> None:
    _header("Test 15 — JSON log lines carry the unit-of-work fields")
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(UnitOfWorkFormatter())
    session_logger = logging.getLogger("hierarchy_runtime.session")
    previous_level = session_logger.level
    session_logger.addHandler(handler)
    session_logger.setLevel(logging.INFO)
    try:
        with _TempStore() as repo:
            session = HierarchySession(repo)
            session.apply_transition(
                TransitionCommand("U1", MEMBER, explicit_manager_id="M4")
            )
            try:
                session.apply_transition(
                    TransitionCommand("H1", MANAGER, target_department_id="D1")
                )
            except SameDepartmentHeadChangeError:
                pass
    finally:
        session_logger.removeHandler(handler)
        session_logger.setLevel(previous_level)

    committed, aborted = [json.loads(line) for line in stream.getvalue().splitlines()]
    print(f"  {committed}\n  {aborted}")
    assert committed["operation"] == "apply_transition"
    assert committed["kind"] == "reassign_manager"
    assert committed["attempt"] == 1
    assert committed["people_written"] == 3
    assert committed["departments_written"] == 0
    assert "duration_ms" in committed
    assert "error_code" not in committed

    assert aborted["level"] == "INFO"
    assert aborted["error_code"] == "same_department_head_change"
    assert "kind" not in aborted
    print("\n[PASS] Test 15 PASSED")


# ───────────────────────────────────────────────────────────────
# Runner
# ───────────────────────────────────────────────────────────────

def main() -> None:
    results = []
    for fn in [
        test_01_persisted_transition_matches_engine,
        test_02_atomicity_under_store_failure,
        test_03_stale_read_set_is_rejected,
        test_04_session_retries_conflicts,
        test_05_exhausted_retries,
        test_06_rejected_command_writes_nothing,
        test_07_exchanges_round_trip_through_store,
        test_08_snapshot_import,
        test_09_noop_writes_nothing,
        test_10_versions_bump_on_changed_rows_only,
        test_11_describe_changeset,
        test_12_parallel_workers,
        test_13_reimport_invalidates_earlier_reads,
        test_14_session_matches_engine_on_seeded_stream,
        test_15_unit_of_work_log_lines,
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
