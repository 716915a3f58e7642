"""
Hierarchy Kernel — Snapshot & Hashing Tests

  1-6:  decode validation
  7-9:  file I/O
  10-11: canonical hash stability

Run:  python -m hierarchy_kernel.test_snapshot
"""

from __future__ import annotations

import json
import pathlib
import sys
import tempfile

from hierarchy_kernel.hashing import canonical_hash, canonical_serialize
from hierarchy_kernel.sample import build_sample_org
from hierarchy_kernel.snapshot import (
    DeserializationError,
    InvalidSnapshotError,
    SnapshotError,
    decode_snapshot,
    encode_snapshot,
    export_snapshot_to_file,
    import_snapshot_from_file,
    restore_snapshot,
    snapshot_hash,
)


def _header(title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


def _document() -> dict:
    return json.loads(encode_snapshot(build_sample_org()))


def _expect_decode_error(doc: dict, exc_type=DeserializationError) -> None:
    try:
        restore_snapshot(json.dumps(doc))
    except exc_type as exc:
        print(f"  Caught expected {type(exc).__name__}: {exc}")
        assert isinstance(exc, SnapshotError)
        return
    raise AssertionError(f"expected {exc_type.__name__}")


def test_01_restore_preserves_state() -> None:
    _header("Test 1 — encode then restore")
    state = build_sample_org()
    restored = restore_snapshot(encode_snapshot(state))
    assert canonical_hash(restored) == canonical_hash(state)
    assert restored.people["H1"].managed_member_ids == {"U1", "U2"}
    print("\n[PASS] Test 1 PASSED")


def test_02_unknown_and_missing_fields() -> None:
    _header("Test 2 — field whitelist")
    doc = _document()
    doc["extra"] = 1
    _expect_decode_error(doc)

    doc = _document()
    del doc["people"]["U1"]["manager_id"]
    _expect_decode_error(doc)

    doc = _document()
    doc["departments"]["D1"]["budget"] = 10
    _expect_decode_error(doc)
    print("\n[PASS] Test 2 PASSED")


def test_03_bad_types() -> None:
    _header("Test 3 — type checks")
    doc = _document()
    doc["people"]["U1"]["managed_member_ids"] = "U2"
    _expect_decode_error(doc)

    doc = _document()
    doc["departments"]["D1"]["member_ids"] = ["U1", 7]
    _expect_decode_error(doc)

    doc = _document()
    doc["people"]["U1"]["department_id"] = 3
    _expect_decode_error(doc)

    _expect_decode_error([])  # type: ignore[arg-type]
    print("\n[PASS] Test 3 PASSED")


def test_04_identity_and_roles() -> None:
    _header("Test 4 — key/id mismatch, unknown role, duplicates")
    doc = _document()
    doc["people"]["U1"]["id"] = "U9"
    _expect_decode_error(doc)

    doc = _document()
    doc["people"]["U1"]["role"] = "intern"
    _expect_decode_error(doc)

    doc = _document()
    doc["departments"]["D1"]["member_ids"] = ["U1", "U1", "U2"]
    _expect_decode_error(doc)

    doc = _document()
    doc["snapshot_version"] = 99
    _expect_decode_error(doc)
    print("\n[PASS] Test 4 PASSED")


def test_05_invariant_violation_rejected() -> None:
    _header("Test 5 — well-formed but inconsistent snapshot")
    doc = _document()
    doc["departments"]["D1"]["head_id"] = None
    _expect_decode_error(doc, InvalidSnapshotError)
    print("\n[PASS] Test 5 PASSED")


def test_06_invalid_json() -> None:
    _header("Test 6 — malformed JSON text")
    try:
        decode_snapshot("{not json")
    except DeserializationError as exc:
        print(f"  Caught expected error: {exc}")
    else:
        raise AssertionError("expected DeserializationError")
    print("\n[PASS] Test 6 PASSED")


def test_07_export_import_file() -> None:
    _header("Test 7 — export / import through a file")
    state = build_sample_org()
    with tempfile.TemporaryDirectory() as tmp:
        path = pathlib.Path(tmp) / "org.json"
        export_snapshot_to_file(state, path)
        assert path.read_text(encoding="utf-8") == encode_snapshot(state)
        restored = import_snapshot_from_file(path)
    assert canonical_hash(restored) == canonical_hash(state)
    print("\n[PASS] Test 7 PASSED")


def test_08_missing_file() -> None:
    _header("Test 8 — missing file")
    with tempfile.TemporaryDirectory() as tmp:
        try:
            import_snapshot_from_file(pathlib.Path(tmp) / "absent.json")
        except DeserializationError as exc:
            print(f"  Caught expected error: {exc}")
        else:
            raise AssertionError("expected DeserializationError")
    print("\n[PASS] Test 8 PASSED")


def test_09_corrupted_file() -> None:
    _header("Test 9 — truncated file")
    with tempfile.TemporaryDirectory() as tmp:
        path = pathlib.Path(tmp) / "org.json"
        path.write_text(encode_snapshot(build_sample_org())[:40], encoding="utf-8")
        try:
            import_snapshot_from_file(path)
        except DeserializationError as exc:
            print(f"  Caught expected error: {exc}")
        else:
            raise AssertionError("expected DeserializationError")
    print("\n[PASS] Test 9 PASSED")


def test_10_hash_ignores_insertion_order() -> None:
    _header("Test 10 — canonical hash is order independent")
    a = build_sample_org()
    b = build_sample_org()
    b.people = dict(reversed(list(b.people.items())))
    b.departments = dict(reversed(list(b.departments.items())))
    assert canonical_serialize(a) == canonical_serialize(b)
    assert canonical_hash(a) == canonical_hash(b)
    assert snapshot_hash(a) == snapshot_hash(b)
    print(f"  canonical_hash = {canonical_hash(a)}")
    print("\n[PASS] Test 10 PASSED")


def test_11_hash_detects_change() -> None:
    _header("Test 11 — any field change moves the hash")
    a = build_sample_org()
    b = build_sample_org()
    b.people["U2"].name = "Renamed"
    assert canonical_hash(a) != canonical_hash(b)
    assert len(canonical_hash(a)) == 64
    print("\n[PASS] Test 11 PASSED")


def main() -> None:
    results = []
    for fn in [
        test_01_restore_preserves_state,
        test_02_unknown_and_missing_fields,
        test_03_bad_types,
        test_04_identity_and_roles,
        test_05_invariant_violation_rejected,
        test_06_invalid_json,
        test_07_export_import_file,
        test_08_missing_file,
        test_09_corrupted_file,
        test_10_hash_ignores_insertion_order,
        test_11_hash_detects_change,
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
