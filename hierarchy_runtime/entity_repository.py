"""
Entity Repository — sqlite3-backed Person / Department store.

Every row carries a version column. A unit of work reads a neighbourhood
with versions (ReadSet) and commits a ChangeSet in one transaction that
first re-checks every read version. Any mismatch rolls the transaction
back and raises TransactionConflictError.

Thread-safety: one connection shared under an RLock; writes use
BEGIN IMMEDIATE so a second process is locked out for the whole commit.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from hierarchy_kernel.domain_types import Department, HierarchyState, Person
from hierarchy_kernel.errors import TransactionConflictError

from .changeset import ChangeSet, ReadSet

logger = logging.getLogger(__name__)

_SCHEMA_PATH = Path(__file__).parent / "schema.sql"

PERSON_COLUMNS = (
    "id, name, role, department_id, manager_id, "
    "managed_manager_ids, managed_member_ids, version"
)
DEPARTMENT_COLUMNS = "id, name, head_id, manager_ids, member_ids, version"

# Bulk imports stamp every row with one version above anything the store
# has handed out before, including rows an earlier import deleted.
IMPORT_VERSION_SQL = """
SELECT MAX(v) FROM (
    SELECT MAX(version) AS v FROM people
    UNION ALL SELECT MAX(version) FROM departments
    UNION ALL SELECT value FROM store_meta WHERE key = 'version_floor'
) AS seen
"""
SAVE_IMPORT_VERSION_SQL = """
INSERT INTO store_meta (key, value) VALUES ('version_floor', :version)
ON CONFLICT (key) DO UPDATE SET value = excluded.value
"""


# ---------------------------------------------------------------------------
# Row conversion (shared with the PostgreSQL adapter)
# ---------------------------------------------------------------------------

def _id_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return json.loads(value)
    return list(value)


def person_from_row(row) -> Tuple[Person, int]:
    return Person(
        id=row[0],
        name=row[1] or "",
        role=row[2],
        department_id=row[3],
        manager_id=row[4],
        managed_manager_ids=set(_id_list(row[5])),
        managed_member_ids=set(_id_list(row[6])),
    ), row[7]


def department_from_row(row) -> Tuple[Department, int]:
    return Department(
        id=row[0],
        name=row[1] or "",
        head_id=row[2],
        manager_ids=set(_id_list(row[3])),
        member_ids=set(_id_list(row[4])),
    ), row[5]


def person_values(person: Person) -> dict:
    return {
        "id": person.id,
        "name": person.name,
        "role": person.role,
        "department_id": person.department_id,
        "manager_id": person.manager_id,
        "managed_manager_ids": json.dumps(sorted(person.managed_manager_ids)),
        "managed_member_ids": json.dumps(sorted(person.managed_member_ids)),
    }


def department_values(dept: Department) -> dict:
    return {
        "id": dept.id,
        "name": dept.name,
        "head_id": dept.head_id,
        "manager_ids": json.dumps(sorted(dept.manager_ids)),
        "member_ids": json.dumps(sorted(dept.member_ids)),
    }


# ---------------------------------------------------------------------------
# Neighbourhood loading (shared with the PostgreSQL adapter)
# ---------------------------------------------------------------------------

class RowReader(Protocol):
    def fetch_people(self, ids: List[str]) -> Dict[str, Tuple[Person, int]]: ...
    def fetch_departments(self, ids: List[str]) -> Dict[str, Tuple[Department, int]]: ...
    def fetch_people_in(self, department_ids: List[str]) -> Dict[str, Tuple[Person, int]]: ...


def collect_neighbourhood(
    reader: RowReader,
    person_ids: Iterable[str],
    department_ids: Iterable[Optional[str]],
) -> ReadSet:
    """
    Load the named people, their departments, the named departments and
    every person listed in or pointing at one of those departments.

    Unknown ids are simply absent from the result; the kernel reports
    them as NotFoundError.
    """
    people = reader.fetch_people(sorted(set(person_ids)))
    dept_ids = {d for d in department_ids if d}
    dept_ids.update(p.department_id for p, _ in people.values() if p.department_id)
    departments = reader.fetch_departments(sorted(dept_ids))

    people.update(reader.fetch_people_in(sorted(departments)))
    listed = set()
    for dept, _ in departments.values():
        if dept.head_id:
            listed.add(dept.head_id)
        listed.update(dept.manager_ids)
        listed.update(dept.member_ids)
    missing = sorted(listed - set(people))
    if missing:
        people.update(reader.fetch_people(missing))

    return ReadSet(
        state=HierarchyState(
            people={pid: p for pid, (p, _) in people.items()},
            departments={did: d for did, (d, _) in departments.items()},
        ),
        person_versions={pid: v for pid, (_, v) in people.items()},
        department_versions={did: v for did, (_, v) in departments.items()},
    )


# ---------------------------------------------------------------------------
# sqlite3 store
# ---------------------------------------------------------------------------

class EntityRepository:
    """
    Person / Department store backed by sqlite3.

    The connection runs in autocommit mode; every read and write opens an
    explicit transaction so a unit of work sees one consistent snapshot.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            self._db_path, isolation_level=None, check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        schema_sql = _SCHEMA_PATH.read_text(encoding="utf-8")
        with self._lock:
            self._conn.executescript(schema_sql)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load_neighbourhood(
        self,
        person_ids: Iterable[str],
        department_ids: Iterable[Optional[str]] = (),
    ) -> ReadSet:
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                return collect_neighbourhood(self, person_ids, department_ids)
            finally:
                self._conn.execute("COMMIT")

    def load_all(self) -> ReadSet:
        """Read the whole organization in one snapshot."""
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                people = self._select_people("SELECT {} FROM people", ())
                departments = self._select_departments("SELECT {} FROM departments", ())
            finally:
                self._conn.execute("COMMIT")
        return ReadSet(
            state=HierarchyState(
                people={pid: p for pid, (p, _) in people.items()},
                departments={did: d for did, (d, _) in departments.items()},
            ),
            person_versions={pid: v for pid, (_, v) in people.items()},
            department_versions={did: v for did, (_, v) in departments.items()},
        )

    def get_person(self, person_id: str) -> Optional[Person]:
        with self._lock:
            found = self.fetch_people([person_id])
        return found[person_id][0] if found else None

    def get_department(self, department_id: str) -> Optional[Department]:
        with self._lock:
            found = self.fetch_departments([department_id])
        return found[department_id][0] if found else None

    # -- RowReader -----------------------------------------------------

    def fetch_people(self, ids: List[str]) -> Dict[str, Tuple[Person, int]]:
        if not ids:
            return {}
        marks = ",".join("?" * len(ids))
        return self._select_people(f"SELECT {{}} FROM people WHERE id IN ({marks})", ids)

    def fetch_departments(self, ids: List[str]) -> Dict[str, Tuple[Department, int]]:
        if not ids:
            return {}
        marks = ",".join("?" * len(ids))
        return self._select_departments(
            f"SELECT {{}} FROM departments WHERE id IN ({marks})", ids,
        )

    def fetch_people_in(self, department_ids: List[str]) -> Dict[str, Tuple[Person, int]]:
        if not department_ids:
            return {}
        marks = ",".join("?" * len(department_ids))
        return self._select_people(
            f"SELECT {{}} FROM people WHERE department_id IN ({marks})", department_ids,
        )

    def _select_people(self, sql: str, params) -> Dict[str, Tuple[Person, int]]:
        cursor = self._conn.execute(sql.format(PERSON_COLUMNS), tuple(params))
        rows = [person_from_row(row) for row in cursor]
        return {p.id: (p, v) for p, v in rows}

    def _select_departments(self, sql: str, params) -> Dict[str, Tuple[Department, int]]:
        cursor = self._conn.execute(sql.format(DEPARTMENT_COLUMNS), tuple(params))
        rows = [department_from_row(row) for row in cursor]
        return {d.id: (d, v) for d, v in rows}

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def commit(self, read_set: ReadSet, changes: ChangeSet) -> None:
        """
        Atomically validate the read set and write the change set.

        Raises TransactionConflictError if any record read has since
        been written (or removed) by someone else. Nothing is written
        in that case.
        """
        if changes.is_empty():
            return
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute("BEGIN IMMEDIATE")
                    self._check_versions(read_set)
                    for person in changes.people.values():
                        self._write_person(person, read_set.person_versions[person.id])
                    for dept in changes.departments.values():
                        self._write_department(dept, read_set.department_versions[dept.id])
            except sqlite3.OperationalError as exc:
                if "locked" in str(exc) or "busy" in str(exc):
                    raise TransactionConflictError(
                        f"Store busy, commit abandoned: {exc}"
                    ) from exc
                raise

    def replace_all(self, state: HierarchyState) -> None:
        """Replace every stored record with *state* (bulk import)."""
        with self._lock, self._conn:
            self._conn.execute("BEGIN IMMEDIATE")
            version = self._next_import_version()
            self._conn.execute("DELETE FROM people")
            self._conn.execute("DELETE FROM departments")
            for dept in state.departments.values():
                self._conn.execute(
                    """
                    INSERT INTO departments (id, name, head_id, manager_ids, member_ids, version)
                    VALUES (:id, :name, :head_id, :manager_ids, :member_ids, :version)
                    """,
                    {**department_values(dept), "version": version},
                )
            for person in state.people.values():
                self._conn.execute(
                    """
                    INSERT INTO people
                        (id, name, role, department_id, manager_id,
                         managed_manager_ids, managed_member_ids, version)
                    VALUES (:id, :name, :role, :department_id, :manager_id,
                            :managed_manager_ids, :managed_member_ids, :version)
                    """,
                    {**person_values(person), "version": version},
                )
        logger.info(
            "replaced org chart: %d people, %d departments at version %d",
            len(state.people), len(state.departments), version,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _next_import_version(self) -> int:
        """MUST be called inside the import transaction."""
        (highest,) = self._conn.execute(IMPORT_VERSION_SQL).fetchone()
        version = (highest or 0) + 1
        self._conn.execute(SAVE_IMPORT_VERSION_SQL, {"version": version})
        return version

    def _check_versions(self, read_set: ReadSet) -> None:
        """MUST be called inside the commit transaction."""
        current_people = self.fetch_people(sorted(read_set.person_versions))
        for pid, version in read_set.person_versions.items():
            if pid not in current_people or current_people[pid][1] != version:
                raise TransactionConflictError(
                    f"Person {pid!r} changed since it was read; retry the request"
                )
        current_depts = self.fetch_departments(sorted(read_set.department_versions))
        for did, version in read_set.department_versions.items():
            if did not in current_depts or current_depts[did][1] != version:
                raise TransactionConflictError(
                    f"Department {did!r} changed since it was read; retry the request"
                )

    def _write_person(self, person: Person, read_version: int) -> None:
        values = person_values(person)
        values["read_version"] = read_version
        cursor = self._conn.execute(
            """
            UPDATE people SET
                name = :name, role = :role, department_id = :department_id,
                manager_id = :manager_id,
                managed_manager_ids = :managed_manager_ids,
                managed_member_ids = :managed_member_ids,
                version = version + 1
            WHERE id = :id AND version = :read_version
            """,
            values,
        )
        if cursor.rowcount != 1:
            raise TransactionConflictError(f"Person {person.id!r} write lost a race")

    def _write_department(self, dept: Department, read_version: int) -> None:
        values = department_values(dept)
        values["read_version"] = read_version
        cursor = self._conn.execute(
            """
            UPDATE departments SET
                name = :name, head_id = :head_id,
                manager_ids = :manager_ids, member_ids = :member_ids,
                version = version + 1
            WHERE id = :id AND version = :read_version
            """,
            values,
        )
        if cursor.rowcount != 1:
            raise TransactionConflictError(f"Department {dept.id!r} write lost a race")

    def close(self) -> None:
        with self._lock:
            self._conn.close()
