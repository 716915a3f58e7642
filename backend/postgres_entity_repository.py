"""
PostgreSQL Entity Repository.

Drop-in replacement for the sqlite EntityRepository.
Same interface, PostgreSQL storage via pg8000.

Stateless: connection-per-operation, no in-memory caching. Every unit of
work reads in one REPEATABLE READ transaction and commits in another that
locks and re-checks the versions it read.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import pg8000.exceptions
import pg8000.native

from hierarchy_kernel.domain_types import Department, HierarchyState, Person
from hierarchy_kernel.errors import TransactionConflictError
from hierarchy_runtime.changeset import ChangeSet, ReadSet
from hierarchy_runtime.entity_repository import (
    DEPARTMENT_COLUMNS,
    IMPORT_VERSION_SQL,
    PERSON_COLUMNS,
    SAVE_IMPORT_VERSION_SQL,
    collect_neighbourhood,
    department_from_row,
    department_values,
    person_from_row,
    person_values,
)

logger = logging.getLogger(__name__)

_INIT_SQL = """
CREATE TABLE IF NOT EXISTS departments (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL DEFAULT '',
    head_id      TEXT,
    manager_ids  JSONB NOT NULL DEFAULT '[]'::jsonb,
    member_ids   JSONB NOT NULL DEFAULT '[]'::jsonb,
    version      INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS people (
    id                   TEXT PRIMARY KEY,
    name                 TEXT NOT NULL DEFAULT '',
    role                 TEXT NOT NULL,
    department_id        TEXT,
    manager_id           TEXT,
    managed_manager_ids  JSONB NOT NULL DEFAULT '[]'::jsonb,
    managed_member_ids   JSONB NOT NULL DEFAULT '[]'::jsonb,
    version              INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_people_department
    ON people(department_id);

CREATE TABLE IF NOT EXISTS store_meta (
    key    TEXT PRIMARY KEY,
    value  INTEGER NOT NULL
);
"""

# serialization_failure, deadlock_detected
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01"})


def parse_database_url(database_url: str) -> dict:
    """
    Split a postgres URL into pg8000 connection kwargs.

    Manual parser: urlparse chokes on special chars ([], @) in passwords.
    """
    url = database_url.split("://", 1)[1]
    # Split at LAST @ to separate credentials from host (password may contain @)
    at_idx = url.rfind("@")
    credentials = url[:at_idx]
    host_part = url[at_idx + 1:]
    colon_idx = credentials.find(":")
    user = credentials[:colon_idx]
    password = credentials[colon_idx + 1:]
    host_port, _, database = host_part.partition("/")
    database = database.split("?", 1)[0]
    if ":" in host_port:
        host, port_str = host_port.rsplit(":", 1)
    else:
        host, port_str = host_port, "5432"
    return {
        "user": user,
        "password": password,
        "host": host,
        "port": int(port_str),
        "database": database or "postgres",
    }


def _sqlstate(exc: pg8000.exceptions.DatabaseError) -> str:
    detail = exc.args[0] if exc.args else None
    if isinstance(detail, dict):
        return detail.get("C", "")
    return ""


class _ConnectionReader:
    """RowReader over one open pg8000 connection."""

    def __init__(self, conn: pg8000.native.Connection) -> None:
        self._conn = conn

    def fetch_people(self, ids: List[str]) -> Dict[str, Tuple[Person, int]]:
        if not ids:
            return {}
        rows = self._conn.run(
            f"SELECT {PERSON_COLUMNS} FROM people WHERE id = ANY(:ids)", ids=ids,
        )
        return {p.id: (p, v) for p, v in map(person_from_row, rows)}

    def fetch_departments(self, ids: List[str]) -> Dict[str, Tuple[Department, int]]:
        if not ids:
            return {}
        rows = self._conn.run(
            f"SELECT {DEPARTMENT_COLUMNS} FROM departments WHERE id = ANY(:ids)", ids=ids,
        )
        return {d.id: (d, v) for d, v in map(department_from_row, rows)}

    def fetch_people_in(self, department_ids: List[str]) -> Dict[str, Tuple[Person, int]]:
        if not department_ids:
            return {}
        rows = self._conn.run(
            f"SELECT {PERSON_COLUMNS} FROM people WHERE department_id = ANY(:ids)",
            ids=department_ids,
        )
        return {p.id: (p, v) for p, v in map(person_from_row, rows)}


class PostgresEntityRepository:
    """
    PostgreSQL-backed Person / Department store.

    Thread-safe via connection-per-operation pattern.
    """

    def __init__(self, database_url: str, ssl: bool = True) -> None:
        self._connect_kwargs = parse_database_url(database_url)
        self._ssl = ssl
        self._ensure_schema()

    def _get_conn(self) -> pg8000.native.Connection:
        return pg8000.native.Connection(
            ssl_context=True if self._ssl else None,
            **self._connect_kwargs,
        )

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            # pg8000 native runs one statement per call
            for stmt in _INIT_SQL.split(";"):
                if stmt.strip():
                    conn.run(stmt)
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load_neighbourhood(
        self,
        person_ids: Iterable[str],
        department_ids: Iterable[Optional[str]] = (),
    ) -> ReadSet:
        conn = self._get_conn()
        try:
            conn.run("START TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY")
            read_set = collect_neighbourhood(
                _ConnectionReader(conn), person_ids, department_ids,
            )
            conn.run("COMMIT")
            return read_set
        finally:
            conn.close()

    def load_all(self) -> ReadSet:
        conn = self._get_conn()
        try:
            conn.run("START TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY")
            people = [person_from_row(r) for r in conn.run(f"SELECT {PERSON_COLUMNS} FROM people")]
            departments = [
                department_from_row(r)
                for r in conn.run(f"SELECT {DEPARTMENT_COLUMNS} FROM departments")
            ]
            conn.run("COMMIT")
        finally:
            conn.close()
        return ReadSet(
            state=HierarchyState(
                people={p.id: p for p, _ in people},
                departments={d.id: d for d, _ in departments},
            ),
            person_versions={p.id: v for p, v in people},
            department_versions={d.id: v for d, v in departments},
        )

    def get_person(self, person_id: str) -> Optional[Person]:
        conn = self._get_conn()
        try:
            found = _ConnectionReader(conn).fetch_people([person_id])
        finally:
            conn.close()
        return found[person_id][0] if found else None

    def get_department(self, department_id: str) -> Optional[Department]:
        conn = self._get_conn()
        try:
            found = _ConnectionReader(conn).fetch_departments([department_id])
        finally:
            conn.close()
        return found[department_id][0] if found else None

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def commit(self, read_set: ReadSet, changes: ChangeSet) -> None:
        """
        One transaction: lock the read set, re-check versions, write.

        Stale versions and serialization failures both surface as
        TransactionConflictError; anything else propagates after rollback.
        """
        if changes.is_empty():
            return
        conn = self._get_conn()
        try:
            conn.run("BEGIN")
            try:
                self._check_versions(conn, read_set)
                for person in changes.people.values():
                    self._write_person(conn, person, read_set.person_versions[person.id])
                for dept in changes.departments.values():
                    self._write_department(conn, dept, read_set.department_versions[dept.id])
                conn.run("COMMIT")
            except Exception:
                conn.run("ROLLBACK")
                raise
        except pg8000.exceptions.DatabaseError as exc:
            if _sqlstate(exc) in _CONFLICT_SQLSTATES:
                raise TransactionConflictError(
                    f"Serialization failure, commit abandoned: {exc}"
                ) from exc
            raise
        finally:
            conn.close()

    def replace_all(self, state: HierarchyState) -> None:
        """Replace ALL stored records (used by /org-chart/import)."""
        conn = self._get_conn()
        try:
            conn.run("BEGIN")
            try:
                # Blocks concurrent commits until the import lands.
                conn.run("LOCK TABLE people, departments IN EXCLUSIVE MODE")
                (highest,) = conn.run(IMPORT_VERSION_SQL)[0]
                version = (highest or 0) + 1
                conn.run(SAVE_IMPORT_VERSION_SQL, version=version)
                conn.run("DELETE FROM people")
                conn.run("DELETE FROM departments")
                for dept in state.departments.values():
                    conn.run(
                        """
                        INSERT INTO departments (id, name, head_id, manager_ids, member_ids, version)
                        VALUES (:id, :name, :head_id,
                                CAST(:manager_ids AS JSONB), CAST(:member_ids AS JSONB), :version)
                        """,
                        version=version,
                        **department_values(dept),
                    )
                for person in state.people.values():
                    conn.run(
                        """
                        INSERT INTO people
                            (id, name, role, department_id, manager_id,
                             managed_manager_ids, managed_member_ids, version)
                        VALUES (:id, :name, :role, :department_id, :manager_id,
                                CAST(:managed_manager_ids AS JSONB),
                                CAST(:managed_member_ids AS JSONB), :version)
                        """,
                        version=version,
                        **person_values(person),
                    )
                conn.run("COMMIT")
            except Exception:
                conn.run("ROLLBACK")
                raise
        finally:
            conn.close()
        logger.info(
            "replaced org chart: %d people, %d departments at version %d",
            len(state.people), len(state.departments), version,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_versions(self, conn: pg8000.native.Connection, read_set: ReadSet) -> None:
        person_ids = sorted(read_set.person_versions)
        rows = conn.run(
            "SELECT id, version FROM people WHERE id = ANY(:ids) ORDER BY id FOR UPDATE",
            ids=person_ids,
        ) if person_ids else []
        current = {r[0]: r[1] for r in rows}
        for pid, version in read_set.person_versions.items():
            if current.get(pid) != version:
                raise TransactionConflictError(
                    f"Person {pid!r} changed since it was read; retry the request"
                )

        dept_ids = sorted(read_set.department_versions)
        rows = conn.run(
            "SELECT id, version FROM departments WHERE id = ANY(:ids) ORDER BY id FOR UPDATE",
            ids=dept_ids,
        ) if dept_ids else []
        current = {r[0]: r[1] for r in rows}
        for did, version in read_set.department_versions.items():
            if current.get(did) != version:
                raise TransactionConflictError(
                    f"Department {did!r} changed since it was read; retry the request"
                )

    def _write_person(
        self, conn: pg8000.native.Connection, person: Person, read_version: int,
    ) -> None:
        conn.run(
            """
            UPDATE people SET
                name = :name, role = :role, department_id = :department_id,
                manager_id = :manager_id,
                managed_manager_ids = CAST(:managed_manager_ids AS JSONB),
                managed_member_ids = CAST(:managed_member_ids AS JSONB),
                version = version + 1
            WHERE id = :id AND version = :read_version
            """,
            read_version=read_version,
            **person_values(person),
        )
        if conn.row_count != 1:
            raise TransactionConflictError(f"Person {person.id!r} write lost a race")

    def _write_department(
        self, conn: pg8000.native.Connection, dept: Department, read_version: int,
    ) -> None:
        conn.run(
            """
            UPDATE departments SET
                name = :name, head_id = :head_id,
                manager_ids = CAST(:manager_ids AS JSONB),
                member_ids = CAST(:member_ids AS JSONB),
                version = version + 1
            WHERE id = :id AND version = :read_version
            """,
            read_version=read_version,
            **department_values(dept),
        )
        if conn.row_count != 1:
            raise TransactionConflictError(f"Department {dept.id!r} write lost a race")

    def close(self) -> None:
        """Connections are per operation; nothing to release."""
