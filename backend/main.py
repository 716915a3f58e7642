"""
FastAPI Backend — Organizational Hierarchy API v1.

Thin surface over HierarchySession: every mutating request is one unit
of work against the store. No org state is kept between requests.

Endpoints:
  GET  /health                      — liveness
  GET  /org-chart                   — every person + department + diagnostics
  GET  /people/{person_id}          — one person
  GET  /departments/{department_id} — one department
  PUT  /people/{person_id}/role     — ApplyTransition
  POST /exchanges/heads             — ExchangeHeads
  POST /exchanges/managers          — ExchangeManagers
  POST /org-chart/import            — replace the org chart from a snapshot
  GET  /metrics                     — session counters
"""
from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, Optional

from dotenv import load_dotenv

env_path = os.path.join(os.path.dirname(__file__), ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)

from fastapi import Body, Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from hierarchy_kernel.commands import (
    ExchangeHeadsCommand, ExchangeManagersCommand, TransitionCommand,
)
from hierarchy_kernel.domain_types import MANAGER, MEMBER, HierarchyState
from hierarchy_kernel.errors import AuthorizationError, HierarchyError, NotFoundError
from hierarchy_kernel.hashing import canonical_hash
from hierarchy_kernel.diagnostics import compute_diagnostics
from hierarchy_runtime.entity_repository import EntityRepository
from backend.postgres_entity_repository import PostgresEntityRepository
from hierarchy_runtime.logging_config import setup_logging
from hierarchy_runtime.session import DEFAULT_MAX_CONFLICT_RETRIES, HierarchySession

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DATABASE_URL = os.environ.get("DATABASE_URL", "")
SQLITE_PATH = os.environ.get("HIERARCHY_SQLITE_PATH", "hierarchy.db")
MAX_CONFLICT_RETRIES = int(
    os.environ.get("HIERARCHY_MAX_CONFLICT_RETRIES", str(DEFAULT_MAX_CONFLICT_RETRIES))
)
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_JSON = os.environ.get("LOG_JSON", "1").lower() not in ("0", "false", "no", "")

setup_logging(LOG_LEVEL, json_output=LOG_JSON)
logger = logging.getLogger(__name__)

# Roles allowed to invoke each class of operation (X-Actor-Role header).
ADMIN_ROLES = frozenset({"super_admin", "admin"})
RANK_ROLES = ADMIN_ROLES | {"hr_manager", "hr", "department_head"}

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Hierarchy API",
    version="1.0.0",
    description="Organizational hierarchy transitions — transactional API",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        FRONTEND_URL,
        "http://localhost:3000",
        "http://localhost:3001",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HierarchyError)
def hierarchy_error_handler(request: Request, exc: HierarchyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RoleChangeRequest(BaseModel):
    target_role: str
    target_department_id: Optional[str] = None
    explicit_manager_id: Optional[str] = None


class ExchangeHeadsRequest(BaseModel):
    source_head_id: str
    target_head_id: str


class ExchangeManagersRequest(BaseModel):
    source_manager_id: str
    target_manager_id: str


# ---------------------------------------------------------------------------
# Session wiring
# ---------------------------------------------------------------------------

_session: Optional[HierarchySession] = None
_session_lock = threading.Lock()


def build_session() -> HierarchySession:
    """PostgreSQL when DATABASE_URL is set, the sqlite file otherwise."""
    if DATABASE_URL:
        repo = PostgresEntityRepository(DATABASE_URL)
        logger.info("using PostgreSQL entity store")
    else:
        repo = EntityRepository(SQLITE_PATH)
        logger.info("using sqlite entity store at %s", SQLITE_PATH)
    return HierarchySession(repo, max_conflict_retries=MAX_CONFLICT_RETRIES)


def get_session() -> HierarchySession:
    global _session
    with _session_lock:
        if _session is None:
            _session = build_session()
        return _session


# ---------------------------------------------------------------------------
# Core helpers
# ---------------------------------------------------------------------------


def _require_actor(actor_role: Optional[str], allowed: frozenset, action: str) -> None:
    role = (actor_role or "").strip().lower()
    if role not in allowed:
        raise AuthorizationError(
            f"Role {role or '<none>'!r} may not {action}; "
            f"allowed: {sorted(allowed)}"
        )


def _allowed_for_transition(current_role: str, target_role: str) -> frozenset:
    """
    Manager <-> member moves are open to HR and heads; anything that
    creates, moves or removes a head (or pulls in a non-hierarchy role)
    is admin-only.
    """
    if current_role in (MANAGER, MEMBER) and target_role in (MANAGER, MEMBER):
        return RANK_ROLES
    return ADMIN_ROLES


def _org_chart_body(state: HierarchyState) -> dict:
    body = state.to_dict()
    body["diagnostics"] = compute_diagnostics(state)
    body["state_hash"] = canonical_hash(state)
    return body


def _departments(state: HierarchyState, ids) -> list:
    return [state.departments[d].to_dict() for d in sorted(ids) if d in state.departments]


def _people(state: HierarchyState, ids) -> list:
    return [state.people[p].to_dict() for p in sorted(ids) if p in state.people]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/org-chart")
def get_org_chart(session: HierarchySession = Depends(get_session)):
    """Every person and department plus the diagnostics summary."""
    return _org_chart_body(session.get_org_chart())


@app.get("/people/{person_id}")
def get_person(person_id: str, session: HierarchySession = Depends(get_session)):
    person = session.get_person(person_id)
    if person is None:
        raise NotFoundError(f"Person {person_id!r} does not exist")
    return person.to_dict()


@app.get("/departments/{department_id}")
def get_department(department_id: str, session: HierarchySession = Depends(get_session)):
    dept = session.get_department(department_id)
    if dept is None:
        raise NotFoundError(f"Department {department_id!r} does not exist")
    return dept.to_dict()


@app.put("/people/{person_id}/role")
def change_role(
    person_id: str,
    req: RoleChangeRequest,
    x_actor_role: Optional[str] = Header(None),
    session: HierarchySession = Depends(get_session),
):
    """
    Apply one role/department transition.

    The caller's permission depends on the current and target role. It is
    checked inside the unit of work against the role that unit read, so a
    concurrent promotion either fails this check or conflicts the commit.
    """
    def authorize(current_role: str, target_role: str) -> None:
        _require_actor(
            x_actor_role,
            _allowed_for_transition(current_role, target_role),
            f"change a {current_role} to {target_role}",
        )

    unit = session.apply_transition(
        TransitionCommand(
            person_id=person_id,
            target_role=req.target_role.strip().lower(),
            target_department_id=req.target_department_id,
            explicit_manager_id=req.explicit_manager_id,
        ),
        authorize=authorize,
    )
    result = unit.result
    return {
        "success": True,
        "kind": result.kind.value,
        "person": unit.state.people[person_id].to_dict(),
        "people": _people(unit.state, result.touched_person_ids),
        "departments": _departments(unit.state, result.touched_department_ids),
        "touched_person_ids": sorted(result.touched_person_ids),
        "displaced_head_id": result.displaced_head_id,
        "no_op": result.no_op,
    }


@app.post("/exchanges/heads")
def post_exchange_heads(
    req: ExchangeHeadsRequest,
    x_actor_role: Optional[str] = Header(None),
    session: HierarchySession = Depends(get_session),
):
    _require_actor(x_actor_role, ADMIN_ROLES, "exchange department heads")
    unit = session.exchange_heads(ExchangeHeadsCommand(
        source_head_id=req.source_head_id,
        target_head_id=req.target_head_id,
    ))
    result = unit.result
    return {
        "success": True,
        "exchange_type": result.exchange_type,
        "people": _people(unit.state, result.touched_person_ids),
        "departments": _departments(unit.state, result.touched_department_ids),
    }


@app.post("/exchanges/managers")
def post_exchange_managers(
    req: ExchangeManagersRequest,
    x_actor_role: Optional[str] = Header(None),
    session: HierarchySession = Depends(get_session),
):
    _require_actor(x_actor_role, ADMIN_ROLES, "exchange managers")
    unit = session.exchange_managers(ExchangeManagersCommand(
        source_manager_id=req.source_manager_id,
        target_manager_id=req.target_manager_id,
    ))
    result = unit.result
    return {
        "success": True,
        "exchange_type": result.exchange_type,
        "people": _people(unit.state, result.touched_person_ids),
        "departments": _departments(unit.state, result.touched_department_ids),
        "reassigned_member_ids": list(result.reassigned_member_ids),
    }


@app.post("/org-chart/import")
def import_org_chart(
    document: Dict[str, Any] = Body(...),
    x_actor_role: Optional[str] = Header(None),
    session: HierarchySession = Depends(get_session),
):
    """Replace the stored org chart with a validated snapshot document."""
    _require_actor(x_actor_role, ADMIN_ROLES, "import an org chart")
    state = session.import_snapshot(document)
    logger.info(
        "imported org chart: %d people, %d departments",
        len(state.people), len(state.departments),
    )
    return {"success": True, **_org_chart_body(state)}


@app.get("/metrics")
def get_metrics(session: HierarchySession = Depends(get_session)):
    return session.get_metrics().to_dict()
