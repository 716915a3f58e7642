"""
Hierarchy Kernel
Pure, in-memory organizational hierarchy transitions with hard-fail
invariant validation. No I/O.
"""

from .domain_types import (
    DEPARTMENT_HEAD, MANAGER, MEMBER, HIERARCHY_ROLES, OPAQUE_ROLES, ALL_ROLES,
    Person, Department, HierarchyState, TransitionKind,
    TransitionResult, ExchangeResult,
)
from .commands import TransitionCommand, ExchangeHeadsCommand, ExchangeManagersCommand
from .errors import (
    HierarchyError,
    TransitionValidationError,
    SameDepartmentHeadChangeError,
    MissingTargetHeadError,
    MissingHeadError,
    AuthorizationError,
    NotFoundError,
    RoleMismatchError,
    InvalidRoleForOperation,
    DepartmentMismatchError,
    TransactionConflictError,
)
from .invariants import InvariantViolationError, validate_invariants, collect_violations
from .transitions import apply_transition, classify_transition
from .exchanges import exchange_heads, exchange_managers
from .engine import HierarchyEngine
from .state import create_initial_state, add_department, enroll_person
from .hashing import canonical_serialize, canonical_hash
from .diagnostics import compute_diagnostics
from .snapshot import (
    SnapshotError,
    SerializationError,
    DeserializationError,
    InvalidSnapshotError,
    encode_snapshot,
    decode_snapshot,
    decode_snapshot_dict,
    restore_snapshot,
    restore_snapshot_dict,
    export_snapshot_to_file,
    import_snapshot_from_file,
    snapshot_hash,
)

__all__ = [
    "DEPARTMENT_HEAD",
    "MANAGER",
    "MEMBER",
    "HIERARCHY_ROLES",
    "OPAQUE_ROLES",
    "ALL_ROLES",
    "Person",
    "Department",
    "HierarchyState",
    "TransitionKind",
    "TransitionResult",
    "ExchangeResult",
    "TransitionCommand",
    "ExchangeHeadsCommand",
    "ExchangeManagersCommand",
    "HierarchyError",
    "TransitionValidationError",
    "SameDepartmentHeadChangeError",
    "MissingTargetHeadError",
    "MissingHeadError",
    "AuthorizationError",
    "NotFoundError",
    "RoleMismatchError",
    "InvalidRoleForOperation",
    "DepartmentMismatchError",
    "TransactionConflictError",
    "InvariantViolationError",
    "validate_invariants",
    "collect_violations",
    "apply_transition",
    "classify_transition",
    "exchange_heads",
    "exchange_managers",
    "HierarchyEngine",
    "create_initial_state",
    "add_department",
    "enroll_person",
    "canonical_serialize",
    "canonical_hash",
    "compute_diagnostics",
    "SnapshotError",
    "SerializationError",
    "DeserializationError",
    "InvalidSnapshotError",
    "encode_snapshot",
    "decode_snapshot",
    "decode_snapshot_dict",
    "restore_snapshot",
    "restore_snapshot_dict",
    "export_snapshot_to_file",
    "import_snapshot_from_file",
    "snapshot_hash",
]
