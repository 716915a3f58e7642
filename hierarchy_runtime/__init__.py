"""
Hierarchy Runtime — Persistence Layer

Versioned Person / Department store around the Hierarchy Kernel:
neighbourhood loading, read-set validated commits, conflict retries,
metrics and logging.
"""

from .changeset import ChangeSet, ReadSet, compute_changeset, describe_changeset
from .entity_repository import EntityRepository, collect_neighbourhood
from .session import CommittedUnit, HierarchySession, DEFAULT_MAX_CONFLICT_RETRIES
from .observability import MetricsRecorder, SessionMetrics, collect_metrics
from .logging_config import UnitOfWorkFormatter, setup_logging

__all__ = [
    "ChangeSet",
    "ReadSet",
    "compute_changeset",
    "describe_changeset",
    "EntityRepository",
    "collect_neighbourhood",
    "CommittedUnit",
    "HierarchySession",
    "DEFAULT_MAX_CONFLICT_RETRIES",
    "MetricsRecorder",
    "SessionMetrics",
    "collect_metrics",
    "UnitOfWorkFormatter",
    "setup_logging",
]
