"""
Org Template — Frozen dataclass defining generator parameters.

Percentages are integers in 0..100; ranges are inclusive.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from hierarchy_kernel.domain_types import OPAQUE_ROLES

_DEFAULT_DEPARTMENT_NAMES: Tuple[str, ...] = (
    "Engineering",
    "Sales",
    "Product",
    "Operations",
    "Growth & Marketing",
    "Customer Success",
    "Administration & Finance",
    "Research",
)


@dataclass(frozen=True)
class OrgTemplate:
    """Immutable specification for deterministic organization generation."""

    department_count: int
    head_percent: int = 80            # chance a department gets a head
    min_managers: int = 0
    max_managers: int = 3
    min_members: int = 0
    max_members: int = 6
    managed_percent: int = 60         # chance a member gets a manager
    staff_roles: Tuple[str, ...] = ("hr", "admin")
    department_names: Tuple[str, ...] = _DEFAULT_DEPARTMENT_NAMES

    def __post_init__(self) -> None:
        if self.department_count < 0:
            raise ValueError("department_count must be >= 0")
        for name in ("head_percent", "managed_percent"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within 0..100, got {value}")
        if not 0 <= self.min_managers <= self.max_managers:
            raise ValueError("need 0 <= min_managers <= max_managers")
        if not 0 <= self.min_members <= self.max_members:
            raise ValueError("need 0 <= min_members <= max_members")
        unknown = [r for r in self.staff_roles if r not in OPAQUE_ROLES]
        if unknown:
            raise ValueError(
                f"staff_roles must be non-hierarchy roles {list(OPAQUE_ROLES)}, got {unknown}"
            )

    def department_name(self, index: int) -> str:
        """Name for the index-th department (1-based), cycling the name list."""
        if not self.department_names:
            return f"Department {index}"
        base = self.department_names[(index - 1) % len(self.department_names)]
        lap = (index - 1) // len(self.department_names)
        return base if lap == 0 else f"{base} {lap + 1}"

    def to_dict(self) -> dict:
        """Serialise to plain dict for JSON export."""
        return {
            "department_count": self.department_count,
            "head_percent": self.head_percent,
            "min_managers": self.min_managers,
            "max_managers": self.max_managers,
            "min_members": self.min_members,
            "max_members": self.max_members,
            "managed_percent": self.managed_percent,
            "staff_roles": list(self.staff_roles),
            "department_names": list(self.department_names),
        }


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

_REGISTRY = {
    "startup": OrgTemplate(
        department_count=3, head_percent=70,
        min_managers=0, max_managers=1, min_members=1, max_members=4,
        managed_percent=50, staff_roles=("admin",),
    ),
    "scaleup": OrgTemplate(
        department_count=5, head_percent=85,
        min_managers=1, max_managers=3, min_members=2, max_members=8,
        managed_percent=70, staff_roles=("admin", "hr"),
    ),
    "enterprise": OrgTemplate(
        department_count=8, head_percent=100,
        min_managers=2, max_managers=5, min_members=4, max_members=15,
        managed_percent=90, staff_roles=("super_admin", "admin", "hr_manager", "hr"),
    ),
}

TEMPLATE_NAMES: Tuple[str, ...] = tuple(sorted(_REGISTRY))


def get_template(name: str) -> OrgTemplate:
    """Look up a preset template by name."""
    try:
        return _REGISTRY[name]
    except KeyError:
        raise KeyError(
            f"Unknown template {name!r}; valid: {list(TEMPLATE_NAMES)}"
        ) from None
