"""
Hierarchy Kernel — Command Definitions

Commands are **pure data**. They carry intent and parameters only.
They contain ZERO transition logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TransitionCommand:
    """Move one person to a target role and (optionally) department."""

    person_id: str
    target_role: str
    target_department_id: Optional[str] = None
    explicit_manager_id: Optional[str] = None

    command_type: str = "apply_transition"

    def to_dict(self) -> dict:
        return {
            "command_type": self.command_type,
            "person_id": self.person_id,
            "target_role": self.target_role,
            "target_department_id": self.target_department_id,
            "explicit_manager_id": self.explicit_manager_id,
        }


@dataclass(frozen=True)
class ExchangeHeadsCommand:
    """Swap the departments of two department heads."""

    source_head_id: str
    target_head_id: str

    command_type: str = "exchange_heads"

    def to_dict(self) -> dict:
        return {
            "command_type": self.command_type,
            "source_head_id": self.source_head_id,
            "target_head_id": self.target_head_id,
        }


@dataclass(frozen=True)
class ExchangeManagersCommand:
    """Swap the departments (and supervised members) of two managers."""

    source_manager_id: str
    target_manager_id: str

    command_type: str = "exchange_managers"

    def to_dict(self) -> dict:
        return {
            "command_type": self.command_type,
            "source_manager_id": self.source_manager_id,
            "target_manager_id": self.target_manager_id,
        }
