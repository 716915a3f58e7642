"""
Deterministic Organization Generator.

Produces invariant-satisfying hierarchies for fixtures, the randomized
harness, and demo seeding.
"""

from .builder import build_org, GeneratorInvariantError
from .deterministic_rng import DeterministicRNG
from .exporter import export_generated_org
from .org_template import OrgTemplate, TEMPLATE_NAMES, get_template
from .verification import verify_generated_org

__all__ = [
    "build_org",
    "GeneratorInvariantError",
    "DeterministicRNG",
    "export_generated_org",
    "OrgTemplate",
    "TEMPLATE_NAMES",
    "get_template",
    "verify_generated_org",
]
