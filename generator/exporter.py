"""
JSON Org Exporter.

Exports a generated org chart + generation metadata to a JSON file.
The "snapshot" member is a plain snapshot document, accepted as-is by
POST /org-chart/import and import_snapshot_from_file's decoder.
"""

from __future__ import annotations

import json

from hierarchy_kernel.domain_types import HierarchyState
from hierarchy_kernel.snapshot import snapshot_dict, snapshot_hash

from .org_template import OrgTemplate


def export_generated_org(
    state: HierarchyState,
    path: str,
    template: OrgTemplate,
    seed: int,
) -> None:
    """
    Write snapshot + metadata to a JSON file.

    Output format:
    {
        "metadata": {"seed": int, "template": {...}, "snapshot_hash": str},
        "snapshot": {"snapshot_version": 1, "people": {...}, "departments": {...}}
    }
    """
    doc = {
        "metadata": {
            "seed": seed,
            "template": template.to_dict(),
            "snapshot_hash": snapshot_hash(state),
        },
        "snapshot": snapshot_dict(state),
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(doc, f, ensure_ascii=True, indent=2)
