"""
Dump, generate and seed org charts as snapshot JSON.

  python dump_org.py sample [--out PATH]
  python dump_org.py generate --template scaleup --seed 42 --out PATH
  python dump_org.py seed --template scaleup --seed 42 [--db PATH]
  python dump_org.py export --out PATH [--db PATH]

seed/export use PostgreSQL when DATABASE_URL is set and --db is not
given, the sqlite file HIERARCHY_SQLITE_PATH otherwise.
"""
import argparse
import os
import pathlib
import sys

from hierarchy_kernel.diagnostics import compute_diagnostics
from hierarchy_kernel.sample import build_sample_org
from hierarchy_kernel.snapshot import encode_snapshot, export_snapshot_to_file, snapshot_hash
from hierarchy_runtime.entity_repository import EntityRepository
from hierarchy_runtime.logging_config import setup_logging
from backend.postgres_entity_repository import PostgresEntityRepository

from generator import TEMPLATE_NAMES, build_org, export_generated_org, get_template


def _open_repository(db_path):
    database_url = os.environ.get("DATABASE_URL", "")
    if database_url and not db_path:
        return PostgresEntityRepository(database_url)
    return EntityRepository(db_path or os.environ.get("HIERARCHY_SQLITE_PATH", "hierarchy.db"))


def _summary(state) -> str:
    diag = compute_diagnostics(state)
    return (
        f"departments={diag['department_count']}, people={diag['person_count']}, "
        f"headless={len(diag['headless_departments'])}, hash={snapshot_hash(state)[:12]}"
    )


def cmd_sample(args) -> None:
    state = build_sample_org()
    if args.out:
        export_snapshot_to_file(state, args.out)
        print(f"Wrote sample org to {args.out}: {_summary(state)}")
    else:
        print(encode_snapshot(state))


def cmd_generate(args) -> None:
    template = get_template(args.template)
    state = build_org(template, args.seed)
    export_generated_org(state, args.out, template, args.seed)
    print(f"Wrote {args.template} (seed={args.seed}) to {args.out}: {_summary(state)}")


def cmd_seed(args) -> None:
    state = build_org(get_template(args.template), args.seed)
    repo = _open_repository(args.db)
    try:
        repo.replace_all(state)
    finally:
        repo.close()
    print(f"Seeded store with {args.template} (seed={args.seed}): {_summary(state)}")


def cmd_export(args) -> None:
    repo = _open_repository(args.db)
    try:
        state = repo.load_all().state
    finally:
        repo.close()
    export_snapshot_to_file(state, args.out)
    print(f"Exported store to {args.out}: {_summary(state)}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Org chart snapshot tool")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "WARNING"))
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sample", help="Print or write the fixed sample org")
    p.add_argument("--out", type=pathlib.Path, help="Snapshot file to write (stdout when omitted)")
    p.set_defaults(func=cmd_sample)

    p = sub.add_parser("generate", help="Write a generated org with its metadata")
    p.add_argument("--template", choices=TEMPLATE_NAMES, default="scaleup")
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--out", required=True)
    p.set_defaults(func=cmd_generate)

    p = sub.add_parser("seed", help="Replace the stored org chart with a generated one")
    p.add_argument("--template", choices=TEMPLATE_NAMES, default="scaleup")
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--db", help="sqlite file (overrides DATABASE_URL)")
    p.set_defaults(func=cmd_seed)

    p = sub.add_parser("export", help="Write the stored org chart as a snapshot")
    p.add_argument("--out", type=pathlib.Path, required=True)
    p.add_argument("--db", help="sqlite file (overrides DATABASE_URL)")
    p.set_defaults(func=cmd_export)

    args = parser.parse_args(argv)
    setup_logging(args.log_level, json_output=False)
    args.func(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
