import argparse
import json
from pathlib import Path

from . import __version__
from .affinity import AffinityClient
from .audit import list_runs, record_report
from .config import SyncConfig, load_config
from .csv_import import load_rows, read_file
from .env import load_env
from .errors import RosterSyncError
from .logger import get_logger
from .status import derive_stage
from .sync import run_sync


def _config() -> SyncConfig:
    try:
        return load_config()
    except RosterSyncError as e:
        raise SystemExit(str(e))


def _client(config: SyncConfig) -> AffinityClient:
    try:
        return AffinityClient(config.registry)
    except RosterSyncError as e:
        raise SystemExit(str(e))


def cmd_sync(args: argparse.Namespace) -> None:
    config = _config()
    input_path = Path(args.input)
    try:
        text = read_file(input_path)
        report = run_sync(text, _client(config), config, dry_run=args.dry_run)
    except RosterSyncError as e:
        raise SystemExit(str(e))

    if args.audit_db:
        run_id = record_report(Path(args.audit_db), report, source=input_path.name)
        print(f"Recorded run {run_id} in {args.audit_db}")

    payload = report.to_dict(redact=args.redact or config.redact)
    output = json.dumps(payload, indent=2, default=str)
    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(output + "\n", encoding="utf-8")
        print(f"Wrote {report.total} results to {out_path}")
    else:
        print(output)

    counts = " ".join(f"{k}={v}" for k, v in sorted(report.counts.items()))
    mode = "dry-run" if report.dry_run else "live"
    print(f"Done ({mode}). total={report.total} updated={report.updated} failed={report.failed} {counts}")


def cmd_derive(args: argparse.Namespace) -> None:
    config = _config()
    try:
        rows = load_rows(read_file(Path(args.input)), config.max_csv_bytes)
    except RosterSyncError as e:
        raise SystemExit(str(e))

    for row in rows:
        orgs = ", ".join(c.text for c in row.org_candidates(config.classify_bias)) or "-"
        people = ", ".join(c.text for c in row.person_candidates(config.classify_bias)) or "-"
        print(f"{row.display_name()}")
        print(f"  Organizations: {orgs}")
        print(f"  People: {people}")
        print(f"  Stage: {derive_stage(row, config) or '(undetermined)'}")


def cmd_fields(args: argparse.Namespace) -> None:
    config = _config()
    try:
        field = _client(config).discover_status_field(args.name)
    except RosterSyncError as e:
        raise SystemExit(str(e))
    print(f"Status field: {field.name} ({field.id})")
    if not field.options:
        print("  (no options listed)")
    for label, option_id in field.options.items():
        rank = config.vocabulary.rank(label)
        marker = f"#{rank}" if rank is not None else "not in stage order"
        print(f"  {label} -> {option_id} [{marker}]")


def cmd_entries(args: argparse.Namespace) -> None:
    config = _config()
    client = _client(config)
    try:
        field = client.discover_status_field(config.registry.status_field_name)
        entities = client.fetch_entities(field.id)
    except RosterSyncError as e:
        raise SystemExit(str(e))
    if not entities:
        print("No entries on list.")
        return
    print(f"Found {len(entities)} entries:\n")
    for entity in entities:
        print(f"{entity.id}\t{entity.display_name}\t{entity.current_label or '-'}")


def cmd_runs(args: argparse.Namespace) -> None:
    db_path = Path(args.audit_db)
    runs = list_runs(db_path, limit=args.limit)
    if not runs:
        print(f"No runs recorded in {db_path}")
        return
    for run in runs:
        mode = "dry-run" if run.dry_run else "live"
        print(
            f"#{run.id} {run.started_at:%Y-%m-%d %H:%M:%S} {mode} source={run.source or '-'} "
            f"total={run.total} matched={run.matched} updated={run.updated} failed={run.failed}"
        )


def main():
    # Load .env if present (AFFINITY_V2_TOKEN, AFFINITY_LIST_ID, etc.)
    load_env()
    get_logger()
    parser = argparse.ArgumentParser(prog="rostersync", description="Sync roster CSV stages into an Affinity list")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    syn = subparsers.add_parser("sync", help="Match roster rows to list entries and update their status")
    syn.add_argument("--input", required=True, help="Path to roster CSV")
    syn.add_argument("--dry-run", action="store_true", help="Report would-be updates without writing")
    syn.add_argument("--redact", action="store_true", help="Only emit matched/decision/reason/updated fields")
    syn.add_argument("--audit-db", help="SQLite file to record the run in")
    syn.add_argument("--output", help="Write JSON results to this file instead of stdout")
    syn.set_defaults(func=cmd_sync)

    der = subparsers.add_parser("derive", help="Show name candidates and derived stage per row (offline)")
    der.add_argument("--input", required=True, help="Path to roster CSV")
    der.set_defaults(func=cmd_derive)

    fld = subparsers.add_parser("fields", help="Show the list's status field and its options")
    fld.add_argument("--name", help="Status field name (default: STATUS_FIELD_NAME or 'Status')")
    fld.set_defaults(func=cmd_fields)

    ent = subparsers.add_parser("entries", help="List entries with their current status")
    ent.set_defaults(func=cmd_entries)

    rns = subparsers.add_parser("runs", help="List recorded sync runs")
    rns.add_argument("--audit-db", required=True, help="SQLite audit file")
    rns.add_argument("--limit", type=int, default=20, help="Number of runs to show (default 20)")
    rns.set_defaults(func=cmd_runs)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
