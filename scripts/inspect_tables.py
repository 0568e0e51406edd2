# Inspect the local Excel tables (and, optionally, their Supabase counterparts)
from __future__ import annotations
import argparse
import io
import sys
from pathlib import Path

sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


def show_record(record):
    if not record:
        print("  (no data found)")
        return
    print("Fields:")
    for key, value in record.items():
        print(f"  - {key}: {type(value).__name__} = {repr(value)[:50]}")


def inspect_file(spec, settings):
    from clinic_core.data import ExcelTable
    from clinic_core.errors import StorageFaultError

    path = Path(settings.data_dir) / spec.file_name
    print(f"File: {path}")
    if not path.exists():
        print("  (file does not exist yet)")
        return

    try:
        records = ExcelTable(path, spec.sheet_name, spec.id_field).read()
    except StorageFaultError as e:
        print(f"  Error: {e}")
        return

    print(f"Rows: {len(records)}")
    show_record(records[0] if records else None)


def inspect_remote(spec, settings):
    from clinic_core.data import RemoteTable, get_supabase_client
    from clinic_core.errors import TierUnavailableError

    client = get_supabase_client(
        settings.remote_endpoint, settings.remote_key, settings.remote_timeout
    )
    table = RemoteTable(client, spec.remote_table, spec.id_field)
    print(f"Supabase table: {spec.remote_table}")
    try:
        print(f"Rows: {table.count()}")
        rows = table.fetch_page(0, 1)
    except TierUnavailableError as e:
        print(f"  Error: {e.message}")
        return
    show_record(rows[0] if rows else None)


def main():
    from clinic_core.config import load_settings
    from clinic_core.logging import setup_logging
    from clinic_core.offline import ENTITY_SPECS, get_entity_spec

    parser = argparse.ArgumentParser(description="Show the fields of each clinic table")
    parser.add_argument("--data-dir", type=str, help="Directory holding the Excel tables")
    parser.add_argument(
        "--entity",
        choices=sorted(ENTITY_SPECS),
        action="append",
        help="Only inspect this entity (repeatable)",
    )
    parser.add_argument("--remote", action="store_true", help="Also inspect the Supabase tables")
    args = parser.parse_args()

    settings = load_settings(secrets_path=project_root / ".streamlit" / "secrets.toml")
    setup_logging(settings.log_level, log_to_file=False)
    if args.data_dir:
        settings.data_dir = Path(args.data_dir)

    if args.remote and not settings.remote_configured:
        print("Supabase credentials not found; skipping remote tables")

    for name in args.entity or list(ENTITY_SPECS):
        spec = get_entity_spec(name)
        print(f"\n{'='*60}")
        print(f"Entity: {name}")
        print(f"{'='*60}")
        inspect_file(spec, settings)
        if args.remote and settings.remote_configured:
            inspect_remote(spec, settings)


if __name__ == "__main__":
    main()
