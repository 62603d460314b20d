import argparse
import logging
import os
import sys
from typing import Callable, List, Optional

from client import CloudClient
from codec import backup_filename
from config import load_config
from errors import HealthDiaryError
from settings_schema import ConfigSchema
from stats_service import BIG_THREE, StatisticsService
from storage import open_storage
from store import StateStore
from sync_service import CloudSync

logger = logging.getLogger(__name__)

CONFIRM_WORD = "RESET"


def open_store(config: ConfigSchema) -> StateStore:
    storage = open_storage(config.storage_backend, config.storage_path, config.storage_key)
    return StateStore(storage)


def export_backup(store: StateStore, output_dir: str = ".") -> str:
    """Write the export document to a dated backup file and record the backup time."""
    os.makedirs(output_dir, exist_ok=True)
    out_path = os.path.join(output_dir, backup_filename(store.clock().date()))
    data = store.export_data()
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(data)
    store.mark_backup()
    return out_path


def import_backup(store: StateStore, path: str) -> None:
    with open(path, "r", encoding="utf-8") as f:
        store.import_data(f.read())


def reset_data(
    store: StateStore, confirmed: bool, prompt: Callable[[str], str] = input
) -> bool:
    """Erase all data, but only after ``--yes`` and the typed confirmation word."""
    if not confirmed:
        print("Refusing to reset without --yes")
        return False
    answer = prompt(f"Type {CONFIRM_WORD} to erase all data: ")
    if answer.strip() != CONFIRM_WORD:
        print("Reset cancelled")
        return False
    store.reset()
    print("All data erased")
    return True


def _fmt(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def print_stats(stats: StatisticsService, kind: str, granularity: str, mode: str) -> None:
    if kind == "weekly":
        for row in stats.workout_counts(granularity, past=7, future=0):
            print(f"{row['label']}\t{_fmt(row['count'])}")
    elif kind == "volume":
        for row in stats.exercise_volumes(granularity, past=3, future=0):
            values = ", ".join(f"{k}: {_fmt(v)}" for k, v in row["values"].items())
            print(f"{row['label']}\t{values}")
    elif kind == "ratio":
        for row in stats.body_part_ratio(mode):
            print(f"{row['body_part'].value}\t{row['percent']:.1f}%")
    elif kind == "prs":
        for rec in stats.latest_records(BIG_THREE):
            print(f"{rec.exercise_name}\t{_fmt(rec.value)}\t{rec.day.isoformat()}")
        print(f"Total\t{_fmt(stats.big_three_total())}")
        print(f"Workout days this week\t{stats.this_week_workout_days()}")
        print(f"Workout days total\t{stats.total_workout_days()}")


def sync_now(store: StateStore, config: ConfigSchema, user_id: str) -> bool:
    if not config.sync_url:
        print("sync_url is not configured")
        return False
    client = CloudClient(config.sync_url, config.sync_api_key, timeout=config.sync_timeout)
    sync = CloudSync(store, client, debounce_seconds=config.sync_debounce_seconds)
    try:
        if not sync.sign_in(user_id):
            return False
        return sync.flush()
    finally:
        sync.sign_out()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Health diary utility commands")
    parser.add_argument("--config", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export")
    exp.add_argument("--out", default=".")

    imp = sub.add_parser("import")
    imp.add_argument("file")

    rst = sub.add_parser("reset")
    rst.add_argument("--yes", action="store_true")

    st = sub.add_parser("stats")
    st.add_argument("kind", choices=["weekly", "volume", "ratio", "prs"])
    st.add_argument("--granularity", choices=["day", "week", "month"], default="week")
    st.add_argument("--mode", choices=["total", "week", "month"], default="total")

    sub.add_parser("inbody-cleanup")

    syn = sub.add_parser("sync")
    syn.add_argument("--user", required=True)

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        store = open_store(config)
        if args.cmd == "export":
            print(export_backup(store, args.out))
        elif args.cmd == "import":
            import_backup(store, args.file)
            print(f"Imported {args.file}")
        elif args.cmd == "reset":
            return 0 if reset_data(store, args.yes) else 1
        elif args.cmd == "stats":
            stats = StatisticsService.from_store(store, week_start=config.week_start)
            print_stats(stats, args.kind, args.granularity, args.mode)
        elif args.cmd == "inbody-cleanup":
            removed = store.cleanup_duplicate_inbody_records()
            print(f"Removed {removed} duplicate record(s)")
        elif args.cmd == "sync":
            return 0 if sync_now(store, config, args.user) else 1
    except (HealthDiaryError, OSError) as e:
        logger.error("%s failed: %s", args.cmd, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
