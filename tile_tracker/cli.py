"""Command-line interface for tile_tracker.

Run:
    python -m tile_tracker sync --device "Keys"
    python -m tile_tracker inspect --store-dir data --sheet Keys
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from tile_tracker.config import ConfigError, load_settings, resolve_client_uuid
from tile_tracker.inspect import inspect_store
from tile_tracker.models import DEFAULT_TZ
from tile_tracker.store import CsvSheetStore
from tile_tracker.sync import sync_device
from tile_tracker.timeutils import dt_from_epoch_ms

logger = logging.getLogger("tile_tracker")


def _cmd_sync(args: argparse.Namespace) -> int:
    # One sheet per device unless told otherwise.
    overrides = {
        "TILE_EMAIL": args.email,
        "TILE_NAME": args.device,
        "TILE_SHEET_NAME": args.sheet or args.device,
        "TILE_STORE_DIR": args.store_dir,
        "TILE_STATE_FILE": args.state_file,
    }
    try:
        settings = load_settings(overrides, env_file=args.env_file)
        client_uuid = resolve_client_uuid(settings)
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    report = sync_device(settings, client_uuid)
    if not report.ok:
        detail = report.failure or report.error or ""
        print(f"Sync failed: {report.status.value} {detail}".rstrip(), file=sys.stderr)
        return 1
    print(f"{settings.sheet_name}: fetched={report.fetched}, appended={report.appended}")
    return 0


def _cmd_inspect(args: argparse.Namespace) -> int:
    path = Path(args.store_dir) / f"{args.sheet}.csv"
    if not path.exists():
        print(f"ERROR: sheet not found: {path}", file=sys.stderr)
        return 2
    res = inspect_store(CsvSheetStore(path))

    print("### Header")
    print(", ".join(res.header))
    print()

    print("### Rows")
    print(f"total_rows={res.rows_total}, parsed={res.rows_parsed}, skipped={res.rows_skipped}")
    print()

    if res.min_time_ms is not None and res.max_time_ms is not None:
        print(f"### Time range ({args.tz})")
        start = dt_from_epoch_ms(res.min_time_ms, args.tz)
        end = dt_from_epoch_ms(res.max_time_ms, args.tz)
        print(f"start={start.isoformat(sep=' ')}, end={end.isoformat(sep=' ')}")
        print()

    if res.delta is not None:
        print("### Sampling interval (seconds)")
        print(
            f"count={res.delta.count}, min={res.delta.min_s:.3f}, median={res.delta.median_s:.3f}, "
            f"p95={res.delta.p95_s:.3f}, max={res.delta.max_s:.3f}"
        )
        gap_start = dt_from_epoch_ms(res.delta.longest_gap_start_ms, args.tz)
        print(f"longest_gap_start={gap_start.isoformat(sep=' ')}")
        print()

    print("### Coordinate bounds")
    print(f"lat=[{res.min_lat}, {res.max_lat}], lon=[{res.min_lon}, {res.max_lon}]")
    print()

    print("### Integrity")
    print(f"duplicate_timestamps={res.duplicate_timestamps}, ascending={res.ascending}")

    if args.json:
        print(json.dumps(asdict(res), ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="tile_tracker")
    p.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_sync = sub.add_parser("sync", help="Fetch new location history for one device into its sheet")
    p_sync.add_argument("--device", type=str, default=None, help="Device name (overrides TILE_NAME)")
    p_sync.add_argument(
        "--sheet",
        type=str,
        default=None,
        help="Sheet name (overrides TILE_SHEET_NAME; defaults to --device when that is given)",
    )
    p_sync.add_argument("--store-dir", type=str, default=None, help="Store directory (overrides TILE_STORE_DIR)")
    p_sync.add_argument("--email", type=str, default=None, help="Account email (overrides TILE_EMAIL)")
    p_sync.add_argument("--state-file", type=str, default=None, help="Client identity file (overrides TILE_STATE_FILE)")
    p_sync.add_argument("--env-file", type=str, default=".env", help="dotenv file read before the environment")
    p_sync.set_defaults(func=_cmd_sync)

    p_ins = sub.add_parser("inspect", help="Summarize a sheet: rows, time range, sampling interval")
    p_ins.add_argument("--store-dir", type=str, required=True, help="Store directory")
    p_ins.add_argument("--sheet", type=str, required=True, help="Sheet name")
    p_ins.add_argument("--tz", type=str, default=DEFAULT_TZ, help="Timezone (IANA) for the time range")
    p_ins.add_argument("--json", action="store_true", help="Also print the summary as JSON")
    p_ins.set_defaults(func=_cmd_inspect)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return int(args.func(args))
    except Exception:
        logger.exception("Unexpected error in %s", args.cmd)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
