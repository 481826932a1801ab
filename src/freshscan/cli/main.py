from __future__ import annotations

import argparse
import datetime as dt
import logging
import signal
import sys
import time
from decimal import Decimal, InvalidOperation

from freshscan.config import settings
from freshscan.config.sources import load_sources, select_groups
from freshscan.core.cancel import CancelToken
from freshscan.core.enums import DetectionMode
from freshscan.core.errors import ConfigurationError, FreshScanError
from freshscan.core.models import ScanFilter, ScanRequest, sol_to_lamports
from freshscan.services.scan_service import ScanService, sort_results
from freshscan.io.output_writer import write_results_json, write_summary_md

from freshscan.adapters.ledger.solana_rpc_adapter import SolanaRpcAdapter
from freshscan.adapters.ledger.static_ledger_adapter import StaticLedgerAdapter
from freshscan.adapters.store.jsonl_scan_store import JsonlScanStore


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="freshscan", description="Fresh-account detector for Solana (native SOL)")
    p.add_argument("--sources", default=settings.SOURCES_FILE, help="Source-group config (JSON)")
    p.add_argument("--group", action="append", default=[], help="Source group to scan (repeatable, default: all)")
    p.add_argument("--mode", default=DetectionMode.RELAY_FOLLOWING.value, help="strict | relay-following")
    p.add_argument("--range-min", help="Minimum transfer amount (SOL)")
    p.add_argument("--range-max", help="Maximum transfer amount (SOL)")
    p.add_argument("--target", help="Target transfer amount (SOL)")
    p.add_argument("--tolerance-pct", default="1", help="Tolerance around --target, in percent")
    p.add_argument("--hours", type=float, default=settings.DEFAULT_TIME_WINDOW_HOURS, help="Lookback window in hours")
    p.add_argument("--out", default="out", help="Output folder")
    p.add_argument("--fixture", help="Use a static ledger fixture (JSON) instead of the RPC endpoint")
    p.add_argument("--history-file", default=settings.SCAN_HISTORY_FILE, help="Scan history file (JSONL)")
    p.add_argument("--no-history", action="store_true", help="Do not record this scan in the history file")
    p.add_argument("--show-history", type=int, metavar="N", help="Print the N most recent scans and exit")
    p.add_argument("--log-level", default=settings.LOG_LEVEL, help="DEBUG, INFO, WARNING, ...")
    return p


def _build_filter(args: argparse.Namespace) -> ScanFilter:
    try:
        if args.target is not None:
            if args.range_min is not None or args.range_max is not None:
                raise ConfigurationError("Use either --target or --range-min/--range-max, not both")
            tolerance = Decimal(args.tolerance_pct) / Decimal(100)
            return ScanFilter.target(sol_to_lamports(args.target), tolerance)
        if args.range_min is None or args.range_max is None:
            raise ConfigurationError("Missing amount filter: pass --target or both --range-min and --range-max")
        return ScanFilter.range(sol_to_lamports(args.range_min), sol_to_lamports(args.range_max))
    except InvalidOperation as e:
        raise ConfigurationError(f"Invalid amount: {e}") from e


def _make_progress_reporter(request: ScanRequest):
    start_time = time.time()
    last_print = 0.0
    is_tty = sys.stdout.isatty()
    counters = {"accounts_scanned": 0, "detections": 0, "api_calls": 0}
    phase = {"name": ""}

    def _ts() -> str:
        return dt.datetime.now().strftime("%H:%M:%S")

    def _print_line(message: str) -> None:
        if is_tty:
            sys.stdout.write("\r" + message.ljust(88))
            sys.stdout.flush()
        else:
            print(message)

    def _clear_line() -> None:
        if is_tty:
            sys.stdout.write("\r" + (" " * 88) + "\r")
            sys.stdout.flush()

    def progress(event: str, data: dict) -> None:
        nonlocal last_print
        now = time.time()
        if event == "phase":
            _clear_line()
            phase["name"] = data.get("phase", "")
            print(f"[{_ts()}] {phase['name'].capitalize()}...")
            return
        if event == "counter":
            counters[data["name"]] = data["value"]
            if not is_tty or now - last_print < 0.2:
                return
            _print_line(
                f"{phase['name']} • scanned {counters['accounts_scanned']} • "
                f"fresh {counters['detections']} • api {counters['api_calls']}"
            )
            last_print = now
            return
        if event == "log":
            _clear_line()
            print(f"[{_ts()}] {data.get('message', '')}")
            return
        if event == "done":
            _clear_line()
            s = data["stats"]
            elapsed = time.time() - start_time
            print(
                f"[{_ts()}] Done in {elapsed:.1f}s • "
                f"{s.detections} fresh • {s.accounts_scanned} analyzed • "
                f"{len(request.source_accounts())} source account(s) • {s.api_calls} API calls"
            )
            return
        if event == "error":
            _clear_line()
            print(f"[{_ts()}] Error: {data.get('message', 'Unknown error')}", file=sys.stderr)

    return progress


def _print_history(store: JsonlScanStore, limit: int) -> None:
    records = store.load_scans(limit=limit)
    if not records:
        print("No scans recorded yet.")
        return
    for rec in records:
        when = dt.datetime.fromtimestamp(rec.created_at, tz=dt.timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        print(
            f"{when} • {', '.join(rec.groups)} • {rec.mode} • {rec.hours:g}h • "
            f"{rec.results_count} fresh • {rec.duration_sec:.1f}s"
        )


def main() -> int:
    args = build_arg_parser().parse_args()
    logging.basicConfig(
        level=str(args.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = JsonlScanStore(args.history_file)
    if args.show_history is not None:
        _print_history(store, args.show_history)
        return 0

    try:
        groups, detection = load_sources(args.sources)
        groups = select_groups(groups, args.group)
        request = ScanRequest(
            groups=tuple(groups),
            filter=_build_filter(args),
            hours=args.hours,
            mode=DetectionMode.parse(args.mode),
        )
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    progress = _make_progress_reporter(request)

    # Ports
    if args.fixture:
        ledger = StaticLedgerAdapter.from_json(
            args.fixture,
            dust_lamports=detection.dust_lamports,
            min_outgoing_lamports=detection.min_outgoing_lamports,
        )
        adapter_label = f"StaticLedgerAdapter ({args.fixture})"
    else:
        ledger = SolanaRpcAdapter(
            dust_lamports=detection.dust_lamports,
            min_outgoing_lamports=detection.min_outgoing_lamports,
        )
        adapter_label = "SolanaRpcAdapter" + (" (Helius)" if settings.HELIUS_API_KEY else "")

    svc = ScanService(ledger=ledger, detection=detection)
    print(f"Adapter: {adapter_label}")
    print(
        f"Scanning {', '.join(g.name for g in request.groups)} • "
        f"{request.mode.value} • last {request.hours:g}h"
    )

    cancel = CancelToken()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.cancel())
    try:
        report = svc.scan(
            request,
            on_progress=progress,
            cancel=cancel,
            store=None if args.no_history else store,
        )
    except FreshScanError as exc:
        progress("error", {"message": f"{exc.__class__.__name__}: {exc}"})
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)

    report.results = sort_results(report.results)

    # Outputs
    print("Writing outputs...")
    results_path = write_results_json(report, args.out)
    summary_path = write_summary_md(report, args.out, request=request)
    print(f"Wrote: {results_path}")
    print(f"Wrote: {summary_path}")
    return 130 if report.stats.cancelled else 0


if __name__ == "__main__":
    raise SystemExit(main())
