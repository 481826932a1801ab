from __future__ import annotations

import datetime as dt
import json
from collections import Counter
from pathlib import Path
from typing import Optional

from freshscan.core.models import ScanReport, ScanRequest, lamports_to_sol
from freshscan.io.schemas import report_to_dict


def write_results_json(report: ScanReport, out_dir: str, filename: str = "results.json") -> str:
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)

    out_path = p / filename
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(report_to_dict(report), f, indent=2)

    return str(out_path)


def _fmt_ts(ts: Optional[int]) -> str:
    if ts is None:
        return "n/a"
    return dt.datetime.fromtimestamp(ts, tz=dt.timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _short(addr: Optional[str]) -> str:
    if not addr:
        return ""
    return addr if len(addr) <= 14 else f"{addr[:6]}...{addr[-4:]}"


def write_summary_md(
    report: ScanReport,
    out_dir: str,
    filename: str = "summary.md",
    request: Optional[ScanRequest] = None,
) -> str:
    """
    Operator-facing summary of one scan.
    """
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)

    out_path = p / filename
    s = report.stats

    lines = []
    lines.append("# Fresh Account Scan\n\n")
    if request is not None:
        lines.append(f"- Sources: **{', '.join(g.name for g in request.groups)}**\n")
        lines.append(f"- Mode: **{request.mode.value}**\n")
        lines.append(f"- Window: **last {request.hours:g}h**\n")
        lines.append(f"- Filter: `{json.dumps(request.filter.to_dict())}`\n")
    lines.append(f"- Duration: **{s.duration_sec:.1f}s**\n")
    lines.append(f"- API calls: **{s.api_calls}**\n")
    lines.append(f"- Destinations analyzed: **{s.accounts_scanned}/{s.destinations}**\n")
    lines.append(f"- Cache hits: **{s.cache_hits}**, duplicates dropped: **{s.duplicate_transfers}**\n")
    lines.append(f"- Skipped (un-analyzable): **{s.skipped}**\n")
    if s.failed_sources:
        lines.append(f"- Source accounts that failed to list: **{s.failed_sources}**\n")
    lines.append(f"- Fresh accounts: **{s.detections}**\n")
    if s.cancelled:
        lines.append("- _Scan was cancelled; results are partial._\n")
    lines.append("\n")

    lines.append("## By source\n\n")
    if not report.results:
        lines.append("_No fresh accounts found. Try widening the filter or the time window._\n\n")
    else:
        per_source = Counter(r.origin.source_label for r in report.results)
        for name, count in sorted(per_source.items()):
            lines.append(f"- **{name}**: {count}\n")
        lines.append("\n")

    lines.append("## Detections\n\n")
    for r in report.results:
        path = ""
        if r.hops > 0:
            path = f" | path ({r.hops} hop{'s' if r.hops > 1 else ''}): " + " -> ".join(_short(a) for a in r.path)
        lines.append(
            f"- **{lamports_to_sol(r.origin.amount_lamports):.6f} SOL** | {r.origin.source_label} "
            f"| {r.final_account} | {_fmt_ts(r.timestamp)}{path} | tx: {r.origin.signature}\n"
        )

    lines.append("\n## Limitations\n\n")
    lines.append("- Only native SOL transfers are followed (no SPL tokens, no swaps).\n")
    lines.append("- Relay chains are followed for a bounded number of hops.\n")
    lines.append("- Split transfers across many intermediate accounts are not reconstructed.\n")

    with out_path.open("w", encoding="utf-8") as f:
        f.writelines(lines)

    return str(out_path)
