from __future__ import annotations

from dataclasses import asdict
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from freshscan.core.models import ChainWalkResult, ScanRecord, ScanReport, ScanStats


def _dec_to_str(x: Decimal) -> str:
    # keep as string for JSON precision safety
    return format(x, "f")


def result_to_dict(r: ChainWalkResult) -> Dict[str, Any]:
    return {
        "is_fresh": r.is_fresh,
        "final_account": r.final_account,
        "path": list(r.path),
        "hops": r.hops,
        "reason": r.reason,
        "source": r.origin.source_label,
        "source_account": r.origin.source_account,
        "amount_lamports": r.origin.amount_lamports,
        "amount_sol": _dec_to_str(r.amount_sol),
        "signature": r.origin.signature,
        "timestamp": r.origin.timestamp,
    }


def results_to_list(results: Iterable[ChainWalkResult]) -> List[Dict[str, Any]]:
    return [result_to_dict(r) for r in results]


def stats_to_dict(s: ScanStats) -> Dict[str, Any]:
    d = asdict(s)
    d["duration_sec"] = round(s.duration_sec, 3)
    return d


def report_to_dict(report: ScanReport) -> Dict[str, Any]:
    return {
        "stats": stats_to_dict(report.stats),
        "results": results_to_list(report.results),
    }


def record_to_dict(rec: ScanRecord) -> Dict[str, Any]:
    return {
        "created_at": rec.created_at,
        "groups": list(rec.groups),
        "mode": rec.mode,
        "filter": rec.filter,
        "hours": rec.hours,
        "results_count": rec.results_count,
        "duration_sec": rec.duration_sec,
        "detections": rec.detections,
    }


def record_from_dict(d: Dict[str, Any]) -> ScanRecord:
    if not isinstance(d, dict):
        raise TypeError(f"scan record must be an object, got {type(d).__name__}")
    return ScanRecord(
        created_at=int(d.get("created_at") or 0),
        groups=tuple(d.get("groups") or ()),
        mode=str(d.get("mode") or ""),
        filter=dict(d.get("filter") or {}),
        hours=float(d.get("hours") or 0),
        results_count=int(d.get("results_count") or 0),
        duration_sec=float(d.get("duration_sec") or 0),
        detections=list(d.get("detections") or []),
    )
