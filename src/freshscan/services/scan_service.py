from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from freshscan.core.cancel import CancelToken, check_cancelled
from freshscan.core.dto import TaggedTransfer
from freshscan.core.enums import ScanPhase
from freshscan.core.errors import ConfigurationError, DataSourceError, ScanCancelledError
from freshscan.core.models import (
    ChainWalkResult,
    DetectionConfig,
    ScanRecord,
    ScanReport,
    ScanRequest,
    ScanStats,
    TransferOrigin,
)
from freshscan.io.schemas import results_to_list
from freshscan.ports.ledger_port import LedgerPort
from freshscan.ports.scan_store_port import ScanStorePort
from freshscan.services.chain_walker import ChainWalker
from freshscan.services.pattern_analyzer import PatternAnalyzer
from freshscan.services.transaction_classifier import TransactionClassifier

logger = logging.getLogger(__name__)

ProgressFn = Callable[[str, Dict[str, Any]], None]


def _no_progress(event: str, data: Dict[str, Any]) -> None:
    return None


class ScanCache:
    """
    Destination address -> ChainWalkResult for the lifetime of one scan.

    Write-once per key. Never share an instance between concurrent scans.
    """

    def __init__(self) -> None:
        self._results: Dict[str, ChainWalkResult] = {}

    def get(self, address: str) -> Optional[ChainWalkResult]:
        return self._results.get(address)

    def put(self, address: str, result: ChainWalkResult) -> None:
        if address in self._results:
            raise KeyError(f"{address} already cached for this scan")
        self._results[address] = result

    def __contains__(self, address: object) -> bool:
        return address in self._results

    def __len__(self) -> int:
        return len(self._results)


def sort_results(results: Iterable[ChainWalkResult]) -> List[ChainWalkResult]:
    """Oldest transfer first; results without a timestamp go last."""
    return sorted(
        results,
        key=lambda r: (r.timestamp is None, r.timestamp or 0, r.origin.signature, r.start_account),
    )


def dedupe_by_destination(transfers: Iterable[TaggedTransfer]) -> Tuple[List[TaggedTransfer], int]:
    """First occurrence per destination wins. Returns (unique, discarded_count)."""
    unique: Dict[str, TaggedTransfer] = {}
    dropped = 0
    for t in transfers:
        dest = t.transfer.destination
        if dest in unique:
            dropped += 1
            continue
        unique[dest] = t
    return list(unique.values()), dropped


class ScanService:
    """
    Runs a full fresh-account scan over named groups of source accounts.

    Phase 1 (collecting): outgoing transfers per source account inside the time
    window, kept when the amount matches the filter. Order is fixed: groups and
    accounts as configured, each account's transfers newest first.

    Phase 2 (analyzing): one chain walk per distinct destination, memoised in a
    per-scan ScanCache. A destination whose history cannot be fetched is counted
    as skipped and the scan moves on.

    Repeat transfers to the same destination are dropped before phase 2 and
    counted in `duplicate_transfers`; the first transfer keeps the attribution.
    So `cache_hits` only counts hits on a cache the caller pre-filled.
    """

    def __init__(
        self,
        ledger: LedgerPort,
        detection: Optional[DetectionConfig] = None,
        classifier: Optional[TransactionClassifier] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ledger = ledger
        self.detection = detection or DetectionConfig()
        self.classifier = classifier or TransactionClassifier(dust_lamports=self.detection.dust_lamports)
        self.analyzer = PatternAnalyzer(
            ledger,
            self.classifier,
            relay_forward_ratio=self.detection.relay_forward_ratio,
            window_ladder=self.detection.window_ladder,
        )
        self._clock = clock

    def validate(self, request: ScanRequest) -> None:
        if not request.groups:
            raise ConfigurationError("No source groups selected")
        for g in request.groups:
            if not g.accounts:
                raise ConfigurationError(f"Source group {g.name!r} has no accounts")
            if any(not a for a in g.accounts):
                raise ConfigurationError(f"Source group {g.name!r} contains an empty address")
        if request.hours is None or request.hours <= 0:
            raise ConfigurationError("Time window must be > 0 hours")
        if request.filter is None:
            raise ConfigurationError("Missing amount filter")

    def build_walker(self, request: ScanRequest) -> ChainWalker:
        return ChainWalker(
            self.ledger,
            self.analyzer,
            self.classifier,
            source_accounts=request.source_accounts(),
            max_hops=self.detection.max_hops,
            max_window=self.detection.max_window,
        )

    def scan(
        self,
        request: ScanRequest,
        on_progress: Optional[ProgressFn] = None,
        cancel: Optional[CancelToken] = None,
        store: Optional[ScanStorePort] = None,
        cache: Optional[ScanCache] = None,
    ) -> ScanReport:
        self.validate(request)

        progress = on_progress or _no_progress
        cache = cache if cache is not None else ScanCache()
        report = ScanReport()
        stats = report.stats
        start = self._clock()
        calls_before = self.ledger.request_count

        logger.info(
            "Scan start: %d group(s), %d source account(s), %s, last %sh, filter %s",
            len(request.groups), len(request.source_accounts()), request.mode.value,
            request.hours, request.filter.to_dict(),
        )

        try:
            tagged = self._collect(request, stats, progress, cancel, calls_before)
            unique, stats.duplicate_transfers = dedupe_by_destination(tagged)
            stats.destinations = len(unique)
            logger.info(
                "Collection done: %d matching transfer(s), %d unique destination(s)",
                stats.transfers_matched, stats.destinations,
            )
            self._analyze(request, unique, cache, report, progress, cancel, calls_before)
        except ScanCancelledError:
            stats.cancelled = True
            logger.info("Scan cancelled, returning %d partial result(s)", len(report.results))
            progress("log", {"message": "Scan cancelled"})

        stats.duration_sec = self._clock() - start
        stats.api_calls = self.ledger.request_count - calls_before
        stats.detections = len(report.results)

        logger.info(
            "Scan done in %.1fs: %d fresh, %d skipped, %d cache hit(s), %d API call(s)",
            stats.duration_sec, stats.detections, stats.skipped, stats.cache_hits, stats.api_calls,
        )
        progress("done", {"stats": stats})

        if store is not None and not stats.cancelled:
            self._persist(store, request, report)

        return report

    # -------------------------
    # Phases
    # -------------------------

    def _collect(
        self,
        request: ScanRequest,
        stats: ScanStats,
        progress: ProgressFn,
        cancel: Optional[CancelToken],
        calls_before: int,
    ) -> List[TaggedTransfer]:
        progress("phase", {"phase": ScanPhase.COLLECTING.value})
        out: List[TaggedTransfer] = []

        for group in request.groups:
            for i, account in enumerate(group.accounts, 1):
                check_cancelled(cancel)
                progress("log", {"message": f"{group.name} - account {i}/{len(group.accounts)}"})

                try:
                    transfers = self.ledger.list_outgoing_transfers(
                        account,
                        request.hours,
                        limit=0,
                        now_ts=request.now_ts,
                        cancel=cancel,
                    )
                except DataSourceError as e:
                    stats.failed_sources += 1
                    logger.warning("Could not list transfers of %s %s: %s", group.name, account, e)
                    progress("log", {"message": f"{group.name} - account {i} failed ({e})"})
                    continue
                stats.sources_scanned += 1
                matched = [t for t in transfers if request.filter.matches(t.amount_lamports)]
                logger.info(
                    "%s %s: %d outgoing, %d match filter",
                    group.name, account[:8], len(transfers), len(matched),
                )
                out.extend(TaggedTransfer(transfer=t, source_label=group.name) for t in matched)
                stats.transfers_matched += len(matched)
                progress("counter", {"name": "api_calls", "value": self.ledger.request_count - calls_before})

        return out

    def _analyze(
        self,
        request: ScanRequest,
        unique: List[TaggedTransfer],
        cache: ScanCache,
        report: ScanReport,
        progress: ProgressFn,
        cancel: Optional[CancelToken],
        calls_before: int,
    ) -> None:
        progress("phase", {"phase": ScanPhase.ANALYZING.value})
        stats = report.stats
        walker = self.build_walker(request)
        total = len(unique)

        for n, tagged in enumerate(unique, 1):
            check_cancelled(cancel)
            t = tagged.transfer
            dest = t.destination

            stats.accounts_scanned += 1
            progress("counter", {"name": "accounts_scanned", "value": stats.accounts_scanned})

            cached = cache.get(dest)
            if cached is not None:
                stats.cache_hits += 1
                if cached.is_fresh:
                    report.results.append(cached)
            else:
                origin = TransferOrigin(
                    source_label=tagged.source_label,
                    source_account=t.source,
                    amount_lamports=t.amount_lamports,
                    signature=t.signature,
                    timestamp=t.timestamp,
                )
                try:
                    result = walker.walk(dest, origin, request.mode, cancel=cancel)
                except DataSourceError as e:
                    stats.skipped += 1
                    logger.warning("Skipping %s: %s", dest, e)
                    progress("log", {"message": f"Skipped {dest[:8]}... ({e})"})
                    continue

                cache.put(dest, result)
                if result.is_fresh:
                    report.results.append(result)
                    logger.info("FRESH %s via %s: %s", result.final_account, " -> ".join(result.path), result.reason)
                    progress("log", {
                        "message": f"Fresh account found: {str(result.final_account)[:8]}... ({result.amount_sol:.4f} SOL)",
                    })
                else:
                    logger.debug("not fresh %s: %s", dest[:8], result.reason)

            progress("counter", {"name": "detections", "value": len(report.results)})
            progress("counter", {"name": "api_calls", "value": self.ledger.request_count - calls_before})
            if n % 10 == 0 or n == total:
                pct = round(n * 100 / total)
                progress("log", {
                    "message": (
                        f"[{pct}%] {n}/{total} analyzed "
                        f"({stats.cache_hits} from cache, {len(report.results)} fresh)"
                    ),
                })

    def _persist(self, store: ScanStorePort, request: ScanRequest, report: ScanReport) -> None:
        record = ScanRecord(
            created_at=int(self._clock()),
            groups=tuple(g.name for g in request.groups),
            mode=request.mode.value,
            filter=request.filter.to_dict(),
            hours=float(request.hours),
            results_count=len(report.results),
            duration_sec=round(report.stats.duration_sec, 3),
            detections=results_to_list(report.results),
        )
        try:
            store.save_scan(record)
        except Exception as e:
            # persistence failures never fail the scan
            logger.warning("Could not persist scan history: %s", e)
