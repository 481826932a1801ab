from __future__ import annotations

import logging
from typing import AbstractSet, List, Optional

from freshscan.config import settings
from freshscan.core.cancel import CancelToken, check_cancelled
from freshscan.core.enums import DetectionMode, TxDirection, WalletPattern
from freshscan.core.models import ChainWalkResult, TransferOrigin, VerificationResult
from freshscan.ports.ledger_port import LedgerPort
from freshscan.services.pattern_analyzer import PatternAnalyzer
from freshscan.services.transaction_classifier import TransactionClassifier

logger = logging.getLogger(__name__)


class ChainWalker:
    """
    Walks from a credited account through relay hops to a terminal account.

    STRICT mode only runs the total-count verification on the starting account.
    RELAY_FOLLOWING mode loops: analyze -> (fresh | not fresh | advance), with a
    hop budget, a source re-entry check and a cycle check on every advance.
    """

    def __init__(
        self,
        ledger: LedgerPort,
        analyzer: PatternAnalyzer,
        classifier: TransactionClassifier,
        source_accounts: AbstractSet[str],
        max_hops: int = settings.MAX_HOPS,
        max_window: int = settings.MAX_WINDOW,
    ) -> None:
        if max_hops < 0:
            raise ValueError("max_hops must be >= 0")
        if max_window < 1:
            raise ValueError("max_window must be >= 1")
        self.ledger = ledger
        self.analyzer = analyzer
        self.classifier = classifier
        self.source_accounts = frozenset(source_accounts)
        self.max_hops = int(max_hops)
        self.max_window = int(max_window)

    def verify_terminal(self, account: str, cancel: Optional[CancelToken] = None) -> VerificationResult:
        """
        Strict check on an account's whole history: fresh only when it has no
        transactions, or exactly one and that one is a credit.
        """
        check_cancelled(cancel)
        count = self.ledger.total_transaction_count(account)

        if count == 0:
            return VerificationResult(True, 0, "virgin account (no transactions)")

        if count > 1:
            return VerificationResult(
                False, count, f"account has {count} total transactions (only 1 allowed)"
            )

        txs = self.ledger.first_transactions(account, 1, cancel=cancel)
        if not txs:
            return VerificationResult(False, 1, "count reports 1 transaction but fetch returned none")

        direction = self.classifier.classify(account, txs[0])
        if direction is TxDirection.CREDIT:
            return VerificationResult(True, 1, "exactly 1 transaction (credit)")
        return VerificationResult(False, 1, f"only transaction is {direction.value}, not a credit")

    def walk(
        self,
        account: str,
        origin: TransferOrigin,
        mode: DetectionMode = DetectionMode.RELAY_FOLLOWING,
        cancel: Optional[CancelToken] = None,
    ) -> ChainWalkResult:
        if mode is DetectionMode.STRICT:
            return self._walk_strict(account, origin, cancel)
        return self._walk_relays(account, origin, cancel)

    # -------------------------
    # Strategies
    # -------------------------

    def _walk_strict(
        self,
        account: str,
        origin: TransferOrigin,
        cancel: Optional[CancelToken],
    ) -> ChainWalkResult:
        v = self.verify_terminal(account, cancel=cancel)
        if v.is_final:
            return self._fresh([account], origin, f"Fresh (strict): {v.reason}")
        return self._not_fresh([account], origin, f"Not fresh (strict): {v.reason}")

    def _walk_relays(
        self,
        account: str,
        origin: TransferOrigin,
        cancel: Optional[CancelToken],
    ) -> ChainWalkResult:
        path: List[str] = [account]
        current = account
        hops = 0

        while hops < self.max_hops:
            check_cancelled(cancel)
            analysis = self.analyzer.analyze_adaptive(current, self.max_window, cancel=cancel)
            logger.debug("hop %d %s: %s (%s)", hops, current[:8], analysis.pattern.value, analysis.reason)

            if analysis.pattern is WalletPattern.VIRGIN or analysis.is_single_credit:
                v = self.verify_terminal(current, cancel=cancel)
                if v.is_final:
                    return self._fresh(
                        path, origin, f"Fresh after {hops} hop(s): {analysis.reason}; verified {v.reason}"
                    )
                return self._not_fresh(path, origin, f"Not fresh: verification failed, {v.reason}")

            if analysis.pattern is WalletPattern.RELAY and analysis.next_account:
                nxt = analysis.next_account
                if nxt in self.source_accounts:
                    return self._not_fresh(
                        path, origin, f"Not fresh: source re-entry, hop {hops} forwards to known source {nxt}"
                    )
                if nxt in path:
                    return self._not_fresh(
                        path, origin, f"Not fresh: cycle detected, {nxt} already in path"
                    )
                logger.debug("following relay %s -> %s", current[:8], nxt[:8])
                path.append(nxt)
                current = nxt
                hops += 1
                continue

            if analysis.pattern is WalletPattern.RELAY:
                return self._not_fresh(path, origin, f"Not fresh: relay destination unresolved ({analysis.reason})")
            return self._not_fresh(path, origin, f"Not fresh: {analysis.reason}")

        # hop budget exhausted: one last strict check on where we stopped
        v = self.verify_terminal(current, cancel=cancel)
        if v.is_final:
            return self._fresh(path, origin, f"Fresh at max hops ({self.max_hops}): {v.reason}")
        return self._not_fresh(
            path, origin, f"Max hops ({self.max_hops}) reached and final account invalid: {v.reason}"
        )

    # -------------------------
    # Helpers
    # -------------------------

    @staticmethod
    def _fresh(path: List[str], origin: TransferOrigin, reason: str) -> ChainWalkResult:
        return ChainWalkResult(
            is_fresh=True,
            final_account=path[-1],
            path=tuple(path),
            reason=reason,
            origin=origin,
        )

    @staticmethod
    def _not_fresh(path: List[str], origin: TransferOrigin, reason: str) -> ChainWalkResult:
        return ChainWalkResult(
            is_fresh=False,
            final_account=None,
            path=tuple(path),
            reason=reason,
            origin=origin,
        )
