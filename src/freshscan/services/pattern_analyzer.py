from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional, Sequence

from freshscan.config import settings
from freshscan.core.cancel import CancelToken
from freshscan.core.dto import RawTransaction
from freshscan.core.enums import TxDirection, WalletPattern
from freshscan.core.models import PatternResult
from freshscan.ports.ledger_port import LedgerPort
from freshscan.services.transaction_classifier import TransactionClassifier

logger = logging.getLogger(__name__)


class PatternAnalyzer:
    """
    Classifies an account's short-term behaviour from its earliest transactions.

    Patterns:
    - VIRGIN:      no history at all
    - CREDIT_ONLY: received, never sent (final only with exactly one credit)
    - RELAY:       received, then forwarded most of it in a single debit
    - MIXED:       anything else (partial withdrawals, several debits, ...)
    """

    def __init__(
        self,
        ledger: LedgerPort,
        classifier: TransactionClassifier,
        relay_forward_ratio: Decimal = settings.RELAY_FORWARD_RATIO,
        window_ladder: Sequence[int] = settings.WINDOW_LADDER,
    ) -> None:
        self.ledger = ledger
        self.classifier = classifier
        self.relay_forward_ratio = Decimal(str(relay_forward_ratio))
        self.window_ladder = tuple(int(n) for n in window_ladder)

    def ladder_for(self, max_n: int) -> List[int]:
        if max_n < 1:
            raise ValueError("max_n must be >= 1")
        sizes = sorted({n for n in self.window_ladder if 0 < n < max_n})
        sizes.append(max_n)
        return sizes

    def analyze_window(
        self,
        account: str,
        n: int,
        cancel: Optional[CancelToken] = None,
    ) -> PatternResult:
        txs = self.ledger.first_transactions(account, n, cancel=cancel)
        if not txs:
            return PatternResult(
                pattern=WalletPattern.VIRGIN,
                credits=0,
                debits=0,
                reason="No transactions found (virgin account)",
                window=n,
            )

        credits: List[RawTransaction] = []
        debits: List[RawTransaction] = []
        for tx in txs:
            direction = self.classifier.classify(account, tx)
            if direction is TxDirection.CREDIT:
                credits.append(tx)
            elif direction is TxDirection.DEBIT:
                debits.append(tx)

        nc, nd = len(credits), len(debits)

        if nc == 1 and nd == 0:
            return PatternResult(
                pattern=WalletPattern.CREDIT_ONLY,
                credits=1,
                debits=0,
                reason="1 credit, 0 debits",
                window=n,
            )

        if nc > 1 and nd == 0:
            return PatternResult(
                pattern=WalletPattern.CREDIT_ONLY,
                credits=nc,
                debits=0,
                reason=f"Only credits: {nc} credits, 0 debits",
                window=n,
            )

        if nc >= 1 and nd == 1:
            totals = self.classifier.sum_amounts(account, credits, debits)
            ratio = Decimal(totals.total_debited) / Decimal(totals.total_credited)
            pct = ratio * 100
            logger.debug(
                "%s: credited %d, debited %d lamports (%.1f%%)",
                account[:8], totals.total_credited, totals.total_debited, pct,
            )

            if ratio >= self.relay_forward_ratio:
                return PatternResult(
                    pattern=WalletPattern.RELAY,
                    credits=nc,
                    debits=1,
                    next_account=self.classifier.resolve_debit_destination(account, debits[0]),
                    reason=f"Relay: {nc} credit(s) + 1 debit ({pct:.0f}% forwarded)",
                    window=n,
                )
            return PatternResult(
                pattern=WalletPattern.MIXED,
                credits=nc,
                debits=1,
                reason=f"Partial withdrawal: only {pct:.0f}% forwarded (not a relay)",
                window=n,
            )

        return PatternResult(
            pattern=WalletPattern.MIXED,
            credits=nc,
            debits=nd,
            reason=f"Mixed pattern: {nc} credits, {nd} debits",
            window=n,
        )

    def analyze_adaptive(
        self,
        account: str,
        max_n: int = settings.MAX_WINDOW,
        cancel: Optional[CancelToken] = None,
    ) -> PatternResult:
        """
        Widen the lookback window until the pattern is definitive.

        Stops on RELAY, VIRGIN or single-credit CREDIT_ONLY. Ambiguous results
        (several credits, MIXED) move on to the next window size; when the ladder
        runs out the largest window's result is returned.
        """
        ladder = self.ladder_for(max_n)
        for n in ladder[:-1]:
            result = self._analyze_logged(account, n, cancel)
            if result.is_final:
                return result
        return self._analyze_logged(account, ladder[-1], cancel)

    def _analyze_logged(self, account: str, n: int, cancel: Optional[CancelToken]) -> PatternResult:
        result = self.analyze_window(account, n, cancel=cancel)
        logger.debug(
            "%s window %d: %s (%dC/%dD)",
            account[:8], n, result.pattern.value, result.credits, result.debits,
        )
        return result
