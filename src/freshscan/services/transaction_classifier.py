from __future__ import annotations

from typing import Iterable, Optional

from freshscan.config import settings
from freshscan.core.dto import RawTransaction
from freshscan.core.enums import TxDirection
from freshscan.core.models import AmountTotals


class TransactionClassifier:
    """
    Classifies a transaction from one account's point of view.

    Only native balance deltas are used; token transfers inside the same
    transaction are ignored. Deltas within +/- dust (fees, rent) are INDETERMINATE.
    """

    def __init__(
        self,
        dust_lamports: int = settings.DUST_LAMPORTS,
        system_addresses: Iterable[str] = settings.SYSTEM_ADDRESSES,
    ) -> None:
        self.dust_lamports = int(dust_lamports)
        self._system = frozenset(system_addresses)

    def is_system_address(self, address: str) -> bool:
        return address in self._system

    def classify(self, account: str, tx: RawTransaction) -> TxDirection:
        delta = tx.balance_delta(account)
        if delta is None:
            return TxDirection.INDETERMINATE
        if delta > self.dust_lamports:
            return TxDirection.CREDIT
        if delta < -self.dust_lamports:
            return TxDirection.DEBIT
        return TxDirection.INDETERMINATE

    def resolve_debit_destination(self, account: str, tx: RawTransaction) -> Optional[str]:
        src = tx.index_of(account)
        if src < 0:
            return None

        n = min(len(tx.account_keys), len(tx.pre_balances), len(tx.post_balances))
        for i in range(n):
            if i == src:
                continue
            address = tx.account_keys[i]
            if self.is_system_address(address):
                continue
            if tx.post_balances[i] - tx.pre_balances[i] > self.dust_lamports:
                return address
        return None

    def sum_amounts(
        self,
        account: str,
        credits: Iterable[RawTransaction],
        debits: Iterable[RawTransaction],
    ) -> AmountTotals:
        credited = 0
        for tx in credits:
            delta = tx.balance_delta(account)
            if delta is not None:
                credited += delta

        debited = 0
        for tx in debits:
            delta = tx.balance_delta(account)
            if delta is not None:
                debited -= delta

        return AmountTotals(total_credited=credited, total_debited=debited)
