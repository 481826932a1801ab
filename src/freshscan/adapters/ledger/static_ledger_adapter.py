from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from freshscan.config import settings
from freshscan.adapters.ledger.transfers import extract_outgoing_transfers, newest_first_key
from freshscan.core.cancel import CancelToken, check_cancelled
from freshscan.core.dto import RawTransaction, Transfer
from freshscan.ports.ledger_port import LedgerPort


class StaticLedgerAdapter(LedgerPort):
    """In-memory ledger for tests and offline runs (fixture files)."""

    def __init__(
        self,
        transactions: Optional[List[RawTransaction]] = None,
        now_ts: int = 0,
        count_cap: int = settings.SOLANA_TX_COUNT_CAP,
        dust_lamports: int = settings.DUST_LAMPORTS,
        min_outgoing_lamports: int = settings.MIN_OUTGOING_LAMPORTS,
        system_addresses: Iterable[str] = settings.SYSTEM_ADDRESSES,
    ):
        self._txs = list(transactions or [])
        self._now_ts = now_ts
        self._count_cap = count_cap
        self._dust = dust_lamports
        self._min_outgoing = min_outgoing_lamports
        self._system = frozenset(system_addresses)
        self._requests = 0
        self.calls: List[Tuple[str, str]] = []

    @classmethod
    def from_json(cls, path: str, **kwargs) -> "StaticLedgerAdapter":
        """
        Fixture layout:
        {"now_ts": 1700000000,
         "transactions": [{"signature", "slot", "block_time",
                           "accounts": [{"address", "pre", "post"}, ...], "failed"}]}
        """
        with open(Path(path), encoding="utf-8") as f:
            data = json.load(f)
        txs = [cls._tx_from_dict(t) for t in data.get("transactions", [])]
        kwargs.setdefault("now_ts", int(data.get("now_ts") or 0))
        return cls(transactions=txs, **kwargs)

    @staticmethod
    def _tx_from_dict(t: Dict[str, Any]) -> RawTransaction:
        accounts = t.get("accounts") or []
        bt = t.get("block_time")
        return RawTransaction(
            signature=str(t["signature"]),
            slot=int(t.get("slot") or 0),
            block_time=int(bt) if bt is not None else None,
            account_keys=tuple(str(a["address"]) for a in accounts),
            pre_balances=tuple(int(a.get("pre") or 0) for a in accounts),
            post_balances=tuple(int(a.get("post") or 0) for a in accounts),
            failed=bool(t.get("failed")),
        )

    @property
    def request_count(self) -> int:
        return self._requests

    def _history(self, account: str) -> List[RawTransaction]:
        # newest first, like the RPC signature listing
        items = [t for t in self._txs if account in t.account_keys]
        items.sort(key=lambda t: (t.block_time or 0, t.slot), reverse=True)
        return items

    def _record(self, method: str, account: str) -> None:
        self._requests += 1
        self.calls.append((method, account))

    def list_outgoing_transfers(self, account, max_age_hours, limit=0, now_ts=None, cancel: Optional[CancelToken] = None):
        check_cancelled(cancel)
        self._record("list_outgoing_transfers", account)
        now = int(now_ts or self._now_ts)
        cutoff = now - int(float(max_age_hours) * 3600) if max_age_hours and max_age_hours > 0 else None

        window = [
            t for t in self._history(account)
            if cutoff is None or t.block_time is None or t.block_time >= cutoff
        ]
        if limit:
            window = window[:limit]

        seen: Set[Tuple[str, str]] = set()
        out: List[Transfer] = []
        for t in window:
            out.extend(
                extract_outgoing_transfers(account, t, self._dust, self._min_outgoing, self._system, seen)
            )
        out.sort(key=newest_first_key)
        return out

    def first_transactions(self, account, n, cancel: Optional[CancelToken] = None):
        check_cancelled(cancel)
        self._record("first_transactions", account)
        if n <= 0:
            return []
        return list(reversed(self._history(account)))[:n]

    def total_transaction_count(self, account):
        self._record("total_transaction_count", account)
        return min(len(self._history(account)), self._count_cap)
