from __future__ import annotations

import itertools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

import requests

from freshscan.config import settings
from freshscan.adapters.ledger.rate_limiter import RetryPolicy, SimpleRateLimiter
from freshscan.adapters.ledger.transfers import extract_outgoing_transfers, newest_first_key
from freshscan.core.cancel import CancelToken, check_cancelled
from freshscan.core.dto import RawTransaction, SignatureInfo, Transfer
from freshscan.core.errors import DataSourceError, RateLimitError
from freshscan.ports.ledger_port import LedgerPort

logger = logging.getLogger(__name__)


def _oldest_first_key(s: SignatureInfo) -> Tuple[bool, int, int]:
    return (s.block_time is None, s.block_time or 0, s.slot)


class SolanaRpcAdapter(LedgerPort):
    """
    Solana JSON-RPC ledger client.

    - Every request waits at one shared SimpleRateLimiter.
    - Throttling (HTTP 429 / RPC "too many requests") is retried by the RetryPolicy.
    - Any other failure is raised immediately as DataSourceError.
    - Transaction details are resolved in small concurrent batches.
    """

    def __init__(
        self,
        rpc_url: str = settings.SOLANA_RPC_URL,
        min_interval_sec: float = settings.SOLANA_MIN_REQUEST_INTERVAL_SEC,
        timeout_sec: int = settings.SOLANA_TIMEOUT_SEC,
        page_size: int = settings.SOLANA_SIGNATURE_PAGE_SIZE,
        history_cap: int = settings.SOLANA_HISTORY_SAFETY_CAP,
        count_cap: int = settings.SOLANA_TX_COUNT_CAP,
        batch_size: int = settings.SOLANA_DETAIL_BATCH_SIZE,
        dust_lamports: int = settings.DUST_LAMPORTS,
        min_outgoing_lamports: int = settings.MIN_OUTGOING_LAMPORTS,
        system_addresses: Iterable[str] = settings.SYSTEM_ADDRESSES,
        retry: Optional[RetryPolicy] = None,
        rate_limiter: Optional[SimpleRateLimiter] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if page_size <= 0 or batch_size <= 0:
            raise ValueError("page_size and batch_size must be > 0")
        self._rpc_url = rpc_url
        self._timeout = timeout_sec
        self._page_size = page_size
        self._history_cap = history_cap
        self._count_cap = count_cap
        self._batch_size = batch_size
        self._dust = dust_lamports
        self._min_outgoing = min_outgoing_lamports
        self._system = frozenset(system_addresses)
        self._clock = clock

        self._rl = rate_limiter or SimpleRateLimiter(min_interval_sec)
        self._retry = retry or RetryPolicy(
            max_attempts=settings.SOLANA_MAX_RETRIES,
            base_delay=settings.SOLANA_BACKOFF_BASE_SEC,
            cap=settings.SOLANA_BACKOFF_CAP_SEC,
        )
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    @property
    def request_count(self) -> int:
        return self._rl.request_count

    # ---------- internal ----------

    def _call(self, method: str, params: List[Any]) -> Any:
        return self._retry.run(lambda: self._call_once(method, params), label=method)

    def _call_once(self, method: str, params: List[Any]) -> Any:
        self._rl.wait()
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = self._session.post(self._rpc_url, json=payload, timeout=self._timeout)
        except requests.RequestException as e:
            raise DataSourceError(f"{method} request failed: {e}") from e

        if resp.status_code == 429:
            raise RateLimitError(f"{method}: HTTP 429 Too Many Requests")
        try:
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise DataSourceError(f"{method} bad response: {e}") from e

        if not isinstance(data, dict):
            raise DataSourceError(f"Invalid {method} response: {data!r}")

        err = data.get("error")
        if err:
            code = err.get("code") if isinstance(err, dict) else None
            message = str(err.get("message") if isinstance(err, dict) else err)
            if code == 429 or "too many requests" in message.lower() or "rate limit" in message.lower():
                raise RateLimitError(f"{method}: {message}")
            raise DataSourceError(f"{method} RPC error {code}: {message}")

        if "result" not in data:
            raise DataSourceError(f"Invalid {method} response: {data!r}")
        return data["result"]

    def _get_signatures(
        self,
        account: str,
        limit: int,
        before: Optional[str] = None,
    ) -> List[SignatureInfo]:
        opts: Dict[str, Any] = {"limit": int(limit)}
        if before:
            opts["before"] = before
        rows = self._call("getSignaturesForAddress", [account, opts])
        if not isinstance(rows, list):
            raise DataSourceError(f"Invalid signature list for {account}: {rows!r}")

        out: List[SignatureInfo] = []
        try:
            for r in rows:
                if not isinstance(r, dict) or not r.get("signature"):
                    continue
                bt = r.get("blockTime")
                out.append(
                    SignatureInfo(
                        signature=str(r["signature"]),
                        slot=int(r.get("slot") or 0),
                        block_time=int(bt) if bt is not None else None,
                        failed=r.get("err") is not None,
                    )
                )
        except (KeyError, TypeError, ValueError) as e:
            raise DataSourceError(f"Malformed signature list for {account}: {e}") from e
        return out

    def _get_transaction(self, signature: str) -> Optional[RawTransaction]:
        result = self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": "confirmed",
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        if result is None:
            return None
        return self._parse_transaction(signature, result)

    def _safe_get_transaction(self, signature: str) -> Optional[RawTransaction]:
        try:
            return self._get_transaction(signature)
        except DataSourceError as e:
            logger.warning("Skipping transaction %s: %s", signature, e)
            return None

    @staticmethod
    def _parse_transaction(signature: str, result: Dict[str, Any]) -> RawTransaction:
        try:
            meta = result.get("meta") or {}
            msg = (result.get("transaction") or {}).get("message") or {}

            keys: List[str] = []
            for k in msg.get("accountKeys") or []:
                keys.append(k if isinstance(k, str) else str(k["pubkey"]))

            pre = tuple(int(x) for x in meta.get("preBalances") or [])
            post = tuple(int(x) for x in meta.get("postBalances") or [])

            # plain "json" encoding leaves lookup-table accounts out of accountKeys
            if len(keys) < len(pre):
                loaded = meta.get("loadedAddresses") or {}
                keys.extend(loaded.get("writable") or [])
                keys.extend(loaded.get("readonly") or [])

            bt = result.get("blockTime")
            return RawTransaction(
                signature=signature,
                slot=int(result.get("slot") or 0),
                block_time=int(bt) if bt is not None else None,
                account_keys=tuple(keys),
                pre_balances=pre,
                post_balances=post,
                failed=meta.get("err") is not None,
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DataSourceError(f"Malformed transaction {signature}: {e}") from e

    def _fetch_details(
        self,
        signatures: List[SignatureInfo],
        cancel: Optional[CancelToken] = None,
    ) -> List[Tuple[SignatureInfo, Optional[RawTransaction]]]:
        out: List[Tuple[SignatureInfo, Optional[RawTransaction]]] = []
        if not signatures:
            return out

        with ThreadPoolExecutor(max_workers=self._batch_size) as pool:
            for i in range(0, len(signatures), self._batch_size):
                check_cancelled(cancel)
                batch = signatures[i:i + self._batch_size]
                txs = pool.map(self._safe_get_transaction, [s.signature for s in batch])
                out.extend(zip(batch, txs))
                done = min(i + self._batch_size, len(signatures))
                if done % 30 == 0 or done == len(signatures):
                    logger.debug("Resolved %d/%d transactions", done, len(signatures))
        return out

    def _signatures_in_window(
        self,
        account: str,
        cutoff_ts: Optional[int],
        limit: int,
        cancel: Optional[CancelToken],
    ) -> List[SignatureInfo]:
        out: List[SignatureInfo] = []
        before: Optional[str] = None

        while True:
            check_cancelled(cancel)
            page = self._get_signatures(account, self._page_size, before)
            if not page:
                break

            reached_cutoff = False
            for s in page:
                if cutoff_ts is not None and s.block_time is not None and s.block_time < cutoff_ts:
                    reached_cutoff = True
                    break
                out.append(s)

            if limit > 0 and len(out) >= limit:
                out = out[:limit]
                break
            if reached_cutoff or len(page) < self._page_size:
                break
            before = page[-1].signature

        return out

    # ---------- port methods ----------

    def list_outgoing_transfers(
        self,
        account: str,
        max_age_hours: float,
        limit: int = 0,
        now_ts: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
    ) -> List[Transfer]:
        now = int(now_ts) if now_ts else int(self._clock())
        cutoff = now - int(float(max_age_hours) * 3600) if max_age_hours and max_age_hours > 0 else None

        sigs = self._signatures_in_window(account, cutoff, int(limit or 0), cancel)
        live = [s for s in sigs if not s.failed]
        logger.info("%s: %d signature(s) in window (%d failed)", account[:8], len(sigs), len(sigs) - len(live))

        transfers: List[Transfer] = []
        seen: Set[Tuple[str, str]] = set()
        for sig, tx in self._fetch_details(live, cancel):
            if tx is None or tx.failed:
                continue
            transfers.extend(
                extract_outgoing_transfers(
                    account, tx, self._dust, self._min_outgoing, self._system, seen,
                    timestamp=sig.block_time,
                )
            )

        transfers.sort(key=newest_first_key)
        logger.info("%s: %d outgoing transfer(s)", account[:8], len(transfers))
        return transfers

    def first_transactions(
        self,
        account: str,
        n: int,
        cancel: Optional[CancelToken] = None,
    ) -> List[RawTransaction]:
        if n <= 0:
            return []

        sigs: List[SignatureInfo] = []
        before: Optional[str] = None
        while len(sigs) < self._history_cap:
            check_cancelled(cancel)
            page = self._get_signatures(account, self._page_size, before)
            if not page:
                break
            sigs.extend(page)
            if len(page) < self._page_size:
                break
            before = page[-1].signature

        earliest = sorted(sigs, key=_oldest_first_key)[:n]
        return [tx for _, tx in self._fetch_details(earliest, cancel) if tx is not None]

    def total_transaction_count(self, account: str) -> int:
        page = self._get_signatures(account, self._count_cap)
        return min(len(page), self._count_cap)
