from __future__ import annotations

from typing import AbstractSet, List, Optional, Set, Tuple

from freshscan.core.dto import RawTransaction, Transfer


def newest_first_key(t: Transfer) -> Tuple[bool, int, int]:
    # missing timestamps sort last
    return (t.timestamp is None, -(t.timestamp or 0), -t.slot)


def extract_outgoing_transfers(
    account: str,
    tx: RawTransaction,
    dust_lamports: int,
    min_outgoing_lamports: int,
    system_addresses: AbstractSet[str],
    seen: Set[Tuple[str, str]],
    timestamp: Optional[int] = None,
) -> List[Transfer]:
    """
    Native transfers sent by `account` in one transaction, derived from balance changes.

    The sender must lose at least `min_outgoing_lamports` (fees alone never qualify);
    every other non-system account that gained at least `dust_lamports` is a recipient.
    `seen` holds (signature, recipient) pairs already emitted.
    """
    if tx.failed:
        return []
    src = tx.index_of(account)
    delta = tx.balance_delta(account)
    if src < 0 or delta is None or -delta < min_outgoing_lamports:
        return []

    ts = timestamp if timestamp is not None else tx.block_time
    out: List[Transfer] = []
    n = min(len(tx.account_keys), len(tx.pre_balances), len(tx.post_balances))
    for i in range(n):
        if i == src:
            continue
        recipient = tx.account_keys[i]
        if recipient in system_addresses:
            continue
        gain = tx.post_balances[i] - tx.pre_balances[i]
        if gain < dust_lamports:
            continue
        key = (tx.signature, recipient)
        if key in seen:
            continue
        seen.add(key)
        out.append(
            Transfer(
                source=account,
                destination=recipient,
                amount_lamports=int(gain),
                timestamp=ts,
                signature=tx.signature,
                slot=tx.slot,
            )
        )
    return out
