from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class SignatureInfo:
    signature: str
    slot: int
    block_time: Optional[int]     # unix seconds, may be missing on old slots
    failed: bool = False


@dataclass(frozen=True)
class RawTransaction:
    signature: str
    slot: int
    block_time: Optional[int]
    account_keys: Tuple[str, ...]
    pre_balances: Tuple[int, ...]     # lamports, aligned with account_keys
    post_balances: Tuple[int, ...]
    failed: bool = False

    def index_of(self, account: str) -> int:
        try:
            return self.account_keys.index(account)
        except ValueError:
            return -1

    def balance_delta(self, account: str) -> Optional[int]:
        idx = self.index_of(account)
        if idx < 0 or idx >= len(self.pre_balances) or idx >= len(self.post_balances):
            return None
        return int(self.post_balances[idx]) - int(self.pre_balances[idx])


@dataclass(frozen=True)
class Transfer:
    source: str
    destination: str
    amount_lamports: int
    timestamp: Optional[int]
    signature: str
    slot: int


@dataclass(frozen=True)
class TaggedTransfer:
    """A transfer retained by the scan filter, labelled with the source group it came from."""

    transfer: Transfer
    source_label: str
