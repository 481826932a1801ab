from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from freshscan.core.cancel import CancelToken
from freshscan.core.dto import RawTransaction, Transfer


class LedgerPort(ABC):
    """
    Abstract read access to the ledger for fresh-account detection.
    """

    # --- outgoing native transfers of a source account ---

    @abstractmethod
    def list_outgoing_transfers(
        self,
        account: str,
        max_age_hours: float,
        limit: int = 0,
        now_ts: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
    ) -> List[Transfer]:
        """Newest first. limit=0 means every transfer inside the window."""
        raise NotImplementedError

    # --- account history, oldest first ---

    @abstractmethod
    def first_transactions(
        self,
        account: str,
        n: int,
        cancel: Optional[CancelToken] = None,
    ) -> List[RawTransaction]:
        raise NotImplementedError

    # --- saturating history size ---

    @abstractmethod
    def total_transaction_count(self, account: str) -> int:
        raise NotImplementedError

    @property
    def request_count(self) -> int:
        return 0
