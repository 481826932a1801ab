from __future__ import annotations

import threading
from typing import Optional

from freshscan.core.errors import ScanCancelledError


class CancelToken:
    """
    Caller-side switch for stopping an in-flight scan.

    Workers call raise_if_cancelled() at each suspension point
    (between pages, batches and destinations).
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ScanCancelledError("Scan cancelled")


def check_cancelled(cancel: Optional[CancelToken]) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()
