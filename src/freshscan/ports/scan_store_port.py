from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from freshscan.core.models import ScanRecord


class ScanStorePort(ABC):
    @abstractmethod
    def save_scan(self, record: ScanRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def load_scans(self, limit: int = 10) -> List[ScanRecord]:
        raise NotImplementedError
