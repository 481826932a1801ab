from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import List

from freshscan.config import settings
from freshscan.core.models import ScanRecord
from freshscan.io.schemas import record_from_dict, record_to_dict
from freshscan.ports.scan_store_port import ScanStorePort

logger = logging.getLogger(__name__)


class JsonlScanStore(ScanStorePort):
    """Scan history as one JSON object per line, appended in completion order."""

    def __init__(self, path: str = settings.SCAN_HISTORY_FILE) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def save_scan(self, record: ScanRecord) -> None:
        line = json.dumps(record_to_dict(record), separators=(",", ":"))
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")

    def load_scans(self, limit: int = 10) -> List[ScanRecord]:
        if not self._path.exists():
            return []

        out: List[ScanRecord] = []
        with self._path.open(encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    out.append(record_from_dict(json.loads(line)))
                except (ValueError, TypeError) as e:
                    logger.warning("Ignoring bad scan record at %s:%d: %s", self._path, lineno, e)

        out.reverse()
        return out[:limit] if limit > 0 else out
