from __future__ import annotations

from enum import Enum

from freshscan.core.errors import ConfigurationError


class TxDirection(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    INDETERMINATE = "INDETERMINATE"


class WalletPattern(str, Enum):
    VIRGIN = "VIRGIN"
    CREDIT_ONLY = "CREDIT_ONLY"
    RELAY = "RELAY"
    MIXED = "MIXED"


class DetectionMode(str, Enum):
    STRICT = "strict"
    RELAY_FOLLOWING = "relay-following"

    @classmethod
    def parse(cls, raw: str) -> "DetectionMode":
        # older front-ends send 'simple' / 'hopping'
        val = (raw or "").strip().lower()
        aliases = {
            "strict": cls.STRICT,
            "simple": cls.STRICT,
            "relay-following": cls.RELAY_FOLLOWING,
            "relay_following": cls.RELAY_FOLLOWING,
            "relay": cls.RELAY_FOLLOWING,
            "hopping": cls.RELAY_FOLLOWING,
        }
        if val not in aliases:
            raise ConfigurationError(f"Unknown detection mode: {raw!r}")
        return aliases[val]


class ScanPhase(str, Enum):
    COLLECTING = "collecting"
    ANALYZING = "analyzing"
