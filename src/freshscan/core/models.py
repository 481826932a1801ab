from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from freshscan.core.enums import DetectionMode, WalletPattern
from freshscan.core.errors import ConfigurationError


LAMPORTS_PER_SOL = 1_000_000_000


def sol_to_lamports(amount: Decimal | int | float | str) -> int:
    return int(Decimal(str(amount)) * LAMPORTS_PER_SOL)


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(int(lamports)) / Decimal(LAMPORTS_PER_SOL)



# Scan input

@dataclass(frozen=True)
class ScanFilter:
    """
    Amount filter over transfer values (lamports).

    kind="range":  min_lamports <= amount <= max_lamports
    kind="target": |amount - target| <= target * tolerance
    """

    kind: str
    min_lamports: int = 0
    max_lamports: int = 0
    target_lamports: int = 0
    tolerance: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if self.kind == "range":
            if self.min_lamports < 0 or self.max_lamports < 0:
                raise ConfigurationError("Range filter bounds must be >= 0")
            if self.min_lamports > self.max_lamports:
                raise ConfigurationError(
                    f"Range filter min ({self.min_lamports}) exceeds max ({self.max_lamports})"
                )
        elif self.kind == "target":
            if self.target_lamports <= 0:
                raise ConfigurationError("Target filter value must be > 0")
            if self.tolerance < 0:
                raise ConfigurationError("Target filter tolerance must be >= 0")
        else:
            raise ConfigurationError(f"Unknown filter kind: {self.kind!r}")

    @classmethod
    def range(cls, min_lamports: int, max_lamports: int) -> "ScanFilter":
        return cls(kind="range", min_lamports=int(min_lamports), max_lamports=int(max_lamports))

    @classmethod
    def target(cls, target_lamports: int, tolerance: Decimal | float | str) -> "ScanFilter":
        return cls(
            kind="target",
            target_lamports=int(target_lamports),
            tolerance=Decimal(str(tolerance)),
        )

    def matches(self, amount_lamports: int) -> bool:
        if self.kind == "range":
            return self.min_lamports <= amount_lamports <= self.max_lamports
        allowed = Decimal(self.target_lamports) * self.tolerance
        return Decimal(abs(amount_lamports - self.target_lamports)) <= allowed

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == "range":
            return {"type": "range", "min": self.min_lamports, "max": self.max_lamports}
        return {
            "type": "target",
            "value": self.target_lamports,
            "tolerance": format(self.tolerance, "f"),
        }


@dataclass(frozen=True)
class SourceGroup:
    name: str
    accounts: Tuple[str, ...]


@dataclass(frozen=True)
class DetectionConfig:
    dust_lamports: int = 1000
    min_outgoing_lamports: int = 10_000
    relay_forward_ratio: Decimal = Decimal("0.80")
    window_ladder: Tuple[int, ...] = (2, 3, 5)
    max_window: int = 10
    max_hops: int = 3

    def __post_init__(self) -> None:
        if self.dust_lamports < 0:
            raise ConfigurationError("dust_lamports must be >= 0")
        if self.max_window < 1:
            raise ConfigurationError("max_window must be >= 1")
        if self.max_hops < 0:
            raise ConfigurationError("max_hops must be >= 0")
        if not (Decimal("0") < Decimal(self.relay_forward_ratio) <= Decimal("1")):
            raise ConfigurationError("relay_forward_ratio must be in (0, 1]")


@dataclass(frozen=True)
class ScanRequest:
    groups: Tuple[SourceGroup, ...]
    filter: ScanFilter
    hours: float = 96
    mode: DetectionMode = DetectionMode.RELAY_FOLLOWING
    now_ts: Optional[int] = None

    def source_accounts(self) -> frozenset:
        return frozenset(a for g in self.groups for a in g.accounts)



# Analysis results

@dataclass(frozen=True)
class AmountTotals:
    total_credited: int
    total_debited: int


@dataclass(frozen=True)
class PatternResult:
    pattern: WalletPattern
    credits: int
    debits: int
    reason: str
    next_account: Optional[str] = None
    window: int = 0

    @property
    def is_single_credit(self) -> bool:
        return self.pattern is WalletPattern.CREDIT_ONLY and self.credits == 1

    @property
    def is_final(self) -> bool:
        if self.pattern in (WalletPattern.VIRGIN, WalletPattern.RELAY):
            return True
        return self.is_single_credit


@dataclass(frozen=True)
class VerificationResult:
    is_final: bool
    tx_count: int
    reason: str


@dataclass(frozen=True)
class TransferOrigin:
    """Provenance of the transfer that started a chain walk."""

    source_label: str
    source_account: str
    amount_lamports: int
    signature: str
    timestamp: Optional[int]


@dataclass(frozen=True)
class ChainWalkResult:
    is_fresh: bool
    final_account: Optional[str]
    path: Tuple[str, ...]
    reason: str
    origin: TransferOrigin

    @property
    def hops(self) -> int:
        return len(self.path) - 1

    @property
    def start_account(self) -> str:
        return self.path[0]

    @property
    def timestamp(self) -> Optional[int]:
        return self.origin.timestamp

    @property
    def amount_sol(self) -> Decimal:
        return lamports_to_sol(self.origin.amount_lamports)



# Scan output

@dataclass
class ScanStats:
    duration_sec: float = 0.0
    api_calls: int = 0
    sources_scanned: int = 0
    failed_sources: int = 0
    accounts_scanned: int = 0
    transfers_matched: int = 0
    destinations: int = 0
    duplicate_transfers: int = 0
    cache_hits: int = 0
    skipped: int = 0
    detections: int = 0
    cancelled: bool = False


@dataclass
class ScanReport:
    results: List[ChainWalkResult] = field(default_factory=list)
    stats: ScanStats = field(default_factory=ScanStats)


@dataclass(frozen=True)
class ScanRecord:
    created_at: int
    groups: Tuple[str, ...]
    mode: str
    filter: Dict[str, Any]
    hours: float
    results_count: int
    duration_sec: float
    detections: List[Dict[str, Any]]
