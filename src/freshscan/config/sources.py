"""
Source-group configuration.

File layout (JSON):

    {
      "sources": {
        "binance": {"name": "Binance", "accounts": ["5tzFkiKs...", "..."]}
      },
      "detection": {"max_hops": 3, "max_window": 10, "relay_forward_ratio": "0.8"}
    }

The older "exchanges" / "wallets" / "detectionConfig" spelling is accepted too.
"""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from freshscan.config import settings
from freshscan.core.errors import ConfigurationError
from freshscan.core.models import DetectionConfig, SourceGroup


# camelCase keys from the legacy file format
_DETECTION_ALIASES = {
    "maxHops": "max_hops",
    "firstTransactionsToAnalyze": "max_window",
    "maxWindow": "max_window",
    "dustLamports": "dust_lamports",
    "minOutgoingLamports": "min_outgoing_lamports",
    "relayForwardRatio": "relay_forward_ratio",
    "windowLadder": "window_ladder",
}


def default_detection_config() -> DetectionConfig:
    return DetectionConfig(
        dust_lamports=settings.DUST_LAMPORTS,
        min_outgoing_lamports=settings.MIN_OUTGOING_LAMPORTS,
        relay_forward_ratio=settings.RELAY_FORWARD_RATIO,
        window_ladder=settings.WINDOW_LADDER,
        max_window=settings.MAX_WINDOW,
        max_hops=settings.MAX_HOPS,
    )


def parse_detection_config(raw: Optional[Dict[str, Any]], base: Optional[DetectionConfig] = None) -> DetectionConfig:
    base = base or default_detection_config()
    if not raw:
        return base
    if not isinstance(raw, dict):
        raise ConfigurationError("detection config must be an object")

    values: Dict[str, Any] = {
        "dust_lamports": base.dust_lamports,
        "min_outgoing_lamports": base.min_outgoing_lamports,
        "relay_forward_ratio": base.relay_forward_ratio,
        "window_ladder": base.window_ladder,
        "max_window": base.max_window,
        "max_hops": base.max_hops,
    }
    try:
        for key, val in raw.items():
            name = _DETECTION_ALIASES.get(key, key)
            if name not in values:
                # unrelated legacy keys (maxAgeHours, ...) are ignored
                continue
            if name == "relay_forward_ratio":
                values[name] = Decimal(str(val))
            elif name == "window_ladder":
                values[name] = tuple(int(x) for x in val)
            else:
                values[name] = int(val)
    except (TypeError, ValueError, InvalidOperation) as e:
        raise ConfigurationError(f"Invalid detection config: {e}") from e

    return DetectionConfig(**values)


def parse_source_groups(data: Dict[str, Any]) -> List[SourceGroup]:
    raw = data.get("sources")
    if raw is None:
        raw = data.get("exchanges")
    if not isinstance(raw, dict) or not raw:
        raise ConfigurationError("Source config has no 'sources' entries")

    groups: List[SourceGroup] = []
    for key, entry in raw.items():
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Source {key!r} must be an object")
        accounts = entry.get("accounts")
        if accounts is None:
            accounts = entry.get("wallets")
        if not isinstance(accounts, list):
            raise ConfigurationError(f"Source {key!r} has no account list")
        cleaned = tuple(str(a).strip() for a in accounts if str(a).strip())
        groups.append(SourceGroup(name=str(entry.get("name") or key), accounts=cleaned))
    return groups


def load_sources(path: str = settings.SOURCES_FILE) -> Tuple[List[SourceGroup], DetectionConfig]:
    p = Path(path)
    try:
        with p.open(encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Source config not found: {p}") from e
    except ValueError as e:
        raise ConfigurationError(f"Source config {p} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Source config {p} must be a JSON object")

    groups = parse_source_groups(data)
    detection = parse_detection_config(data.get("detection") or data.get("detectionConfig"))
    return groups, detection


def select_groups(groups: Sequence[SourceGroup], names: Sequence[str]) -> List[SourceGroup]:
    """Pick groups by name (case-insensitive); empty `names` keeps all."""
    if not names:
        return list(groups)
    by_name = {g.name.lower(): g for g in groups}
    picked: List[SourceGroup] = []
    for n in names:
        g = by_name.get(n.strip().lower())
        if g is None:
            raise ConfigurationError(f"Unknown source group: {n!r}")
        picked.append(g)
    return picked
