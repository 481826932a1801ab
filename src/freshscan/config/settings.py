from decimal import Decimal
import os
from dotenv import load_dotenv
load_dotenv()

# ---- Solana RPC ----
HELIUS_API_KEY = os.environ.get("HELIUS_API_KEY")
HELIUS_RPC_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"
SOLANA_PUBLIC_RPC_URL = "https://api.mainnet-beta.solana.com"
SOLANA_RPC_URL = os.environ.get("SOLANA_RPC_URL") or (
    HELIUS_RPC_URL_TEMPLATE.format(key=HELIUS_API_KEY) if HELIUS_API_KEY else SOLANA_PUBLIC_RPC_URL
)

# Helius free plan allows 10 req/s
SOLANA_MIN_REQUEST_INTERVAL_SEC = float(os.environ.get("SOLANA_MIN_REQUEST_INTERVAL_SEC", "0.2"))
SOLANA_TIMEOUT_SEC = int(os.environ.get("SOLANA_TIMEOUT_SEC", "30"))
SOLANA_MAX_RETRIES = int(os.environ.get("SOLANA_MAX_RETRIES", "3"))
SOLANA_BACKOFF_BASE_SEC = float(os.environ.get("SOLANA_BACKOFF_BASE_SEC", "1.0"))
SOLANA_BACKOFF_CAP_SEC = float(os.environ.get("SOLANA_BACKOFF_CAP_SEC", "8.0"))
SOLANA_SIGNATURE_PAGE_SIZE = int(os.environ.get("SOLANA_SIGNATURE_PAGE_SIZE", "100"))
SOLANA_HISTORY_SAFETY_CAP = int(os.environ.get("SOLANA_HISTORY_SAFETY_CAP", "1000"))
SOLANA_TX_COUNT_CAP = int(os.environ.get("SOLANA_TX_COUNT_CAP", "100"))
SOLANA_DETAIL_BATCH_SIZE = int(os.environ.get("SOLANA_DETAIL_BATCH_SIZE", "3"))

# Accounts that show up in transactions but are never wallets
SYSTEM_ADDRESSES = frozenset({
    "11111111111111111111111111111111",              # System Program
    "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",   # Token Program
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL",  # Associated Token
    "ComputeBudget111111111111111111111111111111",   # Compute Budget
    "SysvarRent111111111111111111111111111111111",   # Sysvar Rent
    "SysvarC1ock11111111111111111111111111111111",   # Sysvar Clock
})

# ---- Detection heuristics ----
DUST_LAMPORTS = int(os.environ.get("DUST_LAMPORTS", "1000"))
MIN_OUTGOING_LAMPORTS = int(os.environ.get("MIN_OUTGOING_LAMPORTS", "10000"))
RELAY_FORWARD_RATIO = Decimal(os.environ.get("RELAY_FORWARD_RATIO", "0.80"))
WINDOW_LADDER = tuple(
    int(x) for x in os.environ.get("WINDOW_LADDER", "2,3,5").split(",") if x.strip()
)
MAX_WINDOW = int(os.environ.get("MAX_WINDOW", "10"))
MAX_HOPS = int(os.environ.get("MAX_HOPS", "3"))

# ---- Scan defaults ----
DEFAULT_TIME_WINDOW_HOURS = float(os.environ.get("DEFAULT_TIME_WINDOW_HOURS", "96"))
SOURCES_FILE = os.environ.get("SOURCES_FILE", "config/sources.json")
SCAN_HISTORY_FILE = os.environ.get("SCAN_HISTORY_FILE", ".cache/scan_history.jsonl")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
