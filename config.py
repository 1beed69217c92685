"""
Trench Maps configuration.

Everything is read from the environment once at import time.
"""

import os

# ---------------------------------------------------------------------------
# Helius / RPC
# ---------------------------------------------------------------------------
HELIUS_API_KEY = os.environ.get("HELIUS_API_KEY", "")
HELIUS_RPC_URL = os.environ.get(
    "HELIUS_RPC_URL",
    f"https://mainnet.helius-rpc.com/?api-key={HELIUS_API_KEY}"
)
HELIUS_API_BASE = os.environ.get("HELIUS_API_BASE", "https://api.helius.xyz/v0")
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "12"))

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

# ---------------------------------------------------------------------------
# Webhooks (push ingestion)
# ---------------------------------------------------------------------------
WEBHOOK_BASE_URL = os.environ.get("WEBHOOK_BASE_URL", "http://localhost:3000")
WEBHOOK_PATH = "/api/webhooks/helius"
WEBHOOK_AUTH_HEADER = os.environ.get("WEBHOOK_AUTH_HEADER", "")
MAX_WEBHOOK_ADDRESSES = 100000   # Helius per-webhook address limit

# "push" = Helius webhooks, "poll" = enhanced transactions API on a timer
INGESTION_MODE = os.environ.get("INGESTION_MODE", "push").lower()

PUSH_BACKFILL_HOLDERS = int(os.environ.get("PUSH_BACKFILL_HOLDERS", "0"))  # 0 disables
PUSH_BACKFILL_TX_LIMIT = 20
PUSH_BACKFILL_BATCH_DELAY = 2.0

# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------
POLL_INTERVAL_SECONDS = float(os.environ.get("POLL_INTERVAL_SECONDS", "15"))
POLL_MAX_HOLDERS = int(os.environ.get("POLL_MAX_HOLDERS", "100"))
POLL_BATCH_SIZE = 5
POLL_BATCH_DELAY = 0.5           # seconds between batches, self-throttle
POLL_TX_LIMIT = 10               # recent txs checked per holder per tick

# ---------------------------------------------------------------------------
# Holders / swaps / flows
# ---------------------------------------------------------------------------
MIN_HOLDER_BALANCE = 0.001       # ui amount, below this is dust
TOP_HOLDER_COUNT = 20            # top-N by balance get the 5x flow weight
RETENTION_SECONDS = 24 * 60 * 60
DEFAULT_WINDOW_MINUTES = 60
MAX_TRACKED_MINTS = int(os.environ.get("MAX_TRACKED_MINTS", "10"))
METADATA_CACHE_TTL = 300
METADATA_CACHE_MAX_ENTRIES = 1000

TOP_HOLDER_WEIGHT = 5
REGULAR_HOLDER_WEIGHT = 1
FLOW_PREVIEW_SWAPS = 5

# Stables, wrapped SOL and LSTs: exits to "cash", not memecoin rotation
MAJOR_TOKENS = {
    "So11111111111111111111111111111111111111112",   # Wrapped SOL
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",  # USDC
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",  # USDT
    "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs",  # USDT (PoS)
    "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So",   # mSOL
    "7dHbWXmci3dT8UFYWYZweBLXgycu7Y3iL6trKn1Y7ARj",  # stSOL
}

PORT = int(os.environ.get("PORT", "3000"))
