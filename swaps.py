"""
Swap extraction and the per-mint swap store.

Raw Helius transactions (enhanced API or webhook payloads) are parsed into
RawTxRecord, reduced to a canonical SwapRecord when they are a swap out of the
tracked mint, and kept in SwapStore for RETENTION_SECONDS.
"""

import threading
import time
from dataclasses import dataclass, field, asdict
from typing import List, Optional

import config


# ---------------------------------------------------------------------------
# Raw records
# ---------------------------------------------------------------------------
@dataclass
class TokenLeg:
    mint: str
    amount: float
    user_account: Optional[str] = None
    token_account: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        """Raises ValueError/TypeError/KeyError on malformed legs."""
        amount = data.get("amount")
        if amount is None:
            raw = data["rawTokenAmount"]
            amount = int(raw["tokenAmount"]) / (10 ** int(raw.get("decimals", 0)))
        return cls(
            mint=data["mint"],
            amount=float(amount),
            user_account=data.get("userAccount"),
            token_account=data.get("tokenAccount"),
        )


@dataclass
class SwapEvent:
    token_inputs: List[TokenLeg] = field(default_factory=list)
    token_outputs: List[TokenLeg] = field(default_factory=list)


@dataclass
class RawTxRecord:
    signature: str
    timestamp: Optional[int] = None
    type: str = ""
    fee_payer: Optional[str] = None
    source: Optional[str] = None
    swap: Optional[SwapEvent] = None
    swap_error: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        """
        Build a record from a Helius transaction dict.

        The swap sub-structure is read from `events.swap` (webhooks and the
        enhanced API) or a top-level `swap` key. A swap whose legs fail to
        parse is kept as swap=None with swap_error set.
        """
        events = data.get("events") or {}
        swap_json = events.get("swap") or data.get("swap")
        swap = None
        swap_error = None
        if swap_json:
            try:
                swap = SwapEvent(
                    token_inputs=[TokenLeg.from_json(x) for x in swap_json.get("tokenInputs") or []],
                    token_outputs=[TokenLeg.from_json(x) for x in swap_json.get("tokenOutputs") or []],
                )
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                swap_error = str(e)[:200]

        timestamp = data.get("timestamp")
        return cls(
            signature=data.get("signature") or "",
            timestamp=int(timestamp) if timestamp is not None else None,
            type=data.get("type") or "",
            fee_payer=data.get("feePayer"),
            source=data.get("source"),
            swap=swap,
            swap_error=swap_error,
        )


@dataclass
class SwapRecord:
    signature: str
    wallet: str
    source_token: str
    destination_token: str
    amount_in: float
    amount_out: float
    timestamp: int
    is_top_holder: bool = False

    def to_dict(self):
        return asdict(self)


def is_major_token(mint):
    return mint in config.MAJOR_TOKENS


def extract_swap(record, mint, wallet=None, top_holders=()):
    """
    Reduce a raw record to a SwapRecord out of `mint`, or None.

    Only the first input leg and first output leg are used. Swaps whose
    source is not `mint` or whose destination is a major token are dropped.
    Accepts a RawTxRecord or the provider's raw dict.
    """
    if isinstance(record, dict):
        try:
            record = RawTxRecord.from_json(record)
        except (ValueError, TypeError, AttributeError):
            return None

    swap = record.swap
    if swap is None or not record.signature:
        return None
    if not swap.token_inputs or not swap.token_outputs:
        return None

    token_in = swap.token_inputs[0]
    token_out = swap.token_outputs[0]
    if token_in.mint != mint:
        return None
    if is_major_token(token_out.mint):
        return None

    wallet = wallet or token_in.user_account or record.fee_payer
    if not wallet:
        return None

    timestamp = record.timestamp if record.timestamp is not None else int(time.time())
    return SwapRecord(
        signature=record.signature,
        wallet=wallet,
        source_token=token_in.mint,
        destination_token=token_out.mint,
        amount_in=token_in.amount,
        amount_out=token_out.amount,
        timestamp=timestamp,
        is_top_holder=wallet in top_holders,
    )


# ---------------------------------------------------------------------------
# Swap store
# ---------------------------------------------------------------------------
class SwapStore:
    """
    mint -> signature -> SwapRecord, deduplicated by signature.

    Each mint has its own lock; dedup check, insert and retention pruning run
    under it as one step.
    """

    def __init__(self, retention_seconds=None, clock=time.time):
        self.retention_seconds = retention_seconds or config.RETENTION_SECONDS
        self._clock = clock
        self._swaps = {}
        self._locks = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, mint):
        # Locks are never removed, so every caller for a mint shares one lock.
        with self._registry_lock:
            lock = self._locks.get(mint)
            if lock is None:
                lock = threading.Lock()
                self._locks[mint] = lock
            return lock

    def append(self, mint, record):
        """Insert `record` unless its signature is already stored. Returns True if inserted."""
        with self._lock_for(mint):
            bucket = self._swaps.setdefault(mint, {})
            if record.signature in bucket:
                return False
            bucket[record.signature] = record
            cutoff = self._clock() - self.retention_seconds
            expired = [sig for sig, s in bucket.items() if s.timestamp <= cutoff]
            for sig in expired:
                del bucket[sig]
            return record.signature in bucket

    def contains(self, mint, signature):
        bucket = self._swaps.get(mint)
        return bool(bucket) and signature in bucket

    def list(self, mint):
        if mint not in self._swaps:
            return []
        with self._lock_for(mint):
            return list((self._swaps.get(mint) or {}).values())

    def list_window(self, mint, window_minutes):
        cutoff = self._clock() - window_minutes * 60
        return [s for s in self.list(mint) if s.timestamp > cutoff]

    def count(self, mint):
        return len(self._swaps.get(mint) or {})

    def drop(self, mint):
        """Forget every swap for `mint`. Its lock stays registered."""
        with self._registry_lock:
            lock = self._locks.get(mint)
        if lock is None:
            return
        with lock:
            self._swaps.pop(mint, None)

    def clear(self):
        with self._registry_lock:
            mints = list(self._locks)
        for mint in mints:
            self.drop(mint)
