"""
Flow aggregation: where are holders of a mint rotating to?
"""

from dataclasses import dataclass, field
from typing import List, Optional

import config


@dataclass
class FlowSummary:
    token_mint: str
    token_symbol: Optional[str]
    unique_wallets: int
    top_holder_count: int
    total_swaps: int
    total_volume: float
    weighted_score: int
    recent_swaps: List = field(default_factory=list)

    def to_dict(self):
        return {
            "token_mint": self.token_mint,
            "token_symbol": self.token_symbol,
            "unique_wallets": self.unique_wallets,
            "top_holder_count": self.top_holder_count,
            "total_swaps": self.total_swaps,
            "total_volume": self.total_volume,
            "weighted_score": self.weighted_score,
            "recent_swaps": [s.to_dict() for s in self.recent_swaps],
        }


def _lookup_symbol(metadata_lookup, mint):
    if metadata_lookup is None:
        return None
    try:
        return (metadata_lookup(mint) or {}).get("symbol")
    except Exception as e:
        print(f"[FLOWS] metadata lookup {mint[:8]}... failed: {str(e)[:200]}")
        return None


def compute_flows(store, mint, window_minutes, metadata_lookup=None):
    """
    Rank destination tokens swapped into from `mint` over the window.

    Every swap adds TOP_HOLDER_WEIGHT to its destination's score when it came
    from a top holder, REGULAR_HOLDER_WEIGHT otherwise. Ties keep first-seen
    order.
    """
    swaps = store.list_window(mint, window_minutes)
    if not swaps:
        return []

    buckets = {}
    for swap in swaps:
        bucket = buckets.get(swap.destination_token)
        if bucket is None:
            bucket = {
                "wallets": set(),
                "top_holder_wallets": set(),
                "swaps": [],
                "total_volume": 0.0,
                "weighted_score": 0,
            }
            buckets[swap.destination_token] = bucket

        bucket["wallets"].add(swap.wallet)
        bucket["swaps"].append(swap)
        bucket["total_volume"] += swap.amount_out
        if swap.is_top_holder:
            bucket["top_holder_wallets"].add(swap.wallet)
            bucket["weighted_score"] += config.TOP_HOLDER_WEIGHT
        else:
            bucket["weighted_score"] += config.REGULAR_HOLDER_WEIGHT

    flows = []
    for dest, bucket in buckets.items():
        recent = sorted(bucket["swaps"], key=lambda s: s.timestamp, reverse=True)
        flows.append(FlowSummary(
            token_mint=dest,
            token_symbol=_lookup_symbol(metadata_lookup, dest),
            unique_wallets=len(bucket["wallets"]),
            top_holder_count=len(bucket["top_holder_wallets"]),
            total_swaps=len(bucket["swaps"]),
            total_volume=bucket["total_volume"],
            weighted_score=bucket["weighted_score"],
            recent_swaps=recent[:config.FLOW_PREVIEW_SWAPS],
        ))

    flows.sort(key=lambda f: f.weighted_score, reverse=True)
    return flows


def compute_stats(store, mint, window_minutes):
    swaps = store.list_window(mint, window_minutes)
    return {
        "total_swaps": len(swaps),
        "unique_destinations": len({s.destination_token for s in swaps}),
        "unique_wallets": len({s.wallet for s in swaps}),
        "time_window_minutes": window_minutes,
    }
