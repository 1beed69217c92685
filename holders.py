"""
Holder registry: owner-keyed, dust-filtered holder snapshot for a mint.
"""

from dataclasses import dataclass, asdict

import config
from errors import ProviderError


@dataclass
class TokenHolder:
    address: str
    balance: int
    ui_balance: float

    def to_dict(self):
        return asdict(self)


def parse_program_accounts(raw, target_mint):
    """
    Parse a jsonParsed getProgramAccounts response into holders keyed by owner.

    Accounts for any other mint are skipped even though the query filtered on
    it. Owners whose summed ui balance is still dust are dropped.
    """
    holder_map = {}
    for item in raw.get("result") or []:
        data = (item.get("account") or {}).get("data")
        if not isinstance(data, dict) or "parsed" not in data:
            continue
        info = (data.get("parsed") or {}).get("info") or {}
        if info.get("mint") != target_mint:
            continue

        token_amount = info.get("tokenAmount") or {}
        amount = token_amount.get("amount")
        ui_amount = token_amount.get("uiAmount")
        owner = info.get("owner")
        if not amount or ui_amount is None or not owner:
            continue

        try:
            amount = int(amount)
            ui_amount = float(ui_amount)
        except (ValueError, TypeError):
            continue

        existing = holder_map.get(owner)
        if existing:
            existing.balance += amount
            existing.ui_balance += ui_amount
        else:
            holder_map[owner] = TokenHolder(address=owner, balance=amount, ui_balance=ui_amount)
    return [h for h in holder_map.values() if h.ui_balance >= config.MIN_HOLDER_BALANCE]


def snapshot(mint, provider):
    """
    Fetch every holder of `mint`, sorted by ui_balance descending.

    Tries the legacy SPL Token program first and falls back to Token-2022 when
    it returns no accounts. Raises ProviderError if the RPC call fails.
    """
    print(f"[HOLDERS] Fetching holders for {mint[:12]}...")
    raw = provider.fetch_program_token_accounts(config.TOKEN_PROGRAM_ID, mint)
    if "error" in raw:
        raise ProviderError(f"Holder fetch failed: {raw['error']}", detail=raw.get("detail"))

    if not raw.get("result"):
        print("[HOLDERS] No SPL Token accounts, trying Token-2022...")
        raw = provider.fetch_program_token_accounts(config.TOKEN_2022_PROGRAM_ID, mint)
        if "error" in raw:
            raise ProviderError(f"Holder fetch failed: {raw['error']}", detail=raw.get("detail"))

    holders = parse_program_accounts(raw, mint)
    holders.sort(key=lambda h: h.ui_balance, reverse=True)
    print(f"[HOLDERS] {len(holders)} unique holders with balance >= {config.MIN_HOLDER_BALANCE}")
    return holders


def top_holder_addresses(holders, n=None):
    """Addresses of the first `n` holders of an already-sorted snapshot."""
    n = config.TOP_HOLDER_COUNT if n is None else n
    return {h.address for h in holders[:n]}
