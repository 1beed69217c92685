"""Shared fakes for the Trench Maps tests."""

import threading
import time

import pytest

import config
from errors import ProviderError

MINT = "M" * 44
OTHER_MINT = "N" * 44
DEST_X = "X" * 44
DEST_Y = "Y" * 44
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def addr(letter, idx=0):
    return f"{letter}{idx:03d}".ljust(44, "0")


def token_account(owner, mint, amount, ui_amount, pubkey=None):
    return {
        "pubkey": pubkey or addr("P", amount % 1000),
        "account": {
            "data": {
                "parsed": {
                    "type": "account",
                    "info": {
                        "mint": mint,
                        "owner": owner,
                        "tokenAmount": {"amount": str(amount), "uiAmount": ui_amount, "decimals": 0},
                    },
                },
            },
        },
    }


def swap_tx(signature, wallet, mint_in, mint_out, amount_in=100.0, amount_out=50.0,
            timestamp=None, fee_payer=None):
    return {
        "signature": signature,
        "timestamp": int(time.time()) - 60 if timestamp is None else timestamp,
        "type": "SWAP",
        "source": "JUPITER",
        "feePayer": fee_payer or wallet,
        "events": {
            "swap": {
                "tokenInputs": [{"mint": mint_in, "amount": str(amount_in), "userAccount": wallet}],
                "tokenOutputs": [{"mint": mint_out, "amount": str(amount_out), "userAccount": wallet}],
            },
        },
    }


class FakeProvider:
    """Stands in for helius_client; same function names."""

    def __init__(self, accounts=None, token2022_accounts=None, transactions=None, metadata=None):
        self.accounts = accounts or []
        self.token2022_accounts = token2022_accounts or []
        self.transactions = transactions or {}
        self.metadata = metadata or {}
        self.fail_holders = False
        self.fail_create = False
        self.fail_delete = False
        self.program_calls = []
        self.tx_calls = []
        self.created = []
        self.updated = []
        self.deleted = []
        self._lock = threading.Lock()

    def fetch_program_token_accounts(self, program_id, mint, retries=0):
        self.program_calls.append(program_id)
        if self.fail_holders:
            return {"error": "timeout", "detail": "RPC call getProgramAccounts timed out"}
        if program_id == config.TOKEN_PROGRAM_ID:
            return {"result": list(self.accounts)}
        return {"result": list(self.token2022_accounts)}

    def fetch_wallet_transactions(self, address, limit=100):
        with self._lock:
            self.tx_calls.append(address)
        return list(self.transactions.get(address, []))[:limit]

    def fetch_token_metadata(self, mint):
        return self.metadata.get(mint, {})

    def create_webhook(self, webhook_url, addresses, transaction_types):
        if self.fail_create:
            raise ProviderError("Helius webhook create failed: http_500")
        webhook_id = f"wh-{len(self.created) + 1}"
        self.created.append({"id": webhook_id, "url": webhook_url,
                             "addresses": list(addresses), "types": list(transaction_types)})
        return {"webhookID": webhook_id}

    def update_webhook(self, webhook_id, addresses):
        self.updated.append((webhook_id, list(addresses)))
        return {"webhookID": webhook_id}

    def delete_webhook(self, webhook_id):
        if self.fail_delete:
            raise ProviderError("Helius webhook delete failed: http_500")
        self.deleted.append(webhook_id)

    def list_webhooks(self):
        return [{"webhookID": c["id"], "webhookURL": c["url"]}
                for c in self.created if c["id"] not in self.deleted]


@pytest.fixture(autouse=True)
def fast_polling(monkeypatch):
    monkeypatch.setattr(config, "POLL_INTERVAL_SECONDS", 3600)
    monkeypatch.setattr(config, "POLL_BATCH_DELAY", 0)
    monkeypatch.setattr(config, "PUSH_BACKFILL_HOLDERS", 0)
    monkeypatch.setattr(config, "WEBHOOK_AUTH_HEADER", "")


@pytest.fixture
def holder_accounts():
    """Three holders of MINT, wallet A000 largest."""
    return [
        token_account(addr("A"), MINT, 900, 900.0),
        token_account(addr("B"), MINT, 500, 500.0),
        token_account(addr("C"), MINT, 100, 100.0),
    ]


@pytest.fixture
def provider(holder_accounts):
    return FakeProvider(accounts=holder_accounts)
