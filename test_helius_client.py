"""Helius adapter tests with the HTTP layer mocked out."""

import time
from unittest.mock import MagicMock, patch

import pytest
import requests

import config
import helius_client
from conftest import MINT, addr
from errors import ProviderError


def response(status=200, body=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.text = text
    return resp


@pytest.fixture(autouse=True)
def empty_metadata_cache():
    helius_client._metadata_cache.clear()
    yield
    helius_client._metadata_cache.clear()


def test_program_accounts_request_shape():
    with patch("helius_client.http_requests.post", return_value=response(body={"result": []})) as post:
        assert helius_client.fetch_program_token_accounts(config.TOKEN_PROGRAM_ID, MINT) == {"result": []}
    payload = post.call_args.kwargs["json"]
    assert payload["method"] == "getProgramAccounts"
    program, opts = payload["params"]
    assert program == config.TOKEN_PROGRAM_ID
    assert opts["filters"] == [{"dataSize": 165}, {"memcmp": {"offset": 0, "bytes": MINT}}]

    with patch("helius_client.http_requests.post", return_value=response(body={"result": []})) as post:
        helius_client.fetch_program_token_accounts(config.TOKEN_2022_PROGRAM_ID, MINT)
    assert post.call_args.kwargs["json"]["params"][1]["filters"] == [
        {"memcmp": {"offset": 0, "bytes": MINT}}]


def test_program_accounts_do_not_retry_by_default():
    with patch("helius_client.http_requests.post", return_value=response(status=429)) as post:
        result = helius_client.fetch_program_token_accounts(config.TOKEN_PROGRAM_ID, MINT)
    assert result["error"] == "rate_limited"
    assert post.call_count == 1


def test_rpc_error_and_timeout_become_error_dicts():
    with patch("helius_client.http_requests.post",
               return_value=response(body={"error": {"code": -32602, "message": "bad"}})):
        assert helius_client._rpc_call("getAsset", {}, retries=0)["error"] == "rpc_error"
    with patch("helius_client.http_requests.post", side_effect=requests.exceptions.Timeout()):
        assert helius_client._rpc_call("getAsset", {}, retries=1)["error"] == "timeout"
    with patch("helius_client.http_requests.post", return_value=response(status=503, text="down")):
        assert helius_client._rpc_call("getAsset", {}, retries=0) == {"error": "http_503", "detail": "down"}


def test_wallet_transactions_degrade_to_empty():
    with patch("helius_client.http_requests.get", return_value=response(body=[{"signature": "s"}])) as get:
        assert helius_client.fetch_wallet_transactions(addr("A"), 10) == [{"signature": "s"}]
    assert get.call_args.kwargs["params"]["limit"] == 10
    assert get.call_args.args[0].endswith(f"/addresses/{addr('A')}/transactions")

    with patch("helius_client.http_requests.get", return_value=response(status=502)):
        assert helius_client.fetch_wallet_transactions(addr("A"), 10) == []
    with patch("helius_client.http_requests.get", side_effect=requests.exceptions.ConnectionError()):
        assert helius_client.fetch_wallet_transactions(addr("A"), 10) == []


def test_metadata_parsed_and_cached():
    body = {"result": {"content": {"metadata": {"name": "Meme", "symbol": "MEME"},
                                   "links": {"image": "https://img"}}}}
    with patch("helius_client.http_requests.post", return_value=response(body=body)) as post:
        assert helius_client.fetch_token_metadata(MINT) == {
            "name": "Meme", "symbol": "MEME", "logo_url": "https://img"}
        helius_client.fetch_token_metadata(MINT)
    assert post.call_count == 1


def test_metadata_failure_is_empty():
    with patch("helius_client.http_requests.post", return_value=response(status=500)):
        assert helius_client.fetch_token_metadata(MINT) == {}


def test_create_webhook(monkeypatch):
    monkeypatch.setattr(config, "WEBHOOK_AUTH_HEADER", "s3cret")
    with patch("helius_client.http_requests.post",
               return_value=response(body={"webhookID": "wh-9"})) as post:
        webhook = helius_client.create_webhook("https://x/hook", [addr("A")], ["SWAP"])
    assert webhook["webhookID"] == "wh-9"
    body = post.call_args.kwargs["json"]
    assert body["transactionTypes"] == ["SWAP"]
    assert body["webhookType"] == "enhanced"
    assert body["accountAddresses"] == [addr("A")]
    assert body["authHeader"] == "s3cret"


def test_webhook_failures_raise():
    with patch("helius_client.http_requests.post", return_value=response(status=400, text="bad")):
        with pytest.raises(ProviderError):
            helius_client.create_webhook("https://x/hook", [addr("A")], ["SWAP"])
    with patch("helius_client.http_requests.delete", side_effect=requests.exceptions.ConnectionError()):
        with pytest.raises(ProviderError):
            helius_client.delete_webhook("wh-1")
    with patch("helius_client.http_requests.put", return_value=response(status=404)):
        with pytest.raises(ProviderError):
            helius_client.update_webhook("wh-1", [addr("A")])


def test_list_webhooks_degrades_to_empty():
    with patch("helius_client.http_requests.get", return_value=response(status=401)):
        assert helius_client.list_webhooks() == []


def test_metadata_cache_evicts_expired_entries():
    helius_client._metadata_cache["stale"] = (time.time() - config.METADATA_CACHE_TTL - 1, {"symbol": "OLD"})
    body = {"result": {"content": {"metadata": {"symbol": "MEME"}}}}
    with patch("helius_client.http_requests.post", return_value=response(body=body)):
        helius_client.fetch_token_metadata(MINT)
    assert "stale" not in helius_client._metadata_cache
    assert MINT in helius_client._metadata_cache


def test_metadata_cache_is_bounded(monkeypatch):
    monkeypatch.setattr(config, "METADATA_CACHE_MAX_ENTRIES", 3)
    body = {"result": {"content": {"metadata": {"symbol": "MEME"}}}}
    with patch("helius_client.http_requests.post", return_value=response(body=body)):
        for i in range(6):
            helius_client.fetch_token_metadata(addr("Z", i))
    assert len(helius_client._metadata_cache) == 3
