"""
Helius provider adapter.

Solana JSON-RPC (token accounts, DAS metadata) plus the Helius REST API
(enhanced transactions, webhooks). Read calls degrade to an error dict or an
empty result; webhook mutations raise ProviderError.
"""

import time

import requests as http_requests

import config
from errors import ProviderError

_metadata_cache = {}


# ---------------------------------------------------------------------------
# Solana JSON-RPC Client
# ---------------------------------------------------------------------------
def _rpc_call(method, params, timeout=None, retries=2, request_id=1):
    """Make a JSON-RPC call against the Helius RPC, retrying on rate limit."""
    payload = {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": params,
    }
    timeout = timeout or config.HTTP_TIMEOUT_SECONDS
    for attempt in range(retries + 1):
        try:
            resp = http_requests.post(
                config.HELIUS_RPC_URL,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=timeout,
            )
            if resp.status_code == 429:
                if attempt < retries:
                    time.sleep(0.8 * (attempt + 1))
                    continue
                return {"error": "rate_limited", "detail": "Helius RPC rate limit hit"}
            if resp.status_code != 200:
                return {"error": f"http_{resp.status_code}", "detail": resp.text[:500]}
            data = resp.json()
            if "error" in data:
                err = data["error"]
                if isinstance(err, dict) and err.get("code", 0) in (-32005, -32009):
                    if attempt < retries:
                        time.sleep(0.5)
                        continue
                return {"error": "rpc_error", "detail": err}
            return data
        except http_requests.exceptions.Timeout:
            if attempt < retries:
                continue
            return {"error": "timeout", "detail": f"RPC call {method} timed out"}
        except Exception as e:
            return {"error": "request_failed", "detail": str(e)[:300]}
    return {"error": "request_failed", "detail": f"RPC call {method} exhausted retries"}


def _cache_get(cache, key, ttl):
    entry = cache.get(key)
    if entry and (time.time() - entry[0]) < ttl:
        return entry[1]
    return None


def _cache_set(cache, key, data, ttl=None, max_entries=None):
    """Store `data` and evict expired entries, then the oldest beyond `max_entries`."""
    now = time.time()
    cache[key] = (now, data)
    if ttl is not None:
        for k, (ts, _) in list(cache.items()):
            if now - ts >= ttl:
                cache.pop(k, None)
    if max_entries is not None and len(cache) > max_entries:
        oldest = sorted(list(cache.items()), key=lambda kv: kv[1][0])
        for k, _ in oldest[:len(cache) - max_entries]:
            cache.pop(k, None)


def _api_url(path):
    return f"{config.HELIUS_API_BASE}{path}"


def _api_params(extra=None):
    params = {"api-key": config.HELIUS_API_KEY}
    if extra:
        params.update(extra)
    return params


# ---------------------------------------------------------------------------
# Data Fetchers
# ---------------------------------------------------------------------------
def fetch_program_token_accounts(program_id, mint, retries=0):
    """getProgramAccounts for every token account of `mint` under `program_id`."""
    filters = [{"memcmp": {"offset": 0, "bytes": mint}}]
    # Token-2022 accounts carry extensions, so only the legacy layout has a fixed size
    if program_id == config.TOKEN_PROGRAM_ID:
        filters.insert(0, {"dataSize": 165})
    return _rpc_call("getProgramAccounts", [
        program_id,
        {"encoding": "jsonParsed", "commitment": "confirmed", "filters": filters},
    ], timeout=max(config.HTTP_TIMEOUT_SECONDS, 30), retries=retries)


def fetch_wallet_transactions(address, limit=100):
    """Enhanced transactions for a wallet. Returns [] on any failure."""
    try:
        resp = http_requests.get(
            _api_url(f"/addresses/{address}/transactions"),
            params=_api_params({"limit": limit}),
            timeout=config.HTTP_TIMEOUT_SECONDS,
        )
        if resp.status_code != 200:
            print(f"[HELIUS] tx history {address[:8]}... http_{resp.status_code}")
            return []
        data = resp.json()
        return data if isinstance(data, list) else []
    except Exception as e:
        print(f"[HELIUS] tx history {address[:8]}... failed: {str(e)[:200]}")
        return []


def fetch_token_metadata(mint):
    """DAS getAsset -> {name, symbol, logo_url}. Empty dict on failure."""
    cached = _cache_get(_metadata_cache, mint, config.METADATA_CACHE_TTL)
    if cached is not None:
        return cached

    data = _rpc_call("getAsset", {"id": mint}, request_id="token-metadata", retries=1)
    if "error" in data:
        return {}

    result = data.get("result") or {}
    content = result.get("content") or {}
    metadata = content.get("metadata") or {}
    links = content.get("links") or {}
    meta = {}
    if metadata.get("name"):
        meta["name"] = metadata["name"]
    if metadata.get("symbol"):
        meta["symbol"] = metadata["symbol"]
    if links.get("image"):
        meta["logo_url"] = links["image"]
    _cache_set(_metadata_cache, mint, meta, ttl=config.METADATA_CACHE_TTL,
               max_entries=config.METADATA_CACHE_MAX_ENTRIES)
    return meta


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------
def _raise_for_webhook(resp, action):
    if resp.status_code >= 300:
        raise ProviderError(f"Helius webhook {action} failed: http_{resp.status_code}",
                            detail=resp.text[:500])


def create_webhook(webhook_url, addresses, transaction_types):
    """Register an enhanced webhook for `addresses`. Returns the webhook dict."""
    body = {
        "webhookURL": webhook_url,
        "transactionTypes": list(transaction_types),
        "accountAddresses": list(addresses),
        "webhookType": "enhanced",
        "txnStatus": "all",
    }
    if config.WEBHOOK_AUTH_HEADER:
        body["authHeader"] = config.WEBHOOK_AUTH_HEADER
    try:
        resp = http_requests.post(_api_url("/webhooks"), params=_api_params(),
                                  json=body, timeout=config.HTTP_TIMEOUT_SECONDS)
    except http_requests.exceptions.RequestException as e:
        raise ProviderError("Helius webhook create failed", detail=str(e)[:300]) from e
    _raise_for_webhook(resp, "create")
    webhook = resp.json()
    if not webhook.get("webhookID"):
        raise ProviderError("Helius webhook create returned no webhookID")
    print(f"[HELIUS] Created webhook {webhook['webhookID']} for {len(body['accountAddresses'])} addresses")
    return webhook


def update_webhook(webhook_id, addresses):
    """Replace the address list of an existing webhook."""
    try:
        resp = http_requests.put(_api_url(f"/webhooks/{webhook_id}"), params=_api_params(),
                                 json={"accountAddresses": list(addresses)},
                                 timeout=config.HTTP_TIMEOUT_SECONDS)
    except http_requests.exceptions.RequestException as e:
        raise ProviderError("Helius webhook update failed", detail=str(e)[:300]) from e
    _raise_for_webhook(resp, "update")
    return resp.json()


def delete_webhook(webhook_id):
    try:
        resp = http_requests.delete(_api_url(f"/webhooks/{webhook_id}"), params=_api_params(),
                                    timeout=config.HTTP_TIMEOUT_SECONDS)
    except http_requests.exceptions.RequestException as e:
        raise ProviderError("Helius webhook delete failed", detail=str(e)[:300]) from e
    _raise_for_webhook(resp, "delete")
    print(f"[HELIUS] Deleted webhook {webhook_id}")


def list_webhooks():
    try:
        resp = http_requests.get(_api_url("/webhooks"), params=_api_params(),
                                 timeout=config.HTTP_TIMEOUT_SECONDS)
        if resp.status_code != 200:
            return []
        data = resp.json()
        return data if isinstance(data, list) else []
    except Exception as e:
        print(f"[HELIUS] list webhooks failed: {str(e)[:200]}")
        return []
