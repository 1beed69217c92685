"""
Monitoring sessions and swap ingestion.

SessionManager owns one MonitoringSession per tracked mint and feeds swaps
into a shared SwapStore, either by polling holder transaction history
(PollTask) or from Helius webhook deliveries (ingest_push).
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import config
import helius_client
import holders as holder_registry
from errors import CapacityError, ValidationError
from flows import compute_flows, compute_stats
from swaps import RawTxRecord, SwapStore, extract_swap

MODE_PUSH = "push"
MODE_POLL = "poll"


# ---------------------------------------------------------------------------
# Poll strategy
# ---------------------------------------------------------------------------
class PollTask:
    """Re-checks the top holders' recent transactions on a fixed interval."""

    def __init__(self, mint, holders, store, provider, top_holders=(),
                 interval=None, max_holders=None):
        self.mint = mint
        self.store = store
        self.provider = provider
        self.interval = interval if interval is not None else config.POLL_INTERVAL_SECONDS
        self.max_holders = max_holders if max_holders is not None else config.POLL_MAX_HOLDERS
        self.set_holders(holders, top_holders)
        self.ticks = 0
        self._stop = threading.Event()
        self._thread = None

    def set_holders(self, holders, top_holders=()):
        self.holders = list(holders[:self.max_holders])
        self.top_holders = set(top_holders)

    @property
    def cancelled(self):
        return self._stop.is_set()

    def start(self):
        """Run one check now, then keep ticking on a daemon thread."""
        if self._thread is not None:
            return
        self.check()
        if self._stop.is_set():
            return
        self._thread = threading.Thread(target=self._run, daemon=True,
                                        name=f"poll-{self.mint[:8]}")
        self._thread.start()

    def cancel(self):
        """No tick starts after this returns. An in-flight tick may finish."""
        self._stop.set()

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.check()
            except Exception as e:
                print(f"[POLL] Error polling {self.mint[:12]}...: {e}")

    def check(self, tx_limit=None, batch_delay=None, min_timestamp=None):
        """One pass over the holder list. Returns the number of new swaps stored."""
        tx_limit = tx_limit or config.POLL_TX_LIMIT
        batch_delay = config.POLL_BATCH_DELAY if batch_delay is None else batch_delay
        batch_size = config.POLL_BATCH_SIZE
        holders = self.holders
        found = 0
        self.ticks += 1

        with ThreadPoolExecutor(max_workers=batch_size,
                                thread_name_prefix=f"poll-{self.mint[:8]}") as pool:
            for i in range(0, len(holders), batch_size):
                if self._stop.is_set():
                    break
                batch = holders[i:i + batch_size]
                futures = [
                    (holder, pool.submit(self._check_holder, holder, tx_limit, min_timestamp))
                    for holder in batch
                ]
                for holder, future in futures:
                    try:
                        found += future.result()
                    except Exception as e:
                        print(f"[POLL] Error checking holder {holder.address[:8]}...: {e}")

                if i + batch_size < len(holders):
                    self._stop.wait(batch_delay)

        if found:
            print(f"[POLL] {found} new swaps for {self.mint[:12]}..., "
                  f"{self.store.count(self.mint)} cached")
        return found

    def _check_holder(self, holder, tx_limit, min_timestamp=None):
        found = 0
        for tx in self.provider.fetch_wallet_transactions(holder.address, tx_limit):
            if self._stop.is_set():
                break
            if not isinstance(tx, dict):
                continue
            signature = tx.get("signature")
            if not signature or self.store.contains(self.mint, signature):
                continue
            if min_timestamp is not None and (tx.get("timestamp") or 0) < min_timestamp:
                continue

            swap = extract_swap(tx, self.mint, wallet=holder.address,
                                top_holders=self.top_holders)
            if swap and self.store.append(self.mint, swap):
                found += 1
                print(f"[POLL] Found swap: {swap.source_token[:8]}... -> "
                      f"{swap.destination_token[:8]}... by {holder.address[:8]}...")
        return found


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
@dataclass
class MonitoringSession:
    mint: str
    holders: List = field(default_factory=list)
    mode: str = MODE_PUSH
    created_at: float = field(default_factory=time.time)
    subscription_id: Optional[str] = None
    poll_task: Optional[PollTask] = None
    symbol: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self):
        self.update_holders(self.holders)

    def update_holders(self, holders):
        self.holders = list(holders)
        self.holder_addresses = {h.address for h in self.holders}
        self.top_holders = holder_registry.top_holder_addresses(self.holders)

    def summary(self):
        return {
            "token_mint": self.mint,
            "token_symbol": self.symbol,
            "token_name": self.name,
            "holder_count": len(self.holders),
            "mode": self.mode,
            "monitoring_since": datetime.fromtimestamp(
                self.created_at, tz=timezone.utc).isoformat(),
        }


class SessionManager:
    """
    Process-wide registry of tracked mints.

    Sessions are kept in registration order; push deliveries are routed to
    the first registered mint whose holder set contains the fee payer.
    """

    def __init__(self, provider=None, store=None, mode=None, callback_url=None,
                 max_sessions=None):
        self.provider = provider or helius_client
        self.store = store or SwapStore()
        self.mode = (mode or config.INGESTION_MODE).lower()
        if self.mode not in (MODE_PUSH, MODE_POLL):
            raise ValueError(f"Unknown ingestion mode: {self.mode}")
        self.callback_url = callback_url or f"{config.WEBHOOK_BASE_URL}{config.WEBHOOK_PATH}"
        self.max_sessions = max_sessions or config.MAX_TRACKED_MINTS
        self._sessions = {}
        self._lock = threading.Lock()
        self._start_locks = {}

    # -- registry --------------------------------------------------------
    def get(self, mint):
        with self._lock:
            return self._sessions.get(mint)

    def is_monitoring(self, mint):
        return self.get(mint) is not None

    def monitored_mints(self):
        with self._lock:
            return list(self._sessions.keys())

    # -- lifecycle -------------------------------------------------------
    def start(self, mint):
        """
        Start tracking `mint`. Returns (session, created).

        Tracking an already tracked mint returns the existing session with
        created=False. Holder snapshot and subscription failures raise
        ProviderError and leave nothing registered.
        """
        mint = (mint or "").strip() if isinstance(mint, str) else ""
        if not mint:
            raise ValidationError("mint is required")

        with self._lock:
            existing = self._sessions.get(mint)
            if existing:
                return existing, False
            start_lock = self._start_locks.setdefault(mint, threading.Lock())

        with start_lock:
            with self._lock:
                existing = self._sessions.get(mint)
                if existing:
                    return existing, False
                if len(self._sessions) >= self.max_sessions:
                    raise CapacityError(
                        f"Max {self.max_sessions} tracked mints. Untrack a mint first.")

            print(f"[SESSION] Starting {self.mode} monitoring for {mint[:12]}...")
            holders = holder_registry.snapshot(mint, self.provider)
            meta = self._metadata(mint)
            session = MonitoringSession(mint=mint, holders=holders, mode=self.mode,
                                        symbol=meta.get("symbol"), name=meta.get("name"))

            with self._lock:
                existing = self._sessions.get(mint)
                if existing:
                    return existing, False
                if len(self._sessions) >= self.max_sessions:
                    raise CapacityError(
                        f"Max {self.max_sessions} tracked mints. Untrack a mint first.")
                self._sessions[mint] = session

            try:
                if self.mode == MODE_POLL:
                    self._start_poll(session)
                else:
                    self._start_push(session)
            except Exception:
                with self._lock:
                    if self._sessions.get(mint) is session:
                        del self._sessions[mint]
                self._teardown(session)
                self.store.drop(mint)
                raise

            # stop() may have run while the subscription or poll task was being set up
            with self._lock:
                current = self._sessions.get(mint)
            if current is not session:
                print(f"[SESSION] {mint[:12]}... was stopped while starting, releasing")
                self._teardown(session)
                if current is None:
                    self.store.drop(mint)
                return current or session, False

        print(f"[SESSION] Monitoring {len(holders)} holders of {mint[:12]}...")
        return session, True

    def _start_poll(self, session):
        task = PollTask(session.mint, session.holders, self.store, self.provider,
                        top_holders=session.top_holders)
        with self._lock:
            session.poll_task = task
        task.start()

    def _start_push(self, session):
        addresses = [h.address for h in session.holders]
        monitored = addresses[:config.MAX_WEBHOOK_ADDRESSES]
        if len(addresses) > len(monitored):
            print(f"[PUSH] {session.mint[:12]}... has {len(addresses)} holders, "
                  f"monitoring first {len(monitored)}")

        webhook = self.provider.create_webhook(self.callback_url, monitored, ["SWAP"])
        with self._lock:
            session.subscription_id = webhook["webhookID"]
        print(f"[PUSH] Webhook {webhook['webhookID']} monitoring {len(monitored)} addresses")

        if config.PUSH_BACKFILL_HOLDERS > 0:
            self._backfill(session)

    def _backfill(self, session):
        """One poll-style pass over the top holders to seed recent history."""
        task = PollTask(session.mint, session.holders, self.store, self.provider,
                        top_holders=session.top_holders,
                        max_holders=config.PUSH_BACKFILL_HOLDERS)
        try:
            found = task.check(tx_limit=config.PUSH_BACKFILL_TX_LIMIT,
                               batch_delay=config.PUSH_BACKFILL_BATCH_DELAY,
                               min_timestamp=time.time() - self.store.retention_seconds)
            print(f"[PUSH] Backfilled {found} historical swaps for {session.mint[:12]}...")
        except Exception as e:
            print(f"[PUSH] Backfill failed for {session.mint[:12]}...: {e}")

    def stop(self, mint):
        """Stop tracking `mint`. Returns False if it was not tracked."""
        with self._lock:
            session = self._sessions.pop(mint, None)
        if session is None:
            return False
        self._teardown(session)
        self.store.drop(mint)
        print(f"[SESSION] Stopped monitoring {mint[:12]}...")
        return True

    def _teardown(self, session):
        """Release a session's poll task and webhook. Each webhook is deleted at most once."""
        with self._lock:
            task = session.poll_task
            webhook_id, session.subscription_id = session.subscription_id, None
        if task is not None:
            task.cancel()
        if webhook_id:
            try:
                self.provider.delete_webhook(webhook_id)
            except Exception as e:
                print(f"[PUSH] Error deleting webhook {webhook_id} "
                      f"for {session.mint[:12]}...: {e}")

    def sweep_webhooks(self):
        """Delete webhooks still pointing at our callback URL that no session owns."""
        with self._lock:
            owned = {s.subscription_id for s in self._sessions.values() if s.subscription_id}
        swept = 0
        for webhook in self.provider.list_webhooks():
            webhook_id = webhook.get("webhookID")
            if not webhook_id or webhook_id in owned:
                continue
            if webhook.get("webhookURL") != self.callback_url:
                continue
            try:
                self.provider.delete_webhook(webhook_id)
                swept += 1
            except Exception as e:
                print(f"[PUSH] Error deleting orphaned webhook {webhook_id}: {e}")
        if swept:
            print(f"[PUSH] Swept {swept} orphaned webhooks")
        return swept

    def shutdown(self):
        """Stop every session, continuing past individual failures."""
        for mint in self.monitored_mints():
            try:
                self.stop(mint)
            except Exception as e:
                print(f"[SHUTDOWN] Error stopping {mint[:12]}...: {e}")
        if self.mode == MODE_PUSH:
            try:
                self.sweep_webhooks()
            except Exception as e:
                print(f"[SHUTDOWN] Error sweeping webhooks: {e}")
        with self._lock:
            self._sessions.clear()
        self.store.clear()

    def refresh_holders(self, mint):
        """Re-snapshot a tracked mint's holders and resync its ingestion."""
        session = self.get(mint)
        if session is None:
            return None
        holders = holder_registry.snapshot(mint, self.provider)
        session.update_holders(holders)
        if session.poll_task is not None:
            session.poll_task.set_holders(session.holders, session.top_holders)
        if session.subscription_id:
            addresses = [h.address for h in holders][:config.MAX_WEBHOOK_ADDRESSES]
            self.provider.update_webhook(session.subscription_id, addresses)
        return session

    # -- push ingestion --------------------------------------------------
    def _session_for_wallet(self, wallet):
        if not wallet:
            return None
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            if wallet in session.holder_addresses:
                return session
        return None

    def ingest_push(self, records):
        """
        Process one webhook delivery. Returns the number of swaps stored.

        Records whose fee payer holds no tracked mint are dropped. A fee payer
        holding several tracked mints is attributed to the first registered one.
        """
        inserted = 0
        for raw in records:
            if not isinstance(raw, dict):
                continue
            try:
                record = RawTxRecord.from_json(raw)
            except (ValueError, TypeError, AttributeError) as e:
                print(f"[WEBHOOK] Unparseable record skipped: {str(e)[:200]}")
                continue

            session = self._session_for_wallet(record.fee_payer)
            if session is None:
                continue

            swap = extract_swap(record, session.mint, top_holders=session.top_holders)
            if swap is None:
                continue
            if self.store.append(session.mint, swap):
                inserted += 1
                print(f"[PUSH] NEW SWAP: {swap.wallet[:8]}... swapped "
                      f"{swap.source_token[:8]}... -> {swap.destination_token[:8]}...")
        return inserted

    # -- queries ---------------------------------------------------------
    def _metadata(self, mint):
        try:
            return self.provider.fetch_token_metadata(mint) or {}
        except Exception as e:
            print(f"[SESSION] Metadata lookup failed for {mint[:12]}...: {e}")
            return {}

    def holders(self, mint):
        """Tracked snapshot if the mint is tracked, otherwise a fresh fetch."""
        session = self.get(mint)
        if session is not None:
            return session.holders
        return holder_registry.snapshot(mint, self.provider)

    def status(self, mint):
        session = self.get(mint)
        swaps = self.store.list(mint)
        timestamps = [s.timestamp for s in swaps]
        return {
            "token_mint": mint,
            "is_monitoring": session is not None,
            "mode": session.mode if session else None,
            "holder_count": len(session.holders) if session else 0,
            "total_swaps_detected": len(swaps),
            "oldest_swap": min(timestamps) if timestamps else None,
            "newest_swap": max(timestamps) if timestamps else None,
            "monitoring_seconds": round(time.time() - session.created_at, 1) if session else None,
        }

    def swaps(self, mint, window_minutes):
        return self.store.list_window(mint, window_minutes)

    def flows(self, mint, window_minutes):
        return compute_flows(self.store, mint, window_minutes, self._metadata)

    def stats(self, mint, window_minutes):
        return compute_stats(self.store, mint, window_minutes)
