"""
Trench Maps - Solana memecoin capital flow tracker.

Tracks the holders of a mint and detects when they swap out of it into
another token. Swaps arrive through Helius webhooks (push) or by polling each
holder's enhanced transaction history (poll); flows are ranked by a weighted
score that counts top-holder swaps 5x.
"""

import signal
import sys
from datetime import datetime, timezone

from flask import Flask, request, jsonify

import config
from errors import TrenchMapsError, ValidationError
from monitor import SessionManager

SERVICE_VERSION = "2.0.0"


def _require_mint(value):
    if not value or not isinstance(value, str) or len(value.strip()) < 32:
        raise ValidationError("Missing or invalid 'mint'. Must be a Solana mint address.")
    return value.strip()


def _int_arg(name, default):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _error(e):
    if isinstance(e, TrenchMapsError):
        return jsonify({"error": str(e)}), e.status_code
    return jsonify({"error": str(e)[:500] or "Internal server error"}), 500


def create_app(manager=None):
    app = Flask(__name__)
    manager = manager or SessionManager()
    app.config["SESSION_MANAGER"] = manager

    # -----------------------------------------------------------------------
    # Service Routes
    # -----------------------------------------------------------------------
    @app.route("/", methods=["GET"])
    def root():
        return jsonify({
            "service": "Trench Maps API",
            "description": "Track Solana memecoin capital flows from holder swaps",
            "version": SERVICE_VERSION,
            "mode": manager.mode,
            "endpoints": {
                "GET /health": "Health check with monitored mint count",
                "POST /api/tokens/track": "Start tracking a mint (body: {mint})",
                "DELETE /api/tokens/<mint>/untrack": "Stop tracking a mint",
                "POST /api/tokens/<mint>/refresh": "Re-snapshot holders of a tracked mint",
                "GET /api/tokens/<mint>/holders?limit=": "Holder snapshot, largest first",
                "GET /api/tokens/<mint>/status": "Monitoring status and swap counts",
                "GET /api/tokens/<mint>/flows?timeWindow=": "Ranked destination tokens",
                "GET /api/tokens/<mint>/swaps?timeWindow=": "Raw swaps in the window",
                "POST /api/webhooks/helius": "Helius enhanced webhook ingress",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        mints = manager.monitored_mints()
        return jsonify({
            "status": "ok",
            "mode": manager.mode,
            "monitored_tokens": len(mints),
            "monitored_list": mints,
            "max_capacity": manager.max_sessions,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    # -----------------------------------------------------------------------
    # Token Routes
    # -----------------------------------------------------------------------
    @app.route("/api/tokens/track", methods=["POST"])
    def track_token():
        data = request.get_json(force=True, silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be valid JSON"}), 400
        try:
            mint = _require_mint(data.get("mint") or data.get("mintAddress"))
            session, created = manager.start(mint)
        except Exception as e:
            print(f"[API] Error tracking token: {e}")
            return _error(e)

        body = session.summary()
        body["success"] = True
        if created:
            body["status"] = "tracking"
            body["message"] = "Token tracking started. Swaps will be detected in real-time."
            return jsonify(body), 201
        body["status"] = "already_tracking"
        return jsonify(body), 200

    @app.route("/api/tokens/<mint>/untrack", methods=["DELETE"])
    def untrack_token(mint):
        try:
            was_tracking = manager.stop(mint)
        except Exception as e:
            print(f"[API] Error untracking token: {e}")
            return _error(e)
        return jsonify({
            "success": True,
            "token_mint": mint,
            "was_tracking": was_tracking,
            "message": f"Stopped tracking {mint}" if was_tracking else f"{mint} was not tracked",
            "remaining_tokens": len(manager.monitored_mints()),
        })

    @app.route("/api/tokens/<mint>/refresh", methods=["POST"])
    def refresh_token(mint):
        try:
            session = manager.refresh_holders(mint)
        except Exception as e:
            print(f"[API] Error refreshing holders: {e}")
            return _error(e)
        if session is None:
            return jsonify({"error": f"{mint} is not tracked"}), 404
        body = session.summary()
        body["success"] = True
        body["status"] = "refreshed"
        return jsonify(body)

    @app.route("/api/tokens/<mint>/holders", methods=["GET"])
    def get_holders(mint):
        limit = _int_arg("limit", 100)
        try:
            holders = manager.holders(mint)
        except Exception as e:
            print(f"[API] Error fetching holders: {e}")
            return _error(e)
        return jsonify({
            "token_mint": mint,
            "holder_count": len(holders),
            "top_holders": [h.to_dict() for h in holders[:limit]],
            "total_supply_held": sum(h.ui_balance for h in holders),
        })

    @app.route("/api/tokens/<mint>/status", methods=["GET"])
    def get_status(mint):
        try:
            return jsonify(manager.status(mint))
        except Exception as e:
            print(f"[API] Error fetching status: {e}")
            return _error(e)

    @app.route("/api/tokens/<mint>/flows", methods=["GET"])
    def get_flows(mint):
        window = _int_arg("timeWindow", config.DEFAULT_WINDOW_MINUTES)
        try:
            flows = manager.flows(mint, window)
            stats = manager.stats(mint, window)
        except Exception as e:
            print(f"[API] Error fetching flows: {e}")
            return _error(e)
        return jsonify({
            "token_mint": mint,
            "time_window_minutes": window,
            "stats": stats,
            "flows": [f.to_dict() for f in flows],
        })

    @app.route("/api/tokens/<mint>/swaps", methods=["GET"])
    def get_swaps(mint):
        window = _int_arg("timeWindow", config.DEFAULT_WINDOW_MINUTES)
        try:
            swaps = manager.swaps(mint, window)
        except Exception as e:
            print(f"[API] Error fetching swaps: {e}")
            return _error(e)
        return jsonify({
            "token_mint": mint,
            "time_window_minutes": window,
            "total_swaps": len(swaps),
            "swaps": [s.to_dict() for s in swaps],
        })

    # -----------------------------------------------------------------------
    # Webhook Routes
    # -----------------------------------------------------------------------
    @app.route(config.WEBHOOK_PATH, methods=["POST"])
    def helius_webhook():
        if config.WEBHOOK_AUTH_HEADER and \
                request.headers.get("Authorization") != config.WEBHOOK_AUTH_HEADER:
            return jsonify({"error": "Unauthorized"}), 401

        transactions = request.get_json(force=True, silent=True)
        if not isinstance(transactions, list):
            return jsonify({"error": "Invalid webhook payload"}), 400

        print(f"[WEBHOOK] Received {len(transactions)} transactions")
        try:
            inserted = manager.ingest_push(transactions)
        except Exception as e:
            print(f"[WEBHOOK] Error processing webhook: {e}")
            return jsonify({"error": "Internal server error"}), 500
        return jsonify({"success": True, "processed": len(transactions), "new_swaps": inserted})

    @app.route("/api/webhooks/test", methods=["GET"])
    def test_webhook():
        return jsonify({
            "success": True,
            "message": "Webhook endpoint is accessible",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    return app


def _install_shutdown_handlers(manager):
    def shutdown(signum, frame):
        print("\n[SHUTDOWN] Shutting down gracefully...")
        manager.shutdown()
        print("[SHUTDOWN] Released all subscriptions")
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)


if __name__ == "__main__":
    app = create_app()
    _install_shutdown_handlers(app.config["SESSION_MANAGER"])
    print(f"[API] Trench Maps {SERVICE_VERSION} on port {config.PORT}, "
          f"{config.INGESTION_MODE} mode, webhook {config.WEBHOOK_BASE_URL}{config.WEBHOOK_PATH}")
    app.run(host="0.0.0.0", port=config.PORT, debug=False)
