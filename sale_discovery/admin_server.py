"""
Admin Server for Sale Discovery.

A small Flask server that exposes:
1. Engine statistics
2. A manual discovery trigger (same code path as the scheduler)
3. Runtime source registration (Telegram channel, RSS feed, web page)
4. The review queue (list / approve / reject)

Every mutating endpoint requires ?secret=<ADMIN_SECRET>. A bad or unset
secret returns {"ok": false} instead of raising.
"""

import hmac
import logging
from typing import Optional
from flask import Flask, jsonify, request

from .errors import PersistenceError
from .pipeline import DiscoveryEngine, get_engine

logger = logging.getLogger(__name__)


def create_app(engine: Optional[DiscoveryEngine] = None, admin_secret: Optional[str] = None) -> Flask:
    """
    Build the admin Flask app.

    Args:
        engine: Discovery engine (defaults to the shared engine)
        admin_secret: Override for ADMIN_SECRET
    """
    engine = engine or get_engine()
    secret = admin_secret if admin_secret is not None else engine.config.admin_secret

    app = Flask(__name__)

    def authorized() -> bool:
        provided = request.args.get("secret", "")
        return bool(secret) and hmac.compare_digest(provided.encode(), secret.encode())

    def denied():
        logger.warning(f"Rejected admin call to {request.path}: invalid secret")
        return jsonify({"ok": False, "error": "Invalid admin secret"}), 403

    def body_fields(*names: str) -> Optional[dict]:
        data = request.get_json(silent=True) or {}
        values = {name: str(data.get(name) or "").strip() for name in names}
        return values if values[names[0]] else None

    @app.route("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.route("/discovery/stats", methods=["GET"])
    def stats():
        return jsonify(engine.get_stats())

    @app.route("/discovery/trigger", methods=["POST"])
    def trigger():
        if not authorized():
            return denied()
        result = engine.trigger_discovery()
        return jsonify({"ok": True, **result})

    @app.route("/discovery/add-channel", methods=["POST"])
    def add_channel():
        if not authorized():
            return denied()
        fields = body_fields("username", "name")
        if not fields:
            return jsonify({"ok": False, "error": "username is required"}), 400
        added = engine.add_telegram_channel(fields["username"], fields["name"])
        return jsonify({
            "ok": True,
            "added": added,
            "message": f"Added channel: {fields['name'] or fields['username']}" if added else "Channel already monitored",
        })

    @app.route("/discovery/add-rss", methods=["POST"])
    def add_rss():
        if not authorized():
            return denied()
        fields = body_fields("url", "name")
        if not fields:
            return jsonify({"ok": False, "error": "url is required"}), 400
        added = engine.add_rss_feed(fields["url"], fields["name"])
        return jsonify({
            "ok": True,
            "added": added,
            "message": f"Added RSS feed: {fields['name'] or fields['url']}" if added else "Feed already monitored",
        })

    @app.route("/discovery/add-web", methods=["POST"])
    def add_web():
        if not authorized():
            return denied()
        fields = body_fields("url", "name")
        if not fields:
            return jsonify({"ok": False, "error": "url is required"}), 400
        added = engine.add_web_page(fields["url"], fields["name"])
        return jsonify({"ok": True, "added": added})

    @app.route("/discovery/review", methods=["GET"])
    def review_list():
        if not authorized():
            return denied()
        try:
            items = engine.list_review_items(limit=request.args.get("limit", 50, type=int))
        except Exception as e:
            logger.error(f"Failed to list review items: {e}")
            return jsonify({"ok": False, "error": str(e)}), 500
        return jsonify({"ok": True, "items": items})

    @app.route("/discovery/review/<review_id>/approve", methods=["POST"])
    def review_approve(review_id: str):
        if not authorized():
            return denied()
        try:
            sale_id = engine.approve_review_item(review_id)
        except PersistenceError as e:
            return jsonify({"ok": False, "error": str(e)}), 500
        if sale_id is None:
            return jsonify({"ok": False, "error": "Review item not found or not pending"}), 404
        return jsonify({"ok": True, "saleId": sale_id})

    @app.route("/discovery/review/<review_id>/reject", methods=["POST"])
    def review_reject(review_id: str):
        if not authorized():
            return denied()
        try:
            rejected = engine.reject_review_item(review_id)
        except Exception as e:
            logger.error(f"Failed to reject review item {review_id}: {e}")
            return jsonify({"ok": False, "error": str(e)}), 500
        if not rejected:
            return jsonify({"ok": False, "error": "Review item not found or not pending"}), 404
        return jsonify({"ok": True})

    return app


def main():
    """CLI entry point for the admin server."""
    import argparse

    parser = argparse.ArgumentParser(description="Sale Discovery Admin Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5000, help="Port to bind to")
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    logger.info(f"Starting admin server on {args.host}:{args.port}")
    create_app().run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
