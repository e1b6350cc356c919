"""
API routes: contest listing, subscriptions and the reminder trigger.
"""

import hmac
import logging
import sqlite3
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from codesync.subscriptions import SubscriptionError

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)


def _services():
    return current_app.extensions["codesync"]


def _authorized() -> bool:
    """Check the bearer token against the configured cron secret."""
    secret = current_app.config.get("CRON_SECRET")
    if not secret:
        return False
    header = request.headers.get("Authorization", "")
    return hmac.compare_digest(header.encode(), f"Bearer {secret}".encode())


def _unauthorized():
    return jsonify({"success": False, "error": "Unauthorized"}), 401


def _json_object():
    """Request body as a dict; a missing body reads as empty."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise SubscriptionError("Request body must be a JSON object")
    return payload


@bp.route("/health")
def health():
    return jsonify({"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()})


@bp.route("/api/contests")
def list_contests():
    try:
        contests = _services().contest_repo.list_all()
    except sqlite3.Error as e:
        logger.error(f"Error in /api/contests: {e}")
        return jsonify({"success": False, "error": str(e)}), 500
    return jsonify({"success": True, "contests": [c.to_dict() for c in contests]})


@bp.route("/api/subscribe", methods=["POST"])
def subscribe():
    try:
        payload = _json_object()
        logger.info(f"Subscription request for {payload.get('email')}")
        outcome = _services().subscriptions.subscribe(
            payload.get("email"),
            phone=payload.get("phone"),
            preferences=payload.get("preferences"),
        )
    except SubscriptionError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except sqlite3.Error as e:
        logger.error(f"Subscription error: {e}")
        return jsonify({"success": False, "error": str(e)}), 500

    return jsonify({"success": True, "message": outcome.message})


@bp.route("/api/unsubscribe", methods=["POST"])
def unsubscribe():
    try:
        payload = _json_object()
        removed = _services().subscriptions.unsubscribe(payload.get("email"))
    except SubscriptionError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except sqlite3.Error as e:
        logger.error(f"Unsubscribe error: {e}")
        return jsonify({"success": False, "error": str(e)}), 500

    if not removed:
        return jsonify({"success": False, "error": "Email not found"}), 404
    return jsonify({"success": True, "message": "Unsubscribed successfully"})


@bp.route("/api/subscribers")
def list_subscribers():
    if not _authorized():
        return _unauthorized()
    try:
        emails = _services().subscriptions.list_emails()
    except sqlite3.Error as e:
        logger.error(f"Error getting subscribers: {e}")
        return jsonify({"success": False, "error": str(e)}), 500
    return jsonify({"success": True, "subscribers": emails})


@bp.route("/api/check-reminders", methods=["GET", "POST"])
def check_reminders():
    if not _authorized():
        logger.error("Unauthorized reminder trigger attempt")
        return _unauthorized()

    logger.info("Reminder check triggered via API")
    try:
        result = _services().engine.run_tick()
    except Exception:
        logger.exception("API reminder check failed")
        return jsonify({"success": False, "error": "Job failed"}), 500

    return jsonify({
        "success": True,
        "message": "Reminders checked",
        "summary": result.to_dict(),
    })
