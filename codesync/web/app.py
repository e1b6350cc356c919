"""
Flask application factory.
"""

import logging

from flask import Flask

from .routes import bp as api_bp

logger = logging.getLogger(__name__)


def create_app(services, cron_secret: str = "") -> Flask:
    """
    Create and configure the Flask app.

    Args:
        services: CodeSyncApp holding the repositories, engine and
            subscription service
        cron_secret: Bearer token required by the reminder trigger and the
            subscriber listing; when empty those endpoints reject every call

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    app.config["CRON_SECRET"] = cron_secret
    app.extensions["codesync"] = services

    if not cron_secret:
        logger.warning("No cron secret configured; /api/check-reminders is disabled")

    app.register_blueprint(api_bp)
    return app
