"""
SongSplit API Package.

Flask blueprints and the application factory for the royalty ledger API.

Blueprints:
- royalties: Distribution, song registry, balances and admin controls
- monitoring: Health probes and metrics
"""

import logging
import os

from flask import Flask, jsonify

from api import state
from api.monitoring import monitoring_bp
from api.royalties import royalties_bp
from monitoring import setup_request_logging
from storage import StorageBackend, StorageError

logger = logging.getLogger(__name__)

# List of all blueprints for registration
# Tuple format: (blueprint, url_prefix)
ALL_BLUEPRINTS = [
    (royalties_bp, ''),     # Ledger routes (e.g., /royalties/distribute)
    (monitoring_bp, ''),    # /health and /metrics at root
]


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    for blueprint, url_prefix in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=url_prefix)


def create_app(storage_backend: StorageBackend | None = None) -> Flask:
    """
    Build the Flask application.

    Args:
        storage_backend: Backend to load and persist the ledger with
            (defaults to the one selected by STORAGE_BACKEND)

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    app.json.sort_keys = False

    state.init_ledger(storage_backend)
    register_blueprints(app)
    setup_request_logging(app)

    @app.errorhandler(StorageError)
    def storage_error(error):
        logger.error("Storage failure: %s", error)
        return jsonify({"error": "Storage unavailable"}), 503

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Endpoint not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"error": "Internal server error"}), 500

    return app


def run_server():
    """Run the Flask development server."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("FLASK_DEBUG", "").lower() == "true"

    app = create_app()
    stats = state.ledger.get_statistics()

    print(f"\n{'='*60}")
    print("SongSplit API Server")
    print(f"{'='*60}")
    print(f"Listening on: http://{host}:{port}")
    print(f"Admin: {stats['admin']}")
    print(f"Ledger: {stats['songs']['total']} songs, {stats['payment_counter']} payments")
    print(f"{'='*60}\n")

    app.run(host=host, port=port, debug=debug)
