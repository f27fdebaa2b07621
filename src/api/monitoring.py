"""
Monitoring and metrics API endpoints.

This blueprint provides:
- /metrics: Prometheus-compatible metrics endpoint
- /metrics/json: JSON format metrics
- /health: Basic health check with ledger statistics
- /health/live: Kubernetes liveness probe
- /health/ready: Kubernetes readiness probe
"""

import time

from flask import Blueprint, Response, jsonify

from api import state
from monitoring import metrics

monitoring_bp = Blueprint('monitoring', __name__)

_startup_time = time.time()


def _refresh_ledger_gauges() -> None:
    metrics.record_ledger_state(state.ledger.get_statistics())
    metrics.set_gauge("storage_available", 1 if state.get_storage_info().get("available") else 0)


@monitoring_bp.route('/metrics', methods=['GET'])
def prometheus_metrics():
    """Metrics in Prometheus text exposition format."""
    _refresh_ledger_gauges()
    return Response(metrics.to_prometheus(), mimetype='text/plain; charset=utf-8')


@monitoring_bp.route('/metrics/json', methods=['GET'])
def json_metrics():
    _refresh_ledger_gauges()
    return jsonify(metrics.get_all())


@monitoring_bp.route('/health', methods=['GET'])
def health():
    """
    Basic health check endpoint.

    Returns service status and key ledger statistics.
    """
    return jsonify({
        "status": "healthy",
        "service": "SongSplit API",
        "version": _get_version(),
        "uptime_seconds": time.time() - _startup_time,
        "checks": {
            "ledger": {"status": "ok", **state.ledger.get_statistics()},
            "storage": state.get_storage_info(),
        },
    })


@monitoring_bp.route('/health/live', methods=['GET'])
def liveness():
    """Liveness probe: 200 while the process is running."""
    return jsonify({"status": "alive"})


@monitoring_bp.route('/health/ready', methods=['GET'])
def readiness():
    """Readiness probe: 503 until storage is configured and writable."""
    storage_info = state.get_storage_info()
    if storage_info.get("status") != "ok":
        return jsonify({
            "status": "not_ready",
            "issues": [f"storage: {storage_info.get('status')}"],
        }), 503

    return jsonify({"status": "ready"})


def _get_version() -> str:
    """Get application version."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("songsplit")
    except PackageNotFoundError:
        return "0.1.0"
