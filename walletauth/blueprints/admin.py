"""
Admin Blueprint - Health Checks and Metrics

Provides monitoring endpoints for the authentication service.
"""

import logging
import time
from typing import Any, Dict

from flask import Blueprint, Response, current_app, jsonify

from walletauth import metrics
from walletauth.database import check_database_health
from walletauth.db_storage import SQLIdentityStore

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)


def _components() -> Dict[str, Any]:
    return current_app.extensions["walletauth"]


@admin_bp.route("/health")
def health():
    """
    Comprehensive health check endpoint.

    Returns:
        JSON health status with service information
    """
    cfg = current_app.config["APP_CONFIG"]
    components = _components()

    health_status: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": time.time(),
        "service": cfg["APP_NAME"],
        "version": cfg["APP_VERSION"],
        "components": {
            "nonce_registry": {"status": "ok", "live_nonces": len(components["registry"])},
        },
    }

    sweeper = components.get("sweeper")
    health_status["components"]["nonce_sweeper"] = {"status": "running" if sweeper and sweeper.running else "off"}

    if isinstance(components["store"], SQLIdentityStore):
        db_health = check_database_health()
        health_status["components"]["database"] = db_health
        if not db_health["connected"]:
            health_status["status"] = "degraded"
    else:
        health_status["components"]["identity_store"] = {"status": "memory"}

    return jsonify(health_status), 200 if health_status["status"] == "healthy" else 503


@admin_bp.route("/health/live")
def liveness():
    """
    Liveness probe - checks if app is running.

    Returns:
        200 if process is alive
    """
    return jsonify({"status": "alive"}), 200


@admin_bp.route("/metrics/prometheus")
def metrics_prometheus():
    """
    Prometheus metrics endpoint.

    Returns:
        Prometheus text format metrics
    """
    metrics.live_nonces.set(len(_components()["registry"]))
    return Response(metrics.render_latest(), mimetype="text/plain; version=0.0.4")
