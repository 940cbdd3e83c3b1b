"""
ATLAS Orbit Service - HTTP API

Flask front end over the Reconciler. Routes translate query parameters,
call one reconciler operation and wrap the result in a JSON envelope; the
error taxonomy is mapped to status codes here and nowhere else.
"""

import time
import traceback
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import EngineConfig
from logging_config import configure_logging, get_logger
from atlas_orbit.errors import AllSourcesFailed, InsufficientData, InvalidRequest
from atlas_orbit.health import HealthLedger
from atlas_orbit.reconciliation import Reconciler, build_reconciler

logger = get_logger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _days_arg(default: int):
    """Raw ``days`` query value; range checks happen in the reconciler."""
    return request.args.get('days', default)


def create_app(reconciler: Optional[Reconciler] = None) -> Flask:
    """
    Build the Flask application.

    Args:
        reconciler: Pre-built reconciler (tests inject one with stub
            sources); the production set is wired when omitted

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    CORS(app)
    engine = reconciler or build_reconciler()
    app.config['RECONCILER'] = engine

    @app.route('/api/trajectory', methods=['GET'])
    def trajectory():
        """Predicted vs actual trajectory with deviation"""
        started = time.monotonic()
        result = engine.dual_trajectory(_days_arg(60))

        body = {
            "success": True,
            "data": result.model_dump(mode='json', exclude={'warning'}),
            "metadata": {
                "predicted_points": len(result.predicted.trail),
                "actual_points": len(result.actual.trail),
                "processing_time_ms": round((time.monotonic() - started) * 1000.0, 1),
            },
            "timestamp": _timestamp(),
        }
        if result.warning:
            body["warning"] = result.warning
        return jsonify(body), 200

    @app.route('/api/velocity', methods=['GET'])
    def velocity():
        """Heliocentric / geocentric velocity and acceleration profile"""
        points = engine.velocity_profile(_days_arg(60))
        data = [point.model_dump(mode='json') for point in points]

        return jsonify({
            "success": True,
            "data": data,
            "metadata": {
                "total_points": len(data),
                "date_range": {
                    "start": data[0]["date"],
                    "end": data[-1]["date"],
                },
                "source": "JPL Horizons",
            },
            "timestamp": _timestamp(),
        }), 200

    @app.route('/api/trend', methods=['GET'])
    def trend():
        """Brightness trend and magnitude-law fit"""
        result = engine.brightness_trend(_days_arg(30))
        return jsonify({
            "success": True,
            "data": result.model_dump(mode='json'),
            "timestamp": _timestamp(),
        }), 200

    @app.route('/api/elements', methods=['GET'])
    def elements():
        """Current orbital elements"""
        current = engine.orbital_elements()
        return jsonify({
            "success": True,
            "data": current.model_dump(mode='json'),
            "metadata": {
                "is_reference": current == engine.reference_elements,
                "semi_major_axis_au": current.semi_major_axis,
            },
            "timestamp": _timestamp(),
        }), 200

    @app.route('/api/health', methods=['GET'])
    def health():
        """Overall and per-source health"""
        report = engine.health_report()
        report["configuration"] = {
            "cache_ttl": engine.config.CACHE_TTL,
            "max_trajectory_days": engine.config.MAX_TRAJECTORY_DAYS,
            "max_velocity_days": engine.config.MAX_VELOCITY_DAYS,
            "rate_limit_requests": engine.config.RATE_LIMIT_REQUESTS,
        }
        return jsonify(report), HealthLedger.http_status(report["status"])

    @app.errorhandler(InvalidRequest)
    def handle_invalid_request(error):
        return jsonify({
            "success": False,
            "error": str(error),
            "timestamp": _timestamp(),
        }), 400

    @app.errorhandler(InsufficientData)
    def handle_insufficient_data(error):
        return jsonify({
            "success": False,
            "error": str(error),
            "timestamp": _timestamp(),
        }), 422

    @app.errorhandler(AllSourcesFailed)
    def handle_all_sources_failed(error):
        logger.error("all_sources_failed", path=request.path, failures=error.failures)
        return jsonify({
            "success": False,
            "error": str(error),
            "failures": error.failures,
            "timestamp": _timestamp(),
        }), 503

    @app.errorhandler(Exception)
    def handle_error(error):
        """Global error handler"""
        if isinstance(error, HTTPException):
            return jsonify({"success": False, "error": error.description}), error.code
        logger.error("unhandled_error", path=request.path, error=str(error),
                     traceback=traceback.format_exc())
        return jsonify({
            "success": False,
            "error": "Internal server error",
            "timestamp": _timestamp(),
        }), 500

    return app


if __name__ == '__main__':
    settings = EngineConfig()
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    logger.info("starting_atlas_orbit_service")
    create_app(build_reconciler(settings)).run(host='0.0.0.0', port=5001, debug=False)
