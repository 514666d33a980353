"""
Health Check Endpoints
"""

from flask import Blueprint, current_app, jsonify
from datetime import datetime, timezone

from mpesa_gateway.services.payment_service import PaymentService

health_bp = Blueprint('health', __name__)


@health_bp.route('/health/live', methods=['GET'])
def liveness_probe():
    """
    Kubernetes liveness probe
    Returns 200 if the application is running
    """
    return jsonify({
        'status': 'alive',
        'service': 'mpesa-gateway',
        'timestamp': datetime.now(timezone.utc).isoformat()
    }), 200


@health_bp.route('/health/provider', methods=['GET'])
def provider_check():
    """
    Daraja connectivity check

    Validates the M-Pesa configuration and performs the OAuth handshake.

    Returns:
        200 if a token could be obtained (or the simulator is active)
        503 otherwise
    """
    result = PaymentService.check_connection(current_app.config)
    result['timestamp'] = datetime.now(timezone.utc).isoformat()

    return jsonify(result), 200 if result['success'] else 503
