from flask import Blueprint, current_app, request, jsonify
from marshmallow import ValidationError

from mpesa_gateway.errors import AppError
from mpesa_gateway.models.payment import PushState
from mpesa_gateway.providers import get_gateway
from mpesa_gateway.schemas.payment_schema import (
    InitiatePushSchema,
    NormalizePhoneSchema,
    PhoneCheckSchema,
    PollResultSchema,
    PushResultSchema,
)
from mpesa_gateway.services.payment_service import PaymentService
from mpesa_gateway.utils.logger import get_logger

payments_bp = Blueprint('payments', __name__)
logger = get_logger(__name__)

initiate_schema = InitiatePushSchema()
normalize_schema = NormalizePhoneSchema()
push_result_schema = PushResultSchema()
poll_result_schema = PollResultSchema()
phone_check_schema = PhoneCheckSchema()


def get_payment_service() -> PaymentService:
    """Service bound to the gateway the app config selects"""
    return PaymentService(
        get_gateway(current_app.config),
        idempotency_ttl=current_app.config.get('MPESA_IDEMPOTENCY_TTL', 300),
    )


@payments_bp.route('/stk-push', methods=['POST'])
def initiate_push():
    """
    Send an M-Pesa STK push prompt to the customer's phone

    Body:
        {
            "order_id": "ORD-12345",
            "amount": 250,
            "phone": "0712345678",
            "account_reference": "ORD-12345",   // optional
            "description": "Banda order"        // optional
        }

    Returns:
        201 with state "queued" and the correlation_id to poll
        200 with state "failed" and a message when M-Pesa declined the request
    """
    try:
        data = initiate_schema.load(request.get_json(silent=True) or {})

        result = get_payment_service().initiate_push(
            order_id=data['order_id'],
            amount=data['amount'],
            phone=data['phone'],
            account_reference=data.get('account_reference'),
            description=data.get('description')
        )

        status_code = 201 if result.state is PushState.QUEUED else 200
        return jsonify({
            'success': result.state is PushState.QUEUED,
            'data': push_result_schema.dump(result)
        }), status_code

    except ValidationError as e:
        return jsonify({
            'success': False,
            'error': 'Validation error',
            'details': e.messages
        }), 400

    except AppError as e:
        logger.error('STK push failed: %s', e.message)
        return jsonify(e.to_dict()), e.status_code


@payments_bp.route('/stk-push/<string:correlation_id>', methods=['GET'])
def query_push_status(correlation_id):
    """
    Query the outcome of an STK push

    Path Parameters:
        - correlation_id: CheckoutRequestID returned by the push

    Returns:
        200 with state "processing", "succeeded" or "failed"
    """
    try:
        result = get_payment_service().query_push_status(correlation_id)

        return jsonify({
            'success': True,
            'data': poll_result_schema.dump(result)
        }), 200

    except AppError as e:
        logger.error('STK status query for %s failed: %s', correlation_id, e.message)
        return jsonify(e.to_dict()), e.status_code


@payments_bp.route('/phone/normalize', methods=['POST'])
def normalize_phone():
    """
    Normalize and validate an M-Pesa phone number

    Body:
        {"phone": "0712 345 678"}
    """
    try:
        data = normalize_schema.load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({
            'success': False,
            'error': 'Validation error',
            'details': e.messages
        }), 400

    check = PaymentService.normalize_phone(data['phone'])
    return jsonify({
        'success': check.ok,
        'data': phone_check_schema.dump(check)
    }), 200
