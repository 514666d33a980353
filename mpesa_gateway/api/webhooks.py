"""
Webhook API Endpoints
Receives the STK push result Daraja POSTs to MPESA_CALLBACK_URL
"""

from flask import Blueprint, request, jsonify

from mpesa_gateway.errors import ValidationError
from mpesa_gateway.providers.daraja_provider import parse_stk_callback
from mpesa_gateway.providers.result_codes import is_cancellation
from mpesa_gateway.schemas.payment_schema import CallbackResultSchema
from mpesa_gateway.utils.logger import get_logger, redact

webhooks_bp = Blueprint('webhooks', __name__)
logger = get_logger(__name__)

callback_schema = CallbackResultSchema()

# Daraja stops retrying once it sees this acknowledgement
ACCEPTED = {'ResultCode': 0, 'ResultDesc': 'Accepted'}


@webhooks_bp.route('/mpesa', methods=['POST'])
def receive_stk_callback():
    """
    Receive an STK push callback

    Body:
        {"Body": {"stkCallback": {"MerchantRequestID": ..., "CheckoutRequestID": ...,
                                  "ResultCode": 0, "ResultDesc": ..., "CallbackMetadata": {...}}}}

    The outcome is logged and acknowledged; recording it against the order
    is the caller's job (poll the checkout id or read these logs).
    """
    payload = request.get_json(silent=True)

    try:
        result = parse_stk_callback(payload)
    except ValidationError as e:
        logger.warning('Rejected M-Pesa callback: %s - payload %s', e.message, redact(payload))
        return jsonify({'ResultCode': 1, 'ResultDesc': e.message}), 400

    outcome = result.poll_result
    if is_cancellation(outcome.raw_result_code):
        logger.info(
            'M-Pesa callback for %s: customer did not complete the prompt (code %s)',
            result.correlation_id, outcome.raw_result_code,
        )
    else:
        logger.info(
            'M-Pesa callback for %s: %s (code %s, receipt %s)',
            result.correlation_id, outcome.state.value, outcome.raw_result_code, result.receipt_number,
        )
    logger.debug('M-Pesa callback detail: %s', redact(callback_schema.dump(result)))

    return jsonify(ACCEPTED), 200
