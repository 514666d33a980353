from marshmallow import Schema, fields, post_load, validates, validate, ValidationError

from mpesa_gateway.models.payment import PhoneCheck, PollResult, PollState, PushResult, PushState
from mpesa_gateway.providers.result_codes import is_cancellation


class InitiatePushSchema(Schema):
    """STK push initiation schema"""
    order_id = fields.Str(required=True, validate=validate.Length(min=1, max=64))
    amount = fields.Decimal(required=True)
    phone = fields.Str(required=True)
    account_reference = fields.Str(required=False, allow_none=True, load_default=None)
    description = fields.Str(required=False, allow_none=True, load_default=None)

    @validates('amount')
    def validate_amount(self, value, **kwargs):
        if value <= 0:
            raise ValidationError('Amount must be greater than 0')


class NormalizePhoneSchema(Schema):
    """Phone normalization request schema"""
    phone = fields.Str(required=True)


class PushResultSchema(Schema):
    """Push result schema, also used to cache results by order id"""
    state = fields.Enum(PushState, by_value=True, required=True)
    correlation_id = fields.Str(allow_none=True)
    secondary_id = fields.Str(allow_none=True)
    message = fields.Str(allow_none=True)
    raw_response_code = fields.Str(allow_none=True)
    raw_response_description = fields.Str(allow_none=True)

    @post_load
    def make_result(self, data, **kwargs):
        return PushResult(**data)


class PollResultSchema(Schema):
    """Status query result schema"""
    state = fields.Enum(PollState, by_value=True, required=True)
    terminal = fields.Method('get_terminal', dump_only=True)
    cancelled = fields.Method('get_cancelled', dump_only=True)
    message = fields.Str(allow_none=True)
    raw_result_code = fields.Str(allow_none=True)
    raw_result_description = fields.Str(allow_none=True)

    def get_terminal(self, obj):
        return obj.state.terminal

    def get_cancelled(self, obj):
        """Customer did not complete the prompt; a new push may succeed"""
        return is_cancellation(obj.raw_result_code)

    @post_load
    def make_result(self, data, **kwargs):
        return PollResult(**data)


class PhoneCheckSchema(Schema):
    """Phone normalization response schema"""
    ok = fields.Bool(dump_only=True)
    e164 = fields.Str(dump_only=True, allow_none=True)
    reason = fields.Str(dump_only=True, allow_none=True)
    network = fields.Str(dump_only=True, allow_none=True)


class CallbackResultSchema(Schema):
    """Parsed STK callback, dumped for logging"""
    correlation_id = fields.Str(dump_only=True)
    secondary_id = fields.Str(dump_only=True, allow_none=True)
    poll_result = fields.Nested(PollResultSchema, dump_only=True)
    receipt_number = fields.Str(dump_only=True, allow_none=True)
    amount = fields.Raw(dump_only=True, allow_none=True)
    transaction_date = fields.Str(dump_only=True, allow_none=True)
