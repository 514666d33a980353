"""
Schemas Package
Marshmallow schemas for request/response validation
"""

from mpesa_gateway.schemas.payment_schema import (
    InitiatePushSchema,
    NormalizePhoneSchema,
    PushResultSchema,
    PollResultSchema,
    PhoneCheckSchema,
    CallbackResultSchema,
)

__all__ = [
    'InitiatePushSchema',
    'NormalizePhoneSchema',
    'PushResultSchema',
    'PollResultSchema',
    'PhoneCheckSchema',
    'CallbackResultSchema',
]
