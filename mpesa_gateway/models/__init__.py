from mpesa_gateway.models.payment import (
    AccessToken,
    CallbackResult,
    CredentialCheck,
    PaymentRequest,
    PhoneCheck,
    PollResult,
    PollState,
    ProviderCredentials,
    PushResult,
    PushState,
    SignedEnvelope,
)

__all__ = [
    'AccessToken',
    'CallbackResult',
    'CredentialCheck',
    'PaymentRequest',
    'PhoneCheck',
    'PollResult',
    'PollState',
    'ProviderCredentials',
    'PushResult',
    'PushState',
    'SignedEnvelope',
]
