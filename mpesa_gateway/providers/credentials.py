"""
Daraja credential loading and validation.

Credentials are read once from an explicit settings mapping (a Flask
``app.config`` or a plain dict) and handed to each component at
construction time. Components call :func:`require_valid` before their
first network call, so an incomplete deployment fails before any request
leaves the process.
"""

from typing import Any, Mapping

from mpesa_gateway.errors import ConfigurationError
from mpesa_gateway.models.payment import (
    BASE_URLS,
    BUY_GOODS_ONLINE,
    PAYBILL_ONLINE,
    SANDBOX,
    CredentialCheck,
    ProviderCredentials,
)

# Settings key -> ProviderCredentials field
_SETTINGS_KEYS = {
    'MPESA_SHORTCODE':        'short_code',
    'MPESA_PASSKEY':          'pass_key',
    'MPESA_CONSUMER_KEY':     'consumer_key',
    'MPESA_CONSUMER_SECRET':  'consumer_secret',
    'MPESA_CALLBACK_URL':     'callback_url',
}

REQUIRED_FIELDS = ('short_code', 'pass_key', 'consumer_key', 'consumer_secret', 'callback_url')

_PLACEHOLDER_PREFIX = 'your_'


def _clean(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


def load_credentials(settings: Mapping[str, Any]) -> ProviderCredentials:
    """Build credentials from ``MPESA_*`` settings. Does not validate."""
    values = {field: _clean(settings.get(key)) for key, field in _SETTINGS_KEYS.items()}
    return ProviderCredentials(
        environment=_clean(settings.get('MPESA_ENV')).lower() or SANDBOX,
        transaction_type=_clean(settings.get('MPESA_TRANSACTION_TYPE')) or PAYBILL_ONLINE,
        base_url=_clean(settings.get('MPESA_BASE_URL')) or None,
        **values,
    )


def validate(credentials: ProviderCredentials) -> CredentialCheck:
    """Report every missing or placeholder field, without raising."""
    missing = []
    for field in REQUIRED_FIELDS:
        value = getattr(credentials, field)
        if not value or value.startswith(_PLACEHOLDER_PREFIX):
            missing.append(field)

    if credentials.environment not in BASE_URLS:
        missing.append('environment')
    if credentials.transaction_type not in (PAYBILL_ONLINE, BUY_GOODS_ONLINE):
        missing.append('transaction_type')

    return CredentialCheck(valid=not missing, missing=tuple(missing))


def require_valid(credentials: ProviderCredentials) -> ProviderCredentials:
    """
    Fail closed on incomplete credentials.

    Raises:
        ConfigurationError listing the missing fields
    """
    check = validate(credentials)
    if not check.valid:
        raise ConfigurationError(
            f"M-Pesa configuration incomplete. Missing: {', '.join(check.missing)}",
            missing=check.missing,
        )
    return credentials
