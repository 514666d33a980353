"""
Payment value objects
Plain immutable records passed between the gateway layers. Nothing here
is persisted; callers own storage of correlation ids.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


SANDBOX = 'sandbox'
PRODUCTION = 'production'

BASE_URLS: Dict[str, str] = {
    SANDBOX:    'https://sandbox.safaricom.co.ke',
    PRODUCTION: 'https://api.safaricom.co.ke',
}

PAYBILL_ONLINE = 'CustomerPayBillOnline'
BUY_GOODS_ONLINE = 'CustomerBuyGoodsOnline'


class PushState(str, Enum):
    QUEUED = 'queued'
    FAILED = 'failed'


class PollState(str, Enum):
    PROCESSING = 'processing'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'

    @property
    def terminal(self) -> bool:
        return self is not PollState.PROCESSING


@dataclass(frozen=True)
class ProviderCredentials:
    short_code: str
    pass_key: str
    consumer_key: str
    consumer_secret: str
    callback_url: str
    environment: str = SANDBOX
    transaction_type: str = PAYBILL_ONLINE
    base_url: Optional[str] = None

    @property
    def api_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip('/')
        return BASE_URLS.get(self.environment, BASE_URLS[SANDBOX])

    def __repr__(self) -> str:
        return (
            f'ProviderCredentials(short_code={self.short_code!r}, '
            f'environment={self.environment!r}, callback_url={self.callback_url!r})'
        )


@dataclass(frozen=True)
class CredentialCheck:
    valid: bool
    missing: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_in_seconds: int

    def __repr__(self) -> str:
        return f'AccessToken(value=[REDACTED], expires_in_seconds={self.expires_in_seconds})'


@dataclass(frozen=True)
class PaymentRequest:
    order_id: str
    amount: Any
    customer_phone: str
    account_reference: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class SignedEnvelope:
    short_code: str
    password: str
    timestamp: str
    transaction_type: str
    amount: int
    party_a: str
    party_b: str
    phone_number: str
    callback_url: str
    account_reference: str
    description: str

    def to_payload(self) -> Dict[str, Any]:
        """Daraja STK push request body."""
        return {
            'BusinessShortCode': self.short_code,
            'Password':          self.password,
            'Timestamp':         self.timestamp,
            'TransactionType':   self.transaction_type,
            'Amount':            self.amount,
            'PartyA':            self.party_a,
            'PartyB':            self.party_b,
            'PhoneNumber':       self.phone_number,
            'CallBackURL':       self.callback_url,
            'AccountReference':  self.account_reference,
            'TransactionDesc':   self.description,
        }


@dataclass(frozen=True)
class PushResult:
    state: PushState
    correlation_id: Optional[str] = None
    secondary_id: Optional[str] = None
    message: Optional[str] = None
    raw_response_code: Optional[str] = None
    raw_response_description: Optional[str] = None


@dataclass(frozen=True)
class PollResult:
    state: PollState
    message: Optional[str] = None
    raw_result_code: Optional[str] = None
    raw_result_description: Optional[str] = None


@dataclass(frozen=True)
class PhoneCheck:
    ok: bool
    e164: Optional[str] = None
    reason: Optional[str] = None
    network: Optional[str] = None


@dataclass(frozen=True)
class CallbackResult:
    correlation_id: str
    secondary_id: Optional[str]
    poll_result: PollResult
    receipt_number: Optional[str] = None
    amount: Optional[Any] = None
    phone_number: Optional[str] = None
    transaction_date: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
