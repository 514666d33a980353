"""
Daraja result / error code catalogue.

ResultCode values arrive in STK query responses and callbacks and describe
the financial outcome. errorCode values ("500.001.1001" style) arrive in
non-2xx bodies and describe why the request itself was not handled.
"""

from typing import Any, Dict

SUCCESS = '0'

# errorCode Daraja returns from the STK query while the customer has not yet answered
STILL_PROCESSING = '500.001.1001'
# ResultCode some Daraja deployments return for the same condition
STILL_PROCESSING_RESULT = '4999'

# Throttling errorCodes: the query was refused, the transaction state is unknown
RETRYABLE_ERRORS = frozenset({'500.003.02', '500.003.03'})

# Customer-side outcomes: cancelled, unanswered or undeliverable prompts
USER_CANCELLED = '1032'
TIMEOUT = '1037'
CANCELLATION_CODES = frozenset({
    USER_CANCELLED,
    TIMEOUT,
    '1019',   # transaction expired
    '1025',   # push request could not be sent
    '9999',   # push request could not be sent
    '1001',   # subscriber locked by another transaction
    '2001',   # wrong PIN / invalid initiator
})

RESULT_CODE_MESSAGES: Dict[str, str] = {
    '0':    'Transaction completed successfully',
    '1':    'Insufficient funds in your account',
    '2':    'Amount is less than minimum allowed',
    '3':    'Amount exceeds maximum allowed',
    '4':    'Transaction would exceed daily transaction limit',
    '5':    'Transaction would exceed minimum balance',
    '6':    'Could not resolve sender details',
    '7':    'Could not resolve receiver details',
    '8':    'Transaction would exceed maximum balance',
    '11':   'Invalid sender account',
    '12':   'Invalid receiver account',
    '13':   'Could not resolve sender account',
    '14':   'Could not resolve receiver account',
    '15':   'Duplicate transaction detected',
    '17':   'Internal system failure',
    '20':   'Could not resolve transaction initiator',
    '26':   'System temporarily unavailable',
    '1001': 'Another M-Pesa transaction is in progress on this phone, please try again shortly',
    '1019': 'Transaction expired before it was completed',
    '1025': 'Could not send the payment prompt to your phone',
    '1032': 'Transaction was cancelled by user',
    '1037': 'Transaction timed out',
    '2001': 'Incorrect M-Pesa PIN entered',
    '4999': 'The transaction is still under processing',
    '9999': 'Could not send the payment prompt to your phone',
    # Request-level errorCodes
    '400.002.02':   'Invalid payment request',
    '400.002.05':   'Invalid request payload',
    '404.001.03':   'Invalid access token',
    '404.001.04':   'Invalid authentication header',
    '500.001.1001': 'The transaction is being processed',
    '500.003.02':   'Payment service is busy, please try again shortly',
    '500.003.03':   'Payment service quota exceeded, please try again later',
    '500.003.1001': 'Payment service internal error',
}


def normalize_code(code: Any) -> str:
    """Codes arrive as str or int depending on the endpoint."""
    if code is None:
        return ''
    return str(code).strip()


def describe(code: Any) -> str:
    """User-facing message for a provider code. Never raises."""
    key = normalize_code(code)
    return RESULT_CODE_MESSAGES.get(key) or f'Unknown error (Code: {key or "none"})'


def is_cancellation(code: Any) -> bool:
    return normalize_code(code) in CANCELLATION_CODES
