"""
Custom Validators
Phone and amount checks that gate every paid network call
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from mpesa_gateway.models.payment import PhoneCheck

COUNTRY_CODE = '254'
TRUNK_PREFIX = '0'
MOBILE_PREFIXES = '17'

_E164_PATTERN = re.compile(rf'^{COUNTRY_CODE}[{MOBILE_PREFIXES}]\d{{8}}$')

# Longest matching prefix wins, so 254757 resolves to Safaricom before 25475 does to Airtel.
_NETWORK_PREFIXES = {
    'Safaricom': (
        '25470', '25471', '25472', '25474', '25479',
        '254757', '254758', '254759', '254768', '254769',
        '254110', '254111', '254112', '254113', '254114', '254115',
    ),
    'Airtel': (
        '25473', '25475', '25478', '254762',
        '254100', '254101', '254102',
    ),
    'Telkom': ('25477',),
}

MIN_AMOUNT = 1
MAX_AMOUNT = 250000


def normalize_phone(raw: Any) -> PhoneCheck:
    """
    Canonicalize a Kenyan mobile number to 2547XXXXXXXX / 2541XXXXXXXX.

    Accepts: +254712345678, 0712345678, 254712345678, 712345678, and the
    same with spaces, dashes or brackets. Never raises.

    Returns:
        PhoneCheck with ok/e164 on success, ok=False and a reason otherwise
    """
    if raw is None:
        return PhoneCheck(ok=False, reason='Phone number is required')

    digits = re.sub(r'\D', '', str(raw))
    if not digits:
        return PhoneCheck(ok=False, reason='Phone number is required')

    if digits.startswith(TRUNK_PREFIX):
        digits = COUNTRY_CODE + digits[len(TRUNK_PREFIX):]
    elif digits.startswith(COUNTRY_CODE):
        pass
    elif digits[0] in MOBILE_PREFIXES:
        digits = COUNTRY_CODE + digits

    if not _E164_PATTERN.match(digits):
        return PhoneCheck(
            ok=False,
            reason='Please enter a valid Kenyan mobile number (e.g., 0712345678)'
        )

    return PhoneCheck(ok=True, e164=digits, network=detect_network(digits))


def detect_network(e164: Optional[str]) -> Optional[str]:
    """Carrier label for a normalized number, or None. Informational only."""
    if not e164:
        return None

    best_label, best_length = None, 0
    for label, prefixes in _NETWORK_PREFIXES.items():
        for prefix in prefixes:
            if e164.startswith(prefix) and len(prefix) > best_length:
                best_label, best_length = label, len(prefix)
    return best_label


def mask_phone(phone: Optional[str]) -> str:
    """Keep only the last four digits visible, e.g. ********5678."""
    if not phone:
        return ''
    phone = str(phone)
    return re.sub(r'\d(?=\d{4})', '*', phone)


def round_amount(amount: Any) -> int:
    """
    Round to the nearest whole currency unit, halves away from zero.

    Raises:
        InvalidOperation / ValueError / TypeError for non-numeric input
    """
    if isinstance(amount, bool):
        raise TypeError('Amount must be a number, got bool')
    if isinstance(amount, float):
        amount_decimal = Decimal(str(amount))
    else:
        amount_decimal = Decimal(amount)
    if not amount_decimal.is_finite():
        raise ValueError('Amount must be finite')
    return int(amount_decimal.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def validate_amount(amount: Any, min_amount: int = MIN_AMOUNT, max_amount: int = MAX_AMOUNT) -> tuple[
    bool, Optional[str]]:
    """
    Validate payment amount after rounding to whole units

    Args:
        amount: Amount to validate
        min_amount: Minimum allowed whole amount
        max_amount: Maximum allowed whole amount (Daraja per-transaction cap)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if amount is None:
        return False, "Amount is required"

    try:
        rounded = round_amount(amount)
    except (InvalidOperation, ValueError, TypeError) as e:
        return False, f"Invalid amount format: {str(e) or type(amount).__name__}"

    if rounded <= 0:
        return False, "Amount must be greater than 0"

    if rounded < min_amount:
        return False, f"Amount must be at least {min_amount}"

    if rounded > max_amount:
        return False, f"Amount must not exceed {max_amount}"

    return True, None
