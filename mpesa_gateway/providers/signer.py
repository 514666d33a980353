"""
STK request signing.

Password = Base64(BusinessShortCode + Passkey + Timestamp)
Timestamp = YYYYMMDDHHmmss on the provider's clock (Africa/Nairobi)
"""

import base64
from datetime import datetime, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from mpesa_gateway.models.payment import ProviderCredentials

PROVIDER_TIMEZONE = 'Africa/Nairobi'
TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'


def timestamp(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> str:
    """
    Current wall-clock time as YYYYMMDDHHmmss.

    Aware ``now`` values are converted to ``tz``; naive ones are formatted
    as given.
    """
    tz = tz or ZoneInfo(PROVIDER_TIMEZONE)
    if now is None:
        now = datetime.now(tz)
    elif now.tzinfo is not None:
        now = now.astimezone(tz)
    return now.strftime(TIMESTAMP_FORMAT)


def derive_password(short_code: str, pass_key: str, timestamp: str) -> str:
    raw = f"{short_code}{pass_key}{timestamp}"
    return base64.b64encode(raw.encode("utf-8")).decode("utf-8")


def sign(
    credentials: ProviderCredentials,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Tuple[str, str]:
    """Fresh (timestamp, password) pair for one request."""
    ts = timestamp(now, tz)
    return ts, derive_password(credentials.short_code, credentials.pass_key, ts)
