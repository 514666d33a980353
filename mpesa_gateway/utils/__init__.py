"""
Utils Package
Utility functions and helpers
"""

from mpesa_gateway.utils.logger import get_logger, configure_app_logging, RequestLogger, redact
from mpesa_gateway.utils.validators import (
    normalize_phone,
    detect_network,
    mask_phone,
    round_amount,
    validate_amount,
)

__all__ = [
    'get_logger',
    'configure_app_logging',
    'RequestLogger',
    'redact',
    'normalize_phone',
    'detect_network',
    'mask_phone',
    'round_amount',
    'validate_amount',
]
