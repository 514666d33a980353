"""
Logging Configuration
Centralized logging setup for the STK push gateway
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
import os
from typing import Any, Mapping

from mpesa_gateway.utils.validators import mask_phone

REDACTED = '[REDACTED]'

# Keys whose values never reach a log line
SECRET_KEYS = frozenset({
    'Password',
    'password',
    'access_token',
    'Authorization',
    'consumer_secret',
    'consumer_key',
    'pass_key',
    'passkey',
})

PHONE_KEYS = frozenset({'PartyA', 'PhoneNumber', 'phone', 'phone_number', 'MSISDN'})

_level = logging.getLevelName(os.getenv('LOG_LEVEL', 'INFO').upper())
_managed_loggers = set()


def redact(payload: Any) -> Any:
    """
    Copy of a provider request/response body that is safe to log

    Secrets are replaced with a marker, phone numbers keep their last
    four digits. Nested dicts and lists are walked.
    """
    if isinstance(payload, Mapping):
        cleaned = {}
        for key, value in payload.items():
            if key in SECRET_KEYS:
                cleaned[key] = REDACTED
            elif key in PHONE_KEYS and value is not None:
                cleaned[key] = mask_phone(str(value))
            else:
                cleaned[key] = redact(value)
        return cleaned
    if isinstance(payload, list):
        return [redact(item) for item in payload]
    return payload


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        logger.setLevel(_level)
        _managed_loggers.add(name)

        # Console handler
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(_level)

        # File handler (if logs directory exists)
        log_dir = os.getenv('LOG_DIR', 'logs')
        _ensure_dir(log_dir)

        if os.path.exists(log_dir):
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, 'mpesa-gateway.log'),
                maxBytes=10485760,  # 10MB
                backupCount=10
            )
            file_handler.setLevel(_level)

            file_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

        console_formatter = logging.Formatter(
            '%(levelname)s - %(name)s - %(message)s'
        )
        console_handler.setFormatter(console_formatter)

        logger.addHandler(console_handler)

    return logger


def set_log_level(level) -> None:
    """
    Apply a level to every logger built by get_logger and to later ones

    Args:
        level: Level name ("DEBUG") or number
    """
    global _level
    _level = logging.getLevelName(level.upper()) if isinstance(level, str) else level

    for name in _managed_loggers:
        logger = logging.getLogger(name)
        logger.setLevel(_level)
        for handler in logger.handlers:
            handler.setLevel(_level)


def configure_app_logging(app):
    """
    Configure logging for the Flask application

    LOG_LEVEL wins; otherwise DEBUG in debug mode and INFO elsewhere.

    Args:
        app: Flask application instance
    """
    level = app.config.get('LOG_LEVEL') or ('DEBUG' if app.debug else 'INFO')
    set_log_level(level)
    app.logger.setLevel(_level)

    log_dir = app.config.get('LOG_DIR', 'logs')
    _ensure_dir(log_dir)

    if os.path.exists(log_dir):
        error_handler = RotatingFileHandler(
            os.path.join(log_dir, 'error.log'),
            maxBytes=10485760,
            backupCount=10
        )
        error_handler.setLevel(logging.ERROR)
        error_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s\n%(pathname)s:%(lineno)d',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        error_handler.setFormatter(error_formatter)

        app.logger.addHandler(error_handler)


def _ensure_dir(log_dir: str) -> None:
    if not os.path.exists(log_dir):
        try:
            os.makedirs(log_dir)
        except OSError:
            # Read-only filesystems fall back to console logging
            pass


class RequestLogger:
    """Middleware to log all requests"""

    def __init__(self, app=None):
        self.app = app
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize request logging"""

        @app.before_request
        def log_request():
            from flask import request
            logger = get_logger('request')
            logger.info(
                '%s %s - IP: %s - User-Agent: %s',
                request.method, request.path, request.remote_addr,
                request.headers.get('User-Agent', 'Unknown'),
            )

        @app.after_request
        def log_response(response):
            from flask import request
            logger = get_logger('response')
            logger.info(
                '%s %s - Status: %s - IP: %s',
                request.method, request.path, response.status_code, request.remote_addr,
            )
            return response
