import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')

    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_LEVEL = os.getenv('LOG_LEVEL')

    # M-Pesa (Daraja) Configuration
    MPESA_ENV = os.getenv('MPESA_ENV', 'sandbox')
    MPESA_SHORTCODE = os.getenv('MPESA_SHORTCODE')
    MPESA_PASSKEY = os.getenv('MPESA_PASSKEY')
    MPESA_CONSUMER_KEY = os.getenv('MPESA_CONSUMER_KEY')
    MPESA_CONSUMER_SECRET = os.getenv('MPESA_CONSUMER_SECRET')
    MPESA_CALLBACK_URL = os.getenv('MPESA_CALLBACK_URL')
    MPESA_TRANSACTION_TYPE = os.getenv('MPESA_TRANSACTION_TYPE', 'CustomerPayBillOnline')
    MPESA_BASE_URL = os.getenv('MPESA_BASE_URL')
    MPESA_TIMEOUT = float(os.getenv('MPESA_TIMEOUT', '15'))
    MPESA_TIMEZONE = os.getenv('MPESA_TIMEZONE', 'Africa/Nairobi')

    # Offline simulator for local development
    MPESA_SIMULATE = os.getenv('MPESA_SIMULATE', 'false').lower() in ('1', 'true', 'yes')
    MPESA_SIMULATE_SUCCESS_RATE = float(os.getenv('MPESA_SIMULATE_SUCCESS_RATE', '0.7'))

    # Dedupe window for repeated pushes of the same order
    MPESA_IDEMPOTENCY_TTL = int(os.getenv('MPESA_IDEMPOTENCY_TTL', '300'))


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False
    MPESA_SIMULATE = os.getenv('MPESA_SIMULATE', 'true').lower() in ('1', 'true', 'yes')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False
    MPESA_ENV = os.getenv('MPESA_ENV', 'production')


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    REDIS_URL = None
    MPESA_SIMULATE = False
    MPESA_ENV = 'sandbox'
    MPESA_SHORTCODE = '174379'
    MPESA_PASSKEY = 'test_passkey'
    MPESA_CONSUMER_KEY = 'test_consumer_key'
    MPESA_CONSUMER_SECRET = 'test_consumer_secret'
    MPESA_CALLBACK_URL = 'https://example.com/mpesa/callback'
    MPESA_BASE_URL = None


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
