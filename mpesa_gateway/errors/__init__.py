from mpesa_gateway.errors.exceptions import (
    AppError,
    AuthError,
    ConfigurationError,
    ConflictError,
    ProviderError,
    ValidationError,
)

__all__= [
    'AppError',
    'AuthError',
    'ConfigurationError',
    'ConflictError',
    'ProviderError',
    'ValidationError',
]
