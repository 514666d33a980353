class AppError(Exception):
    status_code = 500
    error = "Application error"

    def __init__(self, message, status_code=None):
        super().__init__(message)
        if status_code:
            self.status_code = status_code
        self.message = message

    def to_dict(self):
        return {'success': False, 'error': self.error, 'message': self.message}


class ConfigurationError(AppError):
    """Provider credentials are missing or incomplete. Never retried."""
    status_code = 500
    error = "Configuration error"

    def __init__(self, message, missing=None):
        super().__init__(message)
        self.missing = list(missing or [])

    def to_dict(self):
        data = super().to_dict()
        data['missing'] = self.missing
        return data


class ValidationError(AppError):
    status_code = 400
    error = "Validation error"


class AuthError(AppError):
    """OAuth token exchange with the provider failed."""
    status_code = 502
    error = "Provider authentication failed"

    def __init__(self, message, provider_status=None, body=None):
        super().__init__(message)
        self.provider_status = provider_status
        self.body = body


class ProviderError(AppError):
    """Transport failure or unparseable provider response."""
    status_code = 502
    error = "Provider error"

    def __init__(self, message, timeout=False, provider_status=None, body=None):
        super().__init__(message, status_code=504 if timeout else None)
        self.timeout = timeout
        self.provider_status = provider_status
        self.body = body

    def to_dict(self):
        data = super().to_dict()
        data['timeout'] = self.timeout
        return data


class ConflictError(AppError):
    """Another push for the same order is still in flight."""
    status_code = 409
    error = "Conflict"
