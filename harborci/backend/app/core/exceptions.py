# backend/app/core/exceptions.py
"""
Typed errors raised by the services and rendered at the HTTP boundary.
"""

from typing import Optional


class HarborError(Exception):
    """Base class for errors that map onto an HTTP response"""

    status_code = 500
    code = "internal_error"
    retryable = False

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "retryable": self.retryable,
            }
        }


class AuthenticationError(HarborError):
    status_code = 401
    code = "authentication_failed"


class ForbiddenError(HarborError):
    status_code = 403
    code = "forbidden"


class PayloadValidationError(HarborError):
    status_code = 422
    code = "invalid_payload"


class PayloadTooLargeError(HarborError):
    status_code = 413
    code = "payload_too_large"


class NotFoundError(HarborError):
    status_code = 404
    code = "not_found"


class ConflictError(HarborError):
    status_code = 409
    code = "conflict"


class SyncInProgressError(ConflictError):
    code = "sync_in_progress"
    retryable = True


class NotConfiguredError(HarborError):
    status_code = 503
    code = "not_configured"


class TransientProviderError(HarborError):
    """Timeouts, 5xx and rate limiting from a provider API"""

    status_code = 503
    code = "provider_unavailable"
    retryable = True


class ProviderError(HarborError):
    """Provider rejected the request; retrying will not help"""

    status_code = 502
    code = "provider_error"


class CredentialError(HarborError):
    """Stored credentials could not be decrypted or are missing"""

    status_code = 500
    code = "credential_error"
