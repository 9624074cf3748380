"""Custom exception classes."""


class IdmError(Exception):
    """Base exception for the identity session service."""

    def __init__(self, message: str, code: str = "error", details: dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ContractViolationError(IdmError):
    """Raised when an operation is called with arguments it can never accept."""

    def __init__(self, message: str):
        super().__init__(message, "contract_violation")


class ProviderError(IdmError):
    """Exception for identity provider errors (discovery, token endpoint, id_token)."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message, "provider_error", {"status_code": status_code})
        self.status_code = status_code


class InvalidStateError(IdmError):
    """Exception for unknown or expired authentication state."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_state")


class LoginRequiredError(IdmError):
    """Raised when a route needs an authenticated session and there is none."""

    def __init__(self, location: str, message: str = "Login required"):
        super().__init__(message, "login_required", {"location": location})
        self.location = location


class ValidationError(IdmError):
    """Exception for validation errors."""

    def __init__(self, message: str, details: dict):
        super().__init__(message, "validation_error", details)
