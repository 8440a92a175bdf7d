from __future__ import annotations


class SecurityError(Exception):
    """Base: cada subclase sabe su status HTTP y su código de error."""

    status_code = 400
    error = "security_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.error)
        self.message = message or self.error

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class NotFoundError(SecurityError):
    status_code = 404
    error = "not_found"


class PolicyValidationError(SecurityError):
    error = "password_policy_violation"

    def __init__(self, errors: list[str]):
        super().__init__("Password does not satisfy the password policy")
        self.errors = list(errors)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class AuthorizationFailed(SecurityError):
    # mensaje genérico: nunca decir qué factor falló
    status_code = 401
    error = "invalid_credentials"

    def __init__(self):
        super().__init__("invalid_credentials")


class TwoFactorValidationError(SecurityError):
    error = "invalid_verification_code"
