from __future__ import annotations


class AuthError(RuntimeError):
    status_code = 500
    public_message = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)

    def payload(self) -> dict:
        return {"error": self.public_message}


class InvalidToken(AuthError):
    status_code = 401
    public_message = "Invalid or expired token"


class MissingParameters(AuthError):
    status_code = 400
    public_message = "Invalid request parameters"


class UnknownOrExpiredState(AuthError):
    status_code = 400
    public_message = "Invalid request parameters"


class ProviderDenied(AuthError):
    status_code = 400
    public_message = "Authorization denied by provider"


class ProviderUnavailable(AuthError):
    status_code = 500
    public_message = "Authentication service unavailable"


class ExchangeFailed(AuthError):
    status_code = 500

    def payload(self) -> dict:
        return {"error": self.public_message, "details": str(self)}


class IdentityFetchFailed(AuthError):
    status_code = 500

    def payload(self) -> dict:
        return {"error": self.public_message, "details": str(self)}


class AuthorizationRequired(AuthError):
    status_code = 401
    public_message = "Authentication required"
