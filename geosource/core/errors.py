"""Error taxonomy shared by the credential, OAuth and adapter layers."""
from __future__ import annotations


class SourceError(Exception):
    """Base error for data source operations."""

    code = "SOURCE_ERROR"
    status_code = 500
    public_message: str | None = None

    @property
    def user_message(self) -> str:
        """Message that is safe to show to an end user."""

        return self.public_message or str(self)


class ValidationError(SourceError):
    """Raised when a required input is missing or malformed."""

    code = "VALIDATION_ERROR"
    status_code = 400


class ConfigurationError(SourceError):
    """Raised when the server is missing OAuth or encryption settings."""

    code = "CONFIGURATION_ERROR"
    status_code = 500


class StateError(SourceError):
    """Raised when an OAuth state token cannot be used."""

    code = "OAUTH_STATE_INVALID"
    status_code = 400
    public_message = "Invalid or expired OAuth state. Please restart the connection."


class StateNotFoundError(StateError):
    """The state token is unknown or was already consumed."""


class StateExpiredError(StateError):
    """The state token existed but had passed its expiry."""

    code = "OAUTH_STATE_EXPIRED"
    public_message = "OAuth state expired. Please try again."


class TokenExchangeError(SourceError):
    """Raised when the provider rejects the authorization code exchange."""

    code = "TOKEN_EXCHANGE_FAILED"
    status_code = 400


class RefreshError(SourceError):
    """Raised when stored credentials can no longer be refreshed."""

    code = "REFRESH_FAILED"
    status_code = 500
    public_message = "Access to the spreadsheet account expired. Please reconnect your account."


class DecryptionError(SourceError):
    """Raised when an encrypted secret is tampered with or corrupt."""

    code = "DECRYPTION_FAILED"
    status_code = 500
    public_message = "Stored credentials could not be read."


class NotFoundError(SourceError):
    """Raised when no active configuration or record exists."""

    code = "RESOURCE_NOT_FOUND"
    status_code = 404


class ProviderError(SourceError):
    """Raised when an upstream provider call fails."""

    code = "PROVIDER_ERROR"
    status_code = 502

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.provider_status = status_code
        self.body = body
