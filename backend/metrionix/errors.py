"""
Integration Lifecycle Exceptions
================================

Error taxonomy for the OAuth connection and integration-sync lifecycle.

WHY THIS FILE EXISTS
--------------------
Every stage of the lifecycle (initiate, callback, sync, webhook) has failure
modes the caller must be able to tell apart: a misconfigured provider is an
operator problem, a blocked popup is a user problem, a CSRF mismatch is a
security violation. Each exception carries a stable ``error_type`` string and
the HTTP status the API layer renders it with.

None of these errors is retried automatically. A failed sync or a failed token
exchange needs an explicit retry from the user or caller.

RELATED FILES
-------------
- metrionix/main.py: Registers the exception handler that renders these
- metrionix/oauth/: Raises ProviderMisconfigured, PopupBlocked, CsrfMismatch...
- metrionix/services/sync_service.py: Raises IntegrationNotFound, ExternalApiError
- metrionix/services/webhooks/receiver.py: Raises InvalidSignature
"""

from typing import List, Optional


class MetrionixError(Exception):
    """
    Base exception for all integration lifecycle errors.

    WHAT:
        Parent class carrying a human-readable message, the provider/platform
        it concerns and the HTTP status used when it reaches the API surface.

    USAGE:
        try:
            await job.run(...)
        except MetrionixError as e:
            return {"error": e.message, "error_type": e.error_type}
    """

    error_type = "metrionix_error"
    http_status = 500

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider

    def to_dict(self) -> dict:
        payload = {"error": self.message, "error_type": self.error_type}
        if self.provider:
            payload["provider"] = self.provider
        return payload


class ConfigurationError(MetrionixError):
    """
    Raised at startup when core configuration is missing or invalid.

    Carries the full list of issues so the operator sees every problem at
    once instead of fixing them one restart at a time.
    """

    error_type = "configuration_error"
    http_status = 500

    def __init__(self, issues: List["object"]):
        self.issues = list(issues)
        summary = ", ".join(f"{issue.key} ({issue.problem})" for issue in self.issues)
        super().__init__(f"Invalid configuration: {summary}")


class ProviderMisconfigured(MetrionixError):
    """OAuth client id/secret for a provider is empty or a placeholder."""

    error_type = "provider_misconfigured"
    http_status = 500

    def __init__(self, provider: str, keys: List[str]):
        self.keys = list(keys)
        super().__init__(
            f"{provider} OAuth is not configured: set {', '.join(self.keys)}",
            provider=provider,
        )


class PopupBlocked(MetrionixError):
    """The host environment refused to open the consent popup."""

    error_type = "popup_blocked"
    http_status = 400


class OAuthCancelled(MetrionixError):
    """The popup closed (or the flow timed out) before a callback arrived."""

    error_type = "oauth_cancelled"
    http_status = 400


class CsrfMismatch(MetrionixError):
    """Callback state is unknown, expired, already consumed or for another provider."""

    error_type = "csrf_mismatch"
    http_status = 400


class TokenExchangeFailed(MetrionixError):
    """
    The provider rejected the authorization code or refresh token.

    ``revoked`` is set when the provider reports ``invalid_grant`` so callers
    can flag the integration for reconnection.
    """

    error_type = "token_exchange_failed"
    http_status = 400

    def __init__(self, message: str, provider: Optional[str] = None, revoked: bool = False):
        super().__init__(message, provider=provider)
        self.revoked = revoked


class IntegrationNotFound(MetrionixError):
    """No active credential exists for the requested (agency, platform, account)."""

    error_type = "integration_not_found"
    http_status = 404


class SyncAlreadyRunning(MetrionixError):
    """Another sync holds the in-progress flag for this integration."""

    error_type = "sync_already_running"
    http_status = 409


class InvalidSyncRequest(MetrionixError):
    """The requested sync window is malformed (e.g. start after end)."""

    error_type = "invalid_sync_request"
    http_status = 400


class ExternalApiError(MetrionixError):
    """
    A platform reporting or ads API call failed during sync.

    ``auth_failure`` marks 401/403/invalid_grant responses: the stored
    credential no longer works and the integration must be reconnected.
    """

    error_type = "external_api_error"
    http_status = 502

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        auth_failure: bool = False,
    ):
        super().__init__(message, provider=provider)
        self.status_code = status_code
        self.auth_failure = auth_failure


class InvalidSignature(MetrionixError):
    """Webhook signature missing, malformed or not matching the shared secret."""

    error_type = "invalid_signature"
    http_status = 401


class InvalidWebhookPayload(MetrionixError):
    """Webhook body is not valid JSON or lacks required fields."""

    error_type = "invalid_webhook_payload"
    http_status = 400


class StorageError(MetrionixError):
    """A database write failed; the transaction was rolled back."""

    error_type = "storage_error"
    http_status = 500
