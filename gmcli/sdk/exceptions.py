"""Error taxonomy for the gmcli SDK.

Every error raised by the SDK derives from GmcliError and carries a
``category`` so calling tooling can branch on the failure class:

- ``usage``: the caller asked for something invalid (bad input, missing config)
- ``auth``: the user must (re-)authenticate
- ``transient``: retrying later may succeed
- ``fatal``: local environment problem or unexpected provider response

``step`` names the operation that failed (e.g. ``"token_exchange"``).
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional


USAGE = "usage"
AUTH = "auth"
TRANSIENT = "transient"
FATAL = "fatal"


class GmcliError(Exception):
    """Base class for all gmcli exceptions."""

    category = FATAL

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step

    def __str__(self):
        if self.step:
            return f"{self.step}: {self.message}"
        return self.message


class ConfigError(GmcliError):
    """Missing or invalid profile/configuration field."""
    category = USAGE


class InvalidArgument(GmcliError):
    """A caller-supplied argument is out of range or malformed."""
    category = USAGE


# =============================================================================
# Provider error payloads
# =============================================================================

@dataclass
class ProviderError:
    """A provider-supplied error payload, parsed into a tagged value.

    ``kind`` is ``"oauth"`` for OAuth endpoint errors
    (``{"error": ..., "error_description": ...}``), ``"api"`` for Google API
    envelopes (``{"error": {"code", "message", "status", "errors"}}``) and
    ``"unrecognized"`` for anything else, in which case ``raw`` holds the body.
    """
    kind: str
    message: str
    reason: Optional[str] = None
    raw: Any = field(default=None, repr=False)

    @classmethod
    def parse(cls, body: Any) -> "ProviderError":
        data = body
        if isinstance(body, (bytes, bytearray)):
            body = body.decode("utf-8", errors="replace")
        if isinstance(body, str):
            try:
                data = json.loads(body)
            except ValueError:
                text = body.strip() or "no error details in response body"
                return cls(kind="unrecognized", message=text, raw=body)

        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict):
                reason = None
                for detail in error.get("errors") or []:
                    if isinstance(detail, dict) and detail.get("reason"):
                        reason = detail["reason"]
                        break
                reason = reason or error.get("status")
                message = error.get("message") or reason or "unknown api error"
                return cls(kind="api", message=message, reason=reason, raw=data)
            if isinstance(error, str):
                description = data.get("error_description")
                message = f"{error} ({description})" if description else error
                return cls(kind="oauth", message=message, reason=error, raw=data)

        return cls(kind="unrecognized", message=str(body), raw=body)


# =============================================================================
# Authentication errors
# =============================================================================

class AuthError(GmcliError):
    """Base class for authentication failures."""
    category = AUTH


class BrowserOpenFailed(AuthError):
    """The browser could not be launched. Non-fatal: the URL is still reported."""

    def __init__(self, url: str, message: str = "could not open a browser"):
        super().__init__(message, step="open_browser")
        self.url = url


class ListenerBindFailed(AuthError):
    """The local callback endpoint could not be bound."""
    category = FATAL

    def __init__(self, host: str, port: int, cause: Exception):
        super().__init__(
            f"failed to bind oauth callback listener on {host}:{port}: {cause}",
            step="bind_listener",
        )
        self.host = host
        self.port = port


class CallbackTimeout(AuthError):
    """No callback arrived within the configured window."""

    def __init__(self, timeout: float):
        super().__init__(
            f"timed out after {timeout:g}s waiting for oauth callback",
            step="await_callback",
        )
        self.timeout = timeout


class CallbackRejected(AuthError):
    """The inbound callback request was malformed."""

    def __init__(self, message: str):
        super().__init__(message, step="callback")


class AuthorizationDenied(AuthError):
    """The provider redirected back with an ``error`` parameter."""

    def __init__(self, error: str, description: Optional[str] = None):
        detail = f"{error} ({description})" if description else error
        super().__init__(f"oauth authorization failed: {detail}", step="callback")
        self.error = error
        self.description = description


class StateMismatch(AuthError):
    """The callback's state does not match the in-flight request."""

    def __init__(self):
        super().__init__("oauth state mismatch; aborting login", step="callback")


class TokenExchangeRejected(AuthError):
    """The token endpoint refused the authorization code."""

    def __init__(self, reason: str, status: Optional[int] = None,
                 provider: Optional[ProviderError] = None):
        prefix = f"({status}) " if status else ""
        super().__init__(f"token exchange rejected {prefix}{reason}", step="token_exchange")
        self.reason = reason
        self.status = status
        self.provider = provider


class RefreshRejected(AuthError):
    """The refresh grant is impossible or was refused; re-login required."""

    def __init__(self, reason: str):
        super().__init__(f"{reason}. run `gmcli auth login`", step="token_refresh")
        self.reason = reason


class NotLoggedIn(AuthError):
    """No token record exists for the profile."""

    def __init__(self, profile: str):
        super().__init__(
            f"profile '{profile}' is not logged in. run `gmcli auth login`",
            step="load_token",
        )
        self.profile = profile


# =============================================================================
# API errors
# =============================================================================

class ApiError(GmcliError):
    """A Gmail API call failed with a non-2xx status."""
    category = TRANSIENT

    def __init__(self, message: str, status: Optional[int] = None,
                 reason: Optional[str] = None, payload: Any = None,
                 step: Optional[str] = None):
        super().__init__(message, step=step)
        self.status = status
        self.reason = reason
        self.payload = payload

    @classmethod
    def from_response(cls, status: int, body: Any, step: Optional[str] = None) -> "ApiError":
        """Map an HTTP status and provider body to the matching ApiError subclass."""
        provider = ProviderError.parse(body)
        # Gmail reports per-user rate limits as 403
        if provider.reason in _RATE_LIMIT_REASONS:
            error_cls = RateLimited
        else:
            error_cls = _STATUS_ERRORS.get(status)
        if error_cls is None:
            if 400 <= status < 500:
                error_cls = BadRequest
            elif provider.kind == "unrecognized":
                error_cls = UnknownApiError
            else:
                error_cls = ApiError
        message = f"gmail api request failed ({status}): {provider.message}"
        return error_cls(message, status=status, reason=provider.reason,
                         payload=provider.raw, step=step)


class Unauthorized(ApiError):
    category = AUTH


class Forbidden(ApiError):
    category = AUTH


class NotFound(ApiError):
    category = USAGE


class BadRequest(ApiError):
    """Any other 4xx: the request itself is wrong and retrying will not help."""
    category = USAGE


class RateLimited(ApiError):
    category = TRANSIENT


class Transport(ApiError):
    """The request never produced an HTTP response."""
    category = TRANSIENT


class Malformed(ApiError):
    """The response could not be interpreted."""
    category = FATAL


class UnknownApiError(ApiError):
    """Fallback for responses whose payload was not recognized."""
    category = TRANSIENT


_STATUS_ERRORS = {
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    429: RateLimited,
}

_RATE_LIMIT_REASONS = ("rateLimitExceeded", "userRateLimitExceeded")


# =============================================================================
# Composition errors
# =============================================================================

class ComposeError(GmcliError):
    """Outgoing message could not be built."""
    category = USAGE


class InvalidAttachmentPath(ComposeError):
    def __init__(self, path, cause: Optional[Exception] = None):
        detail = f": {cause}" if cause else ""
        super().__init__(f"invalid attachment path {path}{detail}", step="compose")
        self.path = path


class UnsupportedEncoding(ComposeError):
    def __init__(self, message: str):
        super().__init__(message, step="compose")


class MissingRecipient(ComposeError):
    def __init__(self, message: str = "no recipient given; pass --to"):
        super().__init__(message, step="compose")
