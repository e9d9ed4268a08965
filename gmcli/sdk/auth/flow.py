"""OAuth2 authorization-code + PKCE login flow.

The flow walks a fixed sequence of states:

    IDLE -> URL_BUILT -> LISTENER_BOUND -> AWAITING_CALLBACK
         -> CALLBACK_RECEIVED -> EXCHANGING_TOKEN -> AUTHENTICATED

and moves to FAILED from any of them. The callback state is compared with
the in-flight request before any network call; on mismatch the code is
dropped and nothing is persisted.

Example usage:
    store = TokenStore()
    flow = AuthFlow(store)
    result = flow.login(load_profile("default"))
    print(result.email)
"""

import logging
import webbrowser
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import requests

from ..exceptions import (
    ApiError, BrowserOpenFailed, GmcliError, Malformed, StateMismatch,
    TokenExchangeRejected, Transport, ProviderError,
)
from ..profiles import OAuthProfile
from .callback import CallbackListener, DEFAULT_CALLBACK_TIMEOUT
from .endpoints import AUTHORIZE_URI, HTTP_TIMEOUT, REVOKE_URI, SCOPES, TOKEN_URI, USERINFO_URI
from .pkce import PkcePair, generate_pkce_pair, generate_state, state_matches
from .tokens import TokenRecord, TokenStore

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    IDLE = "idle"
    URL_BUILT = "url_built"
    LISTENER_BOUND = "listener_bound"
    AWAITING_CALLBACK = "awaiting_callback"
    CALLBACK_RECEIVED = "callback_received"
    EXCHANGING_TOKEN = "exchanging_token"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass(frozen=True)
class AuthorizationRequest:
    """State for a single login attempt. Discarded when the attempt ends."""
    state: str
    pkce: PkcePair
    redirect_uri: str
    url: str


@dataclass
class LoginResult:
    profile: str
    record: TokenRecord
    authorization_url: str
    opened_browser: bool

    @property
    def email(self) -> Optional[str]:
        return self.record.email

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profile": self.profile,
            "email": self.record.email,
            "opened_browser": self.opened_browser,
            "note": "oauth login completed and token stored",
        }


class SystemBrowser:
    """Opens URLs with the platform's default browser."""

    def open(self, url: str):
        try:
            opened = webbrowser.open(url)
        except webbrowser.Error as e:
            raise BrowserOpenFailed(url, f"could not open a browser: {e}") from e
        if not opened:
            raise BrowserOpenFailed(url)


def _log_authorization_url(url: str, opened: bool):
    if not opened:
        logger.warning(f"Open this URL in your browser to continue login:\n{url}")


class AuthFlow:
    """
    Orchestrates login, status and logout for a profile.

    Args:
        token_store: Destination for the resulting TokenRecord
        session: requests.Session for the token/userinfo/revoke endpoints
            (defaults to the token store's session)
        browser: Object with ``open(url)``; raises BrowserOpenFailed on failure
        timeout: Seconds to wait for the redirect
        on_url: Called with (url, opened_browser) before waiting, so the URL
            reaches the user even when no browser could be opened
    """

    def __init__(self, token_store: TokenStore,
                 session: Optional[requests.Session] = None,
                 browser=None,
                 timeout: float = DEFAULT_CALLBACK_TIMEOUT,
                 scopes: Optional[List[str]] = None,
                 on_url: Callable[[str, bool], None] = _log_authorization_url,
                 authorize_uri: str = AUTHORIZE_URI,
                 token_uri: str = TOKEN_URI,
                 revoke_uri: str = REVOKE_URI,
                 userinfo_uri: str = USERINFO_URI):
        self.token_store = token_store
        self.session = session or token_store.session
        self.browser = browser or SystemBrowser()
        self.timeout = timeout
        self.scopes = list(scopes or SCOPES)
        self.on_url = on_url
        self.authorize_uri = authorize_uri
        self.token_uri = token_uri
        self.revoke_uri = revoke_uri
        self.userinfo_uri = userinfo_uri

        self.state = AuthState.IDLE
        self.failure: Optional[Exception] = None
        self._request: Optional[AuthorizationRequest] = None

    def _transition(self, state: AuthState):
        logger.debug(f"auth flow: {self.state.value} -> {state.value}")
        self.state = state

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    def build_request(self, profile: OAuthProfile) -> AuthorizationRequest:
        """Create a fresh state/PKCE pair and the authorize URL for it."""
        pkce = generate_pkce_pair()
        state = generate_state()
        params = {
            "response_type": "code",
            "client_id": profile.client_id,
            "redirect_uri": profile.redirect_uri,
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
            "code_challenge": pkce.challenge,
            "code_challenge_method": pkce.method,
        }
        url = f"{self.authorize_uri}?{urlencode(params)}"
        self._request = AuthorizationRequest(
            state=state, pkce=pkce, redirect_uri=profile.redirect_uri, url=url,
        )
        self._transition(AuthState.URL_BUILT)
        return self._request

    def login(self, profile: OAuthProfile) -> LoginResult:
        """
        Run the interactive login and persist the resulting token record.

        Raises:
            ConfigError: profile is missing client settings
            AuthError: ListenerBindFailed, CallbackTimeout, StateMismatch,
                AuthorizationDenied, CallbackRejected, TokenExchangeRejected
            ApiError: Transport/Malformed failures talking to the token endpoint
        """
        self.state = AuthState.IDLE
        self.failure = None
        try:
            profile.validate()
            request = self.build_request(profile)

            with CallbackListener(profile.redirect_uri, timeout=self.timeout,
                                  expected_state=request.state) as listener:
                self._transition(AuthState.LISTENER_BOUND)
                opened = self._open_browser(request.url)
                self._transition(AuthState.AWAITING_CALLBACK)
                callback = listener.wait()

            self._transition(AuthState.CALLBACK_RECEIVED)
            if not state_matches(callback.state, request.state):
                raise StateMismatch()

            self._transition(AuthState.EXCHANGING_TOKEN)
            record = self.exchange_code(profile, request, callback.code)
            record = self._with_identity(record)
            self.token_store.put(profile, record)
        except Exception as e:
            self.failure = e
            self._transition(AuthState.FAILED)
            raise
        finally:
            self._request = None

        self._transition(AuthState.AUTHENTICATED)
        logger.info(f"Login completed for profile '{profile.name}'")
        return LoginResult(
            profile=profile.name,
            record=record,
            authorization_url=request.url,
            opened_browser=opened,
        )

    def _open_browser(self, url: str) -> bool:
        try:
            self.browser.open(url)
            opened = True
        except BrowserOpenFailed as e:
            logger.warning(f"{e}")
            opened = False
        self.on_url(url, opened)
        return opened

    def exchange_code(self, profile: OAuthProfile, request: AuthorizationRequest,
                      code: str) -> TokenRecord:
        """POST the code and PKCE verifier to the token endpoint."""
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": profile.client_id,
            "client_secret": profile.client_secret,
            "redirect_uri": request.redirect_uri,
            "code_verifier": request.pkce.verifier,
        }
        logger.debug(f"Exchanging authorization code at {self.token_uri}")
        try:
            response = self.session.post(
                self.token_uri, data=data,
                headers={"Accept": "application/json"}, timeout=HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            raise Transport(f"token endpoint unreachable: {e}", step="token_exchange") from e

        if not 200 <= response.status_code < 300:
            provider = ProviderError.parse(response.content)
            raise TokenExchangeRejected(provider.message, status=response.status_code, provider=provider)

        try:
            payload = response.json()
        except ValueError as e:
            raise Malformed(f"token endpoint returned invalid JSON: {e}",
                            status=response.status_code, step="token_exchange") from e
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise TokenExchangeRejected("token endpoint response has no access_token",
                                        status=response.status_code)
        return TokenRecord.from_token_response(payload, now=self.token_store.clock())

    def _with_identity(self, record: TokenRecord) -> TokenRecord:
        info = self.fetch_userinfo(record.access_token)
        if not info:
            return record
        return TokenRecord(
            access_token=record.access_token,
            refresh_token=record.refresh_token,
            expiry=record.expiry,
            scope=record.scope,
            token_type=record.token_type,
            email=info.get("email"),
            name=info.get("name"),
        )

    def fetch_userinfo(self, access_token: str) -> Dict[str, Any]:
        """Best-effort lookup of the account's email and display name."""
        try:
            response = self.session.get(
                self.userinfo_uri,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=HTTP_TIMEOUT,
            )
            if not 200 <= response.status_code < 300:
                logger.warning(f"userinfo endpoint returned {response.status_code}")
                return {}
            info = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Could not fetch userinfo: {e}")
            return {}
        return info if isinstance(info, dict) else {}

    # -------------------------------------------------------------------------
    # Status / logout
    # -------------------------------------------------------------------------

    def status(self, profile: OAuthProfile) -> Dict[str, Any]:
        """Describe the stored credentials without any network call."""
        record = self.token_store.get(profile)
        if record is None:
            return {
                "profile": profile.name,
                "logged_in": False,
                "note": "no token found",
            }
        now = self.token_store.clock()
        return {
            "profile": profile.name,
            "logged_in": True,
            "email": record.email,
            "expired": record.is_expired(now, skew=0),
            "expires_in_seconds": record.expires_in(now),
            "has_refresh_token": record.has_refresh_token,
        }

    def revoke(self, token: str):
        """Revoke a token at the provider."""
        try:
            response = self.session.post(self.revoke_uri, data={"token": token}, timeout=HTTP_TIMEOUT)
        except requests.RequestException as e:
            raise Transport(f"revoke endpoint unreachable: {e}", step="revoke") from e
        if not 200 <= response.status_code < 300:
            raise ApiError.from_response(response.status_code, response.content, step="revoke")

    def logout(self, profile: OAuthProfile) -> Dict[str, Any]:
        """
        Revoke the stored token (best effort) and delete the local record.

        The local record is removed even if the revoke call fails.
        """
        record = self.token_store.get(profile)
        revoked = None
        if record is None:
            note = "local credentials removed"
        else:
            try:
                self.revoke(record.refresh_token or record.access_token)
                revoked = True
                note = "remote token revoked and local credentials removed"
            except GmcliError as e:
                logger.warning(f"Token revoke failed: {e}")
                revoked = False
                note = f"local credentials removed (revoke failed: {e})"

        self.token_store.clear(profile)
        return {
            "profile": profile.name,
            "logged_in": False,
            "revoked": revoked,
            "note": note,
        }
