"""
Unit tests for the OAuth authorization-code + PKCE login flow.

The callback listener runs on a real loopback port. The browser is replaced
by RedirectingBrowser, which follows the redirect itself, and the token,
userinfo and revoke endpoints are served by a FakeSession. The fake token
endpoint only accepts a code_verifier that hashes to the code_challenge
placed in the authorization URL.
"""

import time

import pytest

from fakes import FakeResponse, FakeTokenEndpoint, RedirectingBrowser
from gmcli.sdk.auth.callback import CallbackListener
from gmcli.sdk.auth.endpoints import REVOKE_URI, TOKEN_URI, USERINFO_URI
from gmcli.sdk.auth.flow import AuthFlow, AuthState
from gmcli.sdk.auth.tokens import TokenRecord, TokenStore
from gmcli.sdk.exceptions import (
    AuthorizationDenied,
    CallbackTimeout,
    ConfigError,
    StateMismatch,
    TokenExchangeRejected,
)
from gmcli.sdk.profiles import OAuthProfile


@pytest.fixture
def profile(free_port):
    return OAuthProfile(
        name="default",
        client_id="X",
        client_secret="Y",
        redirect_uri=f"http://127.0.0.1:{free_port}/callback",
    )


@pytest.fixture
def token_endpoint():
    return FakeTokenEndpoint(code="ABC")


@pytest.fixture
def store(tmp_path, fake_session, token_endpoint):
    fake_session.route(TOKEN_URI, token_endpoint)
    fake_session.route(USERINFO_URI, FakeResponse(200, {"email": "me@example.com", "name": "Me"}))
    return TokenStore(session=fake_session, tokens_dir=tmp_path / "tokens")


def _flow(store, browser, timeout=5, **kwargs):
    return AuthFlow(store, browser=browser, timeout=timeout, on_url=lambda url, opened: None, **kwargs)


class TestLogin:

    def test_end_to_end_login(self, profile, store, fake_session, token_endpoint):
        """
        Browser returns code=ABC with the generated state; the token endpoint
        answers T1/R1/3600. The stored record is then served without any
        further network call.
        """
        browser = RedirectingBrowser(token_endpoint=token_endpoint)
        flow = _flow(store, browser)
        before = time.time()

        result = flow.login(profile)

        assert flow.state == AuthState.AUTHENTICATED
        assert result.record.access_token == "T1"
        assert result.record.refresh_token == "R1"
        assert before + 3600 - 5 <= result.record.expiry <= time.time() + 3600 + 5
        assert result.email == "me@example.com"
        assert result.opened_browser is True

        stored = store.get(profile)
        assert stored.access_token == "T1"
        assert stored.name == "Me"

        calls_before = len(fake_session.calls)
        assert store.access_token(profile) == "T1"
        assert store.access_token(profile) == "T1"
        assert len(fake_session.calls) == calls_before

    def test_authorization_url_parameters(self, profile, store, token_endpoint):
        browser = RedirectingBrowser(token_endpoint=token_endpoint)
        _flow(store, browser).login(profile)

        params = browser.authorization_params()
        assert params["client_id"] == "X"
        assert params["redirect_uri"] == profile.redirect_uri
        assert params["response_type"] == "code"
        assert params["code_challenge_method"] == "S256"
        assert params["access_type"] == "offline"
        assert "https://www.googleapis.com/auth/gmail.modify" in params["scope"].split()
        assert params["state"]
        assert params["code_challenge"]

    def test_token_exchange_sends_pkce_and_client_credentials(self, profile, store, fake_session, token_endpoint):
        browser = RedirectingBrowser(token_endpoint=token_endpoint)
        _flow(store, browser).login(profile)

        exchange = fake_session.calls_to(TOKEN_URI)[0]["form"]
        assert exchange["grant_type"] == "authorization_code"
        assert exchange["code"] == "ABC"
        assert exchange["client_id"] == "X"
        assert exchange["client_secret"] == "Y"
        assert exchange["redirect_uri"] == profile.redirect_uri
        assert 43 <= len(exchange["code_verifier"]) <= 128

    def test_each_attempt_uses_fresh_state(self, profile, store, token_endpoint):
        browser = RedirectingBrowser(token_endpoint=token_endpoint)
        flow = _flow(store, browser)
        flow.login(profile)
        flow.login(profile)

        first, second = browser.authorization_params(0), browser.authorization_params(1)
        assert first["state"] != second["state"]
        assert first["code_challenge"] != second["code_challenge"]

    def test_state_mismatch_persists_nothing(self, profile, store, fake_session, token_endpoint):
        browser = RedirectingBrowser(params={"code": "ABC", "state": "FORGED"}, token_endpoint=token_endpoint)
        flow = _flow(store, browser)

        with pytest.raises(StateMismatch):
            flow.login(profile)

        assert flow.state == AuthState.FAILED
        assert isinstance(flow.failure, StateMismatch)
        assert fake_session.calls_to(TOKEN_URI) == []
        assert store.get(profile) is None

    def test_non_ascii_state_is_a_mismatch(self, profile, store, fake_session, token_endpoint):
        browser = RedirectingBrowser(params={"code": "ABC", "state": "\u00e9"}, token_endpoint=token_endpoint)
        flow = _flow(store, browser)

        with pytest.raises(StateMismatch):
            flow.login(profile)

        browser.outcome["thread"].join(5)
        assert browser.outcome["response"].status_code == 400
        assert flow.state == AuthState.FAILED
        assert fake_session.calls_to(TOKEN_URI) == []
        assert store.get(profile) is None

    def test_unexpected_error_marks_flow_failed(self, profile, store, token_endpoint, monkeypatch):
        def disk_full(*args):
            raise OSError("No space left on device")
        monkeypatch.setattr(store, "put", disk_full)
        flow = _flow(store, RedirectingBrowser(token_endpoint=token_endpoint))

        with pytest.raises(OSError, match="No space left"):
            flow.login(profile)

        assert flow.state == AuthState.FAILED
        assert isinstance(flow.failure, OSError)

    def test_provider_denial_surfaces_error(self, profile, store, fake_session):
        browser = RedirectingBrowser(params={"error": "access_denied", "error_description": "denied"})

        with pytest.raises(AuthorizationDenied, match="access_denied"):
            _flow(store, browser).login(profile)

        assert fake_session.calls_to(TOKEN_URI) == []
        assert store.get(profile) is None

    def test_exchange_rejection_carries_provider_reason(self, profile, store):
        # The endpoint never learns the challenge, so the verifier check fails
        browser = RedirectingBrowser()

        with pytest.raises(TokenExchangeRejected) as exc_info:
            _flow(store, browser).login(profile)

        assert "invalid_grant" in exc_info.value.reason
        assert exc_info.value.status == 400
        assert exc_info.value.provider.kind == "oauth"
        assert exc_info.value.category == "auth"
        assert store.get(profile) is None

    def test_timeout_releases_port(self, profile, store):
        browser = RedirectingBrowser(silent=True)
        flow = _flow(store, browser, timeout=0.2)

        with pytest.raises(CallbackTimeout):
            flow.login(profile)

        assert flow.state == AuthState.FAILED
        with CallbackListener(profile.redirect_uri, timeout=0.1) as listener:
            assert listener.is_bound

    def test_login_after_timeout_succeeds_on_same_port(self, profile, store, token_endpoint):
        with pytest.raises(CallbackTimeout):
            _flow(store, RedirectingBrowser(silent=True), timeout=0.2).login(profile)

        result = _flow(store, RedirectingBrowser(token_endpoint=token_endpoint)).login(profile)
        assert result.record.access_token == "T1"

    def test_browser_failure_is_not_fatal(self, profile, store, token_endpoint):
        """The URL is still reported and a manual visit completes the login."""
        reported = []
        browser = RedirectingBrowser(token_endpoint=token_endpoint, fail=True)
        flow = AuthFlow(store, browser=browser, timeout=5,
                        on_url=lambda url, opened: reported.append((url, opened)))

        result = flow.login(profile)

        assert result.opened_browser is False
        assert reported == [(browser.urls[0], False)]
        assert result.record.access_token == "T1"

    def test_userinfo_failure_is_not_fatal(self, profile, store, fake_session, token_endpoint):
        fake_session.route(USERINFO_URI, FakeResponse(500, {"error": "backend"}))

        result = _flow(store, RedirectingBrowser(token_endpoint=token_endpoint)).login(profile)

        assert result.record.access_token == "T1"
        assert result.email is None

    def test_incomplete_profile_rejected_before_binding(self, store):
        browser = RedirectingBrowser()
        incomplete = OAuthProfile(name="default", client_id="X")

        with pytest.raises(ConfigError, match="client_secret"):
            _flow(store, browser).login(incomplete)

        assert browser.urls == []


class TestStatusAndLogout:

    def _store_record(self, store, profile, refresh_token="R1"):
        store.put(profile, TokenRecord(
            access_token="T1", refresh_token=refresh_token,
            expiry=time.time() + 3600, email="me@example.com",
        ))

    def test_status_without_token(self, profile, store, fake_session):
        status = _flow(store, None).status(profile)
        assert status["logged_in"] is False
        assert fake_session.calls == []

    def test_status_with_token(self, profile, store, fake_session):
        self._store_record(store, profile)
        status = _flow(store, None).status(profile)

        assert status["logged_in"] is True
        assert status["email"] == "me@example.com"
        assert status["expired"] is False
        assert status["has_refresh_token"] is True
        assert fake_session.calls == []

    def test_logout_revokes_refresh_token(self, profile, store, fake_session):
        fake_session.route(REVOKE_URI, FakeResponse(200, {}))
        self._store_record(store, profile)

        result = _flow(store, None).logout(profile)

        assert result["revoked"] is True
        assert fake_session.calls_to(REVOKE_URI)[0]["form"] == {"token": "R1"}
        assert store.get(profile) is None

    def test_logout_falls_back_to_access_token(self, profile, store, fake_session):
        fake_session.route(REVOKE_URI, FakeResponse(200, {}))
        self._store_record(store, profile, refresh_token=None)

        _flow(store, None).logout(profile)

        assert fake_session.calls_to(REVOKE_URI)[0]["form"] == {"token": "T1"}

    def test_logout_clears_record_when_revoke_fails(self, profile, store, fake_session):
        fake_session.route(REVOKE_URI, FakeResponse(400, {"error": "invalid_token"}))
        self._store_record(store, profile)

        result = _flow(store, None).logout(profile)

        assert result["revoked"] is False
        assert "revoke failed" in result["note"]
        assert store.get(profile) is None

    def test_logout_without_record(self, profile, store, fake_session):
        result = _flow(store, None).logout(profile)
        assert result["revoked"] is None
        assert fake_session.calls == []
