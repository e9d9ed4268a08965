"""Token records and their per-profile persistence.

The TokenStore is the only component that reads or writes token files, and
the only way callers obtain an access token: ``access_token()`` checks the
expiry and refreshes through the token endpoint when needed.
"""

import os
import json
import time
import calendar
import logging
from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import requests
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from ..config import write_json_atomic
from ..exceptions import ConfigError, NotLoggedIn, ProviderError, RefreshRejected, Transport
from ..profiles import OAuthProfile, get_tokens_dir
from .endpoints import TOKEN_URI

logger = logging.getLogger(__name__)

EXPIRY_SKEW_SECONDS = 60
DEFAULT_EXPIRES_IN = 3600

# OAuth error codes for a token endpoint that is down rather than refusing the grant
UNAVAILABLE_ERRORS = ("temporarily_unavailable", "server_error")

ProfileRef = Union[OAuthProfile, str]


@dataclass(frozen=True)
class TokenRecord:
    """
    OAuth tokens for one profile.

    Attributes:
        access_token: Short-lived bearer credential
        refresh_token: Long-lived credential for the refresh grant (may be None)
        expiry: Absolute expiry as epoch seconds (None means unknown)
        scope: Space-separated granted scopes
        token_type: Usually "Bearer"
        email, name: Identity captured from userinfo at login
    """
    access_token: str
    refresh_token: Optional[str] = None
    expiry: Optional[float] = None
    scope: str = ""
    token_type: str = "Bearer"
    email: Optional[str] = None
    name: Optional[str] = None

    def is_expired(self, now: Optional[float] = None, skew: float = EXPIRY_SKEW_SECONDS) -> bool:
        """True unless ``expiry > now + skew``. A record without expiry counts as expired."""
        if self.expiry is None:
            return True
        now = time.time() if now is None else now
        return self.expiry <= now + skew

    def expires_in(self, now: Optional[float] = None) -> Optional[int]:
        if self.expiry is None:
            return None
        now = time.time() if now is None else now
        return int(self.expiry - now)

    @property
    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    @classmethod
    def from_token_response(cls, payload: Dict[str, Any], now: Optional[float] = None,
                            previous: Optional["TokenRecord"] = None) -> "TokenRecord":
        """
        Build a record from a token endpoint response.

        If the provider omits refresh_token/scope, the values from ``previous``
        are kept.
        """
        now = time.time() if now is None else now
        expires_in = payload.get("expires_in")
        expires_in = DEFAULT_EXPIRES_IN if expires_in is None else int(expires_in)
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or (previous.refresh_token if previous else None),
            expiry=now + expires_in,
            scope=payload.get("scope") or (previous.scope if previous else ""),
            token_type=payload.get("token_type") or "Bearer",
            email=previous.email if previous else None,
            name=previous.name if previous else None,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenRecord":
        if not data.get("access_token"):
            raise ValueError("token record has no access_token")
        expiry = data.get("expiry")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expiry=float(expiry) if expiry is not None else None,
            scope=data.get("scope") or "",
            token_type=data.get("token_type") or "Bearer",
            email=data.get("email"),
            name=data.get("name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.expiry is not None:
            data["expiry"] = int(self.expiry)
        return data


def _profile_name(profile: ProfileRef) -> str:
    return profile.name if isinstance(profile, OAuthProfile) else profile


def _refresh_is_retryable(error: RefreshError) -> bool:
    """True when google-auth gave up on a token endpoint outage (5xx or 429)."""
    if getattr(error, "retryable", False):
        return True
    if len(error.args) > 1:
        return ProviderError.parse(error.args[1]).reason in UNAVAILABLE_ERRORS
    return False


def _epoch(dt) -> float:
    """Convert google-auth's UTC expiry datetime to epoch seconds."""
    return float(calendar.timegm(dt.utctimetuple()))


class TokenStore:
    """
    Persists TokenRecords per profile and hands out valid access tokens.

    Args:
        session: requests.Session used for the refresh grant
        tokens_dir: Directory holding ``<profile>.json`` files
        token_uri: Token endpoint
        skew: Seconds before expiry at which a token is treated as expired
        clock: Returns the current epoch time (injectable for tests)
    """

    def __init__(self, session: Optional[requests.Session] = None,
                 tokens_dir: Optional[Path] = None,
                 token_uri: str = TOKEN_URI,
                 skew: float = EXPIRY_SKEW_SECONDS,
                 clock: Callable[[], float] = time.time):
        self.session = session or requests.Session()
        self._tokens_dir = Path(tokens_dir) if tokens_dir else None
        self.token_uri = token_uri
        self.skew = skew
        self.clock = clock

    def path_for(self, profile: ProfileRef) -> Path:
        directory = self._tokens_dir or get_tokens_dir()
        return directory / f"{_profile_name(profile)}.json"

    def get(self, profile: ProfileRef) -> Optional[TokenRecord]:
        """Load the persisted record, or None if absent."""
        path = self.path_for(profile)
        if not path.exists():
            return None
        try:
            with open(path, 'r') as f:
                return TokenRecord.from_dict(json.load(f))
        except ValueError as e:
            raise ConfigError(
                f"token file corrupted: {path}: {e}. run `gmcli auth login`",
                step="load_token",
            ) from e

    def put(self, profile: ProfileRef, record: TokenRecord):
        """Persist a record, replacing any previous one atomically."""
        path = self.path_for(profile)
        write_json_atomic(path, record.to_dict())
        logger.debug(f"Token record saved for profile '{_profile_name(profile)}'")

    def clear(self, profile: ProfileRef) -> bool:
        """Delete the persisted record. Returns True if one existed."""
        path = self.path_for(profile)
        if not path.exists():
            return False
        os.remove(path)
        logger.info(f"Removed token record for profile '{_profile_name(profile)}'")
        return True

    def access_token(self, profile: OAuthProfile, force_refresh: bool = False) -> str:
        """
        Return a valid access token, refreshing it first if it is near expiry.

        Args:
            profile: Profile whose client credentials are used for the refresh
            force_refresh: Refresh even if the stored token looks valid
                (used after the API answered 401)

        Raises:
            NotLoggedIn: no record exists
            RefreshRejected: refresh impossible or refused; re-login required
            Transport: token endpoint unreachable or temporarily down
        """
        record = self.get(profile)
        if record is None:
            raise NotLoggedIn(_profile_name(profile))
        if not force_refresh and not record.is_expired(self.clock(), self.skew):
            return record.access_token
        return self.refresh(profile, record).access_token

    def refresh(self, profile: OAuthProfile, record: Optional[TokenRecord] = None) -> TokenRecord:
        """
        Run the refresh-token grant and replace the stored record.

        The stored record is only touched after the provider returned a new
        access token.
        """
        record = record or self.get(profile)
        if record is None:
            raise NotLoggedIn(_profile_name(profile))
        if not record.refresh_token:
            raise RefreshRejected("access token expired and no refresh token is stored")
        profile.validate()

        logger.debug(f"Refreshing access token for profile '{profile.name}'")
        creds = Credentials(
            token=record.access_token,
            refresh_token=record.refresh_token,
            token_uri=self.token_uri,
            client_id=profile.client_id,
            client_secret=profile.client_secret,
        )
        try:
            creds.refresh(Request(session=self.session))
        except RefreshError as e:
            reason = e.args[0] if e.args else str(e)
            if _refresh_is_retryable(e):
                raise Transport(f"token endpoint unavailable: {reason}", step="token_refresh") from e
            raise RefreshRejected(f"refresh grant rejected: {reason}") from e
        except TransportError as e:
            raise Transport(f"token endpoint unreachable: {e}", step="token_refresh") from e

        now = self.clock()
        expiry = _epoch(creds.expiry) if creds.expiry else now + DEFAULT_EXPIRES_IN
        refreshed = replace(
            record,
            access_token=creds.token,
            refresh_token=creds.refresh_token or record.refresh_token,
            expiry=expiry,
        )
        self.put(profile, refreshed)
        logger.info(f"Access token refreshed for profile '{profile.name}'")
        return refreshed
