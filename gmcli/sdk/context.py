"""Per-invocation application context.

One AppContext is built per command. It carries the resolved profile, its
settings, the token store and the Gmail client so no module needs global
state.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import requests

from .auth import AuthFlow, TokenStore
from .exceptions import NotLoggedIn
from .mail import GmailClient, MessageComposer
from .profiles import OAuthProfile, load_profile, resolve_profile_name

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    profile: OAuthProfile
    token_store: TokenStore
    json_output: bool = False
    verbose: int = 0
    _client: Optional[GmailClient] = field(default=None, repr=False)

    @classmethod
    def bootstrap(cls, profile_name: Optional[str] = None, json_output: bool = False,
                  verbose: int = 0, session: Optional[requests.Session] = None) -> "AppContext":
        """Resolve the profile and load its settings."""
        name = resolve_profile_name(profile_name)
        profile = load_profile(name)
        logger.debug(f"Using profile '{name}'")
        return cls(
            profile=profile,
            token_store=TokenStore(session=session),
            json_output=json_output,
            verbose=verbose,
        )

    @property
    def client(self) -> GmailClient:
        if self._client is None:
            self._client = GmailClient(self.token_store, self.profile)
        return self._client

    def auth_flow(self, **kwargs) -> AuthFlow:
        return AuthFlow(self.token_store, **kwargs)

    def composer(self) -> MessageComposer:
        """
        Composer for the logged-in account.

        The display name is the profile's sender_name, else the name captured
        at login. The address comes from the token record, or from the
        mailbox profile when the record has none.
        """
        record = self.token_store.get(self.profile)
        if record is None:
            raise NotLoggedIn(self.profile.name)
        email = record.email or self.client.get_profile().get("emailAddress")
        return MessageComposer(email or "", self.profile.sender_name or record.name)
