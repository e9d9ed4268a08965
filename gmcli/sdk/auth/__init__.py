"""OAuth2 authentication for gmcli.

Example usage:
    from gmcli.sdk.auth import AuthFlow, TokenStore
    from gmcli.sdk.profiles import load_profile

    store = TokenStore()
    AuthFlow(store).login(load_profile("default"))
    token = store.access_token(load_profile("default"))
"""

from .callback import CallbackListener, CallbackResult
from .flow import AuthFlow, AuthState, LoginResult, SystemBrowser
from .pkce import PkcePair, generate_pkce_pair, generate_state, s256_challenge
from .tokens import TokenRecord, TokenStore

__all__ = [
    "AuthFlow",
    "AuthState",
    "LoginResult",
    "SystemBrowser",
    "CallbackListener",
    "CallbackResult",
    "PkcePair",
    "generate_pkce_pair",
    "generate_state",
    "s256_challenge",
    "TokenRecord",
    "TokenStore",
]
