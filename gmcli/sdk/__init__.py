"""gmcli SDK - Gmail access with OAuth2 (authorization code + PKCE).

This SDK provides programmatic access to Gmail with multi-profile
authentication support. It is used by the gmcli CLI and can be used by
third-party applications.

Example usage:
    from gmcli.sdk.context import AppContext

    ctx = AppContext.bootstrap()
    for summary in ctx.client.list(limit=5):
        print(summary["subject"])
"""

from . import config
from . import profiles
from . import auth
from . import mail

__all__ = ["config", "profiles", "auth", "mail"]
