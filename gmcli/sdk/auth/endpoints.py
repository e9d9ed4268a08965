"""Google OAuth endpoints and the scopes gmcli requests."""

AUTHORIZE_URI = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
REVOKE_URI = "https://oauth2.googleapis.com/revoke"
USERINFO_URI = "https://openidconnect.googleapis.com/v1/userinfo"

SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.send",
    "openid",
    "email",
    "profile",
]

# Seconds allowed for each call to the token/revoke/userinfo endpoints
HTTP_TIMEOUT = 30
