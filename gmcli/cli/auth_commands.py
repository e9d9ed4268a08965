"""CLI commands for OAuth login, status and logout."""

import click

from gmcli.sdk.auth.callback import DEFAULT_CALLBACK_TIMEOUT
from gmcli.sdk.exceptions import BrowserOpenFailed

from .decorators import with_app_context
from .output import emit


class _ManualBrowser:
    """Browser stand-in for --no-browser: the URL is only printed."""

    def open(self, url: str):
        raise BrowserOpenFailed(url, "browser launch disabled (--no-browser)")


def _report_url(url: str, opened: bool):
    if opened:
        click.echo("Opened your browser for authorization. Waiting for the redirect...", err=True)
        click.echo(f"If nothing happened, open this URL:\n\n  {url}\n", err=True)
    else:
        click.echo(f"Open this URL in your browser to authorize gmcli:\n\n  {url}\n", err=True)


@click.group()
def auth():
    """Log in to Gmail and manage stored credentials."""
    pass


@auth.command("login")
@click.option('--timeout', type=float, default=DEFAULT_CALLBACK_TIMEOUT, show_default=True,
              help='Seconds to wait for the OAuth redirect.')
@click.option('--no-browser', is_flag=True, help='Print the authorization URL instead of opening a browser.')
@with_app_context
def login_cmd(app, timeout, no_browser):
    """Run the browser-based OAuth login for the current profile."""
    flow = app.auth_flow(
        browser=_ManualBrowser() if no_browser else None,
        timeout=timeout,
        on_url=_report_url,
    )
    result = flow.login(app.profile)
    emit(result.to_dict(), app.json_output,
         f"Logged in as {result.email or '(unknown account)'} (profile: {result.profile})")


@auth.command("status")
@with_app_context
def status_cmd(app):
    """Show whether the current profile has stored credentials."""
    status = app.auth_flow().status(app.profile)
    if not status["logged_in"]:
        text = f"profile '{status['profile']}': not logged in"
    else:
        state = "expired" if status["expired"] else f"valid for {status['expires_in_seconds']}s"
        text = (
            f"profile '{status['profile']}': logged in as {status['email'] or '(unknown account)'}\n"
            f"  access token: {state}\n"
            f"  refresh token: {'yes' if status['has_refresh_token'] else 'no'}"
        )
    emit(status, app.json_output, text)


@auth.command("logout")
@with_app_context
def logout_cmd(app):
    """Revoke and delete the stored credentials of the current profile."""
    result = app.auth_flow().logout(app.profile)
    emit(result, app.json_output, result["note"])
