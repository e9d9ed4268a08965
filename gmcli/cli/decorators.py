"""CLI decorators for context setup and error reporting."""

import json
import logging
import sys
from functools import wraps

import click

from gmcli.sdk.context import AppContext
from gmcli.sdk.exceptions import (
    AUTH, FATAL, TRANSIENT, USAGE, GmcliError, NotLoggedIn, RefreshRejected,
)

logger = logging.getLogger(__name__)

EXIT_CODES = {
    USAGE: 2,
    AUTH: 3,
    TRANSIENT: 4,
    FATAL: 1,
}


def show_login_guidance(profile_name: str):
    """Tell the user how to get credentials for a profile."""
    click.echo("\nTo fix:", err=True)
    click.echo(f"  gmcli --profile {profile_name} auth login", err=True)


def report_error(error: GmcliError, json_output: bool = False, profile_name: str = None):
    """Print an SDK error and return the exit code for its category."""
    exit_code = EXIT_CODES.get(error.category, 1)
    if json_output:
        click.echo(json.dumps({
            "error": {
                "category": error.category,
                "step": error.step,
                "message": error.message,
                "type": type(error).__name__,
            }
        }, indent=2))
    else:
        click.secho(f"Error: {error}", fg="red", err=True)
        if isinstance(error, (NotLoggedIn, RefreshRejected)) and profile_name:
            show_login_guidance(profile_name)
    logger.debug(f"{type(error).__name__} (category={error.category}, step={error.step})", exc_info=True)
    return exit_code


def with_app_context(f):
    """
    Build the AppContext from the global options and pass it as the first
    argument. SDK errors are reported and turned into category exit codes.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        options = click.get_current_context().find_root().obj or {}
        json_output = options.get("json", False)
        profile_name = options.get("profile")
        try:
            app = AppContext.bootstrap(
                profile_name=profile_name,
                json_output=json_output,
                verbose=options.get("verbose", 0),
            )
            profile_name = app.profile.name
            return f(app, *args, **kwargs)
        except GmcliError as e:
            sys.exit(report_error(e, json_output, profile_name))
    return decorated_function


def handle_errors(f):
    """Report SDK errors for commands that do not need an AppContext."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        options = click.get_current_context().find_root().obj or {}
        try:
            return f(*args, **kwargs)
        except GmcliError as e:
            sys.exit(report_error(e, options.get("json", False), options.get("profile")))
    return decorated_function
