"""CLI commands for profile management."""

from dataclasses import replace

import click

from gmcli.sdk.config import get_config_file_path
from gmcli.sdk.profiles import (
    get_profile_settings_path,
    list_profiles,
    load_profile,
    redirect_host_port,
    resolve_profile_name,
    save_profile,
    set_active_profile,
)

from .decorators import handle_errors
from .output import emit


def _mask(secret):
    if not secret:
        return None
    return f"{secret[:4]}..." if len(secret) > 8 else "***"


def _root_options() -> dict:
    return click.get_current_context().find_root().obj or {}


@click.group()
def profiles():
    """Manage OAuth client settings for multiple Google identities."""
    pass


@profiles.command("show")
@handle_errors
def show_cmd():
    """Show the current profile's settings and all known profiles."""
    options = _root_options()
    name = resolve_profile_name(options.get("profile"))
    profile = load_profile(name)
    data = {
        "profile": name,
        "settings_file": str(get_profile_settings_path(name)),
        "config_file": str(get_config_file_path()),
        "client_id": profile.client_id,
        "client_secret": _mask(profile.client_secret),
        "redirect_uri": profile.redirect_uri,
        "sender_name": profile.sender_name,
        "profiles": list_profiles(),
    }

    lines = [f"profile: {name}"]
    for key in ("client_id", "client_secret", "redirect_uri", "sender_name"):
        lines.append(f"  {key}: {data[key] or '-'}")
    lines.append(f"  settings: {data['settings_file']}")
    if data["profiles"]:
        lines.append("")
        for p in data["profiles"]:
            marker = "*" if p["is_active"] else " "
            state = "logged in" if p["logged_in"] else "not logged in"
            lines.append(f"{marker} {p['name']:<16} {state}")
    emit(data, options.get("json", False), "\n".join(lines))


@profiles.command("set")
@click.option('--client-id', default=None, help='OAuth client id.')
@click.option('--client-secret', default=None, help='OAuth client secret.')
@click.option('--redirect-uri', default=None, help='Loopback redirect URI, e.g. http://127.0.0.1:8787/callback.')
@click.option('--sender-name', default=None, help='Display name used in the From header.')
@handle_errors
def set_cmd(client_id, client_secret, redirect_uri, sender_name):
    """Update settings of the current profile (only the given fields change)."""
    options = _root_options()
    name = resolve_profile_name(options.get("profile"))
    changes = {
        key: value
        for key, value in (
            ("client_id", client_id),
            ("client_secret", client_secret),
            ("redirect_uri", redirect_uri),
            ("sender_name", sender_name),
        )
        if value is not None
    }
    if not changes:
        raise click.UsageError("Nothing to set. Pass at least one option.")

    profile = replace(load_profile(name), **changes)
    if redirect_uri is not None:
        redirect_host_port(profile.redirect_uri)
    save_profile(profile)
    emit({"profile": name, "updated": sorted(changes)}, options.get("json", False),
         f"Updated profile '{name}': {', '.join(sorted(changes))}")


@profiles.command("use")
@click.argument('name')
@handle_errors
def use_cmd(name):
    """Make NAME the active profile."""
    set_active_profile(name)
    emit({"active_profile": name}, _root_options().get("json", False), f"Active profile: {name}")
