"""Profile management for multi-identity support.

A profile is a named set of OAuth client settings stored as JSON at
``<config>/profiles/<name>.json``. Its token record lives separately under
``<config>/tokens/<name>.json`` and is owned by the token store.
"""

import re
import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, List, Dict, Any
from urllib.parse import urlsplit

from .config import get_config_dir, get_config_value, set_config_value, write_json_atomic
from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "default"
DEFAULT_REDIRECT_URI = "http://127.0.0.1:8787/callback"

# Valid profile name pattern: alphanumeric, hyphen, underscore, 1-32 chars
PROFILE_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9_-]{0,31}$')


@dataclass(frozen=True)
class OAuthProfile:
    """OAuth client settings for one profile. Immutable per login attempt."""
    name: str
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: str = DEFAULT_REDIRECT_URI
    sender_name: Optional[str] = None

    def validate(self) -> "OAuthProfile":
        """Raise ConfigError if a field required for login is missing or invalid."""
        missing = [f for f in ("client_id", "client_secret") if not (getattr(self, f) or "").strip()]
        if missing:
            raise ConfigError(
                f"missing oauth {' and '.join(missing)} for profile '{self.name}'. "
                f"run `gmcli profiles set` or edit {get_profile_settings_path(self.name)}",
                step="load_profile",
            )
        redirect_host_port(self.redirect_uri)
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("name")
        return {k: v for k, v in data.items() if v is not None}


def redirect_host_port(redirect_uri: str):
    """
    Split a loopback redirect URI into (host, port, path).

    Raises:
        ConfigError: if the URI is not plain http or lacks a host
    """
    parts = urlsplit(redirect_uri)
    if parts.scheme != "http":
        raise ConfigError(
            f"redirect_uri must use http for local callback capture: {redirect_uri}",
            step="load_profile",
        )
    if not parts.hostname:
        raise ConfigError(f"redirect_uri is missing host: {redirect_uri}", step="load_profile")
    try:
        port = parts.port or 80
    except ValueError as e:
        raise ConfigError(f"redirect_uri has an invalid port: {redirect_uri}", step="load_profile") from e
    return parts.hostname, port, parts.path or "/"


def resolve_profile_name(requested: Optional[str] = None) -> str:
    """
    Resolve which profile a command should use.

    Order: explicit name, then the active profile from config.yaml, then "default".
    """
    if requested and requested.strip():
        name = requested.strip()
    else:
        name = get_active_profile_name() or DEFAULT_PROFILE_NAME
    if not is_valid_profile_name(name):
        raise ConfigError(f"invalid profile name: {name!r}", step="resolve_profile")
    return name


def is_valid_profile_name(name: str) -> bool:
    """Check if a profile name is valid."""
    return bool(PROFILE_NAME_PATTERN.match(name))


def get_profiles_dir() -> Path:
    """Get the profiles directory path."""
    return get_config_dir() / "profiles"


def get_tokens_dir() -> Path:
    """Get the token records directory path."""
    return get_config_dir() / "tokens"


def get_profile_settings_path(name: str) -> Path:
    """Get the settings file path for a specific profile."""
    return get_profiles_dir() / f"{name}.json"


def get_profile_token_path(name: str) -> Path:
    """Get the token file path for a specific profile."""
    return get_tokens_dir() / f"{name}.json"


def load_profile(name: str) -> OAuthProfile:
    """
    Load profile settings from disk.

    A missing settings file yields an empty profile (validate() reports what
    is missing when a login is attempted).
    """
    path = get_profile_settings_path(name)
    if not path.exists():
        logger.debug(f"No settings file for profile '{name}' at {path}")
        return OAuthProfile(name=name)

    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except ValueError as e:
        raise ConfigError(f"profile settings file is not valid JSON: {path}: {e}",
                          step="load_profile") from e
    if not isinstance(data, dict):
        raise ConfigError(f"profile settings must be a JSON object: {path}", step="load_profile")

    return OAuthProfile(
        name=name,
        client_id=data.get("client_id"),
        client_secret=data.get("client_secret"),
        redirect_uri=data.get("redirect_uri") or DEFAULT_REDIRECT_URI,
        sender_name=data.get("sender_name"),
    )


def save_profile(profile: OAuthProfile):
    """Persist profile settings (atomic write, mode 0600)."""
    if not is_valid_profile_name(profile.name):
        raise ConfigError(f"invalid profile name: {profile.name!r}", step="save_profile")
    write_json_atomic(get_profile_settings_path(profile.name), profile.to_dict())
    logger.info(f"Saved settings for profile '{profile.name}'")


def list_profiles() -> List[Dict[str, Any]]:
    """
    List all profiles that have settings or a token record.

    Returns a list of dicts with:
        - name: profile name
        - is_active: True if this is the currently active profile
        - has_settings: True if a settings file exists
        - logged_in: True if a token record exists
    """
    names = set()
    for directory in (get_profiles_dir(), get_tokens_dir()):
        if directory.exists():
            for entry in directory.glob("*.json"):
                if is_valid_profile_name(entry.stem):
                    names.add(entry.stem)

    active = get_active_profile_name()
    return [
        {
            "name": name,
            "is_active": name == active,
            "has_settings": get_profile_settings_path(name).exists(),
            "logged_in": get_profile_token_path(name).exists(),
        }
        for name in sorted(names)
    ]


def get_active_profile_name() -> Optional[str]:
    """
    Get the name of the currently active profile.

    Returns None if no profile is configured.
    """
    return get_config_value("active_profile")


def set_active_profile(name: str):
    """Set the active profile."""
    if not is_valid_profile_name(name):
        raise ConfigError(f"invalid profile name: {name!r}", step="set_active_profile")
    set_config_value("active_profile", name)
