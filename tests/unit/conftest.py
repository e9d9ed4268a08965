"""
Shared fixtures for gmcli unit tests.

Nothing here touches the network or the user's real ~/.config/gmcli:
- isolated_config redirects the config directory to tmp_path
- fake_session provides a fakes.FakeSession for the token/userinfo/revoke endpoints
- free_port finds a loopback port for real callback-listener sockets
"""

import json
import socket
import time

import pytest

from fakes import FakeSession


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """
    Create an isolated config directory with mocked paths.

    Returns a dict with paths and helper functions for setting up test state.
    """
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    profiles_dir = config_dir / "profiles"
    tokens_dir = config_dir / "tokens"
    config_file = config_dir / "config.yaml"

    # Use environment variables to redirect config paths
    monkeypatch.setenv("GMCLI_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("GMCLI_CONFIG_FILE", str(config_file))
    monkeypatch.delenv("GMCLI_PROFILE", raising=False)

    def create_profile(name: str = "default", client_id: str = "X", client_secret: str = "Y",
                       redirect_uri: str = None, sender_name: str = None):
        """Helper to write a profile settings file."""
        profiles_dir.mkdir(exist_ok=True)
        data = {"client_id": client_id, "client_secret": client_secret}
        if redirect_uri:
            data["redirect_uri"] = redirect_uri
        if sender_name:
            data["sender_name"] = sender_name
        with open(profiles_dir / f"{name}.json", "w") as f:
            json.dump(data, f)

    def create_token(name: str = "default", access_token: str = "T1", refresh_token: str = "R1",
                     expires_in: int = 3600, email: str = "me@example.com", token_name: str = "Me"):
        """Helper to write a token record."""
        tokens_dir.mkdir(exist_ok=True)
        record = {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expiry": int(time.time()) + expires_in,
            "scope": "",
            "token_type": "Bearer",
            "email": email,
            "name": token_name,
        }
        with open(tokens_dir / f"{name}.json", "w") as f:
            json.dump(record, f)

    return {
        "config_dir": config_dir,
        "profiles_dir": profiles_dir,
        "tokens_dir": tokens_dir,
        "config_file": config_file,
        "create_profile": create_profile,
        "create_token": create_token,
    }


@pytest.fixture
def free_port():
    """A loopback port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def fake_session():
    return FakeSession()
