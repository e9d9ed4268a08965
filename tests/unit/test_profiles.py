"""Unit tests for profile settings and config resolution."""

import os
import stat

import pytest

from gmcli.sdk.exceptions import ConfigError
from gmcli.sdk.profiles import (
    DEFAULT_REDIRECT_URI,
    OAuthProfile,
    get_profile_settings_path,
    list_profiles,
    load_profile,
    redirect_host_port,
    resolve_profile_name,
    save_profile,
    set_active_profile,
)


def test_missing_settings_yield_empty_profile(isolated_config):
    profile = load_profile("default")
    assert profile.client_id is None
    assert profile.redirect_uri == DEFAULT_REDIRECT_URI


def test_save_and_load(isolated_config):
    save_profile(OAuthProfile(name="work", client_id="X", client_secret="Y", sender_name="Me"))

    profile = load_profile("work")
    assert (profile.client_id, profile.client_secret, profile.sender_name) == ("X", "Y", "Me")
    mode = stat.S_IMODE(os.stat(get_profile_settings_path("work")).st_mode)
    assert mode == 0o600


def test_corrupt_settings_file(isolated_config):
    isolated_config["profiles_dir"].mkdir()
    (isolated_config["profiles_dir"] / "default.json").write_text("{oops")

    with pytest.raises(ConfigError, match="not valid JSON"):
        load_profile("default")


def test_validate_names_missing_fields():
    with pytest.raises(ConfigError, match="client_id and client_secret"):
        OAuthProfile(name="default").validate()


def test_validate_checks_redirect_uri():
    profile = OAuthProfile(name="default", client_id="X", client_secret="Y",
                           redirect_uri="https://127.0.0.1/callback")
    with pytest.raises(ConfigError, match="must use http"):
        profile.validate()


@pytest.mark.parametrize("uri,expected", [
    ("http://127.0.0.1:8787/callback", ("127.0.0.1", 8787, "/callback")),
    ("http://localhost/", ("localhost", 80, "/")),
    ("http://localhost:9000", ("localhost", 9000, "/")),
])
def test_redirect_host_port(uri, expected):
    assert redirect_host_port(uri) == expected


def test_redirect_with_bad_port():
    with pytest.raises(ConfigError, match="invalid port"):
        redirect_host_port("http://127.0.0.1:notaport/callback")


def test_resolve_profile_name_order(isolated_config):
    assert resolve_profile_name() == "default"
    set_active_profile("work")
    assert resolve_profile_name() == "work"
    assert resolve_profile_name("personal") == "personal"


def test_list_profiles(isolated_config):
    isolated_config["create_profile"]("alpha")
    isolated_config["create_token"]("beta")
    set_active_profile("alpha")

    profiles = {p["name"]: p for p in list_profiles()}
    assert set(profiles) == {"alpha", "beta"}
    assert profiles["alpha"]["is_active"] is True
    assert profiles["alpha"]["logged_in"] is False
    assert profiles["beta"]["has_settings"] is False
    assert profiles["beta"]["logged_in"] is True
