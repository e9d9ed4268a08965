"""
Fixtures for gmcli integration tests.

These tests drive the installed CLI against a real mailbox. They need a
profile that has completed `gmcli auth login`; otherwise the whole module
is skipped. Settings come from environment variables:

- GMCLI_TEST_PROFILE: profile to use (default: the active profile)
- GMCLI_TEST_QUERY: search query expected to match some mail (default: "in:inbox")
- GMCLI_TEST_SEND_TO: if set, send tests mail this address
"""

import json
import os
import subprocess
import sys
from typing import Any, Dict, List

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


@pytest.fixture(scope="session")
def cli_runner():
    """
    Factory fixture that executes gmcli commands via subprocess with --json.

    Returns dict with:
        - returncode: int (0 for success)
        - stdout: str (raw output)
        - stderr: str (error output)
        - json: parsed stdout, or None if it is not JSON
    """
    profile = os.getenv("GMCLI_TEST_PROFILE")

    def run_command(command_args: List[str]) -> Dict[str, Any]:
        args = [sys.executable, "-m", "gmcli.cli", "--json"]
        if profile:
            args += ["--profile", profile]
        try:
            result = subprocess.run(
                args + command_args,
                capture_output=True,
                text=True,
                timeout=60,
                cwd=PROJECT_ROOT,
            )
        except subprocess.TimeoutExpired:
            return {"returncode": 124, "stdout": "", "stderr": "Command timed out", "json": None}

        json_data = None
        if result.stdout.strip():
            try:
                json_data = json.loads(result.stdout)
            except json.JSONDecodeError:
                json_data = None
        return {
            "returncode": result.returncode,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "json": json_data,
        }

    return run_command


@pytest.fixture(scope="session", autouse=True)
def require_login(cli_runner):
    """Skip integration tests unless the test profile is logged in."""
    result = cli_runner(["auth", "status"])
    if result["returncode"] != 0 or not (result["json"] or {}).get("logged_in"):
        pytest.skip("no logged-in gmcli profile; run `gmcli auth login` to enable integration tests")


@pytest.fixture(scope="session")
def search_query() -> str:
    return os.getenv("GMCLI_TEST_QUERY", "in:inbox")


@pytest.fixture(scope="session")
def test_message_id(cli_runner, search_query) -> str:
    """Id of the newest message matching the test query."""
    result = cli_runner(["list", "--limit", "1", "--query", search_query])
    if result["returncode"] != 0 or not result["json"]:
        pytest.fail(
            f"No message matches {search_query!r}.\n"
            f"Set GMCLI_TEST_QUERY to a query that matches mail in the test mailbox.\n"
            f"Error: {result['stderr']}"
        )
    return result["json"][0]["id"]
