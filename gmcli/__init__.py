"""gmcli - command-line Gmail client.

Namespace package containing:
- gmcli.sdk: OAuth flow, token store, Gmail client and message composer
- gmcli.cli: Command-line interface
"""

__version__ = "0.1.0"
