"""gmcli command-line interface."""
