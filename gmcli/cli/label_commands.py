"""CLI commands for Gmail labels."""

import click

from .decorators import with_app_context
from .output import emit, format_labels


@click.group()
def label():
    """List labels or change the labels of a message."""
    pass


@label.command("ls")
@with_app_context
def ls_cmd(app):
    """List all labels."""
    labels = app.client.labels.list()
    emit(labels, app.json_output, format_labels(labels))


@label.command("add")
@click.argument('message_id')
@click.argument('labels', nargs=-1, required=True)
@with_app_context
def add_cmd(app, message_id, labels):
    """Add LABELS (names or ids) to a message."""
    result = app.client.labels.add(message_id, labels)
    emit(result, app.json_output, f"labels added on {result['id']}")


@label.command("rm")
@click.argument('message_id')
@click.argument('labels', nargs=-1, required=True)
@with_app_context
def rm_cmd(app, message_id, labels):
    """Remove LABELS (names or ids) from a message."""
    result = app.client.labels.remove(message_id, labels)
    emit(result, app.json_output, f"labels removed on {result['id']}")
