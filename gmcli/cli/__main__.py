"""gmcli CLI - command-line Gmail client."""

import logging
import os
from pathlib import Path

import click
from click_option_group import optgroup, MutuallyExclusiveOptionGroup
from dotenv import load_dotenv

from gmcli import __version__
from gmcli.sdk.mail import Attachment, OutgoingMessage, ThreadContext, reply_recipient, reply_subject
from gmcli.sdk.exceptions import InvalidArgument, UnsupportedEncoding

from .auth_commands import auth as auth_module
from .decorators import with_app_context
from .label_commands import label as label_module
from .output import emit, format_message, format_message_list
from .profiles_commands import profiles as profiles_module


# Configure logging at the application level
if not logging.root.handlers:
    LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.WARNING),
                        format='%(asctime)s - %(levelname)s - %(message)s')
# Suppress noisy INFO logs from googleapiclient
logging.getLogger('googleapiclient.discovery').setLevel(logging.WARNING)
logging.getLogger('googleapiclient.discovery_cache').setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


@click.group()
@click.option('--profile', 'profile_name', envvar='GMCLI_PROFILE', default=None,
              help='Profile to use (defaults to the active profile, then "default").')
@click.option('--json', 'json_output', is_flag=True, help='Print results as JSON.')
@click.option('-v', '--verbose', count=True, help='Increase log verbosity (-v info, -vv debug).')
@click.version_option(__version__, prog_name='gmcli')
@click.pass_context
def gmcli(ctx, profile_name, json_output, verbose):
    """gmcli - a command-line Gmail client.

    Log in once with `gmcli auth login`, then list, read, send and label mail.
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG if verbose > 1 else logging.INFO)
    ctx.obj = {"profile": profile_name, "json": json_output, "verbose": verbose}


@gmcli.command("list")
@click.option('--limit', '-n', type=int, default=10, show_default=True,
              help='Maximum number of messages to list.')
@click.option('--inbox', is_flag=True, help='Only list messages in the inbox.')
@click.option('--query', '-q', default=None, help='Gmail search query, e.g. "from:someone@example.com".')
@with_app_context
def list_cmd(app, limit, inbox, query):
    """List recent messages."""
    messages = app.client.list(query=query, limit=limit, inbox=inbox)
    logger.info(f"Listed {len(messages)} messages")
    emit(messages, app.json_output, format_message_list(messages))


@gmcli.command("get")
@click.argument('message_id')
@with_app_context
def get_cmd(app, message_id):
    """Show a message with its body and attachment list."""
    message = app.client.get(message_id)
    emit(message, app.json_output, format_message(message))


def _read_body(body, body_file, from_stdin) -> str:
    if body is not None:
        return body
    if body_file is not None:
        try:
            return Path(body_file).read_text(encoding='utf-8')
        except UnicodeDecodeError as e:
            raise UnsupportedEncoding(f"body file {body_file} is not valid UTF-8: {e}") from e
    if from_stdin:
        return click.get_text_stream('stdin').read()
    raise click.UsageError("missing body source; pass one of --body, --body-file or --stdin")


@gmcli.command("send")
@click.option('--to', 'to', multiple=True, help='Recipient (repeatable).')
@click.option('--cc', multiple=True, help='Cc recipient (repeatable).')
@click.option('--bcc', multiple=True, help='Bcc recipient (repeatable).')
@click.option('--subject', '-s', default=None, help='Subject line (defaults to "Re: <parent>" for replies).')
@optgroup.group('Body source', cls=MutuallyExclusiveOptionGroup)
@optgroup.option('--body', default=None, help='Markdown body text.')
@optgroup.option('--body-file', type=click.Path(exists=True, dir_okay=False), help='Read the markdown body from a file.')
@optgroup.option('--stdin', 'from_stdin', is_flag=True, help='Read the markdown body from stdin.')
@click.option('--reply', 'reply_id', default=None, help='Message id to reply to (threads the message).')
@click.option('--attach', multiple=True, type=click.Path(), help='File to attach (repeatable).')
@with_app_context
def send_cmd(app, to, cc, bcc, subject, body, body_file, from_stdin, reply_id, attach):
    """Send a message with a markdown body.

    The body is sent as plain text (the markdown source) with an HTML
    rendering as the alternative.
    """
    body_markdown = _read_body(body, body_file, from_stdin)
    attachments = [Attachment.from_path(path) for path in attach]
    recipients = list(to)

    context = None
    if reply_id:
        parent = app.client.summary(reply_id)
        context = ThreadContext.from_message(parent)
        if not recipients:
            recipient = reply_recipient(parent)
            if not recipient:
                raise InvalidArgument("unable to infer reply recipient; pass --to explicitly", step="compose")
            recipients.append(recipient)
        subject = reply_subject(subject or parent.get("subject"))
    else:
        if not recipients:
            raise InvalidArgument("--to is required unless --reply is used", step="compose")
        if subject is None:
            raise InvalidArgument("--subject is required unless --reply is used", step="compose")

    message = OutgoingMessage(
        to=recipients,
        subject=subject,
        body_markdown=body_markdown,
        attachments=attachments,
        reply_to=context,
        cc=list(cc),
        bcc=list(bcc),
    )
    raw = app.composer().compose(message)
    result = app.client.send(raw, thread_id=context.thread_id if context else None)
    emit(result, app.json_output, f"sent message {result['id']}")


gmcli.add_command(auth_module, name='auth')
gmcli.add_command(label_module, name='label')
gmcli.add_command(profiles_module, name='profiles')


def main():
    """Entry point for the CLI."""
    load_dotenv()
    gmcli()


if __name__ == "__main__":
    main()
