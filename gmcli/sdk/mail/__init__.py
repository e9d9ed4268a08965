"""Gmail operations and message composition for the gmcli SDK.

Example usage:
    from gmcli.sdk.mail import GmailClient, MessageComposer, OutgoingMessage

    client = GmailClient(token_store, profile)
    for summary in client.list(query="from:someone@example.com", limit=5):
        print(summary["subject"])

    raw = MessageComposer("me@example.com", "Me").compose(
        OutgoingMessage(to=["you@example.com"], subject="Hi", body_markdown="**hello**")
    )
    client.send(raw)
"""

from .client import GmailClient, Labels, get_gmail_service
from .compose import MessageComposer, merge_references, render_markdown
from .models import Attachment, OutgoingMessage, ThreadContext, reply_recipient, reply_subject

__all__ = [
    "GmailClient",
    "Labels",
    "get_gmail_service",
    "MessageComposer",
    "merge_references",
    "render_markdown",
    "Attachment",
    "OutgoingMessage",
    "ThreadContext",
    "reply_recipient",
    "reply_subject",
]
