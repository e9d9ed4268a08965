"""Build outgoing messages as RFC 5322 / MIME bytes.

Layout produced by MessageComposer.compose():

    no attachments:   multipart/alternative (text/plain, text/html)
    with attachments: multipart/mixed
                        multipart/alternative (text/plain, text/html)
                        one base64 part per attachment, in the given order

The plain part is the markdown source; the HTML part is its rendering.
"""

import logging
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, getaddresses, make_msgid
from typing import Iterable, List, Optional, Sequence

import markdown

from ..exceptions import InvalidAttachmentPath, MissingRecipient, UnsupportedEncoding
from .models import Attachment, OutgoingMessage

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ["extra", "sane_lists"]

HTML_TEMPLATE = """<!doctype html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<style>
body {{ margin: 0; color: #202124; font-family: Arial, Helvetica, sans-serif; font-size: 14px; line-height: 1.6; }}
p, ul, ol, pre, blockquote, table {{ margin-top: 0; margin-bottom: 1em; }}
pre {{ background: #f1f3f5; padding: 12px; white-space: pre-wrap; }}
blockquote {{ margin-left: 0; padding-left: 12px; border-left: 3px solid #d0d7de; color: #5f6368; }}
th, td {{ border: 1px solid #d0d7de; padding: 6px 8px; }}
</style>
</head>
<body>
{body}
</body>
</html>
"""


def render_markdown(body_markdown: str) -> str:
    """Render markdown to a complete HTML document."""
    body_html = markdown.markdown(body_markdown or "", extensions=MARKDOWN_EXTENSIONS)
    if not body_html.strip():
        body_html = "<p></p>"
    return HTML_TEMPLATE.format(body=body_html)


def sanitize_header_value(value: Optional[str]) -> str:
    """Strip characters that could break out of a header or a quoted name."""
    if not value:
        return ""
    return value.replace("\r", "").replace("\n", "").replace('"', "").strip()


def merge_references(references: Iterable[str], message_id: str) -> List[str]:
    """Append ``message_id`` to a References chain, keeping order and dropping duplicates."""
    merged = []
    for ref in list(references) + [message_id]:
        for token in (ref or "").split():
            if token not in merged:
                merged.append(token)
    return merged


def format_addresses(values: Sequence[str]) -> str:
    """Format recipients for a header, encoding non-ASCII display names."""
    formatted = []
    for name, addr in getaddresses(list(values)):
        addr = sanitize_header_value(addr)
        if not addr:
            continue
        formatted.append(formataddr((sanitize_header_value(name), addr), charset="utf-8"))
    return ", ".join(formatted)


class MessageComposer:
    """
    Turns an OutgoingMessage into raw message bytes for GmailClient.send().

    Args:
        sender_email: Authenticated account address
        sender_name: Display name for the From header (optional)
    """

    def __init__(self, sender_email: str, sender_name: Optional[str] = None):
        self.sender_email = sanitize_header_value(sender_email)
        self.sender_name = sanitize_header_value(sender_name)

    @property
    def from_header(self) -> str:
        if self.sender_name:
            return formataddr((self.sender_name, self.sender_email), charset="utf-8")
        return self.sender_email

    def compose(self, message: OutgoingMessage) -> bytes:
        """
        Build the message bytes.

        Raises:
            MissingRecipient: no To address
            InvalidAttachmentPath: an attachment cannot be read
            UnsupportedEncoding: the text cannot be encoded as UTF-8
        """
        to = format_addresses(message.to)
        if not to:
            raise MissingRecipient()

        try:
            body = self._alternative_part(message.body_markdown)
            if message.attachments:
                root = MIMEMultipart("mixed")
                root.attach(body)
                for attachment in message.attachments:
                    root.attach(self._attachment_part(attachment))
            else:
                root = body

            if self.sender_email:
                root["From"] = self.from_header
            root["To"] = to
            if message.cc:
                root["Cc"] = format_addresses(message.cc)
            if message.bcc:
                root["Bcc"] = format_addresses(message.bcc)
            root["Subject"] = (message.subject or "").replace("\r", " ").replace("\n", " ")
            root["Date"] = formatdate(localtime=True)
            root["Message-ID"] = make_msgid(domain=self._msgid_domain())

            if message.reply_to is not None:
                context = message.reply_to
                root["In-Reply-To"] = context.message_id
                root["References"] = " ".join(merge_references(context.references, context.message_id))

            raw = root.as_bytes()
        except UnicodeError as e:
            raise UnsupportedEncoding(f"message text cannot be encoded: {e}") from e

        logger.debug(f"Composed message: {len(raw)} bytes, {len(message.attachments)} attachment(s)")
        return raw

    def _msgid_domain(self) -> Optional[str]:
        if "@" in self.sender_email:
            return self.sender_email.rsplit("@", 1)[1]
        return None

    def _alternative_part(self, body_markdown: str) -> MIMEMultipart:
        alternative = MIMEMultipart("alternative")
        alternative.attach(MIMEText(body_markdown or "", "plain", "utf-8"))
        alternative.attach(MIMEText(render_markdown(body_markdown), "html", "utf-8"))
        return alternative

    def _attachment_part(self, attachment: Attachment) -> MIMEBase:
        try:
            data = attachment.path.read_bytes()
        except OSError as e:
            raise InvalidAttachmentPath(attachment.path, e) from e

        maintype, _, subtype = attachment.content_type.partition("/")
        part = MIMEBase(maintype, subtype or "octet-stream")
        part.set_payload(data)
        encoders.encode_base64(part)

        filename = sanitize_header_value(attachment.filename)
        if not filename.isascii():
            filename = ("utf-8", "", filename)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        return part
