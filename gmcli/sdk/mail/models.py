"""Value types for outgoing mail and reply threading."""

import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import ComposeError, InvalidAttachmentPath

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class Attachment:
    """A file to attach, with its content type inferred from the extension."""
    path: Path
    content_type: str = DEFAULT_CONTENT_TYPE

    @classmethod
    def from_path(cls, path) -> "Attachment":
        path = Path(path).expanduser()
        if not path.is_file():
            raise InvalidAttachmentPath(path, FileNotFoundError("no such file"))
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(path=path, content_type=content_type or DEFAULT_CONTENT_TYPE)

    @property
    def filename(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class ThreadContext:
    """
    Threading information of the message being replied to.

    Attributes:
        message_id: Message-ID header of the parent
        references: The parent's References chain, oldest first
        thread_id: Provider thread id the reply is sent into
    """
    message_id: str
    references: Tuple[str, ...] = ()
    thread_id: Optional[str] = None

    @classmethod
    def from_message(cls, summary: Dict[str, Any]) -> "ThreadContext":
        """Build the context from a message summary returned by GmailClient."""
        message_id = (summary.get("message_id") or "").strip()
        if not message_id:
            raise ComposeError(
                f"message {summary.get('id')} has no Message-ID header; cannot reply",
                step="compose",
            )
        return cls(
            message_id=message_id,
            references=tuple(summary.get("references") or ()),
            thread_id=summary.get("thread_id"),
        )


@dataclass
class OutgoingMessage:
    to: List[str]
    subject: str
    body_markdown: str
    attachments: List[Attachment] = field(default_factory=list)
    reply_to: Optional[ThreadContext] = None
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)


def reply_subject(subject: Optional[str]) -> str:
    """Prefix ``Re: `` unless the subject already carries it."""
    subject = (subject or "").strip() or "(no subject)"
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}"


def reply_recipient(summary: Dict[str, Any]) -> Optional[str]:
    """Address a reply goes to: the parent's Reply-To, else its From."""
    return summary.get("reply_to") or summary.get("from") or None
