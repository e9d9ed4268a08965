"""Parsing of Gmail API message resources into plain dicts."""

import base64
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Headers requested with format=metadata when listing
SUMMARY_HEADERS = [
    "Subject", "From", "To", "Reply-To", "Date", "Message-ID", "In-Reply-To", "References",
]


def get_header(headers: list, name: str, default: Optional[str] = None) -> Optional[str]:
    """Get a header value by name."""
    for header in headers:
        if header.get('name', '').lower() == name.lower():
            return header.get('value')
    return default


def summarize_message(msg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reduce a message resource (format=metadata or full) to a summary dict.

    Returns:
        Dict with id, thread_id, snippet, subject, from, to, reply_to, date,
        message_id, in_reply_to, references (list, oldest first), label_ids
    """
    headers = msg.get('payload', {}).get('headers', [])
    references = get_header(headers, 'References') or ''
    return {
        "id": msg.get('id'),
        "thread_id": msg.get('threadId'),
        "snippet": msg.get('snippet', ''),
        "subject": get_header(headers, 'Subject'),
        "from": get_header(headers, 'From'),
        "to": get_header(headers, 'To'),
        "reply_to": get_header(headers, 'Reply-To'),
        "date": get_header(headers, 'Date'),
        "message_id": get_header(headers, 'Message-ID'),
        "in_reply_to": get_header(headers, 'In-Reply-To'),
        "references": references.split(),
        "label_ids": msg.get('labelIds', []),
    }


def parse_full_message(msg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Parse a format=full message resource.

    Returns:
        The summary fields plus:
            - body: Dict with 'text' and 'html' content
            - attachments: List of attachment metadata (filename, mimeType, size, attachmentId)
    """
    payload = msg.get('payload', {})
    details = summarize_message(msg)
    text_body, html_body = extract_body_parts(payload)
    details["body"] = {"text": text_body, "html": html_body}
    details["attachments"] = extract_attachments(payload)
    return details


def extract_attachments(payload: dict) -> List[Dict[str, Any]]:
    """
    Extract attachment metadata from a message payload.

    Recursively searches through MIME parts to find attachments.
    An attachment is identified by having a filename and attachmentId.
    """
    attachments = []

    def process_part(part: dict):
        filename = part.get('filename', '')
        body = part.get('body', {})
        attachment_id = body.get('attachmentId')

        if filename and attachment_id:
            attachments.append({
                'attachmentId': attachment_id,
                'filename': filename,
                'mimeType': part.get('mimeType', 'application/octet-stream'),
                'size': body.get('size', 0),
            })

        for subpart in part.get('parts', []):
            process_part(subpart)

    for part in payload.get('parts', []):
        process_part(part)
    return attachments


def _decode_body(part: dict) -> Optional[str]:
    data = part.get('body', {}).get('data')
    if data is None:
        return None
    # Gmail returns unpadded base64url
    padded = data + '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode('utf-8', errors='replace')


def extract_body_parts(payload: dict) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract text and HTML body parts from a message payload.

    Returns:
        Tuple of (text_body, html_body)
    """
    text_body = None
    html_body = None

    def process_part(part: dict):
        nonlocal text_body, html_body

        mime_type = part.get('mimeType', '')
        is_attachment = bool(part.get('filename'))

        if mime_type == 'text/plain' and text_body is None and not is_attachment:
            text_body = _decode_body(part)
        elif mime_type == 'text/html' and html_body is None and not is_attachment:
            html_body = _decode_body(part)

        for subpart in part.get('parts', []):
            process_part(subpart)

    process_part(payload)
    return text_body, html_body
