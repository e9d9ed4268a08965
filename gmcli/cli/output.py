"""Text and JSON rendering for command results."""

import html
import json
from typing import Any, Dict, Iterable, Optional

import click

PREVIEW_WIDTH = 120


def emit(data: Any, json_output: bool, text: Optional[str] = None):
    """Print ``data`` as JSON, or ``text`` when not in JSON mode."""
    if json_output:
        click.echo(json.dumps(data, indent=2, default=str))
    elif text is not None:
        click.echo(text)


def format_preview(snippet: Optional[str], width: int = PREVIEW_WIDTH) -> str:
    """Collapse whitespace in a snippet and cut it at ``width`` characters."""
    if not snippet:
        return "(no preview)"
    compact = " ".join(html.unescape(snippet).split())
    if len(compact) <= width:
        return compact
    return f"{compact[:width]}..."


def format_message_list(summaries: Iterable[Dict[str, Any]]) -> str:
    blocks = []
    for index, summary in enumerate(summaries, start=1):
        blocks.append("\n".join([
            f"{index}. {summary['id']}",
            f"   from: {summary.get('from') or '(unknown sender)'}",
            f"   subject: {summary.get('subject') or '(no subject)'}",
            f"   date: {summary.get('date') or '(no date)'}",
            "",
            f"   {format_preview(summary.get('snippet'))}",
        ]))
    if not blocks:
        return "0 messages"
    return "\n\n".join(blocks)


def format_message(message: Dict[str, Any]) -> str:
    lines = [
        f"id: {message['id']}",
        f"from: {message.get('from') or '(unknown sender)'}",
        f"to: {message.get('to') or ''}",
        f"subject: {message.get('subject') or '(no subject)'}",
        f"date: {message.get('date') or '(no date)'}",
    ]
    attachments = message.get("attachments") or []
    for attachment in attachments:
        lines.append(f"attachment: {attachment['filename']} ({attachment['mimeType']}, {attachment['size']} bytes)")
    body = (message.get("body") or {}).get("text") or ""
    if body:
        lines.extend(["", body.rstrip()])
    return "\n".join(lines)


def format_labels(labels: Iterable[Dict[str, Any]]) -> str:
    rows = [f"{label['name']:<32}  {label['id']:<24}  {(label.get('type') or '').lower()}" for label in labels]
    return "\n".join(rows) if rows else "0 labels"
