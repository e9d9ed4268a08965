"""Authenticated Gmail REST operations.

Every request gets a fresh ``Authorization: Bearer`` header from the
TokenStore right before it is executed. A 401 answer triggers exactly one
forced refresh and one retry; any other failure is mapped to the ApiError
family and surfaced without retrying.
"""

import base64
import logging
from typing import Any, Dict, Iterable, List, Optional

import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import build_http

from ..auth.tokens import TokenStore
from ..exceptions import ApiError, InvalidArgument, Malformed, NotFound, Transport
from ..profiles import OAuthProfile
from .read import SUMMARY_HEADERS, parse_full_message, summarize_message

logger = logging.getLogger(__name__)

# Gmail caps messages.list page size at 500
MAX_PAGE_SIZE = 500


def get_gmail_service() -> Any:
    """
    Build a Gmail API service object without attached credentials.

    The discovery document bundled with google-api-python-client is used, so
    building the service makes no network call.
    """
    return build(
        "gmail", "v1",
        http=build_http(),
        static_discovery=True,
        cache_discovery=False,
    )


class GmailClient:
    """
    Gmail operations for one profile.

    Args:
        token_store: Source of access tokens (refreshes as needed)
        profile: Profile whose token and client settings are used
        service: Prebuilt Gmail service (tests pass a fake)
    """

    def __init__(self, token_store: TokenStore, profile: OAuthProfile, service: Any = None):
        self.token_store = token_store
        self.profile = profile
        self._service = service
        self.labels = Labels(self)

    @property
    def service(self) -> Any:
        if self._service is None:
            logger.debug("Building Gmail service")
            self._service = get_gmail_service()
        return self._service

    def _messages(self):
        return self.service.users().messages()

    def execute(self, request, step: str) -> Dict[str, Any]:
        """Authorize and execute a prepared API request."""
        for attempt in (1, 2):
            token = self.token_store.access_token(self.profile, force_refresh=attempt > 1)
            request.headers["authorization"] = f"Bearer {token}"
            try:
                return request.execute()
            except HttpError as e:
                status = e.resp.status
                if status == 401 and attempt == 1:
                    logger.info(f"{step}: access token rejected (401); refreshing and retrying once")
                    continue
                raise ApiError.from_response(status, e.content, step=step) from e
            except (httplib2.HttpLib2Error, OSError) as e:
                raise Transport(f"gmail api unreachable: {e}", step=step) from e
            except ValueError as e:
                raise Malformed(f"gmail api returned an unreadable response: {e}", step=step) from e

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def list(self, query: Optional[str] = None, limit: int = 10,
             inbox: bool = False) -> List[Dict[str, Any]]:
        """
        List message summaries, most recent first, capped at ``limit``.

        Args:
            query: Gmail search query (e.g. "from:someone@example.com")
            limit: Maximum number of messages
            inbox: Restrict to the inbox

        Returns:
            List of summary dicts (see read.summarize_message)
        """
        if limit < 1:
            raise InvalidArgument(f"limit must be at least 1, got {limit}", step="list_messages")

        q = " ".join(part for part in ("in:inbox" if inbox else None, query) if part)
        logger.debug(f"Listing up to {limit} messages with query: '{q}'")

        ids: List[str] = []
        page_token = None
        while len(ids) < limit:
            kwargs = {"userId": "me", "maxResults": min(limit - len(ids), MAX_PAGE_SIZE)}
            if q:
                kwargs["q"] = q
            if page_token:
                kwargs["pageToken"] = page_token

            result = self.execute(self._messages().list(**kwargs), step="list_messages")
            page = result.get("messages", [])
            ids.extend(m["id"] for m in page)
            page_token = result.get("nextPageToken")
            if not page or not page_token:
                break

        summaries = []
        for message_id in ids[:limit]:
            msg = self.execute(
                self._messages().get(
                    userId="me", id=message_id, format="metadata",
                    metadataHeaders=SUMMARY_HEADERS,
                ),
                step="get_message",
            )
            summaries.append(summarize_message(msg))

        logger.debug(f"Listed {len(summaries)} messages")
        return summaries

    def get(self, message_id: str) -> Dict[str, Any]:
        """Retrieve headers, body parts and attachment metadata of one message."""
        logger.debug(f"Retrieving message with ID: {message_id}")
        msg = self.execute(
            self._messages().get(userId="me", id=message_id, format="full"),
            step="get_message",
        )
        return parse_full_message(msg)

    def summary(self, message_id: str) -> Dict[str, Any]:
        """Retrieve only the headers needed for threading a reply."""
        msg = self.execute(
            self._messages().get(
                userId="me", id=message_id, format="metadata",
                metadataHeaders=SUMMARY_HEADERS,
            ),
            step="get_message",
        )
        return summarize_message(msg)

    def send(self, raw: bytes, thread_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Send an RFC 822 message.

        Args:
            raw: Complete message bytes (MessageComposer.compose output)
            thread_id: Thread the message belongs to, for replies

        Returns:
            Dict with id, thread_id and label_ids of the sent message
        """
        body = {"raw": base64.urlsafe_b64encode(raw).decode("ascii")}
        if thread_id:
            body["threadId"] = thread_id

        result = self.execute(self._messages().send(userId="me", body=body), step="send_message")
        logger.info(f"Email sent successfully. Message ID: {result.get('id')}")
        return {
            "id": result.get("id"),
            "thread_id": result.get("threadId"),
            "label_ids": result.get("labelIds", []),
        }

    def get_profile(self) -> Dict[str, Any]:
        """Return the mailbox profile (emailAddress, messagesTotal, ...)."""
        return self.execute(self.service.users().getProfile(userId="me"), step="get_profile")


class Labels:
    """Label listing and per-message label changes."""

    def __init__(self, client: GmailClient):
        self.client = client

    def list(self) -> List[Dict[str, Any]]:
        """List all labels as {id, name, type}, sorted by name."""
        result = self.client.execute(
            self.client.service.users().labels().list(userId="me"),
            step="list_labels",
        )
        labels = [
            {"id": label.get("id"), "name": label.get("name"), "type": label.get("type")}
            for label in result.get("labels", [])
        ]
        return sorted(labels, key=lambda label: (label["name"] or "").lower())

    def resolve(self, labels: Iterable[str]) -> List[str]:
        """
        Map label ids or names (case-insensitive) to label ids.

        Raises:
            NotFound: a label matches neither an id nor a name
        """
        available = self.list()
        by_id = {label["id"]: label["id"] for label in available}
        by_name = {(label["name"] or "").lower(): label["id"] for label in available}

        resolved: List[str] = []
        for value in labels:
            label_id = by_id.get(value) or by_name.get(value.lower())
            if label_id is None:
                raise NotFound(f"label not found: {value}", step="resolve_label")
            if label_id not in resolved:
                resolved.append(label_id)
        return resolved

    def add(self, message_id: str, labels: Iterable[str]) -> Dict[str, Any]:
        """Add labels to a message."""
        return self._modify(message_id, add=self.resolve(labels))

    def remove(self, message_id: str, labels: Iterable[str]) -> Dict[str, Any]:
        """Remove labels from a message."""
        return self._modify(message_id, remove=self.resolve(labels))

    def _modify(self, message_id: str, add: List[str] = None,
                remove: List[str] = None) -> Dict[str, Any]:
        body = {
            "addLabelIds": add or [],
            "removeLabelIds": remove or [],
        }
        updated = self.client.execute(
            self.client._messages().modify(userId="me", id=message_id, body=body),
            step="modify_labels",
        )
        logger.debug(f"Modified labels for message {message_id}")
        return {
            "id": updated.get("id", message_id),
            "label_ids": updated.get("labelIds", []),
        }
