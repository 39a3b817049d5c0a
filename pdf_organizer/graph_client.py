"""Microsoft Graph helper focused on message search + attachment retrieval."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Iterator
from urllib.parse import quote

import requests
from requests import Response

from .config import Settings
from .errors import RetrievalError
from .models import AttachmentPart, Credential, Message, SearchQuery
from .utils import rfc2822_from_iso

logger = logging.getLogger(__name__)


class GraphMailClient:
    """Thin wrapper over the Graph mail endpoints of the signed-in mailbox."""

    GRAPH_BASE = "https://graph.microsoft.com/v1.0"
    FILE_ATTACHMENT = "#microsoft.graph.fileAttachment"

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.timeout = settings.request_timeout

    def search(self, credential: Credential, query: SearchQuery) -> Iterator[str]:
        """Yield ids of messages matching the query, following pagination."""
        url: str | None = f"{self.GRAPH_BASE}{self._messages_root()}"
        params: dict[str, Any] | None = {
            "$search": f'"{query.expression}"',
            "$select": "id",
            "$top": self.settings.graph_page_size,
        }
        logger.info("Searching mailbox: %s", query.expression)

        while url:
            logger.debug("Fetching Graph messages page %s", url)
            payload = self._get_json(credential, url, params=params)
            for raw in payload.get("value", []):
                yield raw["id"]
            url = payload.get("@odata.nextLink")
            params = None  # nextLink already carries the query

    def fetch_message(self, credential: Credential, message_id: str) -> Message:
        url = f"{self.GRAPH_BASE}/me/messages/{quote(message_id, safe='')}"
        params = {
            "$select": "id,subject,receivedDateTime,internetMessageHeaders",
            "$expand": "attachments($select=id,name,contentType,size,isInline)",
        }
        payload = self._get_json(credential, url, params=params)
        try:
            return self._to_message(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise RetrievalError(f"Malformed message {message_id}: {exc}") from exc

    def fetch_attachment_bytes(self, credential: Credential, message_id: str, attachment_id: str) -> bytes:
        url = (
            f"{self.GRAPH_BASE}/me/messages/{quote(message_id, safe='')}"
            f"/attachments/{quote(attachment_id, safe='')}"
        )
        payload = self._get_json(credential, url)
        encoded = payload.get("contentBytes")
        if not isinstance(encoded, str):
            raise RetrievalError(f"Attachment {attachment_id} of message {message_id} has no content")
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise RetrievalError(f"Unable to decode attachment {attachment_id}: {exc}") from exc

    @staticmethod
    def extract_pdf_parts(message: Message) -> list[AttachmentPart]:
        return [part for part in message.parts if part.is_pdf]

    def _messages_root(self) -> str:
        if self.settings.graph_mail_folder:
            folder = quote(self.settings.graph_mail_folder, safe="")
            return f"/me/mailFolders/{folder}/messages"
        return "/me/messages"

    def _get(self, credential: Credential, url: str, params: dict | None = None) -> Response:
        headers = {"Authorization": f"{credential.token_type} {credential.access_token}"}
        try:
            resp = self.session.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RetrievalError(f"Graph request to {url} failed: {exc}") from exc
        if resp.status_code >= 400:
            logger.error("Graph request failed (%s): %s", resp.status_code, resp.text)
            raise RetrievalError(f"Graph request to {url} failed with status {resp.status_code}")
        return resp

    def _get_json(self, credential: Credential, url: str, params: dict | None = None) -> dict:
        response = self._get(credential, url, params=params)
        try:
            payload = response.json()
        except ValueError as exc:
            raise RetrievalError(f"Graph returned a non-JSON body for {url}") from exc
        if not isinstance(payload, dict):
            raise RetrievalError(f"Graph returned an unexpected body for {url}")
        return payload

    @classmethod
    def _to_message(cls, raw: dict) -> Message:
        headers = {
            item["name"]: item.get("value", "")
            for item in raw.get("internetMessageHeaders") or []
            if item.get("name")
        }
        message = Message(message_id=raw["id"], headers=headers)
        if not message.header("Subject") and raw.get("subject"):
            message.headers["Subject"] = raw["subject"]
        if not message.header("Date") and raw.get("receivedDateTime"):
            message.headers["Date"] = rfc2822_from_iso(raw["receivedDateTime"])
        message.parts = [
            cls._to_part(item)
            for item in raw.get("attachments") or []
            if item.get("@odata.type", cls.FILE_ATTACHMENT) == cls.FILE_ATTACHMENT
        ]
        return message

    @staticmethod
    def _to_part(raw: dict) -> AttachmentPart:
        return AttachmentPart(
            attachment_id=raw["id"],
            filename=raw.get("name") or "",
            mime_type=raw.get("contentType") or "application/octet-stream",
            size=raw.get("size", 0),
            is_inline=raw.get("isInline", False),
        )
