"""Typed containers shared across the organizer."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional

from .utils import ensure_utc, parse_iso_datetime

PDF_MIME_TYPE = "application/pdf"

_MONTH_PATTERN = re.compile(r"\d{4}-\d{2}")


@dataclass
class Credential:
    """OAuth access token plus the data needed to renew it.

    ``msal_cache`` holds msal's serialized token cache, which carries the
    account and refresh token used for silent renewal.
    """

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_type: str = "Bearer"
    msal_cache: Optional[str] = None

    def is_expired(self, now: datetime, leeway: timedelta = timedelta(seconds=60)) -> bool:
        if self.expires_at is None:
            return False
        return ensure_utc(now) + leeway >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "token_type": self.token_type,
            "msal_cache": self.msal_cache,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Credential":
        """Raises TypeError or ValueError for malformed fields."""
        for key in ("access_token", "refresh_token", "expires_at", "token_type", "msal_cache"):
            value = raw.get(key)
            if value is not None and not isinstance(value, str):
                raise TypeError(f"'{key}' must be a string, got {type(value).__name__}")
        expires_at = raw.get("expires_at")
        return cls(
            access_token=raw["access_token"],
            refresh_token=raw.get("refresh_token"),
            expires_at=parse_iso_datetime(expires_at) if expires_at else None,
            token_type=raw.get("token_type") or "Bearer",
            msal_cache=raw.get("msal_cache"),
        )

    @classmethod
    def from_token_response(
        cls, result: dict[str, Any], now: datetime, msal_cache: Optional[str] = None
    ) -> "Credential":
        """Build a credential from an msal token response."""
        expires_in = result.get("expires_in")
        expires_at = None
        if expires_in is not None:
            expires_at = ensure_utc(now) + timedelta(seconds=int(expires_in))
        return cls(
            access_token=result["access_token"],
            refresh_token=result.get("refresh_token"),
            expires_at=expires_at,
            token_type=result.get("token_type") or "Bearer",
            msal_cache=msal_cache,
        )


@dataclass(frozen=True)
class SearchQuery:
    """Mailbox search for PDF attachments, optionally bounded by dates.

    ``end`` is exclusive.
    """

    start: Optional[date] = None
    end: Optional[date] = None
    filename_term: str = "pdf"

    @classmethod
    def for_month(cls, month: str) -> "SearchQuery":
        """Cover every day of a ``YYYY-MM`` month."""
        if not _MONTH_PATTERN.fullmatch(month):
            raise ValueError(f"Invalid month '{month}', expected YYYY-MM")
        try:
            first = datetime.strptime(month, "%Y-%m").date()
            days = calendar.monthrange(first.year, first.month)[1]
            end = first + timedelta(days=days)
        except (ValueError, OverflowError) as exc:
            raise ValueError(f"Invalid month '{month}', expected YYYY-MM") from exc
        return cls(start=first, end=end)

    @property
    def expression(self) -> str:
        """KQL text accepted by the Graph ``$search`` parameter."""
        clauses = ["hasAttachments:true", f"attachment:{self.filename_term}"]
        if self.start:
            clauses.append(f"received>={self.start.isoformat()}")
        if self.end:
            clauses.append(f"received<{self.end.isoformat()}")
        return " AND ".join(clauses)


@dataclass
class AttachmentPart:
    """Attachment metadata, fetched before its bytes."""

    attachment_id: str
    filename: str
    mime_type: str
    size: int = 0
    is_inline: bool = False

    @property
    def is_pdf(self) -> bool:
        mime = self.mime_type.split(";", 1)[0].strip().lower()
        return mime == PDF_MIME_TYPE and bool(self.filename)


@dataclass
class Message:
    """A mailbox message reduced to headers and attachment parts."""

    message_id: str
    headers: dict[str, str] = field(default_factory=dict)
    parts: list[AttachmentPart] = field(default_factory=list)

    def header(self, name: str) -> str:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return ""

    @property
    def subject(self) -> str:
        return self.header("Subject")


@dataclass
class Attachment:
    """Attachment bytes coupled with their part metadata."""

    part: AttachmentPart
    content: bytes

    @property
    def filename(self) -> str:
        return self.part.filename


@dataclass
class RunStats:
    messages: int = 0
    saved: int = 0
    skipped: int = 0
    failed: int = 0
