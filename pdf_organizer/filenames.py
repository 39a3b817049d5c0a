"""Output filename templating."""

from __future__ import annotations

import os
import re

from .models import Message
from .utils import parse_rfc2822_date

FALLBACK_FILENAME = "attachment.pdf"

_UNSAFE_CHARS = re.compile(r"[/\\\x00-\x1f]")


def format_filename(message: Message, original_filename: str, pattern: str) -> str:
    """Substitute ``{id}``, ``{subject}``, ``{date}`` and ``{original_filename}``.

    Other ``{...}`` tokens are left untouched.
    """
    parsed = parse_rfc2822_date(message.header("Date"))
    date = parsed.strftime("%Y-%m-%d") if parsed else ""

    values = {
        "{id}": message.message_id,
        "{subject}": message.subject,
        "{date}": date,
        "{original_filename}": original_filename,
    }
    # Single pass, so substituted values are never rescanned for placeholders.
    return re.sub(
        r"\{id\}|\{subject\}|\{date\}|\{original_filename\}",
        lambda match: values[match.group(0)],
        pattern,
    )


def sanitize_filename(name: str) -> str:
    """Keep a formatted name inside its directory."""
    cleaned = _UNSAFE_CHARS.sub("_", name).strip()
    if cleaned in ("", ".", ".."):
        return FALLBACK_FILENAME
    return cleaned


def unique_filename(name: str, taken: set[str]) -> str:
    """Append ``-2``, ``-3``... before the extension until the name is free."""
    if name not in taken:
        return name
    stem, ext = os.path.splitext(name)
    counter = 2
    while f"{stem}-{counter}{ext}" in taken:
        counter += 1
    return f"{stem}-{counter}{ext}"
