"""End-to-end run: authenticate, search, download, write."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .errors import OutputDirectoryError, RetrievalError
from .filenames import format_filename, sanitize_filename, unique_filename
from .models import Attachment, AttachmentPart, Credential, Message, RunStats, SearchQuery

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    def obtain_credential(self) -> Credential: ...


class MailClient(Protocol):
    def search(self, credential: Credential, query: SearchQuery): ...

    def fetch_message(self, credential: Credential, message_id: str) -> Message: ...

    def fetch_attachment_bytes(self, credential: Credential, message_id: str, attachment_id: str) -> bytes: ...

    def extract_pdf_parts(self, message: Message) -> list[AttachmentPart]: ...


@dataclass(frozen=True)
class OrganizerConfig:
    output_dir: Path
    name_pattern: str
    query: SearchQuery
    dry_run: bool = False
    max_messages: int | None = None


class PdfOrganizer:
    """Drive one sequential pass over the mailbox."""

    def __init__(self, config: OrganizerConfig, authenticator: CredentialProvider, mail_client: MailClient) -> None:
        self.config = config
        self.authenticator = authenticator
        self.mail_client = mail_client
        self._written: set[str] = set()

    def run(self) -> RunStats:
        """Raises OrganizerError subclasses for failures that end the run."""
        credential = self.authenticator.obtain_credential()
        logger.info("Successfully connected to the mailbox")
        self._prepare_output()

        stats = RunStats()
        self._written = set()
        for message_id in self.mail_client.search(credential, self.config.query):
            if self.config.max_messages and stats.messages >= self.config.max_messages:
                logger.info("Reached --max-messages=%s; stopping", self.config.max_messages)
                break
            stats.messages += 1
            self._process_message(credential, message_id, stats)

        logger.info(
            "Run complete: messages=%s saved=%s skipped=%s failed=%s",
            stats.messages,
            stats.saved,
            stats.skipped,
            stats.failed,
        )
        return stats

    def _prepare_output(self) -> None:
        try:
            self.config.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputDirectoryError(
                f"Unable to create output directory {self.config.output_dir}: {exc}"
            ) from exc

    def _process_message(self, credential: Credential, message_id: str, stats: RunStats) -> None:
        try:
            message = self.mail_client.fetch_message(credential, message_id)
        except RetrievalError as exc:
            logger.error("Unable to get message %s: %s", message_id, exc)
            stats.failed += 1
            return

        logger.info("Subject: %s", message.subject)
        parts = self.mail_client.extract_pdf_parts(message)
        if not parts:
            logger.debug("Message %s has no PDF attachments", message_id)
            stats.skipped += 1
            return

        for part in parts:
            filename = unique_filename(
                sanitize_filename(format_filename(message, part.filename, self.config.name_pattern)),
                self._written,
            )
            self._written.add(filename)
            target = self.config.output_dir / filename

            if self.config.dry_run:
                logger.info("[DRY-RUN] Would save '%s' as %s", part.filename, target)
                continue

            try:
                attachment = Attachment(
                    part=part,
                    content=self.mail_client.fetch_attachment_bytes(credential, message_id, part.attachment_id),
                )
            except RetrievalError as exc:
                logger.error("Unable to get attachments for message %s: %s", message_id, exc)
                stats.failed += 1
                return

            try:
                target.write_bytes(attachment.content)
            except OSError as exc:
                logger.error("Unable to save attachment %s: %s", filename, exc)
                stats.failed += 1
                continue
            stats.saved += 1
            logger.info("Saved attachment '%s': %s", attachment.filename, target)
