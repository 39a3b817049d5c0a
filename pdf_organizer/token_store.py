"""On-disk cache for the OAuth credential."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from .errors import TokenNotFoundError, TokenStoreError
from .models import Credential

logger = logging.getLogger(__name__)


class TokenStore:
    """Read and write a single credential as JSON."""

    FILE_MODE = 0o600

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Credential:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise TokenNotFoundError(f"No token cache at {self.path}") from exc
        except (OSError, ValueError) as exc:
            raise TokenNotFoundError(f"Unreadable token cache at {self.path}: {exc}") from exc

        if not isinstance(raw, dict) or not raw.get("access_token"):
            raise TokenNotFoundError(f"Token cache at {self.path} has no access token")
        try:
            return Credential.from_dict(raw)
        except (TypeError, ValueError, AttributeError) as exc:
            raise TokenNotFoundError(f"Invalid token cache at {self.path}: {exc}") from exc

    def save(self, credential: Credential) -> None:
        logger.info("Saving credential file to: %s", self.path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, self.FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                # The mode argument of os.open is ignored for an existing file.
                os.fchmod(handle.fileno(), self.FILE_MODE)
                json.dump(credential.to_dict(), handle)
        except OSError as exc:
            raise TokenStoreError(f"Unable to cache oauth token at {self.path}: {exc}") from exc
