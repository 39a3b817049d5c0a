"""Exception types raised across the organizer."""

from __future__ import annotations


class OrganizerError(Exception):
    """Base class for failures the CLI reports and exits on."""


class ConfigurationError(OrganizerError):
    """Client config file is missing or cannot be parsed."""


class AuthenticationError(OrganizerError):
    """No usable credential could be obtained."""


class TokenNotFoundError(OrganizerError):
    """Token cache is absent or unreadable."""


class RetrievalError(OrganizerError):
    """A Graph request or attachment decode failed."""


class OutputDirectoryError(OrganizerError):
    """The destination directory could not be created."""


class TokenStoreError(OrganizerError):
    """The token cache could not be written."""
