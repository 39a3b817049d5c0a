# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures and fake collaborators for the organizer test suite.
# =============================================================================

from datetime import UTC, datetime, timedelta

import pytest

from pdf_organizer.config import ClientConfig, Settings
from pdf_organizer.errors import RetrievalError
from pdf_organizer.models import AttachmentPart, Credential, Message


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """Record GET calls and answer them from a url -> response mapping."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "params": params, "timeout": timeout})
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response


class FakeTokenCache:
    """Stand-in for msal.SerializableTokenCache holding an opaque state string."""

    def __init__(self, state='{"AccessToken": {}}'):
        self.state = state

    def serialize(self):
        return self.state

    def deserialize(self, state):
        if not state.startswith("{"):
            raise ValueError("Expecting value")
        self.state = state


class FakeMsalApp:
    """Stand-in for an msal client application sharing a FakeTokenCache."""

    def __init__(self, token_cache=None, token_result=None, silent_result=None, accounts=None):
        self.token_cache = token_cache
        self.token_result = token_result or {
            "access_token": "fresh-access",
            "refresh_token": "fresh-refresh",
            "expires_in": 3600,
        }
        self.silent_result = silent_result
        self.accounts = accounts if accounts is not None else [{"username": "user@example.com"}]
        self.flows = []
        self.exchanges = []
        self.silent_calls = []

    def initiate_auth_code_flow(self, scopes, redirect_uri=None):
        flow = {
            "auth_uri": f"https://login.example.com/authorize?redirect_uri={redirect_uri}",
            "state": "state-123",
            "redirect_uri": redirect_uri,
            "scope": scopes,
        }
        self.flows.append(flow)
        return flow

    def acquire_token_by_auth_code_flow(self, flow, auth_response):
        self.exchanges.append((flow, auth_response))
        if auth_response.get("state") != flow["state"]:
            raise ValueError("state mismatch")
        if self.token_cache is not None and "access_token" in self.token_result:
            self.token_cache.state = '{"Account": {"after": "exchange"}}'
        return self.token_result

    def get_accounts(self):
        # msal only knows accounts present in its (deserialized) cache.
        if self.token_cache is not None and "Account" not in self.token_cache.state:
            return []
        return self.accounts

    def acquire_token_silent(self, scopes, account=None):
        self.silent_calls.append((scopes, account))
        if self.silent_result and self.token_cache is not None:
            self.token_cache.state = '{"Account": {"after": "refresh"}}'
        return self.silent_result


class FakeAuthenticator:
    def __init__(self, credential=None, error=None):
        self.credential = credential or Credential(access_token="token")
        self.error = error
        self.calls = 0

    def obtain_credential(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.credential


class FakeMailClient:
    """In-memory mailbox keyed by message id."""

    def __init__(self, messages, payloads, failing_messages=(), search_error=None):
        self.messages = {message.message_id: message for message in messages}
        self.order = [message.message_id for message in messages]
        self.payloads = payloads
        self.failing_messages = set(failing_messages)
        self.search_error = search_error
        self.queries = []

    def search(self, credential, query):
        self.queries.append(query)
        if self.search_error:
            raise self.search_error
        yield from self.order

    def fetch_message(self, credential, message_id):
        return self.messages[message_id]

    def fetch_attachment_bytes(self, credential, message_id, attachment_id):
        if message_id in self.failing_messages:
            raise RetrievalError(f"attachment fetch failed for {message_id}")
        return self.payloads[attachment_id]

    def extract_pdf_parts(self, message):
        return [part for part in message.parts if part.is_pdf]


def make_message(message_id, subject="", date=None, parts=()):
    headers = {}
    if subject:
        headers["Subject"] = subject
    if date:
        headers["Date"] = date
    return Message(message_id=message_id, headers=headers, parts=list(parts))


def pdf_part(attachment_id, filename="report.pdf"):
    return AttachmentPart(attachment_id=attachment_id, filename=filename, mime_type="application/pdf")


@pytest.fixture
def now():
    return datetime(2025, 12, 23, 18, 0, tzinfo=UTC)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        CLIENT_CONFIG_PATH=tmp_path / "credentials.json",
        TOKEN_PATH=tmp_path / "token.json",
        CALLBACK_PORT=0,
        AUTH_TIMEOUT=5,
        OUTPUT_DIR=tmp_path / "output",
    )


@pytest.fixture
def client_config():
    return ClientConfig(client_id="client-123")


@pytest.fixture
def valid_credential(now):
    return Credential(
        access_token="cached-access",
        refresh_token="cached-refresh",
        msal_cache='{"Account": {"cached": "account"}}',
        expires_at=now + timedelta(hours=1),
    )


@pytest.fixture
def mailbox():
    """Three messages: two with one PDF each, one without attachments."""
    messages = [
        make_message(
            "m1",
            subject="Lab results",
            date="Mon, 22 Dec 2025 09:00:00 +0100",
            parts=[pdf_part("a1", "results.pdf")],
        ),
        make_message("m2", subject="Hello", date="Tue, 23 Dec 2025 10:00:00 +0100"),
        make_message(
            "m3",
            subject="Invoice",
            date="Wed, 24 Dec 2025 11:00:00 +0100",
            parts=[
                AttachmentPart(attachment_id="img", filename="logo.png", mime_type="image/png"),
                pdf_part("a3", "invoice.pdf"),
            ],
        ),
    ]
    payloads = {"a1": b"%PDF-1.4 results", "a3": b"%PDF-1.4 invoice"}
    return messages, payloads
