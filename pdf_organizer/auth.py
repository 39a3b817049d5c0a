"""Credential acquisition: token cache first, then an interactive OAuth flow."""

from __future__ import annotations

import logging
import webbrowser
from datetime import datetime
from typing import Any, Callable, Dict
from urllib.parse import parse_qs, urlparse

import msal
import requests

from .callback_server import CallbackServer
from .config import ClientConfig, Settings
from .errors import AuthenticationError, ConfigurationError, TokenNotFoundError
from .models import Credential
from .token_store import TokenStore
from .utils import utcnow

logger = logging.getLogger(__name__)

NATIVE_CLIENT_REDIRECT = "https://login.microsoftonline.com/common/oauth2/nativeclient"


def build_msal_app(client_config: ClientConfig, token_cache: msal.SerializableTokenCache) -> msal.ClientApplication:
    # msal contacts the authority here to discover its endpoints.
    try:
        if client_config.client_secret:
            return msal.ConfidentialClientApplication(
                client_id=client_config.client_id,
                client_credential=client_config.client_secret,
                authority=client_config.authority_url,
                token_cache=token_cache,
            )
        return msal.PublicClientApplication(
            client_id=client_config.client_id,
            authority=client_config.authority_url,
            token_cache=token_cache,
        )
    except (ValueError, requests.RequestException) as exc:
        raise ConfigurationError(f"Unable to set up authority {client_config.authority_url}: {exc}") from exc


def open_browser(url: str) -> bool:
    """Best-effort launch of the default browser."""
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as exc:
        logger.debug("Unable to launch a browser: %s", exc)
        return False
    if not opened:
        logger.debug("No browser available to open the authorization URL")
    return opened


def parse_manual_response(text: str, state: str | None) -> Dict[str, str]:
    """Accept either the full redirected URL or just the code."""
    text = text.strip()
    if "?" in text or text.startswith("http"):
        query = parse_qs(urlparse(text).query)
        return {key: values[0] for key, values in query.items() if values}
    response = {"code": text}
    if state:
        response["state"] = state
    return response


class Authenticator:
    """Produce a usable credential, persisting anything newly obtained."""

    def __init__(
        self,
        settings: Settings,
        client_config: ClientConfig,
        token_store: TokenStore,
        app: Any | None = None,
        token_cache: Any | None = None,
        browser: Callable[[str], bool] = open_browser,
        read_input: Callable[[str], str] = input,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.client_config = client_config
        self.token_store = token_store
        self.scopes = client_config.scopes or ["Mail.Read"]
        self.token_cache = token_cache if token_cache is not None else msal.SerializableTokenCache()
        self.app = app if app is not None else build_msal_app(client_config, self.token_cache)
        self.browser = browser
        self.read_input = read_input
        self.clock = clock

    def obtain_credential(self, flow: str | None = None) -> Credential:
        try:
            credential = self.token_store.load()
        except TokenNotFoundError as exc:
            logger.info("No cached credential (%s); starting authorization", exc)
        else:
            if not credential.is_expired(self.clock()):
                logger.debug("Using cached credential from %s", self.token_store.path)
                return credential
            refreshed = self._refresh(credential)
            if refreshed is not None:
                self.token_store.save(refreshed)
                return refreshed

        flow = flow or self.settings.auth_flow
        if flow == "manual":
            credential = self._authorize_manually()
        else:
            credential = self._authorize_with_callback()
        self.token_store.save(credential)
        return credential

    def _refresh(self, credential: Credential) -> Credential | None:
        """Renew silently through msal's cache of the signed-in account."""
        if not credential.msal_cache:
            logger.info("Cached credential expired and carries no msal token cache")
            return None
        try:
            self.token_cache.deserialize(credential.msal_cache)
        except ValueError as exc:
            logger.warning("Unable to read msal token cache: %s", exc)
            return None

        accounts = self.app.get_accounts()
        if not accounts:
            logger.info("Cached credential expired and msal has no account to renew")
            return None
        logger.info("Cached credential expired; refreshing")
        try:
            result = self.app.acquire_token_silent(self.scopes, account=accounts[0])
        except requests.RequestException as exc:
            logger.warning("Unable to refresh credential: %s", exc)
            return None
        if not result or "access_token" not in result:
            logger.warning(
                "Unable to refresh credential: %s",
                (result or {}).get("error_description") or (result or {}).get("error"),
            )
            return None
        refreshed = Credential.from_token_response(result, self.clock(), self.token_cache.serialize())
        if refreshed.refresh_token is None:
            refreshed.refresh_token = credential.refresh_token
        return refreshed

    def _authorize_manually(self) -> Credential:
        flow = self.app.initiate_auth_code_flow(self.scopes, redirect_uri=NATIVE_CLIENT_REDIRECT)
        if "auth_uri" not in flow:
            raise AuthenticationError(f"Unable to start authorization flow: {flow}")
        print(
            "Go to the following link in your browser, then paste the URL you are "
            f"redirected to (or just the authorization code):\n{flow['auth_uri']}"
        )
        try:
            answer = self.read_input("> ")
        except EOFError as exc:
            raise AuthenticationError("Unable to read authorization code") from exc
        return self._exchange(flow, parse_manual_response(answer, flow.get("state")))

    def _authorize_with_callback(self) -> Credential:
        with CallbackServer(self.settings.callback_port) as server:
            flow = self.app.initiate_auth_code_flow(self.scopes, redirect_uri=server.redirect_uri)
            if "auth_uri" not in flow:
                raise AuthenticationError(f"Unable to start authorization flow: {flow}")
            print(f"Opening the authorization page; if no browser appears, visit:\n{flow['auth_uri']}")
            self.browser(flow["auth_uri"])
            response = server.wait_for_redirect(self.settings.auth_timeout)
        return self._exchange(flow, response)

    def _exchange(self, flow: Dict[str, Any], response: Dict[str, str]) -> Credential:
        if "error" in response:
            raise AuthenticationError(
                f"Authorization denied: {response.get('error_description') or response['error']}"
            )
        if not response.get("code"):
            raise AuthenticationError("Authorization response did not include a code")
        try:
            result = self.app.acquire_token_by_auth_code_flow(flow, response)
        except (ValueError, requests.RequestException) as exc:
            raise AuthenticationError(f"Unable to retrieve token: {exc}") from exc
        if "access_token" not in result:
            raise AuthenticationError(
                f"Unable to retrieve token: {result.get('error_description') or result.get('error')}"
            )
        logger.info("Authorization succeeded")
        return Credential.from_token_response(result, self.clock(), self.token_cache.serialize())
