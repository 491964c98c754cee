#!/usr/bin/env python3
"""
Connect the shared Gmail mailbox: the operator signs in once and the token is
written to the credential store (token.json or TOKENS_JSON).

Two ways in:
  - `python main.py auth` opens a browser on this machine (installed-app flow)
  - /auth on the running web app redirects to Google and /oauth2callback stores
    the token (web flow)
"""
import logging
import secrets
import threading
import time

import requests
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow, InstalledAppFlow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

import config
from credentials import TOKEN_URI, CredentialStore, default_store

logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"


class AuthError(Exception):
    pass


def client_config(kind: str = "web") -> dict:
    return {
        kind: {
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
            "redirect_uris": [config.GOOGLE_REDIRECT_URI],
        }
    }


class PendingAuth:
    """Web flow state between /auth and /oauth2callback."""

    ttl = 600

    def __init__(self, scopes: list[str] | None = None, redirect_uri: str | None = None):
        self.scopes = scopes or config.SCOPES
        self.redirect_uri = redirect_uri or config.GOOGLE_REDIRECT_URI
        self._pending: dict[str, tuple[str | None, float]] = {}
        self._lock = threading.Lock()

    def _flow(self, state: str, code_verifier: str | None = None) -> Flow:
        return Flow.from_client_config(
            client_config(),
            scopes=self.scopes,
            redirect_uri=self.redirect_uri,
            state=state,
            code_verifier=code_verifier,
        )

    def begin(self) -> str:
        """Return the Google consent URL for a fresh state."""
        if not config.GOOGLE_CLIENT_ID or not config.GOOGLE_CLIENT_SECRET:
            raise AuthError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set.")
        state = secrets.token_urlsafe(24)
        flow = self._flow(state)
        # offline + consent so Google always hands back a refresh token
        url, _ = flow.authorization_url(access_type="offline", prompt="consent", state=state)
        now = time.time()
        with self._lock:
            self._pending = {s: v for s, v in self._pending.items() if now - v[1] < self.ttl}
            self._pending[state] = (flow.code_verifier, now)
        return url

    def finish(self, state: str | None, code: str | None, store: CredentialStore) -> Credentials:
        """Exchange the callback code for a token and save it."""
        if not code:
            raise AuthError("Missing authorization code.")
        with self._lock:
            pending = self._pending.pop(state or "", None)
        if not pending or time.time() - pending[1] >= self.ttl:
            raise AuthError("Sign-in session expired or unknown. Open /auth again.")
        flow = self._flow(state, code_verifier=pending[0])
        try:
            flow.fetch_token(code=code)
        except (OAuth2Error, requests.RequestException) as e:
            logger.error("OAuth code exchange failed: %s", e)
            raise AuthError(f"Google refused the sign-in: {e}") from e
        creds = flow.credentials
        if not creds.refresh_token:
            logger.warning("Google returned no refresh token; the mailbox will disconnect when the token expires")
        store.save(creds)
        return creds


def main():
    if config.CREDENTIALS_FILE.exists():
        flow = InstalledAppFlow.from_client_secrets_file(str(config.CREDENTIALS_FILE), config.SCOPES)
    elif config.GOOGLE_CLIENT_ID and config.GOOGLE_CLIENT_SECRET:
        flow = InstalledAppFlow.from_client_config(client_config("installed"), config.SCOPES)
    else:
        print("Missing credentials.json (or GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET)")
        print()
        print("1. Go to https://console.cloud.google.com/")
        print("2. Create or select a project → APIs & Services → Credentials")
        print("3. Create credentials → OAuth client ID")
        print("4. Application type: Desktop app")
        print("5. Download JSON and save as credentials.json in this folder")
        print("   ", config.CREDENTIALS_FILE)
        return 1

    store = default_store()
    creds = store.load()
    if creds and creds.refresh_token and set(config.SCOPES) <= set(creds.scopes or []):
        print("A Gmail token with a refresh token is already stored. Delete it to sign in again.")
        return 0

    creds = flow.run_local_server(port=0, access_type="offline", prompt="consent")
    store.save(creds)

    print("Gmail OAuth done. Token stored.")
    print("You can run `python main.py serve` now.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
