"""
Where the operator's Gmail OAuth token is kept.

A store has two methods, load() -> Credentials | None and save(creds). The
file store is the token.json written by `auth`; the env store reads TOKENS_JSON for
hosts where the filesystem does not survive a restart.
"""
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

import config
from errors import NotAuthenticated, UpstreamFailure

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"


class CredentialStore(Protocol):
    def load(self) -> Credentials | None: ...

    def save(self, creds: Credentials) -> None: ...


def _expiry(info: dict) -> datetime | None:
    """Naive UTC, the way google-auth keeps Credentials.expiry."""
    if info.get("expiry"):
        try:
            return datetime.strptime(str(info["expiry"]).rstrip("Z").split(".")[0], "%Y-%m-%dT%H:%M:%S")
        except ValueError:
            logger.warning("Ignoring unreadable token expiry %r", info["expiry"])
            return None
    if info.get("expiry_date"):
        # googleapis clients store epoch milliseconds
        try:
            return datetime.fromtimestamp(int(info["expiry_date"]) / 1000, timezone.utc).replace(tzinfo=None)
        except (TypeError, ValueError, OverflowError):
            return None
    if info.get("expires_in"):
        # Relative to an unknown issue time, so it can't be trusted: treat as expired
        return datetime.now(timezone.utc).replace(tzinfo=None)
    return None


def credentials_from_info(info: dict, scopes: list[str] | None = None) -> Credentials | None:
    """
    Accept both google-auth's to_json() layout and the raw token endpoint
    response ({"access_token", "refresh_token", "expiry_date", ...}). Client
    id/secret missing from the token are filled in from config.
    """
    if not isinstance(info, dict):
        return None
    token = info.get("token") or info.get("access_token")
    refresh_token = info.get("refresh_token")
    if not token and not refresh_token:
        return None
    scopes = info.get("scopes") or scopes

    if "token" in info and refresh_token:
        authorized = {
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "token_uri": TOKEN_URI,
        }
        authorized.update({k: v for k, v in info.items() if v})
        try:
            return Credentials.from_authorized_user_info(authorized, scopes)
        except ValueError as e:
            logger.warning("Stored token is incomplete: %s", e)
            return None

    return Credentials(
        token=token,
        refresh_token=refresh_token,
        token_uri=info.get("token_uri") or TOKEN_URI,
        client_id=info.get("client_id") or config.GOOGLE_CLIENT_ID,
        client_secret=info.get("client_secret") or config.GOOGLE_CLIENT_SECRET,
        scopes=scopes,
        expiry=_expiry(info),
    )


class FileCredentialStore:
    def __init__(self, path: str | Path, scopes: list[str] | None = None):
        self.path = Path(path)
        self.scopes = scopes

    def load(self) -> Credentials | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                info = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Unreadable token file %s: %s", self.path, e)
            return None
        return credentials_from_info(info, self.scopes)

    def save(self, creds: Credentials) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(creds.to_json())
        logger.info("Gmail token saved to %s", self.path)


class EnvCredentialStore:
    """
    Token JSON in an environment variable. save() only lasts for this process,
    so it also prints the JSON for the operator to paste into the host's env.
    """

    def __init__(self, var: str = config.TOKENS_JSON_VAR, scopes: list[str] | None = None):
        self.var = var
        self.scopes = scopes

    def load(self) -> Credentials | None:
        raw = os.environ.get(self.var, "").strip()
        if not raw:
            return None
        try:
            info = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("%s is not valid JSON: %s", self.var, e)
            return None
        return credentials_from_info(info, self.scopes)

    def save(self, creds: Credentials) -> None:
        raw = creds.to_json()
        os.environ[self.var] = raw
        print(f"====== {self.var} START ======", flush=True)
        print(raw, flush=True)
        print(f"====== {self.var} END ======", flush=True)
        logger.info("Copy the token printed above into the %s environment variable", self.var)


def default_store() -> CredentialStore:
    if os.environ.get(config.TOKENS_JSON_VAR):
        return EnvCredentialStore(scopes=config.SCOPES)
    return FileCredentialStore(config.TOKENS_PATH, scopes=config.SCOPES)


def load_credentials(store: CredentialStore) -> Credentials:
    """Load the token and refresh it if needed. Raises NotAuthenticated when unusable."""
    creds = store.load()
    if not creds:
        raise NotAuthenticated()
    if not creds.valid:
        if not creds.refresh_token:
            raise NotAuthenticated("The stored Gmail token expired. An admin must open /auth again.")
        try:
            creds.refresh(Request())
        except RefreshError as e:
            logger.error("Gmail token refresh failed: %s", e)
            raise NotAuthenticated(
                "The stored Gmail token was revoked or expired. An admin must open /auth again."
            ) from e
        except TransportError as e:
            raise UpstreamFailure() from e
    return creds
