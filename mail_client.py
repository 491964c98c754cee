"""
Read-only access to the shared mailbox.

Two backends with the same three calls:
  search(query, max_results) -> ids, newest first
  get_message(id)            -> Message
  get_attachment(id, att_id) -> base64url content of an out-of-line part

GmailMailbox talks to the Gmail REST API through an AuthorizedSession, which
attaches the bearer token and refreshes it when Google answers 401.
ImapMailbox talks to Gmail over IMAP (XOAUTH2) and uses X-GM-RAW so the same
Gmail search syntax works for both.
"""
import email
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from email.header import decode_header, make_header
from typing import Iterator

import imapclient
import requests
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials
from imapclient.exceptions import IMAPClientError, LoginError

import config
from errors import NotAuthenticated, UpstreamFailure
from mime_body import PayloadNode

logger = logging.getLogger(__name__)

GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"


@dataclass(frozen=True)
class Message:
    id: str | int
    headers: tuple[tuple[str, str], ...]
    payload: PayloadNode

    def header(self, name: str) -> str:
        """First header with this name (case-insensitive), '' when absent."""
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value or ""
        return ""

    @classmethod
    def from_gmail(cls, data: dict) -> "Message":
        payload = data.get("payload") or {}
        headers = tuple(
            (h.get("name") or "", h.get("value") or "")
            for h in payload.get("headers") or []
            if isinstance(h, dict)
        )
        return cls(id=data.get("id") or "", headers=headers, payload=PayloadNode.from_gmail(payload))


def decode_mime_header(header) -> str:
    if header is None:
        return ""
    try:
        return str(make_header(decode_header(header))).strip()
    except (LookupError, UnicodeError, ValueError):
        return str(header).strip()


class GmailMailbox:
    def __init__(self, session: requests.Session, timeout: float = config.MAIL_TIMEOUT):
        self.session = session
        self.timeout = timeout

    def _get(self, path: str, **params) -> dict:
        try:
            r = self.session.get(f"{GMAIL_API}/{path}", params=params, timeout=self.timeout)
        except RefreshError as e:
            raise NotAuthenticated(
                "The stored Gmail token was revoked or expired. An admin must open /auth again."
            ) from e
        except (requests.RequestException, TransportError) as e:
            logger.error("Gmail API request failed: %s", e)
            raise UpstreamFailure() from e
        if r.status_code == 401:
            raise NotAuthenticated("Gmail rejected the stored token. An admin must open /auth again.")
        if r.status_code != 200:
            logger.error("Gmail API %s: %s %s", path.split("/")[0], r.status_code, r.text[:200])
            raise UpstreamFailure()
        try:
            return r.json()
        except ValueError as e:
            raise UpstreamFailure() from e

    def search(self, query: str, max_results: int) -> list[str]:
        data = self._get("messages", q=query, maxResults=max_results)
        return [m["id"] for m in data.get("messages") or [] if m.get("id")][:max_results]

    def get_message(self, message_id: str) -> Message:
        return Message.from_gmail(self._get(f"messages/{message_id}", format="full"))

    def get_attachment(self, message_id: str, attachment_id: str) -> str:
        data = self._get(f"messages/{message_id}/attachments/{attachment_id}")
        return data.get("data") or ""


class ImapMailbox:
    def __init__(self, client: imapclient.IMAPClient):
        self.client = client

    def search(self, query: str, max_results: int) -> list[int]:
        try:
            uids = self.client.gmail_search(query)
        except (IMAPClientError, OSError) as e:
            logger.error("IMAP search failed: %s", e)
            raise UpstreamFailure() from e
        # Higher UID = arrived later
        return sorted(uids, reverse=True)[:max_results]

    def get_message(self, message_id: int) -> Message:
        try:
            data = self.client.fetch([message_id], ["RFC822"])
        except (IMAPClientError, OSError) as e:
            logger.error("IMAP fetch of uid %s failed: %s", message_id, e)
            raise UpstreamFailure() from e
        if message_id not in data or b"RFC822" not in data[message_id]:
            logger.error("IMAP fetch of uid %s returned nothing", message_id)
            raise UpstreamFailure()
        msg = email.message_from_bytes(data[message_id][b"RFC822"])
        headers = tuple((k, decode_mime_header(v)) for k, v in msg.items())
        return Message(id=message_id, headers=headers, payload=PayloadNode.from_email(msg))

    def get_attachment(self, message_id: int, attachment_id: str) -> str:
        # RFC822 fetches carry every part inline
        raise UpstreamFailure(f"IMAP message {message_id} has no out-of-line part {attachment_id}")


@contextmanager
def connect_imap(creds: Credentials) -> Iterator[ImapMailbox]:
    if not config.IMAP_USER:
        raise NotAuthenticated("IMAP_USER is not set.")
    try:
        client = imapclient.IMAPClient(
            config.IMAP_HOST, port=config.IMAP_PORT, ssl=True, timeout=config.MAIL_TIMEOUT
        )
    except (IMAPClientError, OSError) as e:
        logger.error("IMAP connect to %s failed: %s", config.IMAP_HOST, e)
        raise UpstreamFailure() from e
    with client:
        try:
            client.oauth2_login(config.IMAP_USER, creds.token)
        except LoginError as e:
            raise NotAuthenticated("Gmail IMAP rejected the stored token. An admin must run auth again.") from e
        try:
            if not client.has_capability("X-GM-EXT-1"):
                raise UpstreamFailure(f"{config.IMAP_HOST} does not support Gmail search.")
            client.select_folder(config.IMAP_FOLDER, readonly=True)
        except (IMAPClientError, OSError) as e:
            logger.error("IMAP select of %s failed: %s", config.IMAP_FOLDER, e)
            raise UpstreamFailure() from e
        yield ImapMailbox(client)


@contextmanager
def open_mailbox(creds: Credentials, provider: str | None = None):
    """Yield a mailbox for the configured provider and close it afterwards."""
    provider = provider or config.MAIL_PROVIDER
    if provider == "imap":
        with connect_imap(creds) as mailbox:
            yield mailbox
        return
    session = AuthorizedSession(creds)
    try:
        yield GmailMailbox(session)
    finally:
        session.close()
