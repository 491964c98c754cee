"""
Shared fakes. No test touches the network: mailboxes, credential stores and
Telegram are all replaced here.
"""
import base64
import os
from contextlib import contextmanager
from pathlib import Path

# Keep a developer's .env / token out of the tests
os.environ.setdefault("TOKENS_PATH", str(Path(__file__).parent / "no-such-token.json"))

from mail_client import Message  # noqa: E402


def b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def html_leaf(text: str) -> dict:
    return {"mimeType": "text/html", "body": {"data": b64url(text)}}


def plain_leaf(text: str) -> dict:
    return {"mimeType": "text/plain", "body": {"data": b64url(text)}}


def gmail_message(msg_id: str, payload: dict, subject="Netflix household", sender="Netflix <info@account.netflix.com>",
                  date="Mon, 13 Oct 2025 08:30:00 +0000") -> dict:
    payload = dict(payload)
    payload["headers"] = [
        {"name": "Subject", "value": subject},
        {"name": "From", "value": sender},
        {"name": "Date", "value": date},
    ]
    return {"id": msg_id, "payload": payload}


BUTTON_HTML = (
    '<html><body><p>Was this you?</p>'
    '<a href="https://www.netflix.com/account/update-primary-location?nftoken=abc&amp;g=1" '
    'style="color:#fff">Yes, this was me</a></body></html>'
)


class FakeMailbox:
    """Records every call. `results` maps query substrings to ids; `messages` maps ids to Gmail JSON."""

    def __init__(self, results=None, messages=None, attachments=None):
        self.results = results or {}
        self.messages = messages or {}
        self.attachments = attachments or {}
        self.searches = []
        self.fetched = []
        self.attachment_calls = []

    def search(self, query, max_results):
        self.searches.append((query, max_results))
        for needle, ids in self.results.items():
            if needle in query:
                return list(ids)
        return []

    def get_message(self, message_id):
        self.fetched.append(message_id)
        return Message.from_gmail(self.messages[message_id])

    def get_attachment(self, message_id, attachment_id):
        self.attachment_calls.append((message_id, attachment_id))
        value = self.attachments[attachment_id]
        if isinstance(value, Exception):
            raise value
        return value


class FakeStore:
    def __init__(self, creds=None):
        self.creds = creds
        self.saved = []

    def load(self):
        return self.creds

    def save(self, creds):
        self.saved.append(creds)
        self.creds = creds


class ValidCreds:
    valid = True
    refresh_token = "refresh"
    token = "access"


def mailbox_factory(mailbox):
    @contextmanager
    def factory(creds):
        yield mailbox

    return factory
