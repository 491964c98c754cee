from email.message import EmailMessage
from unittest.mock import MagicMock, Mock

import pytest
import requests
from google.auth.exceptions import RefreshError
from imapclient.exceptions import IMAPClientError

from conftest import b64url, gmail_message, html_leaf
from errors import NotAuthenticated, UpstreamFailure
from mail_client import GMAIL_API, GmailMailbox, ImapMailbox, Message, decode_mime_header


def response(status=200, data=None, text=""):
    r = Mock()
    r.status_code = status
    r.text = text
    r.json.return_value = data if data is not None else {}
    return r


def test_message_header_lookup_is_case_insensitive():
    msg = Message.from_gmail(gmail_message("m1", html_leaf("x"), subject="Hello"))
    assert msg.header("subject") == "Hello"
    assert msg.header("SUBJECT") == "Hello"
    assert msg.header("X-Missing") == ""
    assert msg.payload.mime_type == "text/html"


def test_gmail_search():
    session = Mock()
    session.get.return_value = response(data={"messages": [{"id": "a"}, {"id": "b"}, {}]})
    ids = GmailMailbox(session, timeout=5).search("from:netflix", 10)

    assert ids == ["a", "b"]
    session.get.assert_called_once_with(
        f"{GMAIL_API}/messages", params={"q": "from:netflix", "maxResults": 10}, timeout=5
    )


def test_gmail_search_empty_mailbox():
    session = Mock()
    session.get.return_value = response(data={"resultSizeEstimate": 0})
    assert GmailMailbox(session).search("q", 5) == []


def test_gmail_get_message_and_attachment():
    session = Mock()
    session.get.side_effect = [
        response(data=gmail_message("m1", html_leaf("<b>x</b>"), subject="S")),
        response(data={"size": 3, "data": b64url("abc")}),
    ]
    mailbox = GmailMailbox(session)

    msg = mailbox.get_message("m1")
    assert msg.id == "m1" and msg.header("Subject") == "S"
    assert session.get.call_args.kwargs["params"] == {"format": "full"}

    assert mailbox.get_attachment("m1", "att") == b64url("abc")
    assert session.get.call_args.args[0] == f"{GMAIL_API}/messages/m1/attachments/att"


@pytest.mark.parametrize(
    "outcome, error",
    [
        (response(status=401), NotAuthenticated),
        (response(status=403, text="insufficient scope"), UpstreamFailure),
        (response(status=500), UpstreamFailure),
        (requests.ConnectionError("down"), UpstreamFailure),
        (RefreshError("invalid_grant"), NotAuthenticated),
    ],
)
def test_gmail_errors(outcome, error):
    session = Mock()
    if isinstance(outcome, Exception):
        session.get.side_effect = outcome
    else:
        session.get.return_value = outcome
    with pytest.raises(error):
        GmailMailbox(session).search("q", 5)


def test_gmail_bad_json():
    r = response()
    r.json.side_effect = ValueError("not json")
    session = Mock()
    session.get.return_value = r
    with pytest.raises(UpstreamFailure):
        GmailMailbox(session).get_message("m1")


def rfc822(subject="Lưu ý") -> bytes:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = "Netflix <info@account.netflix.com>"
    msg.set_content("plain")
    msg.add_alternative("<a href='https://www.netflix.com/x'>Yes, this was me</a>", subtype="html")
    return msg.as_bytes()


def test_imap_search_newest_first():
    client = MagicMock()
    client.gmail_search.return_value = [3, 10, 7]
    assert ImapMailbox(client).search("from:netflix", 2) == [10, 7]
    client.gmail_search.assert_called_once_with("from:netflix")


def test_imap_get_message():
    client = MagicMock()
    client.fetch.return_value = {42: {b"RFC822": rfc822(), b"SEQ": 1}}
    msg = ImapMailbox(client).get_message(42)

    client.fetch.assert_called_once_with([42], ["RFC822"])
    assert msg.id == 42
    assert msg.header("Subject") == "Lưu ý"
    assert msg.payload.mime_type == "multipart/alternative"


def test_imap_missing_message():
    client = MagicMock()
    client.fetch.return_value = {}
    with pytest.raises(UpstreamFailure):
        ImapMailbox(client).get_message(1)


def test_imap_errors():
    client = MagicMock()
    client.gmail_search.side_effect = IMAPClientError("BAD")
    with pytest.raises(UpstreamFailure):
        ImapMailbox(client).search("q", 5)


def test_imap_has_no_out_of_line_parts():
    with pytest.raises(UpstreamFailure):
        ImapMailbox(MagicMock()).get_attachment(1, "x")


def test_decode_mime_header():
    assert decode_mime_header("=?utf-8?q?=C4=90=C3=BAng?=") == "Đúng"
    assert decode_mime_header(None) == ""
    assert decode_mime_header("plain") == "plain"
