"""
Message payload trees and body extraction.

Gmail returns a message body as a tree of parts. Leaves carry base64url text
inline (body.data) or, for large parts, only an attachmentId that has to be
fetched separately. Emails built by different senders nest text/html and
text/plain in different ways, so extract_body walks the whole tree and prefers
HTML over plain text.
"""
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

HTML = "text/html"
PLAIN = "text/plain"


def decode_base64url(data: str | bytes | None) -> str:
    """Gmail sends base64url, often without '=' padding. Undecodable input gives ''."""
    if not data:
        return ""
    if isinstance(data, str):
        data = data.encode("ascii", errors="ignore")
    data = data.strip()
    missing = len(data) % 4
    if missing:
        data += b"=" * (4 - missing)
    try:
        raw = base64.urlsafe_b64decode(data)
    except (binascii.Error, ValueError) as e:
        logger.debug("Skipping undecodable body data: %s", e)
        return ""
    return raw.decode("utf-8", errors="replace")


def encode_base64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii")


@dataclass(frozen=True)
class PayloadNode:
    """One part of a message. Containers have parts; leaves have data or attachment_id."""

    mime_type: str = ""
    data: str | None = None
    attachment_id: str | None = None
    parts: tuple["PayloadNode", ...] = field(default_factory=tuple)

    @classmethod
    def from_gmail(cls, payload: dict | None) -> "PayloadNode":
        """Build from a Gmail API `payload` dict. Missing or odd fields become empty."""
        if not isinstance(payload, dict):
            return cls()
        body = payload.get("body")
        if not isinstance(body, dict):
            body = {}
        parts = payload.get("parts")
        if not isinstance(parts, list):
            parts = []
        return cls(
            mime_type=(payload.get("mimeType") or "").lower(),
            data=body.get("data") or None,
            attachment_id=body.get("attachmentId") or None,
            parts=tuple(cls.from_gmail(p) for p in parts if isinstance(p, dict)),
        )

    @classmethod
    def from_email(cls, msg) -> "PayloadNode":
        """Build from an email.message.Message (IMAP). Text is re-encoded as UTF-8."""
        mime_type = msg.get_content_type()
        if msg.is_multipart():
            return cls(
                mime_type=mime_type,
                parts=tuple(cls.from_email(p) for p in msg.get_payload()),
            )
        payload = msg.get_payload(decode=True)
        if not payload:
            return cls(mime_type=mime_type)
        if msg.get_content_maintype() == "text":
            try:
                text = payload.decode(msg.get_content_charset() or "utf-8", errors="replace")
            except LookupError:
                text = payload.decode("utf-8", errors="replace")
            payload = text.encode("utf-8")
        return cls(mime_type=mime_type, data=encode_base64url(payload))


def _is_textual(mime_type: str) -> bool:
    return not mime_type or mime_type.startswith(("text/", "multipart/"))


def extract_body(fetch_attachment: Callable[[str], str | bytes], root: PayloadNode | None) -> str:
    """
    Return the best body text of a payload tree.

    HTML wins outright and stops the walk. The first text/plain leaf is kept
    as a fallback in case no HTML turns up. fetch_attachment(attachment_id)
    returns the encoded content of an out-of-line part; its errors propagate.
    """
    plain: str | None = None

    def load(node: PayloadNode) -> str:
        if node.data:
            return decode_base64url(node.data)
        if node.attachment_id:
            return decode_base64url(fetch_attachment(node.attachment_id))
        return ""

    def walk(node: PayloadNode) -> str:
        nonlocal plain

        if node.mime_type == HTML and (node.data or node.attachment_id):
            return load(node)

        if node.mime_type == PLAIN:
            if plain is None and (node.data or node.attachment_id):
                plain = load(node) or None
            return ""

        for child in node.parts:
            got = walk(child)
            if got:
                return got

        # Some senders put the whole body on the container itself
        if _is_textual(node.mime_type) and (node.data or node.attachment_id):
            return load(node)
        return ""

    if root is None:
        return ""
    return walk(root) or plain or ""
