"""Find the household confirmation link in an email body."""
import html
import re
import unicodedata
from dataclasses import dataclass
from typing import Callable, Iterable

DEFAULT_PHRASES = ("Yes, this was me", "Đúng, đây là tôi")

# Bounded so a body full of unclosed <a> tags stays linear
ANCHOR_RE = re.compile(
    r"<a\b(?P<attrs>[^<>]{0,2000})>(?P<text>(?:(?!</?a\b).){0,2000}?)</a\s*>",
    re.IGNORECASE | re.DOTALL,
)
HREF_RE = re.compile(
    r"""(?<![\w-])href\s*=\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\s>]+))""",
    re.IGNORECASE,
)
TAG_RE = re.compile(r"<[^>]+>")
WS_RE = re.compile(r"\s+")
AMP_RE = re.compile(r"&(?:amp|#0*38|#x0*26);", re.IGNORECASE)

# Bare links. Stop at whitespace, quotes, angle brackets and the ']' plain-text
# emails wrap links in.
URL_TAIL = r"""[^\s"'<>\]]*"""
UPDATE_PRIMARY_LOCATION_RE = re.compile(
    r"https://(?:[\w-]+\.)*netflix\.com/account/update-primary-location" + URL_TAIL,
    re.IGNORECASE,
)
TRAVEL_VERIFY_RE = re.compile(
    r"https://(?:[\w-]+\.)*netflix\.com/account/travel/verify" + URL_TAIL,
    re.IGNORECASE,
)
ACCOUNT_RE = re.compile(r"https://www\.netflix\.com/account/" + URL_TAIL, re.IGNORECASE)


def _normalize(text: str) -> str:
    return unicodedata.normalize("NFC", text)


def _unescape_url(url: str) -> str:
    # Only &amp; and its numeric forms; html.unescape would also eat "&reg" in "&region="
    return AMP_RE.sub("&", url).strip()


@dataclass(frozen=True)
class LinkRule:
    name: str
    find: Callable[[str], str | None]


def anchor_rule(phrases: Iterable[str]) -> LinkRule:
    """Match <a href=...> whose visible text contains one of the phrases."""
    words = [_normalize(p).split() for p in phrases if p.strip()]
    phrase_re = re.compile(
        "|".join(r"\s+".join(re.escape(w) for w in ws) for ws in words),
        re.IGNORECASE,
    )

    def find(body: str) -> str | None:
        if not words:
            return None
        for anchor in ANCHOR_RE.finditer(body):
            text = html.unescape(TAG_RE.sub(" ", anchor.group("text")))
            text = WS_RE.sub(" ", _normalize(text).replace("\xa0", " "))
            if not phrase_re.search(text):
                continue
            href = HREF_RE.search(anchor.group("attrs"))
            if href:
                value = href.group("dq") or href.group("sq") or href.group("bare") or ""
                value = _unescape_url(value)
                if value:
                    return value
        return None

    return LinkRule("button", find)


def url_rule(name: str, pattern: re.Pattern) -> LinkRule:
    def find(body: str) -> str | None:
        m = pattern.search(body)
        return _unescape_url(m.group(0)) if m else None

    return LinkRule(name, find)


def build_rules(phrases: Iterable[str] = DEFAULT_PHRASES) -> list[LinkRule]:
    """Most specific first: the button, then known paths, then any account link."""
    return [
        anchor_rule(phrases),
        url_rule("update-primary-location", UPDATE_PRIMARY_LOCATION_RE),
        url_rule("travel-verify", TRAVEL_VERIFY_RE),
        url_rule("account", ACCOUNT_RE),
    ]


DEFAULT_RULES = build_rules()


def extract_link(body: str, rules: list[LinkRule] | None = None) -> str | None:
    """First rule that matches wins. Returns None when nothing matches."""
    if not body:
        return None
    body = _normalize(body)
    for rule in rules or DEFAULT_RULES:
        link = rule.find(body)
        if link:
            return link
    return None
