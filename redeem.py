"""
Order-code redemption: check the code, then find the newest confirmation email
in the shared mailbox and pull the link out of it.
"""
import logging
import threading
import time
from dataclasses import dataclass
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Iterable, Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import config
from credentials import CredentialStore, default_store, load_credentials
from errors import InvalidCode, NoMatch, UpstreamFailure
from link_extract import DEFAULT_PHRASES, build_rules, extract_link
from mail_client import open_mailbox
from mime_body import extract_body

logger = logging.getLogger(__name__)


def format_sent_at(raw: str, tz: str = config.DISPLAY_TZ) -> str:
    """Render a Date header in the display time zone. '' when it can't be parsed."""
    if not raw:
        return ""
    try:
        sent = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        return ""
    if sent.tzinfo is None:
        sent = sent.replace(tzinfo=timezone.utc)
    try:
        zone = ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown DISPLAY_TZ %r, using UTC", tz)
        zone = timezone.utc
    return sent.astimezone(zone).strftime("%A %d/%m/%Y %H:%M:%S")


@dataclass(frozen=True)
class ExtractionResult:
    link: str
    subject: str = ""
    sender: str = ""
    sent_at: str = ""

    def to_dict(self, tz: str = config.DISPLAY_TZ) -> dict:
        return {
            "link": self.link,
            "subject": self.subject,
            "from": self.sender,
            "date": self.sent_at,
            "date_local": format_sent_at(self.sent_at, tz),
        }


class CodeStore:
    """
    Order codes from CODE_LIST. Codes can be redeemed any number of times;
    use counts live in memory only.
    """

    def __init__(self, codes: Iterable[str]):
        self._uses = {c.strip(): 0 for c in codes if c and c.strip()}
        self._last_used: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._uses)

    def __contains__(self, code) -> bool:
        return isinstance(code, str) and code.strip() in self._uses

    def check(self, code) -> str:
        if not isinstance(code, str) or not code.strip():
            raise InvalidCode("Please enter an order code.")
        code = code.strip()
        if code not in self._uses:
            raise InvalidCode()
        return code

    def mark_used(self, code: str) -> int:
        with self._lock:
            self._uses[code] += 1
            self._last_used[code] = time.time()
            return self._uses[code]

    def uses(self, code: str) -> int:
        return self._uses.get(code, 0)


def _searches(mailbox, queries: list[str], max_candidates: int, window_days: int | None) -> Iterator[list]:
    """Run each query only once the ones before it have come up empty."""
    for query in queries:
        if window_days:
            query = f"newer_than:{window_days}d {query}"
        ids = mailbox.search(query, max_candidates)
        logger.info("Search %r: %d candidate(s)", query, len(ids))
        yield ids[:max_candidates]


def find_confirmation_link(
    mailbox,
    queries: list[str],
    max_candidates: int,
    window_days: int | None = None,
    extractor: Callable[[str], str | None] = extract_link,
) -> ExtractionResult:
    """
    Walk the search results query by query, newest message first, and return
    the first message with a confirmation link.

    Search and fetch errors abort. A failed attachment fetch only skips that
    message. Raises NoMatch when every query is exhausted.
    """
    seen = set()
    for ids in _searches(mailbox, queries, max_candidates, window_days):
        for message_id in ids:
            if message_id in seen:
                continue
            seen.add(message_id)

            msg = mailbox.get_message(message_id)
            subject = msg.header("Subject")
            try:
                body = extract_body(
                    lambda attachment_id: mailbox.get_attachment(message_id, attachment_id),
                    msg.payload,
                )
            except UpstreamFailure as e:
                logger.warning("Skipping message %s, attachment fetch failed: %s", message_id, e)
                continue

            link = extractor(body)
            if link:
                logger.info("Confirmation link found in message %s (%s)", message_id, subject)
                return ExtractionResult(
                    link=link,
                    subject=subject,
                    sender=msg.header("From"),
                    sent_at=msg.header("Date"),
                )
            logger.info("No confirmation link in message %s (%s)", message_id, subject)
    raise NoMatch()


class LinkService:
    def __init__(
        self,
        codes: CodeStore,
        store: CredentialStore,
        queries: list[str] | None = None,
        max_candidates: int = config.MAX_CANDIDATES,
        window_days: int | None = config.SEARCH_WINDOW_DAYS,
        phrases: Iterable[str] | None = None,
        mailbox_factory=open_mailbox,
    ):
        self.codes = codes
        self.store = store
        self.queries = list(queries or config.SEARCH_QUERIES)
        self.max_candidates = max_candidates
        self.window_days = window_days
        self.rules = build_rules(phrases or DEFAULT_PHRASES)
        self.mailbox_factory = mailbox_factory

    def extract(self, body: str) -> str | None:
        return extract_link(body, self.rules)

    def lookup(self) -> ExtractionResult:
        """Newest confirmation link, no code required. Used by redeem() and the check command."""
        creds = load_credentials(self.store)
        with self.mailbox_factory(creds) as mailbox:
            return find_confirmation_link(
                mailbox,
                self.queries,
                self.max_candidates,
                window_days=self.window_days,
                extractor=self.extract,
            )

    def redeem(self, code) -> ExtractionResult:
        code = self.codes.check(code)
        result = self.lookup()
        uses = self.codes.mark_used(code)
        logger.info("Code redeemed (use #%d)", uses)
        return result


def build_service() -> LinkService:
    """LinkService wired from config."""
    codes = CodeStore(config.CODE_LIST)
    if not len(codes):
        logger.warning("CODE_LIST is empty, every code will be rejected")
    return LinkService(
        codes,
        default_store(),
        queries=config.SEARCH_QUERIES,
        max_candidates=config.MAX_CANDIDATES,
        window_days=config.SEARCH_WINDOW_DAYS,
        phrases=config.CONFIRM_PHRASES,
    )
