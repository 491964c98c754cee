#!/usr/bin/env python3
"""
Telegram bot: a customer sends /redeem CODE (or just the code) and gets the
household confirmation link back. Run with: python main.py bot
"""
import html
import logging
import sys
import time

import requests

import config
from errors import RedeemError
from rate_limit import RateLimiter
from redeem import ExtractionResult, LinkService, build_service

logger = logging.getLogger(__name__)

API = "https://api.telegram.org/bot{token}/{method}"

HELP = "Send /redeem followed by your order code, e.g. /redeem ABC123."


def _url(method: str) -> str:
    return API.format(token=config.TELEGRAM_BOT_TOKEN, method=method)


def send_telegram(text: str, chat_id: int | str) -> tuple[bool, str | None]:
    """Send text to a chat, split to Telegram's size limit. Returns (success, error_message)."""
    for i in range(0, len(text), config.TELEGRAM_MAX_LENGTH):
        chunk = text[i : i + config.TELEGRAM_MAX_LENGTH]
        payload = {"chat_id": chat_id, "text": chunk, "parse_mode": "HTML", "disable_web_page_preview": True}
        try:
            r = requests.post(_url("sendMessage"), json=payload, timeout=30)
            if r.status_code != 200:
                # HTML parse errors: retry as plain text
                r = requests.post(_url("sendMessage"), data={"chat_id": chat_id, "text": chunk}, timeout=30)
            if r.status_code != 200:
                data = r.json() if r.text else {}
                desc = data.get("description", r.text or str(r.status_code))
                return False, f"Telegram API error: {r.status_code} {desc}"
        except requests.RequestException as e:
            return False, f"Telegram request failed: {e}"
    return True, None


def set_bot_commands():
    """Register /redeem so it shows in the bot menu."""
    r = requests.post(
        _url("setMyCommands"),
        json={
            "commands": [
                {"command": "redeem", "description": "Redeem an order code"},
                {"command": "start", "description": "Start"},
            ]
        },
        timeout=10,
    )
    if r.status_code != 200:
        logger.warning("setMyCommands failed: %s %s", r.status_code, r.text)


def format_result(result: ExtractionResult) -> str:
    e = html.escape
    lines = [f"<b>Subject:</b> {e(result.subject)}", f"<b>From:</b> {e(result.sender)}"]
    sent = result.to_dict(config.DISPLAY_TZ)["date_local"] or result.sent_at
    if sent:
        lines.append(f"<b>Sent:</b> {e(sent)}")
    lines.append("")
    lines.append(f'<a href="{e(result.link, quote=True)}">Open confirmation link</a>')
    lines.append(e(result.link))
    return "\n".join(lines)


def parse_code(text: str) -> str | None:
    """'/redeem ABC', '/redeem@bot ABC' or a bare 'ABC'. None for other commands."""
    text = text.strip()
    if not text:
        return None
    if text.startswith("/"):
        command, _, rest = text.partition(" ")
        if command.split("@")[0].lower() != "/redeem":
            return None
        return rest.strip()
    return text.split()[0]


class RedeemBot:
    def __init__(self, service: LinkService, limiter: RateLimiter | None = None, send=send_telegram):
        self.service = service
        self.limiter = limiter or RateLimiter(config.RATE_LIMIT, config.RATE_WINDOW)
        self.send = send

    def reply(self, chat_id: int | str, text: str):
        ok, err = self.send(text, chat_id)
        if not ok:
            logger.warning("Reply to chat %s failed: %s", chat_id, err)

    def handle_update(self, update: dict) -> bool:
        """Process one update. Return True if we consumed it."""
        msg = update.get("message") or update.get("edited_message")
        if not msg:
            return False
        chat_id = msg.get("chat", {}).get("id")
        text = (msg.get("text") or "").strip()
        if chat_id is None or not text:
            return False
        if config.TELEGRAM_ALLOWED_CHATS and str(chat_id) not in config.TELEGRAM_ALLOWED_CHATS:
            return False

        if text.split()[0].split("@")[0].lower() in ("/start", "/help"):
            self.reply(chat_id, "Hi! " + HELP)
            return True

        code = parse_code(text)
        if code is None:
            return False
        if not code:
            self.reply(chat_id, HELP)
            return True
        if not self.limiter.allow(f"tg:{chat_id}"):
            self.reply(chat_id, "Too many attempts. Try again in a few minutes.")
            return True

        self.reply(chat_id, "Checking the mailbox…")
        try:
            result = self.service.redeem(code)
        except RedeemError as e:
            self.reply(chat_id, e.message)
            return True
        self.reply(chat_id, format_result(result))
        return True


def run_bot():
    if not config.TELEGRAM_BOT_TOKEN:
        print("Set TELEGRAM_BOT_TOKEN in .env", file=sys.stderr)
        sys.exit(1)
    bot = RedeemBot(build_service())
    set_bot_commands()
    print("Bot running. Customers send /redeem CODE. Ctrl+C to stop.", flush=True)
    offset = None
    while True:
        try:
            r = requests.get(
                _url("getUpdates"),
                params={"timeout": 60, "offset": offset},
                timeout=70,
            )
            if r.status_code != 200:
                logger.warning("getUpdates error: %s", r.status_code)
                time.sleep(5)
                continue
            data = r.json()
            if not data.get("ok"):
                time.sleep(5)
                continue
            for u in data.get("result", []):
                offset = u["update_id"] + 1
                bot.handle_update(u)
        except KeyboardInterrupt:
            print("\nStopped.")
            break
        except (requests.RequestException, ValueError) as e:
            logger.error("Polling error: %s", e)
            time.sleep(5)


if __name__ == "__main__":
    run_bot()
