"""Settings read from the environment (and .env next to the code)."""
import os

from env_loader import env_list, get_base_dir, load_dotenv

load_dotenv()

# --- Google OAuth ---
GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.environ.get("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REDIRECT_URI = os.environ.get(
    "GOOGLE_REDIRECT_URI", "http://localhost:3000/oauth2callback"
)
CREDENTIALS_FILE = get_base_dir() / "credentials.json"

# Where the operator's token lives: TOKENS_JSON (env) wins over TOKENS_PATH (file).
TOKENS_PATH = os.environ.get("TOKENS_PATH") or str(get_base_dir() / "token.json")
TOKENS_JSON_VAR = "TOKENS_JSON"

# --- Mailbox ---
# "gmail" = Gmail REST API, "imap" = Gmail IMAP with XOAUTH2
MAIL_PROVIDER = os.environ.get("MAIL_PROVIDER", "gmail").strip().lower()
IMAP_HOST = os.environ.get("IMAP_HOST", "imap.gmail.com")
IMAP_PORT = int(os.environ.get("IMAP_PORT", "993"))
IMAP_USER = os.environ.get("IMAP_USER", "")
IMAP_FOLDER = os.environ.get("IMAP_FOLDER", "[Gmail]/All Mail")
MAIL_TIMEOUT = float(os.environ.get("MAIL_TIMEOUT", "30"))

GMAIL_API_SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]
GMAIL_IMAP_SCOPES = ["https://mail.google.com/"]
SCOPES = GMAIL_IMAP_SCOPES if MAIL_PROVIDER == "imap" else GMAIL_API_SCOPES

# --- Search ---
# Most specific first; later queries are looser fallbacks.
DEFAULT_QUERIES = [
    'from:info@account.netflix.com "Lưu ý quan trọng: Cách cập nhật Hộ gia đình Netflix"',
    'from:info@account.netflix.com "How to update your Netflix household"',
    "(from:@netflix.com OR from:@mailer.netflix.com) (subject:Netflix OR household OR cập OR update)",
]
SEARCH_QUERIES = env_list("SEARCH_QUERIES", sep=";") or DEFAULT_QUERIES
SEARCH_WINDOW_DAYS = int(os.environ.get("SEARCH_WINDOW_DAYS", "120")) or None
MAX_CANDIDATES = int(os.environ.get("MAX_CANDIDATES", "20"))
CONFIRM_PHRASES = env_list("CONFIRM_PHRASES", sep=";")

# --- Redemption ---
CODE_LIST = env_list("CODE_LIST")
DISPLAY_TZ = os.environ.get("DISPLAY_TZ", "Asia/Ho_Chi_Minh")

# --- Web ---
PORT = int(os.environ.get("PORT", "3000"))
RATE_LIMIT = int(os.environ.get("RATE_LIMIT", "10"))
RATE_WINDOW = int(os.environ.get("RATE_WINDOW", "300"))
# Required as ?key= on /auth when set
ADMIN_KEY = os.environ.get("ADMIN_KEY", "")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# --- Telegram ---
TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN", "")
# Empty = any chat may redeem
TELEGRAM_ALLOWED_CHATS = set(env_list("TELEGRAM_ALLOWED_CHATS"))
# Max length per Telegram message (leave a bit of margin)
TELEGRAM_MAX_LENGTH = 4050
