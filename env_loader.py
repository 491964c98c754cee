"""Base directory and .env loading. Works when run from a checkout or as a PyInstaller binary."""
import os
import sys
from pathlib import Path


def get_base_dir() -> Path:
    """Directory for .env, token.json and credentials.json (next to exe when frozen)."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent


def load_dotenv(path: Path | None = None) -> None:
    """Load KEY=VALUE lines into os.environ. Variables already set are left alone."""
    env_file = path or get_base_dir() / ".env"
    if not env_file.exists():
        return
    with open(env_file, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            k, _, v = line.partition("=")
            k = k.strip()
            if k.startswith("export "):
                k = k[len("export "):].strip()
            v = v.strip().strip('"').strip("'")
            if k and v:
                os.environ.setdefault(k, v)


def env_list(name: str, sep: str = ",", default: str = "") -> list[str]:
    """Split an env var on sep, dropping blanks."""
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(sep) if item.strip()]
