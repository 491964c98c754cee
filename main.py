#!/usr/bin/env python3
"""
Single entry point for household-link.
Usage:
  household-link auth          - one-time Gmail OAuth (browser on this machine)
  household-link serve         - run the web page and API (default)
  household-link bot           - run the Telegram bot (/redeem CODE)
  household-link check         - print the newest confirmation link, no code needed
  household-link redeem CODE   - redeem a code from the terminal
"""
import argparse
import json
import logging
import sys

from env_loader import load_dotenv

# Load .env before importing modules that read os.environ
load_dotenv()

import config  # noqa: E402


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Redeem order codes for the Netflix household confirmation link in a shared Gmail inbox.",
        prog="household-link",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=("auth", "serve", "bot", "check", "redeem"),
        help="auth = Gmail sign-in; serve = web app (default); bot = Telegram; check = newest link; redeem = use a code",
    )
    parser.add_argument("code", nargs="?", help="Order code for 'redeem'")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address for 'serve' (default: 0.0.0.0)")
    parser.add_argument(
        "--port",
        type=int,
        default=config.PORT,
        metavar="PORT",
        help=f"Port for 'serve' (default: {config.PORT})",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "auth":
        from auth_gmail import main as auth_main
        return auth_main()

    if args.command == "serve":
        import uvicorn

        print(f"Server running at http://localhost:{args.port}", flush=True)
        print("→ Open /auth once to connect Gmail before customers use it.", flush=True)
        uvicorn.run(
            "web:create_app",
            factory=True,
            host=args.host,
            port=args.port,
            proxy_headers=True,
            forwarded_allow_ips="*",
            log_level=config.LOG_LEVEL.lower(),
        )
        return 0

    if args.command == "bot":
        from telegram_bot import run_bot
        run_bot()
        return 0

    from errors import RedeemError
    from redeem import build_service

    service = build_service()
    try:
        if args.command == "check":
            result = service.lookup()
        else:
            if not args.code:
                parser.error("redeem needs a CODE")
            result = service.redeem(args.code)
    except RedeemError as e:
        print(f"Error: {e.message}", file=sys.stderr, flush=True)
        return 1

    print(json.dumps(result.to_dict(config.DISPLAY_TZ), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main() or 0)
