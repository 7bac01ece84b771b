"""
Mint the OAuth token file the auto-reply agent reads at startup.

Run this once on a machine with a browser; copy the resulting token file to
wherever the agent runs (GMAIL_OAUTH_TOKEN_FILE).

Usage:
    python3 bootstrap_gmail_token.py [--client-secret PATH] [--token-file PATH] [--force] [--mode console]
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from gmail_service import GMAIL_AUTOREPLY_SCOPES, build_gmail_service, load_oauth_credentials
from mailbox_client import MailboxClient, MailboxError

CLIENT_SECRET_CANDIDATES = ("credentials.json", "client_secret.json", "client_secret_desktop.json")

logger = logging.getLogger("bootstrap_gmail_token")


def find_client_secret(explicit: Optional[str], search_dir: Path = Path(".")) -> Optional[Path]:
    if explicit:
        path = Path(explicit).expanduser().resolve()
        return path if path.is_file() else None
    for name in CLIENT_SECRET_CANDIDATES:
        path = search_dir / name
        if path.is_file():
            return path.resolve()
    return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Authorize the auto-reply agent against a Gmail account.")
    parser.add_argument("--client-secret", help="OAuth desktop client JSON; searched for in the working directory if omitted.")
    parser.add_argument("--token-file", default="token.json", help="Output path for the authorized token.")
    parser.add_argument("--force", action="store_true", help="Replace an existing token file.")
    parser.add_argument(
        "--mode",
        choices=("local-server", "console"),
        default="local-server",
        help="'console' prints the consent URL instead of opening a browser.",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = build_parser().parse_args(argv)

    client_secret = find_client_secret(args.client_secret)
    if client_secret is None:
        logger.error(
            "No OAuth client secret found (looked for %s). Pass --client-secret.",
            args.client_secret or ", ".join(CLIENT_SECRET_CANDIDATES),
        )
        return 1

    token_path = Path(args.token_file).expanduser().resolve()
    if token_path.exists() and not args.force:
        logger.error("%s already exists; rerun with --force to replace it.", token_path)
        return 1
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.unlink(missing_ok=True)

    load_oauth_credentials(
        oauth_client_secret=str(client_secret),
        oauth_token_file=str(token_path),
        scopes=GMAIL_AUTOREPLY_SCOPES,
        allow_oauth_flow=True,
        oauth_flow_mode=args.mode.replace("-", "_"),
    )
    logger.info("Token written to %s", token_path)

    service = build_gmail_service(oauth_token_file=str(token_path))
    try:
        address = MailboxClient(service).profile_address()
    except MailboxError as exc:
        logger.warning("Token saved but the mailbox could not be read back: %s", exc)
        return 1
    logger.info("Authorized for %s", address)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
