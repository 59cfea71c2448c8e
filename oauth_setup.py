"""Authorize access to Google Calendar and store the OAuth token."""
import argparse
import logging

from processor.config import SyncConfig
from processor.exceptions import AuthenticationError
from storage.credentials import run_consent_flow


def parse_args() -> argparse.Namespace:
    config = SyncConfig.from_env()
    parser = argparse.ArgumentParser(description="Authorize Google Calendar access for the meetings sync")
    parser.add_argument("--credentials", default=config.credentials_file, help="OAuth client secrets JSON")
    parser.add_argument("--token", default=config.token_file, help="Where to store the token")
    parser.add_argument("--port", type=int, default=0, help="Local redirect port (0 picks a free port)")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    try:
        run_consent_flow(args.credentials, args.token, port=args.port)
    except AuthenticationError as e:
        logging.error(str(e))
        return 1

    logging.info("Authentication complete; the sync can now run unattended")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
