from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from config.settings import ConfigurationError, Settings
from services.client import IBMCloudApikeyAuthClient
from services.errors import CloudAuthError
from services.models import CredentialStatus


def setup_logging(log_path: str) -> logging.Logger:
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("ibmcloud-auth")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    # Ensure UTC timestamps in logs
    formatter.converter = time.gmtime  # type: ignore[assignment]

    # stderr keeps stdout clean for the token / JSON output
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(logging.INFO)
    ch.setFormatter(formatter)

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.INFO)
    fh.setFormatter(formatter)

    logger.addHandler(ch)
    logger.addHandler(fh)

    # Route the service modules' loggers through the same handlers.
    services_logger = logging.getLogger("services")
    services_logger.setLevel(logging.INFO)
    services_logger.handlers.clear()
    services_logger.propagate = False
    services_logger.addHandler(ch)
    services_logger.addHandler(fh)

    return logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="IBM Cloud API key authentication helper")
    parser.add_argument("--apikey", help="API key (default: IBMCLOUD_API_KEY)")
    parser.add_argument("--iam-url", help="IAM base URL (default: IBMCLOUD_IAM_URL or https://iam.cloud.ibm.com)")

    sub = parser.add_subparsers(dest="command", required=True)

    token = sub.add_parser("token", help="print an IAM bearer token")
    token.add_argument("--force", action="store_true", help="issue a new token even if one is cached")

    credential = sub.add_parser("credential", help="print a service credential by name as JSON")
    credential.add_argument("name")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    # Load .env locally; real environment variables take precedence.
    load_dotenv()

    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env(apikey=args.apikey, iam_url=args.iam_url)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    logger = setup_logging(settings.log_path)
    start = time.time()
    client = IBMCloudApikeyAuthClient(settings)

    try:
        if args.command == "token":
            logger.info("token | retrieving access token | force=%s", args.force)
            print(client.get_token(force=args.force))
            exit_code = 0
        else:
            logger.info("credential | looking up name=%s", args.name)
            result = client.get_service_credential_by_name(args.name)
            print(json.dumps(result.to_dict(), indent=2))
            exit_code = 0 if result.status is CredentialStatus.SUCCESS else 1
    except CloudAuthError:
        logger.exception("failed | command=%s", args.command)
        return 3

    logger.info("completion | duration_seconds=%.2f", time.time() - start)
    return exit_code


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
