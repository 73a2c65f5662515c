"""
Command-line interface for the CMRU portal API proxy.

Provides argument parsing and the ``serve`` entry point.
"""

import argparse
import sys
from pathlib import Path

import urllib3

from cmru_api import __version__
from cmru_api.config import DEFAULT_HOST, DEFAULT_PORT, STORAGE_DIR, TOKEN_TTL
from cmru_api.logging_setup import colorlog_available, log, setup_logging
from cmru_api.server import ApiService, run_server
from cmru_api.storage import PersistentStorage


def parse_args(argv: "list[str] | None" = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="cmru-api",
        description="JSON REST proxy for the CMRU bus reservation and "
                    "registrar portals.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Host and port can also be set via the HOST and PORT env vars,\n"
            "the storage directory via CMRU_API_STORAGE."
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the REST server (default)")
    serve.add_argument(
        "--host", default=DEFAULT_HOST,
        help=f"Interface to bind (default: {DEFAULT_HOST})",
    )
    serve.add_argument(
        "--port", type=int, default=DEFAULT_PORT,
        help=f"Port to listen on (default: {DEFAULT_PORT})",
    )
    serve.add_argument(
        "--storage-dir", default=str(STORAGE_DIR),
        help=f"Directory for tokens.json / sessions.json (default: {STORAGE_DIR})",
    )
    serve.add_argument(
        "--token-ttl", type=int, default=TOKEN_TTL,
        help=f"Bearer token lifetime in seconds (default: {TOKEN_TTL})",
    )
    serve.add_argument(
        "--no-verify-ssl", dest="verify_ssl", action="store_false", default=True,
        help="Disable TLS certificate verification towards the portals",
    )
    serve.add_argument(
        "--log-file", default=None,
        help="Also write DEBUG-level logs to this file",
    )
    serve.add_argument(
        "--debug", action="store_true",
        help="Enable verbose debug logging",
    )

    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in ("serve", "-h", "--help", "--version"):
        argv.insert(0, "serve")
    return parser.parse_args(argv)


def main(argv: "list[str] | None" = None) -> None:
    """
    Main entry point for the cmru-api CLI.
    """
    args = parse_args(argv)

    setup_logging(debug=args.debug, log_file=args.log_file)

    if not args.verify_ssl:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        log.warning("TLS certificate verification is DISABLED (--no-verify-ssl)")

    if not colorlog_available():
        log.info("Tip: install colorlog for colored output   (pip install colorlog)")

    storage = PersistentStorage(Path(args.storage_dir), token_ttl=args.token_ttl)
    service = ApiService(storage=storage, verify_ssl=args.verify_ssl)
    run_server(args.host, args.port, service)


if __name__ == "__main__":
    main()
