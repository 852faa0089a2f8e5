"""
Command line tool for data-collection jobs that need provider tokens.

Usage:
    tokenkeeper token -k <credential_id> refresh -s <seconds>
    tokenkeeper principal create [--admin]
    tokenkeeper reap
    tokenkeeper serve

``token ... refresh`` prints an access token valid for at least the given
number of seconds, refreshing it first if needed. Errors go to stderr with
exit status 1.
"""
import argparse
import logging
import sys
from datetime import timedelta

from tokenkeeper.core.config import settings
from tokenkeeper.core.database import create_db_and_tables, engine
from tokenkeeper.core.errors import StoreError, TokenLifecycleError
from tokenkeeper.core.scheduler import ExpiryReaper
from tokenkeeper.services.token_manager import TokenLifecycleManager
from tokenkeeper.store import CredentialStore


def build_manager() -> TokenLifecycleManager:
    create_db_and_tables()
    return TokenLifecycleManager.from_settings(settings, CredentialStore(engine))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tokenkeeper", description="OAuth token lifecycle tool")
    commands = parser.add_subparsers(dest="command", required=True)

    token = commands.add_parser("token", help="Work with a stored credential")
    token.add_argument("-k", dest="credential_id", type=int, required=True, help="Credential ID")
    token_actions = token.add_subparsers(dest="action", required=True)
    refresh = token_actions.add_parser("refresh", help="Print a usable access token")
    refresh.add_argument(
        "-s",
        dest="seconds",
        type=int,
        default=settings.default_refresh_window_seconds,
        help="Minimum remaining lifetime of the returned token",
    )

    principal = commands.add_parser("principal", help="Manage principals")
    principal_actions = principal.add_subparsers(dest="action", required=True)
    create = principal_actions.add_parser("create", help="Create a principal and print its ID")
    create.add_argument("--admin", action="store_true")

    commands.add_parser("reap", help="Delete expired pending authorizations once")

    serve = commands.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--port", type=int, default=settings.port)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.command == "serve":
        import uvicorn

        uvicorn.run("tokenkeeper.main:app", host=args.host, port=args.port)
        return 0

    try:
        manager = build_manager()
        if args.command == "token":
            print(
                manager.get_usable_access_token(
                    args.credential_id, timedelta(seconds=args.seconds)
                )
            )
        elif args.command == "principal":
            print(manager.create_principal(is_admin=args.admin).id)
        elif args.command == "reap":
            print(ExpiryReaper(manager.store, clock=manager.clock).sweep())
    except (TokenLifecycleError, StoreError, ValueError) as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
