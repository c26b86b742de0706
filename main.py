#!/usr/bin/env python3
"""
dashgate -- Admin bootstrap, login and session management for the dashboard.

Usage:
  python main.py serve
  python main.py serve --host 127.0.0.1 --port 8080 --reload
  python main.py needs-setup
  python main.py setup-admin --username admin
  python main.py sweep
  python main.py logout-all
  python main.py status

Environment variables (see core/config.py for the full list):
  DATA_DIR              Directory holding users.json and sessions.json (default: ./data)
  BCRYPT_ROUNDS         bcrypt work factor for new password hashes (default: 12)
  SESSION_TTL_SECONDS   Session lifetime (default: 86400)

The CLI works on the same documents as the server. Run the mutating commands
(setup-admin, sweep, logout-all) while the server is stopped: each process
keeps its own in-memory copy and the last writer wins.
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth import service
from auth.errors import AlreadyInitialized, HashingFailure
from auth.sessions import SessionStore
from auth.store import CredentialStore
from auth.tokens import MAX_PASSWORD_BYTES, normalize_username, password_too_long
from core.config import Settings, get_settings

logger = logging.getLogger("dashgate.cli")


def _credential_store(settings: Settings) -> CredentialStore:
    store = CredentialStore(settings.users_path, bcrypt_rounds=settings.bcrypt_rounds)
    store.load()
    return store


def _session_store(settings: Settings) -> SessionStore:
    store = SessionStore(settings.sessions_path, ttl_seconds=settings.session_ttl_seconds)
    store.load()
    return store


# ---------------------------------------------------------------------------
# Commands -- each returns the process exit code
# ---------------------------------------------------------------------------


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def cmd_needs_setup(args: argparse.Namespace, settings: Settings) -> int:
    needed = service.needs_setup(_credential_store(settings))
    print("true" if needed else "false")
    return 0


def cmd_setup_admin(args: argparse.Namespace, settings: Settings) -> int:
    try:
        username = normalize_username(args.username)
    except ValueError as exc:
        print(f"  [!] {exc.args[0].capitalize()}.")
        return 1

    credentials = _credential_store(settings)
    if not service.needs_setup(credentials):
        print("  [!] Setup already complete: a user already exists.")
        return 1

    password: Optional[str] = args.password
    if password is None:
        password = getpass.getpass("Admin password: ")
        if password != getpass.getpass("Repeat password: "):
            print("  [!] Passwords do not match.")
            return 1
    if not password:
        print("  [!] Password must not be empty.")
        return 1
    if password_too_long(password):
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8.")
        return 1

    try:
        user = service.setup_admin(credentials, username, password)
    except AlreadyInitialized:
        print("  [!] Setup already complete: a user already exists.")
        return 1
    except HashingFailure as exc:
        print(f"  [!] Could not hash the password: {exc}")
        return 1

    if not credentials.persisted_ok:
        print(f"  [!] Admin '{user.username}' created but {credentials.path} could not be written.")
        return 1
    print(f"Admin '{user.username}' created in {credentials.path}")
    return 0


def cmd_sweep(args: argparse.Namespace, settings: Settings) -> int:
    removed = service.cleanup_sessions(_session_store(settings))
    print(f"Removed {removed} expired session(s).")
    return 0


def cmd_logout_all(args: argparse.Namespace, settings: Settings) -> int:
    sessions = _session_store(settings)
    removed = service.logout_all(sessions)
    print(f"Logged out {removed} session(s).")
    return 0 if sessions.persisted_ok else 1


def cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    credentials = _credential_store(settings)
    sessions = _session_store(settings)
    print("dashgate status")
    print("─" * 40)
    print(f"  users     {credentials.count():>5}   {credentials.path}")
    print(f"  admin     {'yes' if credentials.has_admin() else 'no':>5}")
    print(f"  sessions  {sessions.count():>5}   {sessions.path}")
    print(f"  setup     {'required' if credentials.bootstrap_needed() else 'complete'}")
    return 0


_COMMANDS = {
    "serve": cmd_serve,
    "needs-setup": cmd_needs_setup,
    "setup-admin": cmd_setup_admin,
    "sweep": cmd_sweep,
    "logout-all": cmd_logout_all,
    "status": cmd_status,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dashgate",
        description="Admin bootstrap, login and session management for the dashboard.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --port 3089
  python main.py setup-admin --username admin
  DATA_DIR=/var/lib/dashgate python main.py status
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: PORT or 3089)")
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development)")

    sub.add_parser("needs-setup", help="Print true if no admin has been created yet")

    setup = sub.add_parser("setup-admin", help="Create the first admin account")
    setup.add_argument("--username", required=True, help="Admin username")
    setup.add_argument(
        "--password",
        default=None,
        help="Admin password (prompted for when omitted; prefer the prompt, argv is visible to other users)",
    )

    sub.add_parser("sweep", help="Remove expired sessions")
    sub.add_parser("logout-all", help="Remove every session")
    sub.add_parser("status", help="Show user and session counts")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    settings = get_settings()
    logger.debug("Running %s with data_dir=%s", args.command, settings.data_dir)
    return _COMMANDS[args.command](args, settings)


if __name__ == "__main__":
    sys.exit(main())
