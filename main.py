#!/usr/bin/env python3
"""
authgate - GitHub OAuth login with signed-cookie sessions and user lookup.
"""

import argparse
import json
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

logger = logging.getLogger(__name__)

#
# NOTE: Keep authgate imports lazy (inside functions) so `--help` works without
# the server/database dependencies installed.
#


def lookup_user(identifier: str) -> int:
    """Resolve an identifier against the configured stores and GitHub; print the user as JSON."""
    from authgate.auth.config import load_auth_config
    from authgate.providers.github_provider import GitHubIdentityProvider
    from authgate.services.users import resolve_user
    from authgate.storage.config import build_user_stores, load_store_config

    cfg = load_auth_config()
    stores = build_user_stores(load_store_config())
    provider = GitHubIdentityProvider(api_base=cfg.github_api_url, timeout=cfg.github_timeout_seconds)

    user = resolve_user(identifier, stores=stores, provider=provider)
    if user is None:
        print(f"User not found: {identifier}", file=sys.stderr)
        return 1
    print(json.dumps(user.to_dict(), indent=2))
    return 0


def init_db() -> int:
    """Create the users table in every configured store."""
    from authgate.storage.config import build_user_stores, load_store_config

    stores = build_user_stores(load_store_config())
    if not stores:
        print("No user store configured (set SQLITE_PATH and/or DATABASE_URL)", file=sys.stderr)
        return 1
    for store in stores:
        store.ensure_schema()
        logger.info("Schema ready in %s store", store.name)
    return 0


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="GitHub OAuth login service with signed-cookie sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the HTTP server
  python main.py --serve --port 8787

  # Resolve a user by login or numeric id
  python main.py --lookup octocat

  # Create the users table in the configured stores
  python main.py --init-db
        """,
    )

    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")
    parser.add_argument("--lookup", metavar="IDENTIFIER", help="Resolve a user by login or numeric id and print it")
    parser.add_argument("--init-db", action="store_true", help="Ensure the users table exists in configured stores")

    args = parser.parse_args()

    if args.serve:
        from authgate.api.server import run

        run(host=args.host, port=args.port)
        return

    if args.init_db:
        sys.exit(init_db())

    if args.lookup is not None:
        sys.exit(lookup_user(args.lookup))

    parser.print_help()


if __name__ == "__main__":
    main()
