#!/usr/bin/env python3
"""
Obrador management commands.

Usage:
    python manage.py init-db
    python manage.py seed-default-steps [--force]
    python manage.py serve [--port 3001] [--reload]

The database is taken from DATABASE_URL (see backend/.env); SQLite is used
when it is not set.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from obrador_api.services.database import db_pool
from obrador_api.services.default_steps import seed_default_steps


DEFAULT_PORT = 3001

logger = logging.getLogger("obrador.manage")


def cmd_init_db(args) -> int:
    """Create all tables."""
    db_pool.initialize(args.database_url)
    print(f"✓ Schema ready ({db_pool.backend})")
    db_pool.close()
    return 0


def cmd_seed_default_steps(args) -> int:
    """Store the built-in default steps."""
    db_pool.initialize(args.database_url)
    try:
        with db_pool.get_connection() as conn:
            seeded = seed_default_steps(conn, force=args.force)
    finally:
        db_pool.close()

    if seeded:
        print(f"✓ Seeded default steps for: {', '.join(seeded)}")
    else:
        print("Default steps already present (use --force to overwrite)")
    return 0


def cmd_serve(args) -> int:
    """Run the API with uvicorn."""
    import uvicorn

    if args.database_url:
        os.environ["DATABASE_URL"] = args.database_url
    uvicorn.run("obrador_api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Obrador management commands")
    parser.add_argument('--database-url', default=None,
                        help='Override DATABASE_URL (postgresql://... or sqlite:///path)')
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_db = subparsers.add_parser("init-db", help="Create database tables")
    init_db.set_defaults(func=cmd_init_db)

    seed = subparsers.add_parser("seed-default-steps", help="Store the built-in default steps")
    seed.add_argument('--force', action='store_true',
                      help='Overwrite categories that already have steps')
    seed.set_defaults(func=cmd_seed_default_steps)

    serve = subparsers.add_parser("serve", help="Run the API server")
    serve.add_argument('--host', default='0.0.0.0',
                       help='Interface to bind (default: 0.0.0.0)')
    serve.add_argument('--port', type=int, default=int(os.getenv("PORT", DEFAULT_PORT)),
                       help=f'Port to listen on (default: PORT or {DEFAULT_PORT})')
    serve.add_argument('--reload', action='store_true',
                       help='Reload on code changes (development)')
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the management CLI."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
