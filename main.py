#!/usr/bin/env python3
"""
Main entry point for Entity Migration.

Provides a command-line interface for managing the target schema and
migrating the legacy shop database into it.
"""
from typing import List, Optional
import argparse
import logging
import os
import sys

from entity_migration.config import Config, set_config
from entity_migration.etl.pipeline import get_migration_status, run_migration
from entity_migration.etl.schema import create_schema, drop_schema, update_schema
from entity_migration.etl.validation import validate_migration
from entity_migration.logger_config import setup_logging
from entity_migration.utils import Colors, format_counts

logger = logging.getLogger(__name__)

COMMANDS = ["create", "drop", "update", "migrate", "validate", "status", "serve"]


def print_section(title: str) -> None:
    """Print a formatted section title."""
    print(f"\n{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{title}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}\n")


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Migrate a legacy shop database into an entities + roles model."
    )
    parser.add_argument(
        "--source-db",
        default=None,
        help="Path to the legacy database (defaults to $SRC_DB or ./legacy.db).",
    )
    parser.add_argument(
        "--target-db",
        default=None,
        help="Path to the target database (defaults to $DST_DB or ~/.entity_migration/entities.db).",
    )
    parser.add_argument(
        "--vendor-categories",
        default=None,
        help="Optional JSON file of vendor category descriptions.",
    )
    parser.add_argument(
        "--no-seed-from-store",
        action="store_true",
        help="Do not match entities created by earlier runs.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this file, rotated at 10 MB (defaults to $MIGRATION_LOG_FILE).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every resolution decision (DEBUG level).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("create", help="Create the target schema and seed reference data.")
    subparsers.add_parser("drop", help="Drop every table of the target schema.")
    subparsers.add_parser("update", help="Add missing tables, columns, indexes and seed rows.")

    migrate = subparsers.add_parser("migrate", help="Migrate the legacy data.")
    migrate.add_argument(
        "--dry-run",
        action="store_true",
        help="Make every decision and report statistics without writing.",
    )

    subparsers.add_parser("validate", help="Run post-migration consistency checks.")
    subparsers.add_parser("status", help="Show counts and bookkeeping of the target database.")

    serve = subparsers.add_parser("serve", help="Serve the read-only status API.")
    serve.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1).")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000).")

    return parser.parse_args(argv)


def _cmd_create(config: Config) -> int:
    config.ensure_target_dir()
    create_schema(config.target_db_path)
    print(f"{Colors.OKGREEN}Schema created at {config.target_db_path_str}{Colors.ENDC}")
    return 0


def _cmd_drop(config: Config) -> int:
    if not config.target_db_path.exists():
        print(f"{Colors.WARNING}Nothing to drop: {config.target_db_path_str} does not exist{Colors.ENDC}")
        return 0
    dropped = drop_schema(config.target_db_path)
    print(f"{Colors.OKGREEN}Dropped {len(dropped)} tables{Colors.ENDC}")
    return 0


def _cmd_update(config: Config) -> int:
    config.ensure_target_dir()
    changes = update_schema(config.target_db_path)
    if not changes:
        print(f"{Colors.OKGREEN}Schema already up to date{Colors.ENDC}")
    for change in changes:
        print(f"  - {change}")
    return 0


def _cmd_migrate(config: Config, dry_run: bool) -> int:
    if not config.validate():
        print(f"{Colors.FAIL}Error: Legacy database not found or not readable.{Colors.ENDC}")
        print(f"  {config.source_db_path_str}")
        return 1

    print(f"{Colors.OKGREEN}Using legacy database: {config.source_db_path_str}{Colors.ENDC}")
    if not dry_run:
        config.ensure_target_dir()

    result = run_migration(
        config.source_db_path,
        config.target_db_path,
        dry_run=dry_run,
        vendor_categories_path=config.vendor_categories_path,
        seed_from_store=config.seed_from_store,
    )

    print_section("Migration (dry run)" if dry_run else "Migration")
    color = Colors.OKGREEN if result.success else Colors.FAIL
    print(f"{color}{result}{Colors.ENDC}")
    return 0 if result.success else 1


def _cmd_validate(config: Config) -> int:
    source = config.source_db_path if config.validate() else None
    result = validate_migration(config.target_db_path, source)

    print_section("Validation")
    print(result)
    print(f"\n{result.summary}")
    return 0 if result.passed else 1


def _cmd_status(config: Config) -> int:
    status = get_migration_status(config.target_db_path)

    print_section("Migration Status")
    if not status["exists"]:
        print(f"{Colors.WARNING}Target database not found: {config.target_db_path_str}{Colors.ENDC}")
        return 1
    if not status["schema_valid"]:
        print(f"{Colors.WARNING}Schema incomplete; run 'update'{Colors.ENDC}")
        return 1

    print(f"Schema version: {status['schema_version']}")
    print(f"Last migration: {status['last_migration'] or 'never'}")
    print(f"\n{Colors.BOLD}Entities:{Colors.ENDC}")
    print(format_counts({
        "total": status["entity_count"],
        "persons": status["person_count"],
        "organizations": status["org_count"],
        "time events": status["time_event_count"],
    }))
    print(f"\n{Colors.BOLD}Roles:{Colors.ENDC}")
    print(format_counts(status["role_counts"]))
    return 0


def _cmd_serve(config: Config, host: str, port: int) -> int:
    import uvicorn

    os.environ["ENTITY_MIGRATION_DB_PATH"] = config.target_db_path_str
    print(f"{Colors.OKGREEN}Serving {config.target_db_path_str} on http://{host}:{port}{Colors.ENDC}")
    uvicorn.run("entity_migration.api:app", host=host, port=port)
    return 0


def main(argv: Optional[List[str]] = None):
    """Main function."""
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)

    config = Config(
        source_db_path=args.source_db,
        target_db_path=args.target_db,
        vendor_categories_path=args.vendor_categories,
        seed_from_store=False if args.no_seed_from_store else None,
        log_file_path=args.log_file,
    )
    set_config(config)

    setup_logging(
        level=logging.DEBUG if args.verbose else None,
        log_file=config.log_file_path_str,
    )

    try:
        if args.command == "create":
            code = _cmd_create(config)
        elif args.command == "drop":
            code = _cmd_drop(config)
        elif args.command == "update":
            code = _cmd_update(config)
        elif args.command == "migrate":
            code = _cmd_migrate(config, args.dry_run)
        elif args.command == "validate":
            code = _cmd_validate(config)
        elif args.command == "status":
            code = _cmd_status(config)
        else:
            code = _cmd_serve(config, args.host, args.port)
    except Exception as e:
        print(f"{Colors.FAIL}Error: {e}{Colors.ENDC}")
        logging.exception("Error during execution")
        sys.exit(1)

    if code:
        sys.exit(code)


if __name__ == '__main__':
    main()
