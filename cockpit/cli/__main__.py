"""
Cockpit CLI - query and maintain the tracker database.

Usage:
    cockpit mcp
    cockpit search QUERY [--ranked] [--type T]... [--limit N] [--project P]
    cockpit rebuild-index
    cockpit reconcile-index
    cockpit status
    cockpit digest [--smart]
"""

import argparse
import json
import logging
import re
import sys

from cockpit.logging_config import setup_cockpit_logging
from cockpit.storage import CockpitStore
from cockpit.storage.schema import FTS_KINDS, SUBSTRING_KINDS

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def validate_input(value: str, field_name: str, max_length: int = 1000) -> str:
    """Validate and sanitize CLI inputs."""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")

    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")

    # Remove null bytes and control characters except newlines
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_search(args, store: CockpitStore):
    """Substring (default) or ranked search."""
    query = validate_input(args.query, "query", 500)
    if args.ranked:
        kinds = args.type or None
        invalid = [k for k in (kinds or []) if k not in FTS_KINDS]
        if invalid:
            raise ValueError(f"ranked search supports types {list(FTS_KINDS)}, got {invalid}")
        project = validate_input(args.project, "project", 1000) if args.project else None
        hits = store.ranked_search(query, kinds=kinds, limit=args.limit, project=project)
        _print_json([hit.to_dict() for hit in hits])
        return

    kinds = args.type or None
    invalid = [k for k in (kinds or []) if k not in SUBSTRING_KINDS]
    if invalid:
        raise ValueError(f"substring search supports types {list(SUBSTRING_KINDS)}, got {invalid}")
    _print_json(store.unified_search(query, kinds=kinds, limit=args.limit))


def cmd_rebuild_index(args, store: CockpitStore):
    """Rebuild all shadow tables."""
    rebuilt = store.rebuild_search_index()
    _print_json({"rebuilt": rebuilt, "total": len(FTS_KINDS), "counts": store.index_counts()})
    if rebuilt < len(FTS_KINDS):
        logger.warning(f"Only {rebuilt} of {len(FTS_KINDS)} search indexes were rebuilt")


def cmd_reconcile_index(args, store: CockpitStore):
    """Fix drift between shadow tables and primary tables."""
    _print_json({"reconciled": store.reconcile_search_index()})


def cmd_status(args, store: CockpitStore):
    """Show database path, table availability and index counts."""
    _print_json(store.status())


def cmd_digest(args, store: CockpitStore):
    """Show the daily digest or the smart (action item) digest."""
    if args.smart:
        _print_json(store.get_smart_digest())
    else:
        _print_json(store.get_digest(args.period))


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="cockpit",
        description="Storage and search for the Efficiency Cockpit tracker database",
    )
    parser.add_argument("--db", help="Path to the tracker database (default: per-user data dir)")
    parser.add_argument("--log-level", dest="log_level", default=None, help="Log level for the log file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # mcp
    subparsers.add_parser("mcp", help="Start the MCP server (stdio transport)")

    # search
    p_search = subparsers.add_parser("search", help="Search tracked records")
    p_search.add_argument("query", help="Search text")
    p_search.add_argument("--ranked", action="store_true", help="Use ranked full-text search")
    p_search.add_argument("--type", "-t", action="append", help="Record kind to search (repeatable)")
    p_search.add_argument("--limit", "-l", type=int, default=10)
    p_search.add_argument("--project", "-p", help="Project path filter (ranked search only)")

    # index maintenance
    subparsers.add_parser("rebuild-index", help="Rebuild full-text search indexes")
    subparsers.add_parser("reconcile-index", help="Repair full-text search index drift")

    # status
    subparsers.add_parser("status", help="Show database and index status")

    # digest
    p_digest = subparsers.add_parser("digest", help="Show a digest of recent work")
    p_digest.add_argument("--smart", action="store_true", help="Show action items instead")
    p_digest.add_argument("--period", choices=["today", "yesterday", "week"], default="today")

    args = parser.parse_args(argv)

    if args.command == "mcp":
        from cockpit.mcp.server import main as mcp_main

        mcp_main(args.db, args.log_level)
        return

    setup_cockpit_logging(args.log_level)

    try:
        store = CockpitStore(args.db)
    except (ValueError, OSError) as e:
        logger.error(f"Failed to open tracker database: {e}")
        sys.exit(1)

    # Dispatch with error handling
    try:
        if args.command == "search":
            cmd_search(args, store)
        elif args.command == "rebuild-index":
            cmd_rebuild_index(args, store)
        elif args.command == "reconcile-index":
            cmd_reconcile_index(args, store)
        elif args.command == "status":
            cmd_status(args, store)
        elif args.command == "digest":
            cmd_digest(args, store)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
