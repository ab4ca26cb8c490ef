#!/usr/bin/env python3
"""
Index Rebuild Utility
Registers, indexes, force-rebuilds and reports on a project's semantic index
from the shell.
"""

import argparse
import sys

from semindex.core import dao
from semindex.core.config import get_embedding_provider, validate_config
from semindex.core.db import init_db
from semindex.core.errors import ModelUnavailable, ProjectNotFound
from semindex.core.indexer import FileIndexer


def build_parser():
    parser = argparse.ArgumentParser(description="Manage the semantic file index of a project")
    parser.add_argument("project", help="Project ID")
    parser.add_argument(
        "--root",
        help="Register (or re-point) the project at this root directory before indexing"
    )
    parser.add_argument(
        "--path",
        action="append",
        dest="paths",
        help="Index only this path relative to the project root (repeatable)"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-embed every file even if its content is unchanged"
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Only print the index status"
    )
    return parser


def main(argv=None):
    """Rebuild or inspect the file index of one project."""
    args = build_parser().parse_args(argv)

    issues = validate_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        sys.exit(1)

    init_db()

    if args.root:
        dao.register_project(args.project, args.root)
        print(f"✓ Registered project '{args.project}' at {args.root}")

    indexer = FileIndexer(get_embedding_provider())

    try:
        if not args.status:
            print(f"Starting index {'rebuild' if args.force else 'update'} for '{args.project}'...")
            report = indexer.index_project(args.project, paths=args.paths, force_reindex=args.force)
            print(f"✓ Indexed {report.indexed}, skipped {report.skipped} of {report.total_files} files")
            if report.error_count:
                print(f"WARNING: {report.error_count} files failed")
                for error in report.errors:
                    print(f"  {error}")

        status = indexer.get_index_status(args.project)
    except ProjectNotFound as e:
        print(f"ERROR: {e}. Pass --root to register it.")
        sys.exit(1)
    except ModelUnavailable as e:
        print(f"ERROR: {e}")
        sys.exit(2)

    print(f"Searchable files: {status.file_count} (rows: {status.total_indexed}, stale: {status.stale_count})")
    print(f"Last indexed: {status.last_indexed.isoformat() if status.last_indexed else 'never'}")


if __name__ == "__main__":
    main()
