"""
envsnap command-line interface.

Commands:
    envsnap create <name> [--preset light|medium|heavy] [--path P ...] [--description D]
    envsnap list [--prefix P] [--max-results N]
    envsnap restore <id> [--target DIR] [--overwrite]
    envsnap diff <id> [--path P ...]
    envsnap delete <id>

Global options: --bucket (default: $S3_BUCKET), --json, -v/--verbose.

Configuration is read from environment variables; see config.py.

Invariants:
    - Exit code 0 on success, 1 on any SnapshotError or configuration error
    - --json output is the operation result's to_dict(), unchanged

How to change safely:
    - Add new commands, don't change existing flags
    - Keep --json output stable for scripting
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

import json_log_formatter

from ..archive.presets import Preset
from ..catalog.metadata import SnapshotListing
from ..config import EnvSnapConfig
from ..errors import SnapshotError
from ..git.client import SubprocessGitClient
from ..snapshot.diff import MISSING, DiffResult
from ..snapshot.orchestrator import CreateResult, DeleteResult, SnapshotOrchestrator
from ..snapshot.restore import RestoreResult
from ..store.s3 import S3ObjectStore

logger = logging.getLogger(__name__)


def setup_logging(config: EnvSnapConfig, verbose: bool = False) -> None:
    """Configure logging based on configuration.

    Args:
        config: envsnap configuration
        verbose: Force DEBUG level
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)
    if verbose:
        level = logging.DEBUG

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


def build_parser(default_bucket: str = "") -> argparse.ArgumentParser:
    """Build the envsnap argument parser."""
    parser = argparse.ArgumentParser(
        prog="envsnap",
        description="Snapshot, restore and diff multi-repository development environments",
    )
    parser.add_argument(
        "--bucket",
        default=default_bucket or None,
        help="S3 bucket (default: $S3_BUCKET)",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # create command
    create_parser = subparsers.add_parser("create", help="Create a snapshot")
    create_parser.add_argument("name", help="Snapshot name")
    create_parser.add_argument(
        "--preset",
        choices=[p.value for p in Preset],
        help="Inclusion preset (default: $SNAPSHOT_DEFAULT_PRESET)",
    )
    create_parser.add_argument(
        "--path",
        dest="paths",
        action="append",
        help="Repository path (repeatable; default: $SNAPSHOT_DEFAULT_PATHS or cwd)",
    )
    create_parser.add_argument("--description", help="Free-text description")

    # list command
    list_parser = subparsers.add_parser("list", help="List snapshots")
    list_parser.add_argument("--prefix", help="Only snapshots whose name starts with this")
    list_parser.add_argument("--max-results", type=int, default=100, help="Maximum results")

    # restore command
    restore_parser = subparsers.add_parser("restore", help="Restore a snapshot")
    restore_parser.add_argument("id", help="Snapshot id")
    restore_parser.add_argument("--target", help="Target directory (default: a temporary directory)")
    restore_parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Extract over existing repository directories",
    )

    # diff command
    diff_parser = subparsers.add_parser("diff", help="Compare repositories with a snapshot")
    diff_parser.add_argument("id", help="Snapshot id")
    diff_parser.add_argument(
        "--path",
        dest="paths",
        action="append",
        help="Repository path to check (repeatable; default: every recorded path)",
    )

    # delete command
    delete_parser = subparsers.add_parser("delete", help="Delete a snapshot")
    delete_parser.add_argument("id", help="Snapshot id")

    return parser


async def run_command(args: argparse.Namespace, orchestrator: SnapshotOrchestrator) -> Any:
    """Dispatch parsed arguments to the orchestrator."""
    if args.command == "create":
        return await orchestrator.create(
            args.name,
            args.bucket,
            preset=args.preset,
            paths=args.paths,
            description=args.description,
        )
    if args.command == "list":
        return await orchestrator.list(args.bucket, prefix=args.prefix, max_results=args.max_results)
    if args.command == "restore":
        return await orchestrator.restore(
            args.id, args.bucket, target_path=args.target, overwrite=args.overwrite
        )
    if args.command == "diff":
        return await orchestrator.diff(args.id, args.bucket, paths=args.paths)
    if args.command == "delete":
        return await orchestrator.delete(args.id, args.bucket)
    raise ValueError(f"Unknown command: {args.command}")


async def _run(args: argparse.Namespace, config: EnvSnapConfig) -> Any:
    git = SubprocessGitClient(timeout_seconds=config.snapshot.git_timeout_seconds)
    async with S3ObjectStore(config.s3) as store:
        orchestrator = SnapshotOrchestrator(store, git, config)
        return await run_command(args, orchestrator)


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def format_result(result: Any) -> list[str]:
    """Human-readable lines for an operation result."""
    if isinstance(result, CreateResult):
        return [
            f"Created snapshot {result.id}",
            f"  Location: {result.location}",
            f"  Preset: {result.metadata.preset.value}",
            f"  Repositories: {len(result.metadata.repositories)}",
            f"  Size: {_format_size(result.metadata.archive_size)}",
            f"  Upload: {result.upload_duration}ms",
        ]

    if isinstance(result, SnapshotListing):
        if not result.snapshots:
            return ["No snapshots found"]
        lines = [f"Found {result.count} snapshot(s):"]
        for entry in result.snapshots:
            lines.append(
                f"  {entry.id}  {entry.preset.value:<6}  {entry.created_at}  "
                f"{_format_size(entry.size)}  {entry.os}"
            )
        if result.skipped:
            lines.append(f"Skipped {len(result.skipped)} unreadable metadata document(s)")
        return lines

    if isinstance(result, RestoreResult):
        lines = [f"Restored snapshot {result.metadata.id} into {result.target_path}"]
        lines.extend(f"  {path}" for path in result.restored_paths)
        lines.append(f"  Download: {result.download_duration}ms, extract: {result.extract_duration}ms")
        return lines

    if isinstance(result, DiffResult):
        summary = result.summary
        if summary.is_match:
            return [f"Environment matches snapshot {result.snapshot_metadata.id}"]
        lines = [
            f"{summary.repos_changed} repositor{'y' if summary.repos_changed == 1 else 'ies'} "
            f"differ from snapshot {result.snapshot_metadata.id}:"
        ]
        for repo in result.repositories:
            if not repo.changed:
                continue
            lines.append(f"  {repo.path}")
            if repo.branch_diff:
                lines.append(
                    f"    branch: {repo.branch_diff.snapshot} -> {repo.branch_diff.current}"
                )
            if repo.commit_diff:
                lines.append(
                    f"    commit: {repo.commit_diff.snapshot[:12]} -> {repo.commit_diff.current[:12]}"
                )
            if repo.files_changed == MISSING:
                lines.append("    files changed: unknown")
            elif repo.files_changed:
                lines.append(f"    files changed: {repo.files_changed}")
            if repo.new_stashes:
                lines.append(f"    new stashes: {repo.new_stashes}")
        lines.append(f"Total files changed: {summary.total_files_changed}")
        return lines

    if isinstance(result, DeleteResult):
        return [f"Deleted snapshot {result.id}"]

    return [str(result)]


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for envsnap."""
    # Load configuration
    try:
        config = EnvSnapConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    parser = build_parser(config.s3.bucket)
    args = parser.parse_args(argv)
    if not args.bucket:
        parser.error("--bucket is required when S3_BUCKET is not set")

    setup_logging(config, verbose=args.verbose)

    try:
        result = asyncio.run(_run(args, config))
    except SnapshotError as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        if args.json:
            print(json.dumps({"error": e.message, "code": e.code, "details": e.details}, indent=2, default=str))
        else:
            print(f"{args.command.capitalize()} failed: {e.message}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"{args.command.capitalize()} failed: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        for line in format_result(result):
            print(line)
    sys.exit(0)


if __name__ == "__main__":
    main()
