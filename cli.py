"""Command line entry point for the unmanaged application analysis."""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from analyzer import UnmanagedAnalyzer
from compare import PostRestoreComparator
from import_export import ArtifactWriter
from models import AnalysisReport, AnalysisResult, PostRestoreReport
from scanner import RegistryInventoryReader
from sources import BackupManagedAppSource
from store import resolve_backup_paths, save_config, validate_paths

logger = logging.getLogger("wmr_unmanaged")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PRECONDITION = 2


def setup_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    log_format = "%(asctime)s | %(levelname)-8s | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"
    root = logging.getLogger()
    root.handlers.clear()
    level = logging.DEBUG if verbose else logging.INFO

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(log_format, date_format))
        root.addHandler(file_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stderr_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root.addHandler(stderr_handler)
    root.setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wmr-unmanaged",
        description="Find installed applications no package manager or game launcher will restore.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s analyze --backup-root D:\\Backups
  %(prog)s analyze --backup-root D:\\Backups --what-if
  %(prog)s post-restore --backup-root D:\\Backups --force
        """,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--backup-root", metavar="DIR", help="Backup root directory")
    common.add_argument("--machine-backup", metavar="DIR", help="Machine-specific backup directory")
    common.add_argument("--shared-backup", metavar="DIR", help="Backup directory shared between machines")
    common.add_argument("--force", action="store_true", help="Create missing machine and shared backup directories")
    common.add_argument(
        "--what-if",
        "--dry-run",
        dest="what_if",
        action="store_true",
        help="Show what would be scanned and written without doing it",
    )
    common.add_argument("--xlsx", action="store_true", help="Also write an Excel workbook of the application list")
    common.add_argument("--remember", action="store_true", help="Save the resolved backup paths as defaults")
    common.add_argument("--log-file", metavar="FILE", help="Write a detailed log to FILE")
    common.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("analyze", parents=[common], help="Analyze unmanaged applications")
    commands.add_parser(
        "post-restore",
        parents=[common],
        help="Check which previously unmanaged applications are installed again",
    )
    return parser


def _print_result(command: str, result: AnalysisResult) -> None:
    for notice in result.notices:
        print(notice)
    report = result.report
    if isinstance(report, AnalysisReport):
        summary = report.summary
        print(
            f"Installed: {summary.total_installed}  Managed: {summary.total_managed}  "
            f"Unmanaged: {summary.total_unmanaged}  ({summary.managed_percentage:.2f}% managed)"
        )
        for category, group in report.categories.items():
            print(f"  {category.value}: {group.count}")
    elif isinstance(report, PostRestoreReport):
        print(
            f"Restored: {len(report.restored)}/{len(report.original)}  "
            f"Still unmanaged: {len(report.still_unmanaged)}  "
            f"({report.restore_success_rate:.2f}% restored)"
        )
    for path in result.written:
        print(f"Wrote {path}")
    if result.errors:
        print(f"{command} finished with {len(result.errors)} issue(s):")
        for error in result.errors:
            print(f"  - {error}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(log_file=args.log_file, verbose=args.verbose)

    try:
        paths = resolve_backup_paths(args.backup_root, args.machine_backup, args.shared_backup)
        validate_paths(paths, create_missing=args.force and not args.what_if)
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_PRECONDITION
    if args.remember and not args.what_if:
        try:
            save_config(paths)
        except OSError as exc:
            logger.warning("Could not save configuration: %s", exc)

    inventory = None
    if not args.what_if:
        try:
            inventory = RegistryInventoryReader()
        except RuntimeError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return EXIT_PRECONDITION

    writer = ArtifactWriter(dry_run=args.what_if, xlsx=args.xlsx)
    analyzer = UnmanagedAnalyzer(
        inventory,
        BackupManagedAppSource(paths.machine_backup, paths.shared_backup),
        paths.output_roots,
        writer,
    )
    logger.info("Running %s (machine=%s, shared=%s)", args.command, paths.machine_backup, paths.shared_backup)
    if args.command == "post-restore":
        result = PostRestoreComparator(analyzer, paths.output_roots, paths.output_roots, writer).run()
    else:
        result = analyzer.run()
    _print_result(args.command, result)
    return EXIT_OK if result.success else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
