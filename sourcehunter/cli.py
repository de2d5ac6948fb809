"""Command-line entry point: ``sourcehunter TARGET [options]``."""

import argparse
import logging
import sys
import textwrap

from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from .config import load_config, parse_min_confidence
from .errors import ConfigError, ExtractionError, NoCodeFilesError
from .pipeline import Scanner
from .report import console, err_console, output_json, output_rich, output_text_plain, print_banner

logger = logging.getLogger("sourcehunter")

EXIT_CLEAN = 0
EXIT_FINDINGS = 1
EXIT_ERROR = 2


def setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=verbose, rich_tracebacks=True)],
        force=True,
    )


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sourcehunter',
        description='sourcehunter - Multi-Language Static Security Scanner',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent('''
            Examples:
              sourcehunter /path/to/project
              sourcehunter project.zip --verbose
              sourcehunter /path/to/project --output json -o report.json
              sourcehunter /path/to/project --min-confidence HIGH --dedup
        ''')
    )
    parser.add_argument('target', help='Directory, file or .zip archive to scan')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    parser.add_argument('--output', choices=['text', 'json'], default='text',
                        help='Output format (default: text)')
    parser.add_argument('-o', '--output-file', help='Save report to file')
    parser.add_argument('--min-confidence',
                        help='Minimum confidence to report: 0-100 or HIGH/MEDIUM/LOW')
    parser.add_argument('--dedup', action='store_true',
                        help='Collapse issues sharing file, line and category')
    parser.add_argument('--config', help='Path to .sourcehunter.yml config file')
    parser.add_argument('--workers', type=_positive_int, help='Worker threads')
    parser.add_argument('--file-timeout', type=_positive_float, help='Per-file time budget in seconds')
    parser.add_argument('--batch-timeout', type=_positive_float, help='Whole-scan time budget in seconds')
    parser.add_argument('--scan-all', action='store_true',
                        help='Scan vendor, build and minified files too')
    parser.add_argument('--no-audit', action='store_true', help='Skip the npm dependency audit')
    parser.add_argument('--no-banner', action='store_true', help='Suppress banner')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = load_config(args.target, args.config)
        # flags override the config file
        if args.min_confidence is not None:
            config.min_confidence = parse_min_confidence(args.min_confidence)
        if args.dedup:
            config.dedup = True
        if args.workers:
            config.max_workers = args.workers
        if args.file_timeout:
            config.file_timeout = args.file_timeout
        if args.batch_timeout:
            config.batch_timeout = args.batch_timeout
        if args.no_audit:
            config.dependency_audit = False
        logger.debug("Config: %s", config.source_path or "defaults")
    except ConfigError as e:
        logger.debug("Config failed to load", exc_info=True)
        err_console.print(f"[bold red]Config error:[/bold red] {e}")
        return EXIT_ERROR

    is_json = args.output == 'json'
    if not args.no_banner and not is_json:
        print_banner()

    scanner = Scanner(config)
    try:
        if is_json:
            result = scanner.analyze_path(args.target, scan_all=args.scan_all)
        else:
            result = _scan_with_progress(scanner, args.target, args.scan_all)
    except (ExtractionError, NoCodeFilesError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        return EXIT_ERROR

    if is_json:
        output_json(result, args.output_file)
    else:
        output_rich(result, args.target, config.min_confidence)
        if args.output_file:
            output_text_plain(result, args.output_file)
            console.print(f"\n[bold green]Report saved to {args.output_file}[/bold green]")

    return EXIT_FINDINGS if result.has_blocking_issues else EXIT_CLEAN


def _scan_with_progress(scanner: Scanner, target: str, scan_all: bool):
    with Progress(
        SpinnerColumn("moon"),
        TextColumn("[bold cyan]{task.description}"),
        BarColumn(bar_width=30, style="cyan", complete_style="green"),
        MofNCompleteColumn(),
        TextColumn("[dim]{task.fields[current_file]}[/dim]"),
        console=err_console,
        transient=True,
    ) as progress:
        task = progress.add_task("Scanning", total=None, current_file="")

        def advance(report, done, total):
            progress.update(task, completed=done, total=total, current_file=report.filename)

        return scanner.analyze_path(target, scan_all=scan_all, progress=advance)


if __name__ == "__main__":
    sys.exit(main())
