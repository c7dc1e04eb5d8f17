import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .core import PhotoInspectorApp
from .exceptions import ScoringError
from .reporting import FIELD_HEADERS, MATCH_HEADERS, field_rows, format_table, match_rows, write_csv
from .scoring import load_scorer


def setup_logging(verbose: bool, log_file: Optional[Path] = None):
    """Sets up logging to the console and, optionally, a file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Photo Inspector: EXIF viewer and aesthetic image finder")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")

    sub = p.add_subparsers(dest="command", required=True)

    exif = sub.add_parser("exif", help="List the EXIF fields of one image")
    exif.add_argument("path", type=Path, help="Image file")
    exif.add_argument("--csv", type=Path, default=None, help="Write the fields to this CSV file")

    scan = sub.add_parser("scan", help="Find images scoring at or above a threshold")
    scan.add_argument("path", type=Path, help="Folder to scan")
    scan.add_argument("--min-score", required=True, help="Minimum aesthetic score (0-1)")
    scan.add_argument("--scorer", required=True, help="Scorer to load, as 'module:attribute'")
    scan.add_argument("--workers", type=int, default=None, help="Parallel workers (default: CPU count)")
    scan.add_argument("--top-level-only", action="store_true", help="Do not descend into subfolders")
    scan.add_argument("--include-hidden", action="store_true", help="Also scan hidden and system entries")
    scan.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    scan.add_argument("--csv", type=Path, default=None, help="Write the matches to this CSV file")

    return p.parse_args(argv)


def run_exif(args) -> int:
    with PhotoInspectorApp() as app:
        result = app.read_exif(str(args.path.resolve())).result()

    if not result.ok:
        logging.error(result.error)
        return 1

    rows = field_rows(result.value)
    if not rows:
        print("No EXIF data found.")
    else:
        print(format_table(FIELD_HEADERS, rows))
    if args.csv:
        write_csv(args.csv, FIELD_HEADERS, rows)
    return 0


def run_scan(args) -> int:
    try:
        scorer = load_scorer(args.scorer)
    except ScoringError as e:
        logging.error(str(e))
        return 1

    with PhotoInspectorApp(scorer=scorer,
                           max_workers=args.workers,
                           recursive=not args.top_level_only,
                           include_hidden=args.include_hidden,
                           show_progress=not args.no_progress) as app:
        result = app.find_aesthetic_images(str(args.path), args.min_score).result()

    if not result.ok:
        logging.error(result.error)
        return 1

    rows = match_rows(result.value)
    if not rows:
        print(f"No images found with an aesthetic score of at least {args.min_score}.")
    else:
        print(format_table(MATCH_HEADERS, rows))
    if args.csv:
        write_csv(args.csv, MATCH_HEADERS, rows)
    return 0


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    try:
        if args.command == "exif":
            code = run_exif(args)
        else:
            code = run_scan(args)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
