"""Dump selected DICOM tags to CSV.

Usage:
    # Two tags from every .dcm file in a directory, CSV on stdout
    dcm-tags scans/ -t PatientID -t StudyDate

    # Tags listed in a file, numeric tags allowed, output to a file
    dcm-tags a.dcm b.dcm -f tags.txt -t 0008,0060 -o out.csv

Exit status is 0 on success, 1 if any file could not be read, and 2 for
unusable arguments (unknown tag, no tags, no input files).
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterator, Optional

from dcm_tags.config import (
    DEFAULT_MULTI_SEPARATOR,
    DEFAULT_SEQUENCE_SEPARATOR,
    ExtractionOptions,
    OnError,
    setup_logging,
)
from dcm_tags.errors import NoInputFiles, TagResolutionError
from dcm_tags.formatter import write_rows
from dcm_tags.pipeline import extract_and_format
from dcm_tags.resolver import load_tag_file, resolve_tag

logger = logging.getLogger(__name__)


def collect_inputs(paths: list[Path]) -> list[Path]:
    """Expand directories to the ``.dcm`` files directly inside them."""
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            found = sorted(
                p for p in path.iterdir() if p.is_file() and p.suffix.lower() == ".dcm"
            )
            if not found:
                logger.warning("No DCM files in %s", path)
            files.extend(found)
        elif path.is_file():
            files.append(path)
        else:
            logger.warning("Invalid input: %s", path)
    return files


def read_inputs(
    files: list[Path], unreadable: Optional[list[str]] = None
) -> Iterator[tuple[str, bytes]]:
    """Yield ``(name, bytes)`` per file.  Files that cannot be opened are
    logged, skipped and, if *unreadable* is given, recorded there.
    """
    for path in files:
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.warning("Could not read %s: %s", path, exc)
            if unreadable is not None:
                unreadable.append(f"{path.name}: OSError: {exc}")
            continue
        yield path.name, data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dcm-tags", description="Dump DICOM tags to CSV."
    )
    parser.add_argument(
        "input", nargs="+", type=Path, help="DICOM files or directories of .dcm files"
    )
    parser.add_argument(
        "-t", "--tag", action="append", default=[],
        help="Tag to extract: keyword (PatientName) or GGGG,EEEE; repeatable",
    )
    parser.add_argument(
        "-f", "--tag-file", action="append", default=[], type=Path,
        help="Load tags from a file, one per line; repeatable",
    )
    parser.add_argument(
        "--until", default="PixelData",
        help="Stop reading each file at this tag (default: PixelData)",
    )
    parser.add_argument("-j", "--jobs", type=int, help="Number of worker processes")
    parser.add_argument(
        "-o", "--output", type=Path, help="Output CSV file (stdout if omitted)"
    )
    parser.add_argument(
        "--separator", default=DEFAULT_MULTI_SEPARATOR,
        help="Joins multi-valued elements (default: %(default)s)",
    )
    parser.add_argument(
        "--sequence-separator", default=DEFAULT_SEQUENCE_SEPARATOR,
        help="Joins flattened sequence values (default: %(default)s)",
    )
    parser.add_argument(
        "--on-error", choices=[p.value for p in OnError], default=OnError.SKIP.value,
        help="Skip unreadable files or emit them with empty cells",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        tokens = list(args.tag)
        for tag_file in args.tag_file:
            tokens.extend(load_tag_file(tag_file))
        stop_at = resolve_tag(args.until)
    except (TagResolutionError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    if not tokens:
        print("No tags specified", file=sys.stderr)
        return 2

    options = ExtractionOptions(
        multi_separator=args.separator,
        sequence_separator=args.sequence_separator,
        stop_at=stop_at,
        jobs=args.jobs,
        on_error=OnError(args.on_error),
    )

    unreadable: list[str] = []
    try:
        result = extract_and_format(
            tokens, read_inputs(collect_inputs(args.input), unreadable), options
        )
    except TagResolutionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except NoInputFiles:
        print("No dicom files found", file=sys.stderr)
        return 2

    if args.output:
        with open(args.output, "w", newline="", encoding="utf-8") as f:
            write_rows(f, result.all_rows())
    else:
        write_rows(sys.stdout, result.all_rows())

    for message in unreadable:
        print(f"Failed: {message}", file=sys.stderr)
    for failure in result.failures:
        print(f"Failed: {failure}", file=sys.stderr)
    return 1 if result.failures or unreadable else 0


if __name__ == "__main__":
    sys.exit(main())
