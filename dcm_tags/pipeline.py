"""Batch entry point: many files in, ordered CSV rows and failures out.

Files are decoded in parallel worker processes.  Results are buffered by
input position, so rows come out in input order whatever order the workers
finish in.  A file that fails to decode never cancels its siblings; it is
reported in :attr:`BatchResult.failures` and logged as a warning.
"""

import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, Optional

from dcm_tags.config import DEFAULT_OPTIONS, ExtractionOptions, OnError
from dcm_tags.errors import FileError, NoInputFiles
from dcm_tags.extract import extract
from dcm_tags.formatter import empty_row, format_row, header_row
from dcm_tags.resolver import RequestedTags, resolve_tags

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileFailure:
    """Why one input file produced no (or an empty) row."""

    index: int
    filename: str
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.filename}: {self.kind}: {self.message}"


@dataclass
class BatchResult:
    header: list[str]
    rows: list[list[str]] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)

    def all_rows(self) -> list[list[str]]:
        """Header first, then the data rows."""
        return [self.header, *self.rows]


def _process_one(
    index: int,
    filename: str,
    data: bytes,
    requested: RequestedTags,
    options: ExtractionOptions,
) -> tuple[int, Optional[list[str]], Optional[FileFailure]]:
    """Worker body.  Module-level so a process pool can pickle it."""
    try:
        record = extract(filename, data, requested, options)
    except FileError as exc:
        return index, None, FileFailure(index, filename, exc.kind, str(exc))
    return index, format_row(record, requested, options), None


def _worker_count(options: ExtractionOptions, n_files: int) -> int:
    jobs = options.jobs or os.cpu_count() or 1
    return max(1, min(jobs, n_files))


def extract_and_format(
    tag_tokens: Iterable[str],
    files: Iterable[tuple[str, bytes]],
    options: Optional[ExtractionOptions] = None,
) -> BatchResult:
    """Extract *tag_tokens* from every ``(name, bytes)`` pair in *files*.

    Raises
    ------
    TagResolutionError
        A token did not resolve.  Raised before any file is read.
    NoInputFiles
        *files* was empty.
    """
    options = options or DEFAULT_OPTIONS
    requested = resolve_tags(tag_tokens)
    inputs = list(files)
    if not inputs:
        raise NoInputFiles("No input files to process")

    workers = _worker_count(options, len(inputs))
    logger.info("Found %d files to process (%d worker(s))", len(inputs), workers)

    slots: list = [None] * len(inputs)
    if workers == 1:
        for index, (name, data) in enumerate(inputs):
            slots[index] = _process_one(index, name, data, requested, options)
    else:
        with ProcessPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(_process_one, index, name, data, requested, options)
                for index, (name, data) in enumerate(inputs)
            ]
            for future in as_completed(futures):
                result = future.result()
                slots[result[0]] = result
    logger.info("Finished processing files")

    batch = BatchResult(header=header_row(requested))
    for _index, row, failure in slots:
        if failure is not None:
            logger.warning("Could not read %s", failure)
            batch.failures.append(failure)
            if options.on_error is OnError.EMPTY:
                batch.rows.append(empty_row(failure.filename, requested))
            continue
        batch.rows.append(row)
    return batch
