"""Turn file records into CSV rows."""

import csv
import io
from typing import Iterable, TextIO

from dcm_tags.config import DEFAULT_DELIMITER, DEFAULT_OPTIONS, FILENAME_COLUMN, ExtractionOptions
from dcm_tags.extract import FileRecord
from dcm_tags.resolver import RequestedTags
from dcm_tags.values import TypedValue, ValueKind


def header_row(requested: RequestedTags) -> list[str]:
    """``FileName`` followed by the requested tokens exactly as given."""
    return [FILENAME_COLUMN, *requested.tokens]


def cell_text(value: TypedValue, options: ExtractionOptions = DEFAULT_OPTIONS) -> str:
    """Render one typed value as cell text.

    Absent and opaque values are empty.  Multi-valued elements are joined
    with ``options.multi_separator``.  Sequences are flattened: the non-empty
    leaf values of each item, in tag order, joined with
    ``options.sequence_separator``, and the items joined the same way.
    Numeric strings (IS, DS) render as stored in the file.
    """
    if value.is_absent:
        return ""
    if value.kind is ValueKind.MULTI:
        return options.multi_separator.join(cell_text(v, options) for v in value.value)
    if value.kind is ValueKind.SEQUENCE:
        leaves = []
        for item in value.value:
            for tag in sorted(item):
                text = cell_text(item[tag], options)
                if text:
                    leaves.append(text)
        return options.sequence_separator.join(leaves)
    if value.text is not None:
        return value.text
    return str(value.value)


def format_row(
    record: FileRecord,
    requested: RequestedTags,
    options: ExtractionOptions = DEFAULT_OPTIONS,
) -> list[str]:
    """The record's filename, then one cell per requested column."""
    return [record.filename, *(cell_text(record.get(tag), options) for tag in requested.tags)]


def empty_row(filename: str, requested: RequestedTags) -> list[str]:
    return [filename] + [""] * len(requested)


def write_rows(
    stream: TextIO, rows: Iterable[list[str]], delimiter: str = DEFAULT_DELIMITER
) -> None:
    """Write rows with standard CSV quoting (only where a cell needs it)."""
    writer = csv.writer(
        stream, delimiter=delimiter, quoting=csv.QUOTE_MINIMAL, lineterminator="\n"
    )
    writer.writerows(rows)


def render_csv(rows: Iterable[list[str]], delimiter: str = DEFAULT_DELIMITER) -> str:
    buffer = io.StringIO()
    write_rows(buffer, rows, delimiter)
    return buffer.getvalue()
