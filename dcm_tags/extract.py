"""Per-file extraction: bytes in, one record of requested values out."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from dcm_tags.config import DEFAULT_OPTIONS, ExtractionOptions
from dcm_tags.dictionary import Tag
from dcm_tags.reader import DicomStreamReader
from dcm_tags.resolver import RequestedTags
from dcm_tags.values import ABSENT, SPECIFIC_CHARACTER_SET, TypedValue, character_set, decode

logger = logging.getLogger(__name__)


@dataclass
class FileRecord:
    """Values of the requested tags for one file, keyed by tag."""

    filename: str
    values: dict[Tag, TypedValue] = field(default_factory=dict)

    def get(self, tag: Tag) -> TypedValue:
        return self.values.get(tag, ABSENT)


def extract(
    filename: str,
    data: bytes,
    requested: RequestedTags,
    options: ExtractionOptions = DEFAULT_OPTIONS,
) -> FileRecord:
    """Decode the requested tags from one file's bytes.

    Elements that were not requested are skipped by their length without
    being decoded.  Requested tags missing from the file map to ``ABSENT``.

    Raises
    ------
    FileError
        ``NotDicom``, ``Truncated`` or ``MalformedValue``; the whole file is
        rejected rather than returning a partial record.
    """
    wanted = requested.unique_tags
    stop_at = options.stop_at
    if stop_at is not None and wanted and max(wanted) >= stop_at:
        logger.debug("Requested tag at or beyond %s, reading to end of file", stop_at)
        stop_at = None

    reader = DicomStreamReader(data, stop_at=stop_at)
    found: dict[Tag, TypedValue] = {}
    encodings = None
    for element in reader:
        if element.tag == SPECIFIC_CHARACTER_SET:
            encodings = character_set(element)
        if element.tag not in wanted or element.tag in found:
            continue
        found[element.tag] = decode(element, encodings=encodings)
        logger.debug("%s: %s = %r", filename, element.tag, found[element.tag])

    values = {tag: found.get(tag, ABSENT) for tag in requested.tags}
    return FileRecord(filename, values)


def extract_file(
    path: Path,
    requested: RequestedTags,
    options: ExtractionOptions = DEFAULT_OPTIONS,
) -> FileRecord:
    """Read *path* and extract from it, naming the record by file name."""
    path = Path(path)
    return extract(path.name, path.read_bytes(), requested, options)
