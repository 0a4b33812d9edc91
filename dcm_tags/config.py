"""
Centralised configuration for the dcm_tags package.

Default separators, stream limits, the failure policy, and logging setup used
across all modules.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from dcm_tags.dictionary import Tag

# ---------------------------------------------------------------------------
# Output layout
# ---------------------------------------------------------------------------
FILENAME_COLUMN = "FileName"

# Column delimiter for the CSV stream.
DEFAULT_DELIMITER = ","

# Joins the values of a multi-valued element.  Never a comma, so a joined
# cell does not need quoting just because it holds several values.
DEFAULT_MULTI_SEPARATOR = "|"

# Joins the flattened leaf values of a sequence element.
DEFAULT_SEQUENCE_SEPARATOR = ";"

# ---------------------------------------------------------------------------
# Stream limits
# ---------------------------------------------------------------------------
# Top-level reading stops at the first element at or beyond this tag, so the
# pixel data of large images is never scanned.
DEFAULT_STOP_AT = Tag(0x7FE0, 0x0010)  # PixelData

MAX_SEQUENCE_DEPTH = 32


# ---------------------------------------------------------------------------
# Failure policy
# ---------------------------------------------------------------------------

class OnError(str, enum.Enum):
    """What the batch does with the row of a file that could not be read."""

    SKIP = "skip"    # omit the row, report the failure only
    EMPTY = "empty"  # emit the filename followed by empty cells


@dataclass(frozen=True)
class ExtractionOptions:
    """Knobs shared by the extraction engine, the formatter and the batch."""

    multi_separator: str = DEFAULT_MULTI_SEPARATOR
    sequence_separator: str = DEFAULT_SEQUENCE_SEPARATOR
    delimiter: str = DEFAULT_DELIMITER
    stop_at: Optional[Tag] = DEFAULT_STOP_AT
    jobs: Optional[int] = None
    on_error: OnError = OnError.SKIP


DEFAULT_OPTIONS = ExtractionOptions()

# ---------------------------------------------------------------------------
# Logging helper
# ---------------------------------------------------------------------------
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: int = logging.INFO) -> None:
    """Configure root logging for dcm_tags scripts."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
