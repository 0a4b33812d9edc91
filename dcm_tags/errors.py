"""Exception hierarchy for dcm_tags.

Tag-resolution errors are fatal for a whole run: without valid columns there
is no output schema.  File errors are raised per file by the reader, decoder
and extraction engine, and the batch pipeline turns them into warnings.
"""


class DcmTagsError(Exception):
    """Base class for every error raised by dcm_tags."""


# ---------------------------------------------------------------------------
# Tag resolution
# ---------------------------------------------------------------------------

class TagResolutionError(DcmTagsError):
    """A user-supplied tag token could not be turned into a tag."""

    def __init__(self, token: str, message: str) -> None:
        super().__init__(message)
        self.token = token


class UnknownKeyword(TagResolutionError):
    def __init__(self, token: str) -> None:
        super().__init__(token, f"Unknown DICOM keyword: {token!r}")


class MalformedNumericTag(TagResolutionError):
    def __init__(self, token: str) -> None:
        super().__init__(
            token, f"Malformed numeric tag {token!r}, expected 'GGGG,EEEE' in hex"
        )


# ---------------------------------------------------------------------------
# Per-file errors
# ---------------------------------------------------------------------------

class FileError(DcmTagsError):
    """A single file could not be decoded.  Never aborts a batch."""

    kind = "FileError"


class NotDicom(FileError):
    kind = "NotDicom"


class Truncated(FileError):
    kind = "Truncated"


class MalformedValue(FileError):
    kind = "MalformedValue"


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

class NoInputFiles(DcmTagsError):
    """Raised before any work is scheduled when there is nothing to read."""
