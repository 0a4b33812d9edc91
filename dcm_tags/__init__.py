"""
dcm_tags: dump selected DICOM attributes to CSV.

Reads the DICOM data-element stream directly (preamble, file meta group,
transfer syntax, explicit/implicit VR, nested sequences) and emits one CSV
row per file with the requested tags as columns.  Pixel data is never read.

DICOM Parsing Approach
----------------------
Element values are decoded by our own stream reader rather than by
``pydicom.dcmread``:

1. Only a handful of tags are wanted per file.  The reader skips every other
   element by its length field without decoding it, and stops before the
   pixel data.
2. The bytes of each element stay views into the file buffer, so scanning
   thousands of files does not build a full Dataset for each.
3. pydicom is still the source of the data dictionary, transfer syntax
   classification and character set handling. It is already the dependency
   for those, and tests use it to write realistic files.
"""

from dcm_tags.pipeline import BatchResult, FileFailure, extract_and_format

__version__ = "0.1.0"

__all__ = ["BatchResult", "FileFailure", "extract_and_format", "__version__"]
