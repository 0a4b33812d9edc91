"""Low-level DICOM data element stream.

:class:`DicomStreamReader` walks a file's bytes and yields
:class:`RawElement` objects without decoding their values.  The reader:

1. skips the 128-byte preamble and ``DICM`` marker when present, or falls
   back to reading a bare data set;
2. reads the File Meta Information group (0002), which is always explicit VR
   little endian, to find the Transfer Syntax UID;
3. selects implicit/explicit VR and byte order for the main data set;
4. yields every element, delimiting undefined-length values (sequences,
   encapsulated pixel data) by scanning their items and delimiters.

Element payloads are ``memoryview`` slices of the source buffer, so skipping
an element costs nothing beyond reading its header.
"""

import logging
import struct
import zlib
from dataclasses import dataclass
from typing import Iterator, Optional

from pydicom.uid import (
    UID,
    ExplicitVRBigEndian,
    ExplicitVRLittleEndian,
    ImplicitVRLittleEndian,
)

from dcm_tags.dictionary import Tag, VRKind
from dcm_tags.errors import MalformedValue, NotDicom, Truncated

logger = logging.getLogger(__name__)

PREAMBLE_LENGTH = 128
MAGIC = b"DICM"
UNDEFINED_LENGTH = 0xFFFFFFFF

META_GROUP = 0x0002
TRANSFER_SYNTAX_UID = Tag(0x0002, 0x0010)

ITEM = Tag(0xFFFE, 0xE000)
ITEM_DELIMITER = Tag(0xFFFE, 0xE00D)
SEQUENCE_DELIMITER = Tag(0xFFFE, 0xE0DD)
_DELIMITERS = (ITEM_DELIMITER, SEQUENCE_DELIMITER)


@dataclass(frozen=True)
class TransferSyntax:
    uid: str
    implicit_vr: bool
    little_endian: bool
    deflated: bool = False

    @property
    def byte_order(self) -> str:
        """``struct``/numpy byte-order prefix."""
        return "<" if self.little_endian else ">"


EXPLICIT_LITTLE = TransferSyntax(str(ExplicitVRLittleEndian), False, True)
IMPLICIT_LITTLE = TransferSyntax(str(ImplicitVRLittleEndian), True, True)
EXPLICIT_BIG = TransferSyntax(str(ExplicitVRBigEndian), False, False)


def transfer_syntax_for(uid: str) -> TransferSyntax:
    """Classify a Transfer Syntax UID.

    Unknown UIDs fall back to explicit VR little endian with a warning: every
    encapsulated (compressed) syntax encodes its data set that way, so it is
    the most likely layout for a syntax we do not recognise.
    """
    ts = UID(uid)
    if not ts.is_transfer_syntax:
        logger.warning(
            "Unrecognised transfer syntax %r, assuming explicit VR little endian",
            uid,
        )
        return TransferSyntax(uid, False, True)
    return TransferSyntax(
        uid,
        implicit_vr=ts.is_implicit_VR,
        little_endian=ts.is_little_endian,
        deflated=ts.is_deflated,
    )


@dataclass(frozen=True)
class RawElement:
    """One undecoded data element.

    ``vr`` is None when the data set uses implicit VR; the value decoder
    resolves it from the data dictionary.  ``length`` is the declared length
    (possibly ``UNDEFINED_LENGTH``); ``payload`` is always the exact value
    bytes, excluding any closing delimiter.
    """

    tag: Tag
    vr: Optional[VRKind]
    length: int
    payload: memoryview
    syntax: TransferSyntax

    @property
    def undefined_length(self) -> bool:
        return self.length == UNDEFINED_LENGTH

    @property
    def item_syntax(self) -> TransferSyntax:
        """Encoding of nested items.  A ``UN`` sequence is implicit VR LE."""
        if self.vr is VRKind.UN:
            return IMPLICIT_LITTLE
        return self.syntax


# ---------------------------------------------------------------------------
# Element headers
# ---------------------------------------------------------------------------

def read_header(
    buffer: memoryview, offset: int, end: int, syntax: TransferSyntax
) -> tuple[Tag, Optional[VRKind], int, int]:
    """Read the element header at *offset*.

    Returns ``(tag, vr, length, header_size)``; ``vr`` is None for implicit
    VR and for item/delimiter markers, which never carry a VR.
    """
    if offset + 8 > end:
        raise Truncated(f"element header at offset {offset} runs past end of data")
    order = syntax.byte_order
    group, element = struct.unpack_from(order + "HH", buffer, offset)
    tag = Tag(group, element)

    if group == 0xFFFE or syntax.implicit_vr:
        (length,) = struct.unpack_from(order + "I", buffer, offset + 4)
        return tag, None, length, 8

    code = bytes(buffer[offset + 4:offset + 6])
    vr = VRKind.from_code(code)
    if vr is None:
        raise MalformedValue(f"invalid VR {code!r} for tag {tag} at offset {offset}")
    if vr.long_form:
        if offset + 12 > end:
            raise Truncated(f"element header for {tag} runs past end of data")
        (length,) = struct.unpack_from(order + "I", buffer, offset + 8)
        return tag, vr, length, 12
    (length,) = struct.unpack_from(order + "H", buffer, offset + 6)
    return tag, vr, length, 8


def find_delimiter(
    buffer: memoryview,
    offset: int,
    end: int,
    syntax: TransferSyntax,
) -> tuple[int, int]:
    """Find the end of an undefined-length value starting at *offset*.

    Walks nested items and elements with an explicit stack instead of
    recursion.  Every step consumes at least one 8-byte header, so the scan
    terminates on any finite input.

    Returns ``(value_end, next_offset)``: where the value's content stops (the
    start of its closing delimiter) and where the next element begins.
    """
    stack = [syntax]
    nested_syntax = syntax
    while True:
        marker = offset
        tag, vr, length, header = read_header(buffer, offset, end, nested_syntax)
        offset += header

        if tag in _DELIMITERS:
            stack.pop()
            if not stack:
                return marker, offset
            nested_syntax = stack[-1]
            continue

        if length == UNDEFINED_LENGTH:
            # UN with undefined length nests implicit VR little endian content
            nested_syntax = IMPLICIT_LITTLE if vr is VRKind.UN else nested_syntax
            stack.append(nested_syntax)
            continue

        if offset + length > end:
            raise Truncated(
                f"element {tag} declares {length} bytes, "
                f"only {end - offset} remain"
            )
        offset += length


def iter_elements(
    buffer: memoryview,
    start: int,
    end: int,
    syntax: TransferSyntax,
    stop_at: Optional[Tag] = None,
) -> Iterator[RawElement]:
    """Yield the elements of the data set held in ``buffer[start:end]``."""
    offset = start
    while offset < end:
        tag, vr, length, header = read_header(buffer, offset, end, syntax)
        if stop_at is not None and tag >= stop_at:
            logger.debug("Stopping at %s", tag)
            return
        value_start = offset + header

        if length == UNDEFINED_LENGTH:
            inner = IMPLICIT_LITTLE if vr is VRKind.UN else syntax
            value_end, offset = find_delimiter(buffer, value_start, end, inner)
        else:
            value_end = value_start + length
            if value_end > end:
                raise Truncated(
                    f"element {tag} declares {length} bytes, "
                    f"only {end - value_start} remain"
                )
            offset = value_end

        yield RawElement(tag, vr, length, buffer[value_start:value_end], syntax)


def iter_items(element: RawElement) -> Iterator[memoryview]:
    """Yield the data-set bytes of each item in a sequence element."""
    payload = element.payload
    syntax = element.item_syntax
    offset, end = 0, len(payload)
    while offset < end:
        tag, _vr, length, header = read_header(payload, offset, end, syntax)
        offset += header
        if tag == SEQUENCE_DELIMITER:
            return
        if tag != ITEM:
            raise MalformedValue(
                f"expected item tag in sequence {element.tag}, found {tag}"
            )
        if length == UNDEFINED_LENGTH:
            item_end, next_offset = find_delimiter(payload, offset, end, syntax)
        else:
            item_end = next_offset = offset + length
            if item_end > end:
                raise Truncated(
                    f"item in sequence {element.tag} declares {length} bytes, "
                    f"only {end - offset} remain"
                )
        yield payload[offset:item_end]
        offset = next_offset


# ---------------------------------------------------------------------------
# File-level reader
# ---------------------------------------------------------------------------

class DicomStreamReader:
    """Iterate the raw elements of one DICOM file.

    Each call to ``iter()`` starts again from the first element, meta group
    included.  Construction parses the preamble and meta header and raises
    :class:`~dcm_tags.errors.NotDicom` if the bytes are not recognisable.
    """

    def __init__(self, data: bytes, stop_at: Optional[Tag] = None) -> None:
        self._buffer = memoryview(data)
        self.stop_at = stop_at
        self.has_preamble = False
        self.meta: list[RawElement] = []
        self.transfer_syntax = EXPLICIT_LITTLE
        self._body = self._buffer
        self._body_start = 0
        self._read_preamble_and_meta()

    def __iter__(self) -> Iterator[RawElement]:
        yield from self.meta
        yield from iter_elements(
            self._body,
            self._body_start,
            len(self._body),
            self.transfer_syntax,
            stop_at=self.stop_at,
        )

    # ----- header detection -----

    def _read_preamble_and_meta(self) -> None:
        buffer = self._buffer
        if len(buffer) < 8:
            raise NotDicom(f"{len(buffer)} bytes is too short to hold a data element")
        offset = 0
        if bytes(buffer[PREAMBLE_LENGTH:PREAMBLE_LENGTH + 4]) == MAGIC:
            self.has_preamble = True
            offset = PREAMBLE_LENGTH + 4
        elif struct.unpack_from("<H", buffer, 0)[0] != META_GROUP:
            # No preamble and no meta group: a bare data set
            self.transfer_syntax = self._sniff_bare_dataset()
            logger.debug("No preamble, sniffed %s", self.transfer_syntax)
            return

        try:
            offset = self._read_meta(offset)
        except (Truncated, MalformedValue) as exc:
            if not self.has_preamble:
                raise NotDicom(f"no DICM marker and unreadable meta group: {exc}") from exc
            raise

        uid = self._meta_transfer_syntax()
        if uid is None:
            logger.warning("File meta has no Transfer Syntax UID, sniffing data set")
            self._body_start = offset
            self.transfer_syntax = self._sniff_bare_dataset(offset)
            return

        self.transfer_syntax = transfer_syntax_for(uid)
        if self.transfer_syntax.deflated:
            self._body = memoryview(_inflate(buffer[offset:]))
            self._body_start = 0
        else:
            self._body_start = offset

    def _read_meta(self, offset: int) -> int:
        buffer = self._buffer
        end = len(buffer)
        while offset + 4 <= end:
            (group,) = struct.unpack_from("<H", buffer, offset)
            if group != META_GROUP:
                break
            tag, vr, length, header = read_header(buffer, offset, end, EXPLICIT_LITTLE)
            value_start = offset + header
            value_end = value_start + length
            if length == UNDEFINED_LENGTH or value_end > end:
                raise Truncated(f"meta element {tag} runs past end of data")
            self.meta.append(
                RawElement(tag, vr, length, buffer[value_start:value_end], EXPLICIT_LITTLE)
            )
            offset = value_end
        return offset

    def _meta_transfer_syntax(self) -> Optional[str]:
        for element in self.meta:
            if element.tag == TRANSFER_SYNTAX_UID:
                uid = bytes(element.payload).decode("ascii", errors="replace")
                return uid.strip("\x00 ") or None
        return None

    def _sniff_bare_dataset(self, offset: int = 0) -> TransferSyntax:
        """Guess the encoding of a data set that has no usable meta header.

        The first group is read both ways round: data sets start with a low
        group number (usually 0008), so the smaller reading gives the byte
        order.  Valid VR letters after the tag mean explicit VR.  The first
        element must then parse and fit, otherwise the bytes are not DICOM.
        """
        buffer = self._buffer
        end = len(buffer)
        if end - offset < 8:
            raise NotDicom("too short to hold a data element")

        little_group = struct.unpack_from("<H", buffer, offset)[0]
        big_group = struct.unpack_from(">H", buffer, offset)[0]
        explicit = VRKind.from_code(bytes(buffer[offset + 4:offset + 6])) is not None
        if little_group > big_group:
            candidate = EXPLICIT_BIG if explicit else None
        else:
            candidate = EXPLICIT_LITTLE if explicit else IMPLICIT_LITTLE
        if candidate is None:
            raise NotDicom("no DICM marker and no recognisable data set encoding")

        try:
            tag, _vr, length, header = read_header(buffer, offset, end, candidate)
        except (Truncated, MalformedValue) as exc:
            raise NotDicom(f"no DICM marker and unreadable data set: {exc}") from exc
        if length != UNDEFINED_LENGTH and offset + header + length > end:
            raise NotDicom(
                f"no DICM marker and first element {tag} does not fit the data"
            )
        return candidate


def _inflate(data: memoryview) -> bytes:
    """Inflate a deflated data set (raw DEFLATE, no zlib header)."""
    try:
        return zlib.decompress(bytes(data), -zlib.MAX_WBITS)
    except zlib.error as exc:
        raise MalformedValue(f"could not inflate deflated data set: {exc}") from exc
