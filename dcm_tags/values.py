"""Decode raw element bytes into typed values.

Decoding is a pure function of a :class:`~dcm_tags.reader.RawElement` and
its VR.  Under implicit VR the VR comes from the data dictionary; tags the
dictionary does not know are kept as opaque placeholders (or, with an
undefined length, read as sequences).
"""

import enum
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Sequence

import numpy as np
from pydicom.charset import convert_encodings, decode_bytes

from dcm_tags.config import MAX_SEQUENCE_DEPTH
from dcm_tags.dictionary import Tag, VRKind, lookup_by_tag
from dcm_tags.errors import MalformedValue
from dcm_tags.reader import RawElement, iter_elements, iter_items

logger = logging.getLogger(__name__)

SPECIFIC_CHARACTER_SET = Tag(0x0008, 0x0005)


class ValueKind(enum.Enum):
    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"
    SEQUENCE = "sequence"
    MULTI = "multi"
    ABSENT = "absent"
    OPAQUE = "opaque"  # binary payload, only its length is kept


@dataclass(frozen=True)
class TypedValue:
    """A decoded element value.

    ``value`` holds a ``str`` (TEXT, DATE), ``int`` (INTEGER), ``float`` or
    ``Decimal`` (DECIMAL), a tuple of scalar TypedValues (MULTI), a tuple of
    ``{Tag: TypedValue}`` items (SEQUENCE), the byte length (OPAQUE), or None
    (ABSENT).

    ``text`` is the value as stored in the file, kept for IS and DS so the
    output shows exactly what was written (``+007``, ``1.0E-3``).
    """

    kind: ValueKind
    value: Any = None
    text: Optional[str] = field(default=None, compare=False)

    @property
    def is_absent(self) -> bool:
        return self.kind in (ValueKind.ABSENT, ValueKind.OPAQUE)


ABSENT = TypedValue(ValueKind.ABSENT)


# ---------------------------------------------------------------------------
# VR groups
# ---------------------------------------------------------------------------

# Decoded with the file's Specific Character Set; everything else is ASCII.
_CHARSET_VRS = {VRKind.SH, VRKind.LO, VRKind.ST, VRKind.LT, VRKind.UC, VRKind.UT, VRKind.PN}
_STRING_VRS = _CHARSET_VRS | {VRKind.AE, VRKind.AS, VRKind.CS, VRKind.UI, VRKind.UR}
# Backslash is ordinary text in these, never a value delimiter.
_SINGLE_VALUE_VRS = {VRKind.LT, VRKind.ST, VRKind.UT, VRKind.UR}
_DATE_VRS = {VRKind.DA, VRKind.DT, VRKind.TM}

# Value syntax of IS and DS; anything else is kept as text
_IS_PATTERN = re.compile(r"^[+-]?[0-9]+\Z")
_DS_PATTERN = re.compile(r"^[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?\Z")

# VR -> numpy dtype character
_BINARY_VRS = {
    VRKind.US: "u2",
    VRKind.SS: "i2",
    VRKind.UL: "u4",
    VRKind.SL: "i4",
    VRKind.UV: "u8",
    VRKind.SV: "i8",
    VRKind.FL: "f4",
    VRKind.FD: "f8",
}

_PN_DELIMITERS = {0x5C, 0x3D, 0x5E}  # \ = ^
_VALUE_DELIMITERS = {0x5C}


def resolve_vr(element: RawElement) -> VRKind:
    """Pick the VR to decode *element* with.

    Explicit VRs win, except ``UN``, which the dictionary replaces when it
    knows the tag.  Unknown tags with an undefined length are sequences.
    """
    if element.vr is not None and element.vr is not VRKind.UN:
        return element.vr
    entry = lookup_by_tag(element.tag)
    if entry is not None:
        return entry.vr
    if element.undefined_length:
        return VRKind.SQ
    return VRKind.UN


def character_set(element: RawElement) -> list[str]:
    """Python encodings for a Specific Character Set (0008,0005) element."""
    raw = bytes(element.payload).decode("ascii", errors="replace")
    terms = [term.strip(" \x00") for term in raw.split("\\")]
    return convert_encodings(terms)


def decode(
    element: RawElement,
    vr: Optional[VRKind] = None,
    *,
    encodings: Optional[Sequence[str]] = None,
    depth: int = 0,
) -> TypedValue:
    """Decode *element* according to *vr* (resolved from the element if None)."""
    if vr is None:
        vr = resolve_vr(element)

    if vr is VRKind.SQ:
        return _decode_sequence(element, encodings, depth)

    payload = bytes(element.payload)
    if not payload:
        return ABSENT

    if vr in _STRING_VRS:
        return _decode_string(element.tag, vr, payload, encodings)
    if vr in _DATE_VRS:
        return _decode_date(element.tag, payload)
    if vr is VRKind.IS:
        return _decode_numeric_string(element.tag, payload, int, _IS_PATTERN)
    if vr is VRKind.DS:
        return _decode_numeric_string(element.tag, payload, Decimal, _DS_PATTERN)
    if vr in _BINARY_VRS:
        return _decode_binary(element, vr, payload)
    if vr is VRKind.AT:
        return _decode_attribute_tag(element, payload)

    # OB, OW, OD, OF, OL, OV, UN and anything unresolved
    return TypedValue(ValueKind.OPAQUE, len(payload))


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------

def _allows_multiple(tag: Tag, vr: VRKind) -> bool:
    if vr in _SINGLE_VALUE_VRS:
        return False
    entry = lookup_by_tag(tag)
    return entry is None or entry.multiplicity.allows_multiple


def _scalars(tag: Tag, vr: VRKind, text: str, kind: ValueKind) -> TypedValue:
    if "\\" in text and _allows_multiple(tag, vr):
        parts = tuple(TypedValue(kind, part) for part in text.split("\\"))
        return TypedValue(ValueKind.MULTI, parts)
    return TypedValue(kind, text)


def _decode_text(vr: VRKind, payload: bytes, encodings: Optional[Sequence[str]]) -> str:
    if vr in _CHARSET_VRS and encodings:
        delimiters = _PN_DELIMITERS if vr is VRKind.PN else _VALUE_DELIMITERS
        return decode_bytes(payload, list(encodings), delimiters)
    return payload.decode("latin-1")


def _decode_string(
    tag: Tag, vr: VRKind, payload: bytes, encodings: Optional[Sequence[str]]
) -> TypedValue:
    text = _decode_text(vr, payload, encodings)
    # UI pads with NUL, everything else with spaces; tolerate either
    text = text.rstrip(" \x00")
    return _scalars(tag, vr, text, ValueKind.TEXT)


def _decode_date(tag: Tag, payload: bytes) -> TypedValue:
    text = payload.decode("latin-1").strip(" \x00")
    value = _scalars(tag, VRKind.DA, text, ValueKind.DATE)
    if value.kind is ValueKind.MULTI:
        parts = tuple(TypedValue(ValueKind.DATE, p.value.strip()) for p in value.value)
        return TypedValue(ValueKind.MULTI, parts)
    return value


def _decode_numeric_string(
    tag: Tag, payload: bytes, convert, pattern: re.Pattern
) -> TypedValue:
    text = payload.decode("latin-1").strip(" \x00")
    if not text:
        return ABSENT
    kind = ValueKind.INTEGER if convert is int else ValueKind.DECIMAL
    values = []
    for part in text.split("\\"):
        part = part.strip()
        if pattern.match(part) is None:
            logger.debug("Keeping non-numeric %s value %r as text", tag, text)
            return _scalars(tag, VRKind.LO, text, ValueKind.TEXT)
        values.append(TypedValue(kind, convert(part), text=part))
    if len(values) == 1:
        return values[0]
    return TypedValue(ValueKind.MULTI, tuple(values))


# ---------------------------------------------------------------------------
# Binary numbers
# ---------------------------------------------------------------------------

def _decode_binary(element: RawElement, vr: VRKind, payload: bytes) -> TypedValue:
    dtype = np.dtype(element.syntax.byte_order + _BINARY_VRS[vr])
    if len(payload) % dtype.itemsize:
        raise MalformedValue(
            f"{element.tag} {vr.value} value of {len(payload)} bytes is not a "
            f"multiple of {dtype.itemsize}"
        )
    array = np.frombuffer(payload, dtype=dtype)
    if vr is VRKind.FL:
        # shortest decimal that round-trips the float32, not its float64 widening
        numbers = [float(str(v)) for v in array]
        kind = ValueKind.DECIMAL
    elif vr is VRKind.FD:
        numbers = array.tolist()
        kind = ValueKind.DECIMAL
    else:
        numbers = array.tolist()
        kind = ValueKind.INTEGER
    if len(numbers) == 1:
        return TypedValue(kind, numbers[0])
    return TypedValue(ValueKind.MULTI, tuple(TypedValue(kind, n) for n in numbers))


def _decode_attribute_tag(element: RawElement, payload: bytes) -> TypedValue:
    if len(payload) % 4:
        raise MalformedValue(
            f"{element.tag} AT value of {len(payload)} bytes is not a multiple of 4"
        )
    pairs = np.frombuffer(payload, dtype=element.syntax.byte_order + "u2").reshape(-1, 2)
    texts = [TypedValue(ValueKind.TEXT, f"{g:04X},{e:04X}") for g, e in pairs.tolist()]
    if len(texts) == 1:
        return texts[0]
    return TypedValue(ValueKind.MULTI, tuple(texts))


# ---------------------------------------------------------------------------
# Sequences
# ---------------------------------------------------------------------------

def _decode_sequence(
    element: RawElement, encodings: Optional[Sequence[str]], depth: int
) -> TypedValue:
    if depth >= MAX_SEQUENCE_DEPTH:
        raise MalformedValue(
            f"sequence {element.tag} nests deeper than {MAX_SEQUENCE_DEPTH} levels"
        )
    syntax = element.item_syntax
    items = []
    for item in iter_items(element):
        decoded: dict[Tag, TypedValue] = {}
        item_encodings = encodings
        for nested in iter_elements(item, 0, len(item), syntax):
            if nested.tag == SPECIFIC_CHARACTER_SET:
                item_encodings = character_set(nested)
            if nested.tag in decoded:
                continue
            decoded[nested.tag] = decode(
                nested, encodings=item_encodings, depth=depth + 1
            )
        items.append(decoded)
    return TypedValue(ValueKind.SEQUENCE, tuple(items))
