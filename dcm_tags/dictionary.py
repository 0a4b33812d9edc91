"""
DICOM data dictionary: tag identity, value representations and keywords.

The table is built once at import from pydicom's standard dictionary and is
never written afterwards, so it is safe to share between worker processes.

Lookups are exact.  Keywords are matched case-sensitively in their canonical
DICOM spelling (``PatientName``, not ``patientname``).  Tags the standard does
not define, such as most private vendor tags, return ``None``; callers treat
their VR as ``UN`` and display them by their numeric form (see
:func:`keyword_for`).
"""

import enum
from typing import NamedTuple, Optional

from pydicom.datadict import DicomDictionary, RepeatersDictionary, mask_match


class Tag(NamedTuple):
    """A (group, element) pair.  Sorts numerically, never by keyword."""

    group: int
    element: int

    @classmethod
    def from_int(cls, value: int) -> "Tag":
        return cls(value >> 16, value & 0xFFFF)

    def __int__(self) -> int:
        return (self.group << 16) | self.element

    def __str__(self) -> str:
        return f"({self.group:04X},{self.element:04X})"

    @property
    def is_private(self) -> bool:
        return self.group % 2 == 1


class VRKind(enum.Enum):
    """DICOM value representations."""

    AE = "AE"
    AS = "AS"
    AT = "AT"
    CS = "CS"
    DA = "DA"
    DS = "DS"
    DT = "DT"
    FL = "FL"
    FD = "FD"
    IS = "IS"
    LO = "LO"
    LT = "LT"
    OB = "OB"
    OD = "OD"
    OF = "OF"
    OL = "OL"
    OV = "OV"
    OW = "OW"
    PN = "PN"
    SH = "SH"
    SL = "SL"
    SQ = "SQ"
    SS = "SS"
    ST = "ST"
    SV = "SV"
    TM = "TM"
    UC = "UC"
    UI = "UI"
    UL = "UL"
    UN = "UN"
    UR = "UR"
    US = "US"
    UT = "UT"
    UV = "UV"

    @property
    def long_form(self) -> bool:
        """True if explicit VR encodes this VR with a 4-byte length field."""
        return self in _LONG_FORM

    @classmethod
    def from_code(cls, code: bytes) -> Optional["VRKind"]:
        """Return the VR for a 2-byte explicit VR code, or None if invalid."""
        try:
            return cls(code.decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            return None


_LONG_FORM = frozenset({
    VRKind.OB, VRKind.OD, VRKind.OF, VRKind.OL, VRKind.OV, VRKind.OW,
    VRKind.SQ, VRKind.UC, VRKind.UN, VRKind.UR, VRKind.UT, VRKind.SV,
    VRKind.UV,
})


class Multiplicity(NamedTuple):
    """Allowed value counts, e.g. ``1``, ``1-n`` or ``2-2n``."""

    minimum: int
    maximum: Optional[int]  # None means unbounded
    step: int = 1

    @property
    def allows_multiple(self) -> bool:
        return self.maximum is None or self.maximum > 1

    @classmethod
    def parse(cls, vm: str) -> "Multiplicity":
        """Parse a dictionary VM string.  Unparseable strings mean ``1-n``."""
        low, _, high = vm.strip().partition("-")
        try:
            minimum = int(low)
            if not high:
                return cls(minimum, minimum)
            if high.endswith("n"):
                step = int(high[:-1] or 1)
                return cls(minimum, None, step)
            return cls(minimum, int(high))
        except ValueError:
            return cls(1, None)


class DictionaryEntry(NamedTuple):
    keyword: str
    vr: VRKind
    multiplicity: Multiplicity


def _entry_from_pydicom(raw: tuple) -> Optional[DictionaryEntry]:
    vr_text, vm, _name, _retired, keyword = raw
    # "US or SS", "OB or OW", "US or SS or OW": the first alternative wins
    code = vr_text.split(" or ")[0].strip()
    try:
        vr = VRKind(code)
    except ValueError:
        return None
    return DictionaryEntry(keyword, vr, Multiplicity.parse(vm))


def _build_tables() -> tuple[dict, dict]:
    by_tag: dict[Tag, DictionaryEntry] = {}
    by_keyword: dict[str, Tag] = {}
    for value, raw in DicomDictionary.items():
        entry = _entry_from_pydicom(raw)
        if entry is None:
            continue
        tag = Tag.from_int(value)
        by_tag[tag] = entry
        if entry.keyword:
            by_keyword.setdefault(entry.keyword, tag)
    return by_tag, by_keyword


_BY_TAG, _BY_KEYWORD = _build_tables()

_GROUP_LENGTH = DictionaryEntry("GroupLength", VRKind.UL, Multiplicity(1, 1))
_PRIVATE_CREATOR = DictionaryEntry("PrivateCreator", VRKind.LO, Multiplicity(1, 1))


def lookup_by_tag(tag: Tag) -> Optional[DictionaryEntry]:
    """Return the dictionary entry for *tag*, or None if it is not defined."""
    entry = _BY_TAG.get(tag)
    if entry is not None:
        return entry

    if tag.element == 0x0000:
        return _GROUP_LENGTH

    if tag.is_private:
        if 0x0010 <= tag.element <= 0x00FF:
            return _PRIVATE_CREATOR
        return None

    # Repeating groups such as overlays (60xx) and curves (50xx)
    mask = mask_match(int(tag))
    if mask is not None:
        return _entry_from_pydicom(RepeatersDictionary[mask])
    return None


def lookup_by_keyword(keyword: str) -> Optional[Tag]:
    """Return the tag whose canonical keyword is exactly *keyword*."""
    return _BY_KEYWORD.get(keyword)


def keyword_for(tag: Tag) -> str:
    """Keyword for display, falling back to the numeric ``(GGGG,EEEE)`` form."""
    entry = lookup_by_tag(tag)
    if entry is None or not entry.keyword:
        return str(tag)
    return entry.keyword
