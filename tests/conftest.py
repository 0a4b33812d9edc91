"""Shared fixtures: hand-built DICOM bytes.

pydicom writes the common cases (see ``_make_test_dicom`` in the test
modules).  The builders here cover what it will not produce on request:
bare data sets, big endian, undefined-length items, truncation and so on.
"""

import struct
import zlib

import pytest

LONG_FORM_VRS = {"OB", "OD", "OF", "OL", "OV", "OW", "SQ", "UC", "UN", "UR", "UT", "SV", "UV"}
UNDEFINED = 0xFFFFFFFF

EXPLICIT_LE = "1.2.840.10008.1.2.1"
IMPLICIT_LE = "1.2.840.10008.1.2"
EXPLICIT_BE = "1.2.840.10008.1.2.2"
DEFLATED_LE = "1.2.840.10008.1.2.1.99"


class DicomBytes:
    """Little encoder for data elements, items and whole files."""

    @staticmethod
    def text(value: str, pad: bytes = b" ") -> bytes:
        raw = value.encode("latin-1")
        return raw + pad if len(raw) % 2 else raw

    @staticmethod
    def element(
        tag,
        vr: str,
        value: bytes,
        *,
        implicit: bool = False,
        little: bool = True,
        length: int = None,
    ) -> bytes:
        order = "<" if little else ">"
        group, elem = tag
        if length is None:
            length = len(value)
        head = struct.pack(order + "HH", group, elem)
        if implicit or group == 0xFFFE:
            return head + struct.pack(order + "I", length) + value
        if vr in LONG_FORM_VRS:
            return head + vr.encode() + b"\x00\x00" + struct.pack(order + "I", length) + value
        return head + vr.encode() + struct.pack(order + "H", length) + value

    def item(self, content: bytes, *, undefined: bool = False, little: bool = True) -> bytes:
        if undefined:
            return (
                self.element((0xFFFE, 0xE000), "", content, little=little, length=UNDEFINED)
                + self.element((0xFFFE, 0xE00D), "", b"", little=little)
            )
        return self.element((0xFFFE, 0xE000), "", content, little=little)

    def sequence(
        self,
        tag,
        items: list,
        *,
        undefined: bool = False,
        implicit: bool = False,
        little: bool = True,
        vr: str = "SQ",
    ) -> bytes:
        content = b"".join(items)
        if undefined:
            return self.element(
                tag, vr, content, implicit=implicit, little=little, length=UNDEFINED
            ) + self.element((0xFFFE, 0xE0DD), "", b"", little=little)
        return self.element(tag, vr, content, implicit=implicit, little=little)

    def meta(self, transfer_syntax: str) -> bytes:
        ts = self.element((0x0002, 0x0010), "UI", self.text(transfer_syntax, b"\x00"))
        group_length = self.element((0x0002, 0x0000), "UL", struct.pack("<I", len(ts)))
        return group_length + ts

    def file(
        self, body: bytes, transfer_syntax: str = EXPLICIT_LE, *, preamble: bool = True
    ) -> bytes:
        head = b"\x00" * 128 + b"DICM" if preamble else b""
        if transfer_syntax == DEFLATED_LE:
            compressor = zlib.compressobj(9, zlib.DEFLATED, -zlib.MAX_WBITS)
            body = compressor.compress(body) + compressor.flush()
        return head + self.meta(transfer_syntax) + body


@pytest.fixture
def dicom_bytes():
    return DicomBytes()
