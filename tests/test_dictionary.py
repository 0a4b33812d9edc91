"""Tests for dcm_tags.dictionary: tags, VRs and dictionary lookups."""

from dcm_tags.dictionary import (
    Multiplicity,
    Tag,
    VRKind,
    keyword_for,
    lookup_by_keyword,
    lookup_by_tag,
)


class TestTag:
    def test_orders_numerically(self):
        tags = [Tag(0x0010, 0x0020), Tag(0x0008, 0x0020), Tag(0x0010, 0x0010)]
        assert sorted(tags) == [
            Tag(0x0008, 0x0020), Tag(0x0010, 0x0010), Tag(0x0010, 0x0020),
        ]

    def test_equal_to_plain_tuple(self):
        assert Tag(0x0010, 0x0010) == (0x0010, 0x0010)
        assert hash(Tag(0x0010, 0x0010)) == hash((0x0010, 0x0010))

    def test_str_and_int(self):
        tag = Tag(0x7FE0, 0x0010)
        assert str(tag) == "(7FE0,0010)"
        assert int(tag) == 0x7FE00010
        assert Tag.from_int(0x7FE00010) == tag

    def test_private(self):
        assert Tag(0x0009, 0x1001).is_private
        assert not Tag(0x0008, 0x0020).is_private


class TestLookupByTag:
    def test_known_tag(self):
        entry = lookup_by_tag(Tag(0x0008, 0x0020))
        assert entry.keyword == "StudyDate"
        assert entry.vr is VRKind.DA

    def test_multi_valued_entry(self):
        entry = lookup_by_tag(Tag(0x0008, 0x0008))  # ImageType
        assert entry.keyword == "ImageType"
        assert entry.multiplicity.allows_multiple

    def test_ambiguous_vr_takes_first(self):
        entry = lookup_by_tag(Tag(0x0028, 0x0106))  # SmallestImagePixelValue
        assert entry.vr is VRKind.US

    def test_private_tag_is_unknown(self):
        assert lookup_by_tag(Tag(0x0009, 0x1001)) is None

    def test_private_creator(self):
        entry = lookup_by_tag(Tag(0x0009, 0x0010))
        assert entry.vr is VRKind.LO

    def test_group_length(self):
        assert lookup_by_tag(Tag(0x0008, 0x0000)).vr is VRKind.UL

    def test_repeating_group(self):
        entry = lookup_by_tag(Tag(0x6002, 0x0010))  # OverlayRows, 60xx
        assert entry is not None
        assert entry.vr is VRKind.US


class TestLookupByKeyword:
    def test_known_keyword(self):
        assert lookup_by_keyword("PatientName") == Tag(0x0010, 0x0010)

    def test_case_sensitive(self):
        assert lookup_by_keyword("patientname") is None
        assert lookup_by_keyword("PATIENTNAME") is None

    def test_unknown(self):
        assert lookup_by_keyword("NotARealKeyword") is None


class TestKeywordFor:
    def test_known(self):
        assert keyword_for(Tag(0x0010, 0x0020)) == "PatientID"

    def test_unknown_falls_back_to_numeric(self):
        assert keyword_for(Tag(0x0009, 0x1001)) == "(0009,1001)"


class TestMultiplicity:
    def test_single(self):
        assert Multiplicity.parse("1") == Multiplicity(1, 1)
        assert not Multiplicity.parse("1").allows_multiple

    def test_range(self):
        assert Multiplicity.parse("1-3") == Multiplicity(1, 3)

    def test_unbounded(self):
        assert Multiplicity.parse("1-n") == Multiplicity(1, None, 1)
        assert Multiplicity.parse("2-2n") == Multiplicity(2, None, 2)
        assert Multiplicity.parse("1-n").allows_multiple


class TestVRKind:
    def test_long_form(self):
        assert VRKind.SQ.long_form
        assert VRKind.OB.long_form
        assert VRKind.UT.long_form
        assert not VRKind.DA.long_form
        assert not VRKind.US.long_form

    def test_from_code(self):
        assert VRKind.from_code(b"PN") is VRKind.PN
        assert VRKind.from_code(b"zz") is None
        assert VRKind.from_code(b"\xff\xfe") is None
