"""Tests for dcm_tags.pipeline: batches of files to ordered rows."""

import logging

import pytest

from dcm_tags.config import ExtractionOptions, OnError
from dcm_tags.dictionary import Tag
from dcm_tags.errors import NoInputFiles, UnknownKeyword
from dcm_tags.formatter import render_csv
from dcm_tags.pipeline import BatchResult, FileFailure, extract_and_format

STUDY_DATE = Tag(0x0008, 0x0020)
PATIENT_ID = Tag(0x0010, 0x0020)

INLINE = ExtractionOptions(jobs=1)


def _study(dicom_bytes, date: str, patient_id: str = "P1") -> bytes:
    body = dicom_bytes.element(STUDY_DATE, "DA", date.encode()) + dicom_bytes.element(
        PATIENT_ID, "LO", dicom_bytes.text(patient_id)
    )
    return dicom_bytes.file(body)


def _truncated(dicom_bytes) -> bytes:
    body = dicom_bytes.element(STUDY_DATE, "DA", b"20230101", length=64)
    return dicom_bytes.file(body)


class TestExtractAndFormat:
    def test_single_file(self, dicom_bytes):
        body = dicom_bytes.element(STUDY_DATE, "DA", b"20230101")
        result = extract_and_format(["StudyDate"], [("a.dcm", dicom_bytes.file(body))], INLINE)
        assert render_csv(result.all_rows()) == "FileName,StudyDate\na.dcm,20230101\n"
        assert result.failures == []

    def test_missing_tag_gives_empty_cell(self, dicom_bytes):
        body = dicom_bytes.element(STUDY_DATE, "DA", b"20230101")
        result = extract_and_format(
            ["StudyDate", "PatientName"], [("a.dcm", dicom_bytes.file(body))], INLINE
        )
        assert result.rows == [["a.dcm", "20230101", ""]]

    def test_duplicate_columns(self, dicom_bytes):
        result = extract_and_format(
            ["StudyDate", "0008,0020"], [("a.dcm", _study(dicom_bytes, "20230101"))], INLINE
        )
        assert result.header == ["FileName", "StudyDate", "0008,0020"]
        assert result.rows == [["a.dcm", "20230101", "20230101"]]

    def test_bad_file_is_skipped(self, dicom_bytes, caplog):
        files = [
            ("a.dcm", _study(dicom_bytes, "20230101", "A")),
            ("b.dcm", _truncated(dicom_bytes)),
            ("c.dcm", _study(dicom_bytes, "20230103", "C")),
        ]
        with caplog.at_level(logging.WARNING, logger="dcm_tags.pipeline"):
            result = extract_and_format(["PatientID", "StudyDate"], files, INLINE)
        assert result.rows == [["a.dcm", "A", "20230101"], ["c.dcm", "C", "20230103"]]
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert (failure.index, failure.filename, failure.kind) == (1, "b.dcm", "Truncated")
        assert "b.dcm" in caplog.text

    def test_not_dicom_failure(self, dicom_bytes):
        files = [("notes.dcm", b"plain text, not an image at all")]
        result = extract_and_format(["StudyDate"], files, INLINE)
        assert result.rows == []
        assert result.failures[0].kind == "NotDicom"

    def test_bad_file_as_empty_row(self, dicom_bytes):
        files = [
            ("a.dcm", _study(dicom_bytes, "20230101")),
            ("b.dcm", _truncated(dicom_bytes)),
        ]
        options = ExtractionOptions(jobs=1, on_error=OnError.EMPTY)
        result = extract_and_format(["StudyDate", "PatientID"], files, options)
        assert result.rows == [["a.dcm", "20230101", "P1"], ["b.dcm", "", ""]]
        assert len(result.failures) == 1

    def test_worker_pool_keeps_input_order(self, dicom_bytes):
        files = [(f"{i:02d}.dcm", _study(dicom_bytes, f"202301{i:02d}")) for i in range(1, 13)]
        files.insert(5, ("bad.dcm", _truncated(dicom_bytes)))
        result = extract_and_format(["StudyDate"], files, ExtractionOptions(jobs=2))
        assert [row[0] for row in result.rows] == [f"{i:02d}.dcm" for i in range(1, 13)]
        assert [row[1] for row in result.rows] == [f"202301{i:02d}" for i in range(1, 13)]
        assert [f.filename for f in result.failures] == ["bad.dcm"]

    def test_unknown_tag_fails_before_reading(self):
        def files():
            raise AssertionError("files were read")
            yield  # pragma: no cover

        with pytest.raises(UnknownKeyword):
            extract_and_format(["StudyDate", "NoSuchKeyword"], files(), INLINE)

    def test_no_input_files(self):
        with pytest.raises(NoInputFiles):
            extract_and_format(["StudyDate"], [], INLINE)

    def test_sequence_and_multi_values(self, dicom_bytes):
        item = dicom_bytes.item(
            dicom_bytes.element(Tag(0x0008, 0x1150), "UI", dicom_bytes.text("1.2.840", b"\x00"))
            + dicom_bytes.element(Tag(0x0008, 0x1155), "UI", dicom_bytes.text("1.2.3", b"\x00")),
            undefined=True,
        )
        body = dicom_bytes.element(
            Tag(0x0008, 0x0008), "CS", dicom_bytes.text("ORIGINAL\\PRIMARY")
        ) + dicom_bytes.sequence(Tag(0x0008, 0x1140), [item], undefined=True)
        result = extract_and_format(
            ["ImageType", "ReferencedImageSequence"], [("a.dcm", dicom_bytes.file(body))], INLINE
        )
        assert result.rows == [["a.dcm", "ORIGINAL|PRIMARY", "1.2.840;1.2.3"]]

    def test_numeric_strings_written_as_stored(self, dicom_bytes):
        body = dicom_bytes.element(
            Tag(0x0018, 0x0050), "DS", dicom_bytes.text("1.0E-3")
        ) + dicom_bytes.element(Tag(0x0020, 0x0013), "IS", dicom_bytes.text("+007"))
        result = extract_and_format(
            ["SliceThickness", "InstanceNumber"], [("a.dcm", dicom_bytes.file(body))], INLINE
        )
        assert result.rows == [["a.dcm", "1.0E-3", "+007"]]


class TestResultTypes:
    def test_failure_text(self):
        failure = FileFailure(3, "x.dcm", "Truncated", "element ran past end")
        assert str(failure) == "x.dcm: Truncated: element ran past end"

    def test_all_rows(self):
        batch = BatchResult(header=["FileName"], rows=[["a.dcm"]])
        assert batch.all_rows() == [["FileName"], ["a.dcm"]]
