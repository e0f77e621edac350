"""
Unit tests for per-read classification and trimming.
"""

import pytest

from hammer_fastx.constants import Anomaly, Orientation, SampleId
from hammer_fastx.matcher import classify
from hammer_fastx.records import Record
from hammer_fastx.tags import TagRow, compile_tag_table
from hammer_fastx.writers import prepare_record

INSERT = "GATTACAGATTACAGATTAC"


@pytest.fixture
def table():
    return compile_tag_table([
        TagRow(2, "S1", "ACGTACGT", "AAAACCCC"),
        TagRow(3, "S2", "TTGGCCAA", "CAGTCAGT"),
    ], tag_len=8)


def fastq(seq, read_id="r1"):
    return Record(read_id, "", seq, "".join(chr(33 + i % 40) for i in range(len(seq))))


@pytest.mark.unit
class TestClassify:

    def test_forward_match(self, table):
        record = fastq("ACGTACGT" + INSERT + "GGGGTTTT")
        c = classify(record, table, 8, trim=False)
        assert c.sample_id == "S1"
        assert (c.trim_start, c.trim_end) == (0, len(record))
        assert c.orientation == Orientation.FORWARD
        assert c.is_matched

    def test_literal_reverse_tag_does_not_match(self, table):
        record = fastq("ACGTACGT" + INSERT + "AAAACCCC")
        c = classify(record, table, 8, trim=False)
        assert c.sample_id == SampleId.UNMATCHED
        assert c.anomaly is None

    def test_palindromic_reverse_tag(self):
        # TGCATGCA is its own reverse complement
        table = compile_tag_table([TagRow(2, "S1", "ACGTACGT", "TGCATGCA")], tag_len=8)
        c = classify(fastq("ACGTACGT" + INSERT + "TGCATGCA"), table, 8, trim=False)
        assert c.sample_id == "S1"

    def test_lowercase_read(self, table):
        c = classify(fastq("ttggccaa" + INSERT.lower() + "actgactg"), table, 8, trim=False)
        assert c.sample_id == "S2"

    def test_one_window_only_is_unmatched(self, table):
        assert classify(fastq("ACGTACGT" + INSERT + "ACTGACTG"), table, 8, False).sample_id == SampleId.UNMATCHED
        assert classify(fastq("TTGGCCAA" + INSERT + "GGGGTTTT"), table, 8, False).sample_id == SampleId.UNMATCHED

    def test_too_short(self, table):
        record = fastq("ACGTACGT" + "GGGGTTT")
        assert len(record) == 2 * 8 - 1
        c = classify(record, table, 8, trim=True)
        assert c.sample_id == SampleId.UNMATCHED
        assert c.anomaly == Anomaly.TOO_SHORT
        assert (c.trim_start, c.trim_end) == (0, 15)

    def test_empty_sequence(self, table):
        c = classify(fastq(""), table, 8, trim=False)
        assert c.anomaly == Anomaly.TOO_SHORT

    def test_exactly_two_windows(self, table):
        record = fastq("ACGTACGTGGGGTTTT")
        c = classify(record, table, 8, trim=True)
        assert c.sample_id == "S1"
        assert (c.trim_start, c.trim_end) == (8, 8)
        assert prepare_record(record, c).sequence == ""

    def test_trim_coordinates(self, table):
        record = fastq("ACGTACGT" + INSERT + "GGGGTTTT")
        c = classify(record, table, 8, trim=True)
        assert (c.trim_start, c.trim_end) == (8, len(record) - 8)

    def test_unmatched_is_never_trimmed(self, table):
        record = fastq("C" * 40)
        c = classify(record, table, 8, trim=True)
        assert (c.trim_start, c.trim_end) == (0, 40)

    def test_deterministic(self, table):
        record = fastq("TTGGCCAA" + INSERT + "ACTGACTG")
        results = {classify(record, table, 8, trim=True) for _ in range(10)}
        assert len(results) == 1

    def test_opposite_strand(self):
        table = compile_tag_table([TagRow(2, "S1", "ACGTACGT", "AAAACCCC")], tag_len=8, both_strands=True)
        forward = fastq("ACGTACGT" + INSERT + "GGGGTTTT")
        # reverse complement of the forward read: AAAACCCC + rc(INSERT) + ACGTACGT
        reverse = fastq("AAAACCCC" + "GTAATCTGTAATCTGTAATC" + "ACGTACGT")
        c = classify(reverse, table, 8, trim=True)
        assert c.sample_id == "S1"
        assert c.orientation == Orientation.REVERSE
        assert prepare_record(reverse, c).sequence == INSERT
        assert classify(forward, table, 8, trim=True).orientation == Orientation.FORWARD


@pytest.mark.unit
class TestPrepareRecord:

    def test_trim_keeps_quality_aligned(self, table):
        record = fastq("ACGTACGT" + INSERT + "GGGGTTTT")
        trimmed = prepare_record(record, classify(record, table, 8, trim=True))
        assert trimmed.sequence == INSERT
        assert len(trimmed.quality) == len(trimmed.sequence) == len(record) - 16
        assert trimmed.quality == record.quality[8:-8]
        assert trimmed.id == record.id

    def test_untrimmed_record_is_unchanged(self, table):
        record = fastq("ACGTACGT" + INSERT + "GGGGTTTT")
        assert prepare_record(record, classify(record, table, 8, trim=False)) is record

    def test_reverse_quality_is_reversed(self):
        table = compile_tag_table([TagRow(2, "S1", "ACGTACGT", "AAAACCCC")], tag_len=8, both_strands=True)
        record = fastq("AAAACCCC" + "GTAATCTGTAATCTGTAATC" + "ACGTACGT")
        trimmed = prepare_record(record, classify(record, table, 8, trim=True))
        assert trimmed.quality == record.quality[8:-8][::-1]
