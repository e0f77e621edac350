"""
Unit tests for sequence file reading and batching.
"""

import gzip

import pytest

from hammer_fastx.constants import FileFormat
from hammer_fastx.errors import SourceReadError
from hammer_fastx.records import Record, RecordSource, detect_file_format, iter_batches


@pytest.mark.unit
class TestDetectFileFormat:

    def test_fastq(self, write_fastq):
        assert detect_file_format(str(write_fastq("reads.txt", [("r1", "ACGT")]))) == FileFormat.FASTQ

    def test_fasta_by_content_not_extension(self, write_fasta):
        assert detect_file_format(str(write_fasta("reads.fastq", [("r1", "ACGT")]))) == FileFormat.FASTA

    def test_compressed(self, write_fastq):
        path = write_fastq("reads.fastq.gz", [("r1", "ACGT")], compress=True)
        assert detect_file_format(str(path)) == FileFormat.FASTQ

    def test_leading_blank_lines(self, temp_dir):
        path = temp_dir / "reads"
        path.write_text("\n\n>r1\nACGT\n")
        assert detect_file_format(str(path)) == FileFormat.FASTA

    @pytest.mark.parametrize("name,expected", [
        ("empty.fa", FileFormat.FASTA),
        ("empty.fasta.gz", FileFormat.FASTA),
        ("empty.fq", FileFormat.FASTQ),
        ("empty", FileFormat.FASTQ),
    ])
    def test_empty_file_uses_extension(self, temp_dir, name, expected):
        path = temp_dir / name
        if name.endswith(".gz"):
            with gzip.open(path, "wt"):
                pass
        else:
            path.write_text("")
        assert detect_file_format(str(path)) == expected

    def test_unrecognized(self, temp_dir):
        path = temp_dir / "reads.txt"
        path.write_text("SampleID,F_tag,R_tag\n")
        with pytest.raises(SourceReadError, match="Unrecognized file format"):
            detect_file_format(str(path))

    def test_missing_file(self, temp_dir):
        with pytest.raises(SourceReadError, match="Cannot read input"):
            detect_file_format(str(temp_dir / "missing.fastq"))


@pytest.mark.unit
class TestRecordSource:

    def test_fastq_records(self, write_fastq):
        path = write_fastq("reads.fastq", [("r1", "ACGT"), ("r2", "GGCC")])
        with RecordSource(str(path)) as source:
            records = list(source)
            assert source.is_fastq
            assert source.records_read == 2
        assert records[0] == Record("r1", "", "ACGT", "IIII")
        assert records[1].id == "r2"

    def test_fasta_description_and_multiline(self, temp_dir):
        path = temp_dir / "reads.fasta"
        path.write_text(">r1 sample=S1 extra\nACGT\nTTGG\n>r2\nCC\n")
        with RecordSource(str(path)) as source:
            records = list(source)
            assert not source.is_fastq
        assert records[0] == Record("r1", "sample=S1 extra", "ACGTTTGG", None)
        assert records[0].title == "r1 sample=S1 extra"
        assert records[1].title == "r2"

    def test_gzip_input(self, write_fastq):
        path = write_fastq("reads.fq.gz", [("r1", "ACGT")], compress=True)
        with RecordSource(str(path)) as source:
            assert [r.sequence for r in source] == ["ACGT"]

    def test_empty_input(self, temp_dir):
        path = temp_dir / "reads.fastq"
        path.write_text("")
        with RecordSource(str(path)) as source:
            assert list(source) == []

    def test_truncated_fastq(self, temp_dir):
        path = temp_dir / "reads.fastq"
        path.write_text("@r1\nACGT\n+\nIIII\n@r2\nACGT\n+\n")
        with RecordSource(str(path)) as source:
            assert next(source).id == "r1"
            with pytest.raises(SourceReadError) as excinfo:
                next(source)
        assert excinfo.value.records_read == 1
        assert "reads.fastq" in str(excinfo.value)

    def test_quality_length_mismatch(self, temp_dir):
        path = temp_dir / "reads.fastq"
        path.write_text("@r1\nACGT\n+\nII\n")
        with RecordSource(str(path)) as source:
            with pytest.raises(SourceReadError):
                list(source)

    def test_truncated_gzip(self, temp_dir):
        full = temp_dir / "full.fastq.gz"
        with gzip.open(full, "wt") as f:
            f.write("".join(f"@r{i}\nACGTACGTACGT\n+\nIIIIIIIIIIII\n" for i in range(2000)))
        data = full.read_bytes()
        truncated = temp_dir / "truncated.fastq.gz"
        truncated.write_bytes(data[:len(data) // 2])
        with pytest.raises(SourceReadError):
            with RecordSource(str(truncated)) as source:
                list(source)


def failing_source(records):
    yield from records
    raise SourceReadError("truncated", "reads.fastq", len(records))


@pytest.mark.unit
class TestIterBatches:

    def test_batch_boundaries(self):
        records = [Record(f"r{i}", "", "ACGT", None) for i in range(5)]
        batches = list(iter_batches(records, 2))
        assert [len(b.records) for b in batches] == [2, 2, 1]
        assert [b.start_idx for b in batches] == [0, 2, 4]
        assert [b.seq_number for b in batches] == [0, 1, 2]

    def test_no_records(self):
        assert list(iter_batches([], 4)) == []

    def test_partial_batch_before_error(self):
        records = [Record(f"r{i}", "", "ACGT", None) for i in range(3)]
        batches = []
        with pytest.raises(SourceReadError):
            for batch in iter_batches(failing_source(records), 2):
                batches.append(batch)
        assert [len(b.records) for b in batches] == [2, 1]
        assert batches[1].records[0].id == "r2"
