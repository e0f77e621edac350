"""
Shared pytest fixtures for hammer_fastx tests.
"""

import gzip
import tempfile
from pathlib import Path

import pytest

S1_FWD = "ACGTACGT"
S1_REV = "AAAACCCC"      # reverse complement: GGGGTTTT
S2_FWD = "TTGGCCAA"
S2_REV = "CAGTCAGT"      # reverse complement: ACTGACTG
INSERT = "GATTACAGATTACAGATTAC"


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after the test."""
    with tempfile.TemporaryDirectory(prefix="hammer_fastx_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_tags():
    """Provide a tag table with two samples in the header layout."""
    return f"""SampleID,F_tag,R_tag
S1,{S1_FWD},{S1_REV}
S2,{S2_FWD},{S2_REV}
"""


@pytest.fixture
def tag_file(temp_dir, sample_tags):
    path = temp_dir / "tags.csv"
    path.write_text(sample_tags)
    return path


@pytest.fixture
def write_fastq(temp_dir):
    """Return a function writing (id, sequence) pairs as a FASTQ file with constant quality."""
    def _write(name, reads, compress=False):
        path = temp_dir / name
        text = "".join(f"@{read_id}\n{seq}\n+\n{'I' * len(seq)}\n" for read_id, seq in reads)
        if compress:
            with gzip.open(path, "wt") as f:
                f.write(text)
        else:
            path.write_text(text)
        return path
    return _write


@pytest.fixture
def write_fasta(temp_dir):
    def _write(name, reads):
        path = temp_dir / name
        path.write_text("".join(f">{read_id}\n{seq}\n" for read_id, seq in reads))
        return path
    return _write


@pytest.fixture
def mixed_reads():
    """Reads for S1, S2, a literal reverse tag read and a too short read."""
    return [
        ("read_s1_a", S1_FWD + INSERT + "GGGGTTTT"),
        ("read_s2_a", S2_FWD + INSERT + "ACTGACTG"),
        ("read_s1_b", S1_FWD.lower() + INSERT + "ggggtttt"),
        ("read_literal", S1_FWD + INSERT + S1_REV),
        ("read_short", S1_FWD + "GGGGTTT"),
        ("read_none", "C" * 40),
    ]


# Markers for test organization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
