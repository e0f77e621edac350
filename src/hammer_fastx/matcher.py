"""Per-read tag matching."""

from typing import NamedTuple, Optional

from .constants import Anomaly, Orientation, SampleId
from .records import Record
from .tags import TagTable


class Classification(NamedTuple):
    sample_id: str
    trim_start: int
    trim_end: int
    orientation: Optional[Orientation] = None
    anomaly: Optional[str] = None

    @property
    def is_matched(self) -> bool:
        return self.sample_id != SampleId.UNMATCHED


def unmatched(record: Record, anomaly: Optional[str] = None) -> Classification:
    return Classification(SampleId.UNMATCHED, 0, len(record.sequence), None, anomaly)


def classify(record: Record, table: TagTable, tag_len: int, trim: bool) -> Classification:
    """
    Decide which sample a record belongs to.

    The first and last tag_len bases of the uppercased sequence are looked up
    as a pair in the tag table; both windows must match exactly. Reads too
    short to hold both windows are unmatched and flagged as too short.

    Args:
        record: Read to classify
        table: Compiled tag table
        tag_len: Window length
        trim: If set, the trim coordinates of a match exclude both tag windows

    Returns:
        Classification with the sample id (or 'unmatched') and the [start, end)
        slice of the sequence to emit
    """
    seq = record.sequence
    seq_len = len(seq)
    if seq_len < 2 * tag_len:
        return unmatched(record, Anomaly.TOO_SHORT)

    read_start = seq[:tag_len].upper()
    read_end = seq[seq_len - tag_len:].upper()
    match = table.lookup(read_start, read_end)
    if match is None:
        return unmatched(record)

    if trim:
        return Classification(match.entry.sample_id, tag_len, seq_len - tag_len, match.orientation)
    return Classification(match.entry.sample_id, 0, seq_len, match.orientation)
