"""Sequence statistics for a FASTA/FASTQ file."""

import logging
from typing import Iterable, NamedTuple

from .records import Record, RecordSource


class SequenceStats(NamedTuple):
    count: int
    total_bases: int
    min_length: int
    max_length: int

    @property
    def mean_length(self) -> float:
        return self.total_bases / self.count if self.count else 0.0

    def format_report(self) -> str:
        lines = ["", "==================== Sequence statistics ===================="]
        if self.count > 0:
            lines.append(f"Total sequences: {self.count:,}")
            lines.append(f"Total bases:     {self.total_bases:,}")
            lines.append(f"Max length:      {self.max_length:,}")
            lines.append(f"Min length:      {self.min_length:,}")
            lines.append(f"Mean length:     {self.mean_length:.2f}")
        else:
            lines.append("No sequences found in file.")
        lines.append("=" * 61)
        return "\n".join(lines)


def compute_stats(records: Iterable[Record]) -> SequenceStats:
    count = 0
    total_bases = 0
    min_length = None
    max_length = 0
    for record in records:
        length = len(record.sequence)
        count += 1
        total_bases += length
        if min_length is None or length < min_length:
            min_length = length
        if length > max_length:
            max_length = length
    return SequenceStats(count, total_bases, min_length or 0, max_length)


def file_stats(filename: str) -> SequenceStats:
    logging.info(f"Computing statistics for {filename}")
    with RecordSource(filename) as source:
        return compute_stats(source)
