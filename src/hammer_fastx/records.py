"""
Record Source: lazy FASTA/FASTQ decoding with transparent gzip support.

Records are produced by Biopython's low level parsers, which yield plain
strings and are considerably faster than building SeqRecord objects for
every read.
"""

import gzip
import itertools
import logging
import os
import zlib
from typing import Iterable, Iterator, List, NamedTuple, Optional, TextIO

from Bio.SeqIO.FastaIO import SimpleFastaParser
from Bio.SeqIO.QualityIO import FastqGeneralIterator

from .constants import FileFormat
from .errors import SourceReadError

COMPRESSION_EXTS = ('.gz', '.gzip')

# Errors that indicate a corrupt or truncated input stream
READ_ERRORS = (ValueError, OSError, EOFError, zlib.error)


class Record(NamedTuple):
    id: str
    description: str
    sequence: str
    quality: Optional[str]

    @property
    def title(self) -> str:
        if self.description:
            return f"{self.id} {self.description}"
        return self.id

    def __len__(self):
        return len(self.sequence)


class RecordBatch(NamedTuple):
    seq_number: int
    start_idx: int
    records: List[Record]


def is_compressed(filename: str) -> bool:
    return str(filename).lower().endswith(COMPRESSION_EXTS)


def open_text(filename: str) -> TextIO:
    """Open a sequence file for reading as text, decompressing if needed."""
    if is_compressed(filename):
        return gzip.open(filename, "rt")
    return open(filename, "rt")


def _format_from_extension(filename: str) -> Optional[str]:
    base_name = os.path.basename(str(filename))
    root, ext = os.path.splitext(base_name)
    while ext.lower() in COMPRESSION_EXTS:
        base_name = root
        root, ext = os.path.splitext(base_name)

    if base_name.lower().endswith(('.fastq', '.fq')):
        return FileFormat.FASTQ
    elif base_name.lower().endswith(('.fasta', '.fa', '.fna', '.fas')):
        return FileFormat.FASTA
    return None


def detect_file_format(filename: str) -> str:
    """
    Detect file format from the first record marker, handling compressed files.

    The first non-blank character decides: '@' is FASTQ, '>' is FASTA. Empty
    files fall back to the file extension, and then to FASTQ.

    Args:
        filename: Path to sequence file

    Returns:
        str: Detected format ('fastq' or 'fasta')

    Raises:
        SourceReadError: if the file cannot be read or starts with anything else
    """
    try:
        with open_text(filename) as f:
            first_char = ''
            for line in f:
                stripped = line.strip()
                if stripped:
                    first_char = stripped[0]
                    break
    except READ_ERRORS as e:
        raise SourceReadError(f"Cannot read input: {e}", str(filename)) from e

    if first_char == '@':
        return FileFormat.FASTQ
    elif first_char == '>':
        return FileFormat.FASTA
    elif first_char == '':
        return _format_from_extension(filename) or FileFormat.FASTQ

    raise SourceReadError(
        "Unrecognized file format, expected a file starting with '>' (FASTA) or '@' (FASTQ)",
        str(filename))


class RecordSource:
    """
    Single-pass iterator over the records of one FASTA/FASTQ file.

    The file is opened and its format determined at construction time, so
    setup failures surface before any processing starts. Iteration is not
    thread safe; callers that share a source must serialize calls to next().
    """

    def __init__(self, filename: str, file_format: Optional[str] = None):
        self.filename = str(filename)
        self.file_format = file_format or detect_file_format(self.filename)
        self.records_read = 0
        try:
            self._handle = open_text(self.filename)
        except READ_ERRORS as e:
            raise SourceReadError(f"Cannot open input: {e}", self.filename) from e
        self._records = self._parse()

    @property
    def is_fastq(self) -> bool:
        return self.file_format == FileFormat.FASTQ

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __iter__(self) -> Iterator[Record]:
        return self

    def __next__(self) -> Record:
        return next(self._records)

    def close(self):
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _parse(self) -> Iterator[Record]:
        if self.is_fastq:
            entries = ((title, seq, qual) for title, seq, qual in FastqGeneralIterator(self._handle))
        else:
            entries = ((title, seq, None) for title, seq in SimpleFastaParser(self._handle))

        try:
            for title, seq, qual in entries:
                fields = title.split(None, 1)
                seq_id = fields[0] if fields else ''
                description = fields[1] if len(fields) > 1 else ''
                self.records_read += 1
                yield Record(seq_id, description, seq, qual)
        except READ_ERRORS as e:
            logging.debug(f"Read error in {self.filename} after {self.records_read} records: {e}")
            raise SourceReadError(f"Invalid or truncated {self.file_format} input: {e}",
                                  self.filename, self.records_read) from e


def iter_batches(records: Iterable[Record], batch_size: int) -> Iterator[RecordBatch]:
    """
    Group records into batches of at most batch_size.

    If the source fails mid-batch, the records already read are yielded as a
    final short batch before the SourceReadError propagates.
    """
    seq_numbers = itertools.count()
    cumulative_idx = 0
    batch = []
    try:
        for record in records:
            batch.append(record)
            if len(batch) >= batch_size:
                yield RecordBatch(next(seq_numbers), cumulative_idx, batch)
                cumulative_idx += len(batch)
                batch = []
    except SourceReadError:
        if batch:
            yield RecordBatch(next(seq_numbers), cumulative_idx, batch)
        raise
    if batch:
        yield RecordBatch(next(seq_numbers), cumulative_idx, batch)
