"""Length filtering of FASTA/FASTQ files."""

import logging
import sys
from typing import Iterable, Iterator, Optional, Tuple

from .records import Record, RecordSource
from .writers import open_output, write_records


def filter_by_length(records: Iterable[Record], min_len: int = 0,
                     max_len: Optional[int] = None) -> Iterator[Record]:
    """Yield records whose length lies within [min_len, max_len]."""
    for record in records:
        length = len(record.sequence)
        if length < min_len:
            continue
        if max_len is not None and length > max_len:
            continue
        yield record


def filter_file(filename: str, outfile: Optional[str] = None, min_len: int = 0,
                max_len: Optional[int] = None) -> Tuple[int, int]:
    """
    Copy records within the length bounds to outfile (stdout if None).

    Output keeps the input format; outfile names ending in .gz are compressed.

    Returns:
        (records read, records written)
    """
    if max_len is not None and max_len < min_len:
        raise ValueError(f"Maximum length {max_len} is smaller than minimum length {min_len}")

    with RecordSource(filename) as source:
        if outfile is None:
            written = write_records(sys.stdout, filter_by_length(source, min_len, max_len), source.is_fastq)
            sys.stdout.flush()
        else:
            with open_output(outfile, outfile.endswith('.gz')) as out:
                written = write_records(out, filter_by_length(source, min_len, max_len), source.is_fastq)
        total = source.records_read

    logging.info(f"Kept {written:,} of {total:,} sequences")
    return total, written
