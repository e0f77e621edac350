"""
Sample Writers: one output stream per sample, each owned by a single thread.

Workers hand batches of (record, classification) pairs to a writer through
its bounded queue. Only the writer's own thread touches the file handle, so
output from different producers can never interleave within a record.
"""

import gzip
import logging
import os
import queue
import threading
import traceback
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

from Bio.Seq import reverse_complement

from .constants import DEFAULT_QUEUE_SIZE, Orientation, SampleId
from .errors import OutputIOError
from .matcher import Classification
from .records import Record
from .tags import safe_filename

WriteItem = Tuple[Record, Classification]


def prepare_record(record: Record, classification: Classification) -> Record:
    """Apply the trim coordinates of a classification, re-orienting opposite-strand reads."""
    s = classification.trim_start
    e = classification.trim_end
    if s == 0 and e == len(record.sequence):
        return record

    seq = record.sequence[s:e]
    qual = record.quality[s:e] if record.quality is not None else None
    if classification.orientation == Orientation.REVERSE:
        seq = reverse_complement(seq)
        if qual is not None:
            qual = qual[::-1]
    return Record(record.id, record.description, seq, qual)


def format_record(record: Record, is_fastq: bool) -> str:
    if is_fastq:
        if record.quality is None:
            raise ValueError(f"Record {record.id} has no quality values for FASTQ output")
        return f"@{record.title}\n{record.sequence}\n+\n{record.quality}\n"
    return f">{record.title}\n{record.sequence}\n"


def open_output(filename: str, compress: bool) -> TextIO:
    if compress:
        return gzip.open(filename, 'wt')
    return open(filename, 'w')


class SampleWriter:
    """
    Owns the output file of one sample.

    send() enqueues a batch and blocks only while the queue is full.
    finalize() must be called exactly once; it waits for the queue to drain,
    closes the file and returns the number of records written.
    After a write failure the writer keeps consuming its queue, counting the
    discarded records in ``dropped``.
    """

    def __init__(self, sample_id: str, filename: str, is_fastq: bool,
                 queue_size: int = DEFAULT_QUEUE_SIZE, compress: bool = False,
                 on_error: Optional[Callable[['SampleWriter'], None]] = None):
        self.sample_id = sample_id
        self.filename = filename
        self.is_fastq = is_fastq
        self.compress = compress
        self.count = 0
        self.dropped = 0
        self.error = None
        self._on_error = on_error
        self._queue = queue.Queue(maxsize=queue_size)
        self._handle = None
        self._thread = None
        self._input_closed = False
        self._finalized = False

    def open(self):
        """Create the output file and start the consumer thread."""
        try:
            self._handle = open_output(self.filename, self.compress)
        except OSError as e:
            raise OutputIOError(f"Cannot open output file: {e}", self.sample_id, self.filename) from e
        self._thread = threading.Thread(target=self._run, name=f"writer-{self.sample_id}", daemon=True)
        self._thread.start()
        logging.debug(f"Opened writer for {self.sample_id}: {self.filename}")

    def send(self, items: List[WriteItem]):
        if self._input_closed:
            raise RuntimeError(f"Writer for {self.sample_id} no longer accepts records")
        self._queue.put(items)

    def close_input(self):
        """Signal that no more records will be sent."""
        if not self._input_closed:
            self._input_closed = True
            self._queue.put(None)

    def _run(self):
        while True:
            items = self._queue.get()
            if items is None:
                break
            if self.error is not None:
                # Keep draining so producers never block on a dead writer
                self.dropped += len(items)
                continue
            try:
                self._handle.write(''.join(format_record(prepare_record(r, c), self.is_fastq)
                                           for r, c in items))
                self.count += len(items)
            except Exception as e:
                self.error = e
                self.dropped += len(items)
                logging.error(f"Error writing {self.filename}: {e}")
                logging.debug(traceback.format_exc())
                if self._on_error is not None:
                    self._on_error(self)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def finalize(self) -> int:
        if self._finalized:
            raise RuntimeError(f"Writer for {self.sample_id} already finalized")
        self._finalized = True
        self.close_input()
        if self._thread is not None:
            self._thread.join()

        if self._handle is not None:
            try:
                self._handle.close()
            except OSError as e:
                if self.error is None:
                    self.error = e
            self._handle = None

        logging.debug(f"Closed writer for {self.sample_id} with {self.count:,} records")
        if self.error is not None:
            raise OutputIOError(str(self.error), self.sample_id, self.filename) from self.error
        return self.count


class OutputManager:
    """Creates the output directory and one SampleWriter per sample plus 'unmatched'."""

    def __init__(self, output_dir: str, sample_ids: Sequence[str], is_fastq: bool,
                 compress: bool = False, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.output_dir = str(output_dir)
        self.sample_ids = list(sample_ids) + [SampleId.UNMATCHED]
        self.is_fastq = is_fastq
        self.compress = compress
        self.queue_size = queue_size
        self.failed = threading.Event()
        self.writers = {}  # type: Dict[str, SampleWriter]

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Best effort finalize of writers not yet finalized, e.g. after an unexpected exception."""
        for writer in self.writers.values():
            if not writer.finalized:
                try:
                    writer.finalize()
                except OutputIOError as e:
                    logging.error(f"Error closing output: {e}")

    def _make_filename(self, sample_id: str) -> str:
        extension = '.fastq' if self.is_fastq else '.fasta'
        if self.compress:
            extension += '.gz'
        return os.path.join(self.output_dir, f"{safe_filename(sample_id)}{extension}")

    def _writer_failed(self, writer: SampleWriter):
        self.failed.set()

    def open(self):
        try:
            os.makedirs(self.output_dir, exist_ok=True)
        except OSError as e:
            raise OutputIOError(f"Cannot create output directory: {e}", SampleId.UNMATCHED,
                                self.output_dir) from e

        try:
            for sample_id in self.sample_ids:
                writer = SampleWriter(sample_id, self._make_filename(sample_id), self.is_fastq,
                                      self.queue_size, self.compress, on_error=self._writer_failed)
                writer.open()
                self.writers[sample_id] = writer
        except OutputIOError:
            self.close()
            raise

    def writer(self, sample_id: str) -> SampleWriter:
        return self.writers[sample_id]

    def filenames(self) -> Dict[str, str]:
        return {sample_id: w.filename for sample_id, w in self.writers.items()}

    def finalize_all(self) -> Tuple[Dict[str, int], List[OutputIOError]]:
        """
        Finalize every writer, collecting errors instead of stopping at the first.

        Returns:
            counts: Records written per sample id
            errors: OutputIOErrors raised by failing writers
        """
        counts = {}
        errors = []
        for sample_id, writer in self.writers.items():
            try:
                counts[sample_id] = writer.finalize()
            except OutputIOError as e:
                counts[sample_id] = writer.count
                errors.append(e)
        return counts, errors


def write_records(handle: TextIO, records: Iterable[Record], is_fastq: bool) -> int:
    """Write records to an already open handle, returning the number written."""
    count = 0
    for record in records:
        handle.write(format_record(record, is_fastq))
        count += 1
    return count
