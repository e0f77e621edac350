"""
Router: the concurrent demultiplexing pipeline.

The calling thread is the only reader of the Record Source. It pushes
batches into a bounded work queue consumed by a fixed pool of classifier
threads. Each classifier groups its batch by sample and hands every group to
that sample's writer, whose own bounded queue provides backpressure. Once
the source is exhausted (or fails), the pool is drained and every writer is
finalized before the summary is built.
"""

import logging
import multiprocessing
import queue
import threading
import timeit
import traceback
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Iterable, Optional

import psutil
from tqdm import tqdm

from .constants import Anomaly, DEFAULT_BATCH_SIZE, DEFAULT_QUEUE_SIZE, DEFAULT_TAG_LEN, SampleId
from .errors import HammerFastxError, SourceReadError, WorkerException
from .matcher import classify
from .records import Record, RecordBatch, RecordSource, iter_batches
from .summary import RunSummary
from .tags import TagTable, read_tag_file
from .writers import OutputManager


def default_threads() -> int:
    """Number of physical cores, falling back to logical cores where unknown."""
    return psutil.cpu_count(logical=False) or multiprocessing.cpu_count()


@dataclass(frozen=True)
class DemuxOptions:
    input_file: str
    output_dir: str
    tag_file: str
    threads: int = 1
    tag_len: int = DEFAULT_TAG_LEN
    trim: bool = False
    out_fasta: bool = False
    both_strands: bool = False
    compress: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    queue_size: int = DEFAULT_QUEUE_SIZE
    summary_file: Optional[str] = None
    show_progress: bool = True


class WorkerStats:
    """Counters owned by a single classifier thread, merged after it exits."""

    def __init__(self):
        self.matched = 0
        self.anomalies = Counter()
        self.error = None


class Router:
    def __init__(self, table: TagTable, output_manager: OutputManager, threads: int = 1,
                 trim: bool = False, batch_size: int = DEFAULT_BATCH_SIZE, show_progress: bool = True):
        if threads < 1:
            raise ValueError(f"threads must be at least 1, got {threads}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.table = table
        self.tag_len = table.tag_len
        self.output_manager = output_manager
        self.threads = threads
        self.trim = trim
        self.batch_size = batch_size
        self.show_progress = show_progress

    def _classify_batch(self, batch: RecordBatch, stats: WorkerStats):
        groups = defaultdict(list)
        for idx, record in enumerate(batch.records, start=batch.start_idx):
            try:
                classification = classify(record, self.table, self.tag_len, self.trim)
            except Exception as e:
                # Faulted records are counted, never written
                logging.debug(f"Skipping record #{idx + 1} in batch {batch.seq_number}: {e}")
                stats.anomalies[Anomaly.ERROR] += 1
                continue
            if classification.anomaly is not None:
                stats.anomalies[classification.anomaly] += 1
            elif classification.is_matched:
                stats.matched += 1
            groups[classification.sample_id].append((record, classification))

        sizes = ", ".join(f"{sample_id}={len(items)}" for sample_id, items in groups.items())
        logging.debug(f"Batch {batch.seq_number}: dispatching {len(batch.records)} records ({sizes})")
        for sample_id, items in groups.items():
            self.output_manager.writer(sample_id).send(items)

    def _worker(self, work_queue: queue.Queue, stats: WorkerStats, stop: threading.Event):
        while True:
            batch = work_queue.get()
            if batch is None:
                break
            if stop.is_set():
                stats.anomalies[Anomaly.DROPPED] += len(batch.records)
                continue
            try:
                self._classify_batch(batch, stats)
            except Exception as e:
                stats.error = e
                logging.error(traceback.format_exc())
                stop.set()

    def run(self, source: Iterable[Record]) -> RunSummary:
        """
        Classify and dispatch every record of the source.

        Returns:
            RunSummary with one count per sample plus unmatched

        Raises:
            SourceReadError, OutputIOError, WorkerException: after all writers
            are finalized; the partial summary is attached as ``summary``
        """
        start_time = timeit.default_timer()
        work_queue = queue.Queue(maxsize=self.threads * 2)
        stop = threading.Event()
        worker_stats = [WorkerStats() for _ in range(self.threads)]
        workers = [threading.Thread(target=self._worker, args=(work_queue, stats, stop),
                                    name=f"classifier-{i}", daemon=True)
                   for i, stats in enumerate(worker_stats)]
        for w in workers:
            w.start()
        logging.debug(f"Started {len(workers)} classifier threads")

        total_records = 0
        fatal = None  # type: Optional[HammerFastxError]
        pbar = tqdm(desc="Processing sequences", unit="seq", disable=not self.show_progress)
        try:
            for batch in iter_batches(source, self.batch_size):
                work_queue.put(batch)
                total_records += len(batch.records)
                pbar.update(len(batch.records))

                matched = sum(s.matched for s in worker_stats)
                pbar.set_description(f"Processing sequences [Match rate: {matched / total_records:.1%}]")

                if stop.is_set() or self.output_manager.failed.is_set():
                    logging.error("Stopping input after a processing failure")
                    break
        except SourceReadError as e:
            logging.error(f"Fatal read error: {e}")
            fatal = e
        finally:
            for _ in workers:
                work_queue.put(None)
            for w in workers:
                w.join()
            pbar.close()

        counts, write_errors = self.output_manager.finalize_all()

        anomalies = Counter()
        for stats in worker_stats:
            anomalies.update(stats.anomalies)
        anomalies[Anomaly.DROPPED] += sum(w.dropped for w in self.output_manager.writers.values())
        worker_errors = [s.error for s in worker_stats if s.error is not None]

        elapsed = timeit.default_timer() - start_time
        summary = RunSummary.from_counts(total_records, counts, dict(anomalies), elapsed)
        self._log_summary(summary)

        if fatal is None and write_errors:
            fatal = write_errors[0]
        if fatal is None and worker_errors:
            fatal = WorkerException(f"Unexpected error in classifier thread: {worker_errors[0]}")
        if fatal is not None:
            for e in write_errors:
                logging.error(f"Output error: {e}")
            fatal.summary = summary
            raise fatal

        if not summary.is_conserved():
            error = WorkerException(f"Record accounting mismatch: read {summary.total_records:,}, "
                                    f"counted {summary.matched_count + summary.unmatched_count + summary.dropped_count:,}")
            error.summary = summary
            raise error
        return summary

    @staticmethod
    def _log_summary(summary: RunSummary):
        if summary.total_records > 0:
            logging.info(f"Processed {summary.total_records:,} sequences, match rate: {summary.match_rate:.1%}")
        else:
            logging.info("Processed 0 sequences")
        too_short = summary.anomalies[Anomaly.TOO_SHORT]
        if too_short:
            logging.warning(f"{too_short:,} reads shorter than two tag windows were written to {SampleId.UNMATCHED}")
        errors = summary.anomalies[Anomaly.ERROR]
        if errors:
            logging.warning(f"{errors:,} reads could not be classified and were skipped")
        dropped = summary.anomalies[Anomaly.DROPPED]
        if dropped:
            logging.warning(f"{dropped:,} reads were discarded after a processing failure")
        logging.info(f"Elapsed time: {summary.elapsed:.2f} seconds")


def demultiplex(options: DemuxOptions) -> RunSummary:
    """
    Run a complete demultiplexing job.

    The tag table and input are validated before the output directory is
    created, so configuration errors leave no output behind.
    """
    table = read_tag_file(options.tag_file, options.tag_len, options.both_strands)

    with RecordSource(options.input_file) as source:
        is_fastq = source.is_fastq and not options.out_fasta
        logging.info(f"Input format: {source.file_format}, output format: {'fastq' if is_fastq else 'fasta'}")
        logging.info(f"Will run {options.threads} classifier threads")

        summary = None
        try:
            with OutputManager(options.output_dir, table.sample_ids, is_fastq,
                               options.compress, options.queue_size) as output_manager:
                router = Router(table, output_manager, options.threads, options.trim,
                                options.batch_size, options.show_progress)
                summary = router.run(source)
        except HammerFastxError as e:
            summary = e.summary
            raise
        finally:
            if options.summary_file and summary is not None:
                summary.write_json(options.summary_file)

    return summary
