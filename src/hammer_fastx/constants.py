"""Shared constants for the demultiplexing engine."""

from enum import Enum

TAG_ALPHABET = frozenset("ACGTN")

DEFAULT_TAG_LEN = 8
DEFAULT_BATCH_SIZE = 8192
DEFAULT_QUEUE_SIZE = 64


class SampleId:
    UNMATCHED = "unmatched"


class FileFormat:
    FASTA = "fasta"
    FASTQ = "fastq"


class Anomaly:
    """Diagnostic counters for records that could not be classified normally."""
    TOO_SHORT = "too_short"
    ERROR = "errors"
    DROPPED = "dropped"


class Orientation(Enum):
    FORWARD = 1
    REVERSE = 2