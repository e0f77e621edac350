"""Hammer_fastx: demultiplexing of FASTA/FASTQ reads by dual-end sample tags."""

__version__ = "3.2.1"

# Re-export key functions and classes that might be useful for programmatic access
from .errors import ConfigError, OutputIOError, SourceReadError
from .matcher import Classification, classify
from .records import Record, RecordSource
from .router import DemuxOptions, Router, demultiplex
from .summary import RunSummary
from .tags import TagTable, compile_tag_table, read_tag_file
from .writers import OutputManager, SampleWriter

__all__ = [
    "Classification",
    "ConfigError",
    "DemuxOptions",
    "OutputIOError",
    "OutputManager",
    "Record",
    "RecordSource",
    "Router",
    "RunSummary",
    "SampleWriter",
    "SourceReadError",
    "TagTable",
    "classify",
    "compile_tag_table",
    "demultiplex",
    "read_tag_file",
]
