"""Exception taxonomy for demultiplexing runs."""

from typing import Optional


class HammerFastxError(Exception):
    """Base class for fatal errors. ``summary`` holds the partial RunSummary, if any."""

    def __init__(self, message: str):
        super().__init__(message)
        self.summary = None


class ConfigError(HammerFastxError):
    """Malformed or inconsistent tag table."""

    def __init__(self, message: str, filename: Optional[str] = None, row: Optional[int] = None):
        location = ""
        if filename is not None:
            location = f"{filename}"
            if row is not None:
                location += f" row {row}"
            location += ": "
        elif row is not None:
            location = f"row {row}: "
        super().__init__(f"{location}{message}")
        self.filename = filename
        self.row = row


class SourceReadError(HammerFastxError):
    """The input stream could not be opened, is truncated, or is not valid FASTA/FASTQ."""

    def __init__(self, message: str, filename: Optional[str] = None, records_read: int = 0):
        prefix = f"{filename}: " if filename else ""
        super().__init__(f"{prefix}{message} (after {records_read:,} records)")
        self.filename = filename
        self.records_read = records_read


class OutputIOError(HammerFastxError):
    """Writing a sample's output file failed."""

    def __init__(self, message: str, sample_id: str, filename: str):
        super().__init__(f"{filename} [{sample_id}]: {message}")
        self.sample_id = sample_id
        self.filename = filename


class WorkerException(HammerFastxError):
    """A classification worker failed outside of per-record handling."""
