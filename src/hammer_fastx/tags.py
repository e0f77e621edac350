"""
Tag Table: sample tag pairs compiled once into an immutable lookup.

A read belongs to a sample when its first tag_len bases equal the sample's
forward tag and its last tag_len bases equal the reverse complement of the
sample's reverse tag. The table is keyed on that canonical pair.
"""

import csv
import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from Bio.Seq import reverse_complement

from .constants import DEFAULT_TAG_LEN, SampleId, TAG_ALPHABET, Orientation
from .errors import ConfigError

REQUIRED_COLUMNS = ('SampleID', 'F_tag', 'R_tag')


class TagRow(NamedTuple):
    """One raw row of the tag file, before validation."""
    row: int
    sample_id: str
    forward_tag: str
    reverse_tag: str


class TagEntry(NamedTuple):
    sample_id: str
    forward_tag: str
    reverse_tag: str
    reverse_tag_rc: str


class TagMatch(NamedTuple):
    entry: TagEntry
    orientation: Orientation


def safe_filename(sample_id: str) -> str:
    return "".join(c if c.isalnum() or c in "._-" else "_" for c in sample_id)


class TagTable:
    """
    Immutable mapping from canonical tag pairs to samples.

    Built by compile_tag_table(); shared by reference between all workers.
    """

    def __init__(self, entries: List[TagEntry], tag_len: int,
                 lookup: Dict[Tuple[str, str], TagMatch]):
        self._entries = tuple(entries)
        self._tag_len = tag_len
        self._lookup = MappingProxyType(dict(lookup))
        self._sample_ids = tuple(e.sample_id for e in self._entries)

    @property
    def tag_len(self) -> int:
        return self._tag_len

    @property
    def entries(self) -> Tuple[TagEntry, ...]:
        return self._entries

    @property
    def sample_ids(self) -> Tuple[str, ...]:
        return self._sample_ids

    @property
    def both_strands(self) -> bool:
        return any(m.orientation == Orientation.REVERSE for m in self._lookup.values())

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def lookup(self, forward_window: str, reverse_window: str) -> Optional[TagMatch]:
        """Return the match for an (uppercase) pair of read windows, or None."""
        return self._lookup.get((forward_window, reverse_window))


def _normalize_tag(tag: str, sample_id: str, column: str, tag_len: int,
                   filename: Optional[str], row: int) -> str:
    tag = (tag or '').strip().upper()
    if not tag:
        raise ConfigError(f"Empty {column} for sample {sample_id}", filename, row)
    invalid = set(tag) - TAG_ALPHABET
    if invalid:
        raise ConfigError(f"Invalid characters {sorted(invalid)} in {column} '{tag}' for sample {sample_id}",
                          filename, row)
    if len(tag) != tag_len:
        raise ConfigError(f"{column} '{tag}' for sample {sample_id} has length {len(tag)}, "
                          f"expected tag length {tag_len}", filename, row)
    return tag


def compile_tag_table(rows: Iterable[TagRow], tag_len: int = DEFAULT_TAG_LEN,
                      both_strands: bool = False, filename: Optional[str] = None) -> TagTable:
    """
    Validate tag rows and build the lookup table.

    Args:
        rows: Raw rows from the tag file
        tag_len: Required length of every tag
        both_strands: Also register the opposite-strand key (ReverseTag, rc(ForwardTag))
        filename: Tag file name, used in error messages

    Returns:
        TagTable ready for matching

    Raises:
        ConfigError: on the first invalid row; no table is returned
    """
    if tag_len < 1:
        raise ConfigError(f"Tag length must be at least 1, got {tag_len}", filename)

    entries = []
    sample_ids = set()
    filenames = {}
    lookup = {}
    owners = {}

    for row in rows:
        sample_id = (row.sample_id or '').strip()
        if not sample_id:
            raise ConfigError("Missing SampleID", filename, row.row)
        if sample_id.lower() == SampleId.UNMATCHED:
            raise ConfigError(f"SampleID '{sample_id}' is reserved for unmatched reads", filename, row.row)
        if sample_id in sample_ids:
            raise ConfigError(f"Duplicate SampleID in tag file: {sample_id}", filename, row.row)

        safe_id = safe_filename(sample_id)
        if safe_id in filenames:
            raise ConfigError(f"SampleID '{sample_id}' maps to the same output file as '{filenames[safe_id]}'",
                              filename, row.row)

        f_tag = _normalize_tag(row.forward_tag, sample_id, 'F_tag', tag_len, filename, row.row)
        r_tag = _normalize_tag(row.reverse_tag, sample_id, 'R_tag', tag_len, filename, row.row)
        entry = TagEntry(sample_id, f_tag, r_tag, reverse_complement(r_tag))

        keys = [((entry.forward_tag, entry.reverse_tag_rc), Orientation.FORWARD)]
        if both_strands:
            keys.append(((entry.reverse_tag, reverse_complement(entry.forward_tag)), Orientation.REVERSE))

        for key, orientation in keys:
            owner = owners.get(key)
            if owner is None:
                owners[key] = sample_id
                lookup[key] = TagMatch(entry, orientation)
            elif owner != sample_id:
                raise ConfigError(f"Tag pair {key[0]}/{key[1]} of sample {sample_id} "
                                  f"is ambiguous with sample {owner}", filename, row.row)

        sample_ids.add(sample_id)
        filenames[safe_id] = sample_id
        entries.append(entry)

    if not entries:
        raise ConfigError("No valid data found in the tag file", filename)

    return TagTable(entries, tag_len, lookup)


def _split_line(line: str) -> List[str]:
    return line.rstrip('\r\n').split('\t') if '\t' in line else line.rstrip('\r\n').split(',')


def _read_header_rows(lines: List[str], filename: str) -> List[TagRow]:
    delimiter = '\t' if '\t' in lines[0] else ','
    reader = csv.DictReader(lines, delimiter=delimiter)
    fieldnames = [f.strip() for f in (reader.fieldnames or [])]
    reader.fieldnames = fieldnames

    missing_cols = [c for c in REQUIRED_COLUMNS if c not in fieldnames]
    if missing_cols:
        raise ConfigError(f"Missing required columns in tag file: {missing_cols}", filename, 1)

    rows = []
    for row in reader:
        rows.append(TagRow(reader.line_num, row.get('SampleID'), row.get('F_tag'), row.get('R_tag')))
    return rows


def _read_barcode_rows(lines: List[str], filename: str, tag_len: int) -> List[TagRow]:
    rows = []
    for row_num, line in enumerate(lines, start=1):
        fields = line.split()
        if not fields:
            continue
        if len(fields) != 2:
            raise ConfigError(f"Expected 'barcode SampleID', found {len(fields)} fields", filename, row_num)
        barcode, sample_id = fields
        if len(barcode) != 2 * tag_len:
            raise ConfigError(f"Combined barcode '{barcode}' for sample {sample_id} must be "
                              f"{2 * tag_len} bases (two tags of length {tag_len})", filename, row_num)
        rows.append(TagRow(row_num, sample_id, barcode[:tag_len], barcode[tag_len:]))
    return rows


def read_tag_rows(filename: str, tag_len: int = DEFAULT_TAG_LEN) -> List[TagRow]:
    """
    Read a tag file in either supported layout.

    Header layout: a header line with SampleID, F_tag and R_tag columns in any
    order, comma or tab separated. Barcode layout: no header, each line holds
    a combined barcode of two tags followed by the SampleID.
    """
    try:
        with open(filename, 'r', newline='', encoding='utf-8-sig') as f:
            lines = f.readlines()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read tag file: {e}", str(filename)) from e

    # Leading blank lines would hide the header from csv
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        raise ConfigError("No valid data found in the tag file", str(filename))

    header = [h.strip() for h in _split_line(lines[0])]
    if 'SampleID' in header:
        return _read_header_rows(lines, str(filename))
    return _read_barcode_rows(lines, str(filename), tag_len)


def read_tag_file(filename: str, tag_len: int = DEFAULT_TAG_LEN, both_strands: bool = False) -> TagTable:
    table = compile_tag_table(read_tag_rows(filename, tag_len), tag_len, both_strands, str(filename))
    strands = "both strands" if table.both_strands else "forward strand only"
    logging.info(f"Loaded {len(table)} samples with tag length {tag_len} from {filename} ({strands})")
    return table
