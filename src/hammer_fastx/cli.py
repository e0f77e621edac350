#!/usr/bin/env python3

"""
Hammer_fastx: demultiplex FASTA/FASTQ reads by dual-end sample tags.

Subcommands:
    demux   split reads into one file per sample by their forward and reverse tags
    stats   sequence count and length statistics
    filter  keep sequences within a length range
"""

import argparse
import logging
import sys

from . import __version__
from .constants import DEFAULT_BATCH_SIZE, DEFAULT_QUEUE_SIZE, DEFAULT_TAG_LEN
from .errors import ConfigError, HammerFastxError, OutputIOError, SourceReadError
from .length_filter import filter_file
from .router import DemuxOptions, default_threads, demultiplex
from .stats import file_stats

EXIT_CONFIG_ERROR = 2
EXIT_SOURCE_ERROR = 3
EXIT_OUTPUT_ERROR = 4
EXIT_FAILURE = 1


def version():
    return f"hammer_fastx version {__version__}"


def positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: '{value}'")
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def non_negative_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: '{value}'")
    if n < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hammer-fastx",
                                     description="Hammer_fastx: tools for processing FASTA/FASTQ files.")
    parser.add_argument("-D", "--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("-v", "--version", action="version", version=version())

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    demux = subparsers.add_parser("demux", help="Split reads into per-sample files by dual-end tags",
                                  description="Demultiplex reads by forward and reverse sample tags.")
    demux.add_argument("--inputfile", required=True, help="Input file (FASTA/FASTQ, may be .gz compressed)")
    demux.add_argument("--output", required=True, help="Output directory, one file per sample plus 'unmatched'")
    demux.add_argument("-t", "--tags", required=True,
                       help="Sample tag file: CSV/TSV with SampleID, F_tag, R_tag columns, "
                            "or 'barcode<TAB>SampleID' lines")
    demux.add_argument("--threads", type=positive_int, default=default_threads(),
                       help="Number of classifier threads (default: physical core count)")
    demux.add_argument("-l", "--tag-len", type=positive_int, default=DEFAULT_TAG_LEN,
                       help=f"Tag length (default: {DEFAULT_TAG_LEN})")
    demux.add_argument("--trim", action="store_true", help="Trim the tags from both ends of matched reads")
    demux.add_argument("--out-fasta", action="store_true", help="Write FASTA output (default: same as input)")
    demux.add_argument("--both-strands", action="store_true",
                       help="Also match reads from the opposite strand (ReverseTag ... revcomp(ForwardTag))")
    demux.add_argument("--compress", action="store_true", help="Gzip compress the output files")
    demux.add_argument("--batch-size", type=positive_int, default=DEFAULT_BATCH_SIZE,
                       help=f"Records per work unit (default: {DEFAULT_BATCH_SIZE})")
    demux.add_argument("--queue-size", type=positive_int, default=DEFAULT_QUEUE_SIZE,
                       help=f"Pending work units per sample writer (default: {DEFAULT_QUEUE_SIZE})")
    demux.add_argument("--summary", help="Write the run summary as JSON to this file")
    demux.add_argument("--no-progress", action="store_true", help="Disable the progress display")

    stats = subparsers.add_parser("stats", help="Sequence statistics of a FASTA/FASTQ file")
    stats.add_argument("--inputfile", required=True, help="Input file (FASTA/FASTQ, may be .gz compressed)")

    length_filter = subparsers.add_parser("filter", help="Filter sequences by length")
    length_filter.add_argument("--inputfile", required=True, help="Input file (FASTA/FASTQ, may be .gz compressed)")
    length_filter.add_argument("--outfile", help="Output file (default: standard output)")
    length_filter.add_argument("-m", "--min-len", type=non_negative_int, default=0,
                               help="Drop sequences shorter than this")
    length_filter.add_argument("-M", "--max-len", type=non_negative_int, default=None,
                               help="Drop sequences longer than this")

    return parser


def parse_args(argv):
    parser = build_parser()
    args = parser.parse_args(argv[1:])
    if args.command == "filter" and args.max_len is not None and args.max_len < args.min_len:
        parser.error("--max-len must not be smaller than --min-len")
    return args


def run_demux(args) -> int:
    options = DemuxOptions(
        input_file=args.inputfile,
        output_dir=args.output,
        tag_file=args.tags,
        threads=args.threads,
        tag_len=args.tag_len,
        trim=args.trim,
        out_fasta=args.out_fasta,
        both_strands=args.both_strands,
        compress=args.compress,
        batch_size=args.batch_size,
        queue_size=args.queue_size,
        summary_file=args.summary,
        show_progress=not args.no_progress,
    )
    summary = demultiplex(options)
    print(summary.format_report(args.output))
    return 0


def run_stats(args) -> int:
    print(file_stats(args.inputfile).format_report())
    return 0


def run_filter(args) -> int:
    filter_file(args.inputfile, args.outfile, args.min_len, args.max_len)
    return 0


COMMANDS = {
    "demux": run_demux,
    "stats": run_stats,
    "filter": run_filter,
}


def main(argv=None):
    if argv is None:
        argv = sys.argv
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        return COMMANDS[args.command](args)
    except ConfigError as e:
        logging.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    except HammerFastxError as e:
        logging.error(f"{e}")
        if e.summary is not None:
            logging.error(f"Partial results: {e.summary.total_records:,} records processed, "
                          f"{e.summary.matched_count:,} matched, {e.summary.unmatched_count:,} unmatched")
            print(e.summary.format_report(getattr(args, 'output', None)))
        if isinstance(e, SourceReadError):
            return EXIT_SOURCE_ERROR
        if isinstance(e, OutputIOError):
            return EXIT_OUTPUT_ERROR
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main(sys.argv))
