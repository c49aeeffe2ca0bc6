"""
CLI entry point for cube capability matching and column cardinality jobs.

Commands:
- match: check a query digest against every cube in cube_meta.json
- cardinality: estimate per-column distinct counts of a table's data files
"""

import argparse
import logging
import sys
from pathlib import Path

from cube_core.capability_checker import check_all, rank_capable
from cube_core.cardinality import DEFAULT_PRECISION, SAMPLE_COLUMNS, SAMPLE_ROWS
from cube_core.cardinality_job import run_cardinality_job
from cube_core.cube_desc import load_cube_meta, load_query_digest
from cube_core.output_writer import write_cardinality_report, write_match_report
from cube_core.schema_meta import load_schema_meta
from cube_core.table_reader import DEFAULT_DELIMITER, DelimitedRowParser, load_partitions

EXIT_NO_CAPABLE_CUBE = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="cube_core",
        description="Cube capability matching and column cardinality estimation",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log capability check details",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    match_parser = subparsers.add_parser("match", help="Find cubes able to answer a query digest")
    match_parser.add_argument(
        "--cube_meta",
        type=Path,
        required=True,
        help="Path to cube_meta.json",
    )
    match_parser.add_argument(
        "--digest",
        type=Path,
        required=True,
        help="Path to the query digest JSON",
    )
    match_parser.add_argument(
        "--allow_weak",
        type=int,
        default=0,
        choices=[0, 1],
        help="Accept weak aggregation matches (default: 0)",
    )
    match_parser.add_argument(
        "--schema_meta",
        type=Path,
        default=None,
        help="Optional schema_meta.json to validate cubes against",
    )
    match_parser.add_argument(
        "--out_dir",
        type=Path,
        default=None,
        help="Output directory for match_report.json",
    )

    card_parser = subparsers.add_parser("cardinality", help="Estimate column distinct counts")
    card_parser.add_argument(
        "--schema_meta",
        type=Path,
        required=True,
        help="Path to schema_meta.json",
    )
    card_parser.add_argument(
        "--table",
        type=str,
        required=True,
        help="Table to profile",
    )
    card_parser.add_argument(
        "--data_dir",
        type=Path,
        required=True,
        help="Directory containing the table's delimited data files",
    )
    card_parser.add_argument(
        "--out_dir",
        type=Path,
        required=True,
        help="Output directory for <table>_cardinality.json",
    )
    card_parser.add_argument(
        "--delimiter",
        type=str,
        default=DEFAULT_DELIMITER,
        help="Field delimiter (default: ',')",
    )
    card_parser.add_argument(
        "--precision",
        type=int,
        default=DEFAULT_PRECISION,
        help=f"Counter precision, 2^p registers (default: {DEFAULT_PRECISION})",
    )
    card_parser.add_argument(
        "--workers",
        type=int,
        default=4,
        help="Partitions processed concurrently (default: 4)",
    )
    card_parser.add_argument(
        "--max_rows",
        type=int,
        default=None,
        help="Split data files into partitions of at most this many rows",
    )
    card_parser.add_argument(
        "--show_samples",
        action="store_true",
        help=f"Print the first {SAMPLE_ROWS} rows ({SAMPLE_COLUMNS} columns) of each partition",
    )

    return parser.parse_args(argv)


def run_match(args: argparse.Namespace) -> int:
    """Check a digest against all cubes."""
    if not args.cube_meta.is_file():
        print(f"Error: cube_meta file does not exist: {args.cube_meta}", file=sys.stderr)
        return 1
    if not args.digest.is_file():
        print(f"Error: digest file does not exist: {args.digest}", file=sys.stderr)
        return 1

    try:
        cubes = load_cube_meta(args.cube_meta)
        digest = load_query_digest(args.digest)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Loaded {len(cubes)} cubes")

    if args.schema_meta is not None:
        if not args.schema_meta.is_file():
            print(f"Error: schema_meta file does not exist: {args.schema_meta}", file=sys.stderr)
            return 1
        try:
            schema_meta = load_schema_meta(args.schema_meta)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        for cube in cubes.values():
            for warning in cube.validate(schema_meta):
                print(f"WARNING: {warning}")

    results = check_all(
        [cube.to_capability() for cube in cubes.values()],
        digest,
        bool(args.allow_weak),
    )
    for result in results:
        if result.capable:
            how = " (weak)" if result.weak else " (top-n)" if result.top_n else ""
            print(f"  {result.cube_name}: capable{how}")
        else:
            print(f"  {result.cube_name}: {result.reason}")

    if args.out_dir is not None:
        args.out_dir.mkdir(parents=True, exist_ok=True)
        out_path = write_match_report(
            args.out_dir,
            digest,
            results,
            meta={
                "cube_meta": str(args.cube_meta),
                "digest": str(args.digest),
                "allow_weak": bool(args.allow_weak),
            },
        )
        print(f"Output written to {out_path}")

    capable = rank_capable(results)
    if not capable:
        print("No capable cube found")
        return EXIT_NO_CAPABLE_CUBE
    print(f"Selected cube: {capable[0].cube_name}")
    return 0


def run_cardinality(args: argparse.Namespace) -> int:
    """Estimate per-column distinct counts of one table."""
    if not args.schema_meta.is_file():
        print(f"Error: schema_meta file does not exist: {args.schema_meta}", file=sys.stderr)
        return 1
    if not args.data_dir.is_dir():
        print(f"Error: data_dir does not exist: {args.data_dir}", file=sys.stderr)
        return 1

    try:
        schema_meta = load_schema_meta(args.schema_meta)
        row_parser = DelimitedRowParser(args.delimiter)
        table_meta = schema_meta.get_table(args.table)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    partitions = load_partitions(args.data_dir, max_rows=args.max_rows, delimiter=args.delimiter)
    print(f"Loaded {len(partitions)} partitions of table {table_meta.name} from {args.data_dir}")

    observer = None
    if args.show_samples:
        def observer(row: int, column: str, value: str) -> None:
            print(f"Get row {row} column '{column}' value: {value}")

    result = run_cardinality_job(
        schema_meta,
        table_meta.name,
        partitions,
        row_parser,
        precision=args.precision,
        workers=args.workers,
        observer=observer,
    )
    print(f"Processed {result.row_count} rows in {result.partition_count} partitions")
    for name, cardinality in result.by_column().items():
        print(f"  {name}: ~{cardinality}")
    for warning in result.warnings:
        print(f"WARNING: {warning}")

    args.out_dir.mkdir(parents=True, exist_ok=True)
    out_path = write_cardinality_report(
        args.out_dir,
        result,
        meta={
            "schema_meta": str(args.schema_meta),
            "data_dir": str(args.data_dir),
            "delimiter": args.delimiter,
            "precision": args.precision,
        },
    )
    print(f"Output written to {out_path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "match":
        return run_match(args)
    return run_cardinality(args)


if __name__ == "__main__":
    sys.exit(main())
