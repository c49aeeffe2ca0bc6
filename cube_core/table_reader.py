"""
Table reader: scan and load delimited table data files as partitions.

Handles:
- Recursive directory traversal
- BOM removal
- Blank line skipping
- Quoted fields spanning several lines
- One partition per data file (optionally split further by row count)
- Delimited row parsing with a null token
"""

import csv
import io
from pathlib import Path
from dataclasses import dataclass, field

DEFAULT_DELIMITER = ","
DEFAULT_NULL_TOKEN = "\\N"  # Hive text format null
DATA_FILE_SUFFIXES = (".csv", ".tsv", ".txt", ".dat")


@dataclass
class TablePartition:
    """A slice of table rows processed by one estimator."""
    partition_id: str  # e.g. "part-00000.csv" or "part-00000.csv#1"
    records: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.records


class DelimitedRowParser:
    """
    Split one text record into field values.

    Quoted fields follow CSV rules. Fields equal to the null token become
    None.
    """

    def __init__(self, delimiter: str = DEFAULT_DELIMITER, null_token: str | None = DEFAULT_NULL_TOKEN):
        if len(delimiter) != 1:
            raise ValueError(f"Delimiter must be a single character, got {delimiter!r}")
        self.delimiter = delimiter
        self.null_token = null_token

    def __call__(self, record: str) -> list[str | None]:
        fields = next(csv.reader(io.StringIO(record, newline=""), delimiter=self.delimiter), [])
        return [None if f == self.null_token else f for f in fields]


def scan_data_dir(data_dir: Path, recursive: bool = True) -> list[Path]:
    """
    Scan a directory for table data files.

    Args:
        data_dir: Directory containing data files
        recursive: If True, recursively scan subdirectories

    Returns:
        List of data file paths, sorted by name
    """
    pattern = "**/*" if recursive else "*"
    return sorted(
        p for p in data_dir.glob(pattern)
        if p.is_file() and p.suffix.lower() in DATA_FILE_SUFFIXES
    )


def read_data_file(data_path: Path) -> str:
    """Read a data file, removing a UTF-8 BOM if present."""
    return data_path.read_text(encoding="utf-8-sig")


def split_records(content: str, delimiter: str = DEFAULT_DELIMITER) -> list[str]:
    """
    Split file content into non-blank raw records.

    Record boundaries follow CSV rules, so a quoted field may contain line
    breaks. Each record keeps its original text for the row parser.

    Raises:
        csv.Error: If the content is not valid delimited text
    """
    lines = list(io.StringIO(content, newline=""))
    reader = csv.reader(lines, delimiter=delimiter)

    records: list[str] = []
    start = 0
    for _ in reader:
        record = "".join(lines[start:reader.line_num]).rstrip("\r\n")
        start = reader.line_num
        if record.strip():
            records.append(record)
    return records


def load_partition(data_path: Path, delimiter: str = DEFAULT_DELIMITER) -> TablePartition:
    """
    Load one data file as a partition.

    Args:
        data_path: Path to data file
        delimiter: Field delimiter, needed to find quoted record boundaries

    Returns:
        TablePartition (empty, with a warning, if the file cannot be read)
    """
    try:
        content = read_data_file(data_path)
    except (OSError, UnicodeDecodeError) as e:
        return TablePartition(
            partition_id=data_path.name,
            warnings=[f"Failed to read file: {e}"],
        )

    try:
        records = split_records(content, delimiter)
    except csv.Error as e:
        return TablePartition(
            partition_id=data_path.name,
            warnings=[f"Failed to parse file: {e}"],
        )

    warnings = [] if records else ["Empty data file"]
    return TablePartition(partition_id=data_path.name, records=records, warnings=warnings)


def split_partition(partition: TablePartition, max_rows: int) -> list[TablePartition]:
    """
    Split a partition into chunks of at most max_rows records.

    Args:
        partition: Partition to split
        max_rows: Maximum records per chunk

    Returns:
        List of partitions; the input itself if it is small enough
    """
    if max_rows <= 0:
        raise ValueError(f"max_rows must be positive, got {max_rows}")
    if len(partition.records) <= max_rows:
        return [partition]

    chunks = []
    for i, start in enumerate(range(0, len(partition.records), max_rows)):
        chunks.append(TablePartition(
            partition_id=f"{partition.partition_id}#{i}",
            records=partition.records[start:start + max_rows],
            warnings=list(partition.warnings) if i == 0 else [],
        ))
    return chunks


def load_partitions(
    data_dir: Path,
    recursive: bool = True,
    max_rows: int | None = None,
    delimiter: str = DEFAULT_DELIMITER,
) -> list[TablePartition]:
    """
    Load all data files from a directory as partitions.

    Args:
        data_dir: Directory containing data files
        recursive: If True, recursively scan subdirectories
        max_rows: If set, split files into chunks of at most this many rows
        delimiter: Field delimiter

    Returns:
        List of TablePartition objects
    """
    partitions: list[TablePartition] = []
    for data_path in scan_data_dir(data_dir, recursive=recursive):
        partition = load_partition(data_path, delimiter)
        if max_rows is not None:
            partitions.extend(split_partition(partition, max_rows))
        else:
            partitions.append(partition)
    return partitions
