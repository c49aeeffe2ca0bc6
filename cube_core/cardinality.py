"""
Column cardinality: partition-local accumulation of one HyperLogLog counter
per table column.

Lifecycle (one estimator per input partition):
1. Bind the table's ordered columns and a row parser
2. accumulate() every raw record of the partition
3. finalize() into (column ordinal, serialized registers) pairs for the
   merge phase

Null handling: a missing or null field is counted as the string "NULL", so
null and the literal "NULL" are indistinguishable.
Short rows: padded with nulls and counted in `short_rows`; extra trailing
fields are ignored.
"""

from typing import Callable

from datasketch import HyperLogLogPlusPlus

from cube_core.schema_meta import SchemaMeta

NULL_SENTINEL = "NULL"

# Precision of the per-column counters (2^14 registers)
DEFAULT_PRECISION = 14

# Observer sampling window: first rows x first columns
SAMPLE_ROWS = 5
SAMPLE_COLUMNS = 10

RowParser = Callable[[object], list[str | None]]
Observer = Callable[[int, str, str], None]


def new_counter(precision: int = DEFAULT_PRECISION) -> HyperLogLogPlusPlus:
    """Create an empty distinct-value counter."""
    return HyperLogLogPlusPlus(p=precision)


class ColumnCardinalityEstimator:
    """
    Builds one distinct-value counter per column ordinal for one partition.

    Counters are created lazily, so an ordinal appears in finalize() output
    only if at least one record was accumulated. Not thread-safe: each
    partition owns its own estimator.
    """

    def __init__(
        self,
        columns: list[str],
        row_parser: RowParser,
        counter_factory: Callable[[], HyperLogLogPlusPlus] = new_counter,
        observer: Observer | None = None,
        buffer_size: int | None = None,
    ):
        """
        Args:
            columns: Column names in declared order
            row_parser: Turns one raw record into one value per column
                (None for absent fields)
            counter_factory: Creates an empty counter
            observer: Optional callback (row_index, column_name, value) for
                the first SAMPLE_ROWS rows and SAMPLE_COLUMNS columns
            buffer_size: Serialization buffer size; defaults to the byte
                size of the first counter serialized
        """
        self.columns = list(columns)
        self.row_parser = row_parser
        self.counter_factory = counter_factory
        self.observer = observer
        self.buffer_size = buffer_size

        self.counters: dict[int, HyperLogLogPlusPlus] = {}
        self.rows_seen = 0
        self.short_rows = 0

    @classmethod
    def from_schema(
        cls,
        schema_meta: SchemaMeta,
        table_name: str,
        row_parser: RowParser,
        **kwargs,
    ) -> "ColumnCardinalityEstimator":
        """
        Create an estimator bound to a table of the schema.

        Raises:
            ValueError: If the table is unknown (fatal for the partition)
        """
        table_meta = schema_meta.get_table(table_name)
        columns = [c.name for c in table_meta.ordered_columns()]
        return cls(columns, row_parser, **kwargs)

    def _get_counter(self, ordinal: int) -> HyperLogLogPlusPlus:
        """Get or lazily create the counter of a column ordinal."""
        counter = self.counters.get(ordinal)
        if counter is None:
            counter = self.counter_factory()
            self.counters[ordinal] = counter
        return counter

    def accumulate(self, raw_record) -> None:
        """
        Add one raw record's values to the column counters.

        Args:
            raw_record: Record in whatever form row_parser accepts
        """
        values = self.row_parser(raw_record)
        if len(values) < len(self.columns):
            self.short_rows += 1

        for ordinal, column in enumerate(self.columns):
            value = values[ordinal] if ordinal < len(values) else None
            if value is None:
                value = NULL_SENTINEL

            if self.observer is not None and self.rows_seen < SAMPLE_ROWS and ordinal < SAMPLE_COLUMNS:
                self.observer(self.rows_seen, column, value)

            self._get_counter(ordinal).update(value.encode("utf-8"))

        self.rows_seen += 1

    def finalize(self) -> list[tuple[int, bytes]]:
        """
        Serialize every populated counter.

        One reusable buffer is cleared before each column. Order of the
        returned pairs is unspecified.

        Returns:
            List of (column ordinal, serialized registers)

        Raises:
            ValueError: If a counter does not fit the buffer
        """
        results: list[tuple[int, bytes]] = []
        buf: bytearray | None = None

        for ordinal, counter in self.counters.items():
            size = counter.bytesize()
            if buf is None:
                buf = bytearray(self.buffer_size if self.buffer_size is not None else size)
            if size > len(buf):
                raise ValueError(
                    f"Counter of column {ordinal} needs {size} bytes, "
                    f"serialization buffer holds {len(buf)}"
                )
            buf[:] = bytes(len(buf))
            counter.serialize(buf)
            results.append((ordinal, bytes(buf[:size])))

        return results
