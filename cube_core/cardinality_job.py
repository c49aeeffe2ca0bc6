"""
Cardinality job: run the column cardinality estimator over table partitions
and merge the partial counters into per-column estimates.

Each partition gets its own estimator; partitions share no state. A failing
partition fails the whole job (its exception propagates from run).
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial

from cube_core.cardinality import (
    DEFAULT_PRECISION,
    ColumnCardinalityEstimator,
    Observer,
    RowParser,
    new_counter,
)
from cube_core.cardinality_merge import estimate_cardinalities, recommend_encoding
from cube_core.schema_meta import SchemaMeta
from cube_core.table_reader import TablePartition


@dataclass
class PartitionOutput:
    """Serialized counters and row statistics of one partition."""
    partition_id: str
    pairs: list[tuple[int, bytes]]
    rows: int
    short_rows: int


@dataclass
class CardinalityJobResult:
    """Merged result of a cardinality job over one table."""
    table: str
    columns: list[str]
    cardinalities: dict[int, int]  # column ordinal -> distinct count estimate
    partition_count: int = 0
    row_count: int = 0
    short_row_count: int = 0
    warnings: list[str] = field(default_factory=list)

    def by_column(self) -> dict[str, int]:
        """Estimates keyed by column name, in declared order (observed columns only)."""
        return {
            name: self.cardinalities[i]
            for i, name in enumerate(self.columns)
            if i in self.cardinalities
        }

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        columns = []
        for i, name in enumerate(self.columns):
            cardinality = self.cardinalities.get(i)
            columns.append({
                "ordinal": i,
                "name": name,
                "cardinality": cardinality,
                "encoding": recommend_encoding(cardinality) if cardinality is not None else None,
            })
        return {
            "table": self.table,
            "partition_count": self.partition_count,
            "row_count": self.row_count,
            "short_row_count": self.short_row_count,
            "columns": columns,
            "warnings": self.warnings,
        }


def run_partition(
    partition: TablePartition,
    schema_meta: SchemaMeta,
    table_name: str,
    row_parser: RowParser,
    precision: int = DEFAULT_PRECISION,
    observer: Observer | None = None,
) -> PartitionOutput:
    """
    Accumulate one partition and serialize its counters.

    Args:
        partition: Records of the partition
        schema_meta: Schema holding the table
        table_name: Table the records belong to
        row_parser: Record -> field values
        precision: Counter precision
        observer: Optional sample observer

    Returns:
        PartitionOutput
    """
    estimator = ColumnCardinalityEstimator.from_schema(
        schema_meta,
        table_name,
        row_parser,
        counter_factory=partial(new_counter, precision),
        observer=observer,
    )
    for record in partition.records:
        estimator.accumulate(record)

    return PartitionOutput(
        partition_id=partition.partition_id,
        pairs=estimator.finalize(),
        rows=estimator.rows_seen,
        short_rows=estimator.short_rows,
    )


def run_cardinality_job(
    schema_meta: SchemaMeta,
    table_name: str,
    partitions: list[TablePartition],
    row_parser: RowParser,
    precision: int = DEFAULT_PRECISION,
    workers: int = 4,
    observer: Observer | None = None,
) -> CardinalityJobResult:
    """
    Estimate per-column distinct counts of a table.

    Args:
        schema_meta: Schema holding the table
        table_name: Table to profile
        partitions: Input partitions
        row_parser: Record -> field values
        precision: Counter precision
        workers: Number of partitions processed concurrently
        observer: Optional sample observer, called per partition

    Returns:
        CardinalityJobResult
    """
    table_meta = schema_meta.get_table(table_name)
    columns = [c.name for c in table_meta.ordered_columns()]

    warnings: list[str] = []
    for partition in partitions:
        warnings.extend(f"{partition.partition_id}: {w}" for w in partition.warnings)

    run = partial(
        run_partition,
        schema_meta=schema_meta,
        table_name=table_name,
        row_parser=row_parser,
        precision=precision,
        observer=observer,
    )
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        outputs = list(pool.map(run, partitions))

    pairs = [pair for output in outputs for pair in output.pairs]
    short_rows = sum(o.short_rows for o in outputs)
    if short_rows:
        warnings.append(f"{short_rows} rows had fewer fields than the {len(columns)} declared columns")

    return CardinalityJobResult(
        table=table_meta.name,
        columns=columns,
        cardinalities=estimate_cardinalities(pairs),
        partition_count=len(partitions),
        row_count=sum(o.rows for o in outputs),
        short_row_count=short_rows,
        warnings=warnings,
    )
