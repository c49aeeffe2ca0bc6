"""
Cube descriptors: declarative cube definitions, the capability view the
checker consumes, and the query digest.

cube_meta.json format:
{
  "cubes": {
    "<name>": {
      "fact_table": "sales",
      "status": "READY",
      "dimensions": [
        {"table": "sales", "columns": ["region"]},
        {"table": "seller", "columns": ["seller_id"], "derived": ["seller_name"],
         "join": {"type": "inner", "on": "sales.seller_id = seller.seller_id"}}
      ],
      "measures": [{"name": "gmv", "function": "SUM(sales.price)"}]
    }
  }
}

Digest JSON format:
{"dimensions": [...], "aggregations": [...], "joins": [{"type": ..., "on": ...}],
 "metric_columns": [...], "sort_measures": [...], "sort_orders": [...]}
"""

import json
from pathlib import Path
from dataclasses import dataclass, field
from enum import Enum

from cube_core.expr_parser import (
    parse_column,
    parse_function,
    parse_join_condition,
    parse_join_keys,
)
from cube_core.model import ColumnRef, FunctionDesc, JoinDesc
from cube_core.schema_meta import SchemaMeta


class CubeStatus(Enum):
    """Lifecycle status of a cube; only READY cubes answer queries."""
    READY = "READY"
    DISABLED = "DISABLED"
    BUILDING = "BUILDING"


class SortOrder(Enum):
    ASCENDING = "ASC"
    DESCENDING = "DESC"


@dataclass(frozen=True)
class MeasureDesc:
    """A named measure materialized by a cube."""
    name: str
    function: FunctionDesc


@dataclass
class DimensionDesc:
    """
    A cube dimension: columns of one table, optionally joined to the fact
    table and optionally carrying derived columns (looked up at query time).
    """
    table: str
    columns: list[ColumnRef] = field(default_factory=list)
    derived: list[ColumnRef] = field(default_factory=list)
    join: JoinDesc | None = None

    def all_columns(self) -> list[ColumnRef]:
        """
        Columns this dimension makes available for grouping/filtering.

        Derived columns are resolved through the join's fact-side (FK)
        host columns, so those are included as well.
        """
        result = list(self.columns) + list(self.derived)
        if self.derived and self.join is not None:
            result.extend(self.join.foreign_key)
        return result


@dataclass(frozen=True)
class CubeCapability:
    """Read-only view of what a cube can answer."""
    name: str
    fact_table: str
    dimension_columns: frozenset[ColumnRef]
    functions: frozenset[FunctionDesc]
    joins: frozenset[JoinDesc]
    online: bool
    measures: tuple[MeasureDesc, ...] = ()

    def __post_init__(self):
        # Compared against ColumnRef tables, which are lower-cased
        object.__setattr__(self, "fact_table", self.fact_table.lower())

    @property
    def top_n_measures(self) -> tuple[MeasureDesc, ...]:
        """Measures that store a ranked top-N list per group."""
        return tuple(m for m in self.measures if m.function.is_top_n())

    def has_top_n(self) -> bool:
        return any(m.function.is_top_n() for m in self.measures)


@dataclass(frozen=True)
class QueryDigest:
    """Read-only summary of what a query needs from a cube."""
    dimension_columns: frozenset[ColumnRef] = frozenset()
    aggregations: tuple[FunctionDesc, ...] = ()
    joins: tuple[JoinDesc, ...] = ()
    metric_columns: frozenset[ColumnRef] = frozenset()
    sort_measures: tuple[str, ...] = ()
    sort_orders: tuple[SortOrder, ...] = ()

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "dimensions": sorted(str(c) for c in self.dimension_columns),
            "aggregations": [str(f) for f in self.aggregations],
            "joins": [j.to_dict() for j in self.joins],
            "metric_columns": sorted(str(c) for c in self.metric_columns),
            "sort_measures": list(self.sort_measures),
            "sort_orders": [o.value for o in self.sort_orders],
        }


@dataclass
class CubeDesc:
    """Declarative cube definition as stored in cube metadata."""
    name: str
    fact_table: str
    dimensions: list[DimensionDesc]
    measures: list[MeasureDesc]
    status: CubeStatus = CubeStatus.READY

    def is_ready(self) -> bool:
        return self.status == CubeStatus.READY

    def list_dimension_columns_including_derived(self) -> frozenset[ColumnRef]:
        """All dimension columns, derived ones included."""
        cols: set[ColumnRef] = set()
        for dim in self.dimensions:
            cols.update(dim.all_columns())
        return frozenset(cols)

    def list_all_functions(self) -> frozenset[FunctionDesc]:
        """Functions of all measures."""
        return frozenset(m.function for m in self.measures)

    def list_joins(self) -> frozenset[JoinDesc]:
        """Join edges of all dimensions that have one."""
        return frozenset(d.join for d in self.dimensions if d.join is not None)

    def to_capability(self) -> CubeCapability:
        """Expand this definition into the capability view."""
        return CubeCapability(
            name=self.name,
            fact_table=self.fact_table,
            dimension_columns=self.list_dimension_columns_including_derived(),
            functions=self.list_all_functions(),
            joins=self.list_joins(),
            online=self.is_ready(),
            measures=tuple(self.measures),
        )

    def validate(self, schema_meta: SchemaMeta) -> list[str]:
        """
        Check this cube against schema metadata.

        Args:
            schema_meta: Schema to validate against

        Returns:
            List of warnings (empty if the cube is consistent)
        """
        warnings: list[str] = []

        if not schema_meta.has_table(self.fact_table):
            warnings.append(f"Cube {self.name}: fact table {self.fact_table} not in schema")
        elif schema_meta.get_role(self.fact_table) not in (None, "fact"):
            warnings.append(f"Cube {self.name}: table {self.fact_table} is not a fact table")

        for dim in self.dimensions:
            for col in dim.columns + dim.derived:
                if not schema_meta.has_column(col.table, col.name):
                    warnings.append(f"Cube {self.name}: unknown column {col}")

            join = dim.join
            if join is None:
                continue
            if join.fk_table != self.fact_table:
                warnings.append(
                    f"Cube {self.name}: join of dimension {dim.table} does not start at fact table"
                )
            has_fk = schema_meta.find_fk_composite(
                join.fk_table,
                [c.name for c in join.foreign_key],
                join.pk_table,
                [c.name for c in join.primary_key],
            )
            if not has_fk:
                warnings.append(f"Cube {self.name}: no foreign key declared for {join}")

            # Lookup rows must be unique per join key
            pk = schema_meta.get_pk(join.pk_table)
            if pk is not None and set(c.name for c in join.primary_key) != set(pk):
                warnings.append(
                    f"Cube {self.name}: join of dimension {dim.table} does not use "
                    f"primary key ({', '.join(pk)}) of {join.pk_table}"
                )

        for measure in self.measures:
            for col in measure.function.parameters:
                if not schema_meta.has_column(col.table, col.name):
                    warnings.append(f"Cube {self.name}: measure {measure.name} uses unknown column {col}")

        return warnings


def _parse_join(join_data: dict, pk_table: str | None, dialect: str) -> JoinDesc:
    """Parse a join given either as an ON condition or as key lists."""
    join_type = join_data.get("type", "inner")
    if "on" in join_data:
        return parse_join_condition(join_data["on"], join_type, pk_table=pk_table, dialect=dialect)
    return parse_join_keys(
        join_data.get("primary_key", []),
        join_data.get("foreign_key", []),
        join_type,
        dialect=dialect,
    )


def _qualify(table: str, col: str) -> str:
    """Qualify a bare column name with its table."""
    return col if "." in col else f"{table}.{col}"


def cube_desc_from_dict(name: str, data: dict, dialect: str = "spark") -> CubeDesc:
    """
    Build a CubeDesc from its JSON representation.

    Args:
        name: Cube name
        data: Cube JSON object
        dialect: SQL dialect for expressions

    Returns:
        CubeDesc
    """
    if "fact_table" not in data:
        raise ValueError(f"Cube {name!r} has no fact_table")
    fact_table = data["fact_table"].lower()

    dimensions: list[DimensionDesc] = []
    for dim_data in data.get("dimensions", []):
        table = dim_data["table"].lower()
        join = None
        if dim_data.get("join"):
            # The lookup table of a dimension holds the primary key
            join = _parse_join(dim_data["join"], pk_table=table, dialect=dialect)
        dimensions.append(DimensionDesc(
            table=table,
            columns=[parse_column(_qualify(table, c), dialect) for c in dim_data.get("columns", [])],
            derived=[parse_column(_qualify(table, c), dialect) for c in dim_data.get("derived", [])],
            join=join,
        ))

    measures = [
        MeasureDesc(name=m["name"], function=parse_function(m["function"], dialect))
        for m in data.get("measures", [])
    ]

    try:
        status = CubeStatus(data.get("status", "READY").upper())
    except ValueError:
        raise ValueError(f"Cube {name!r} has invalid status {data.get('status')!r}") from None

    return CubeDesc(
        name=name,
        fact_table=fact_table,
        dimensions=dimensions,
        measures=measures,
        status=status,
    )


def load_cube_meta(cube_path: Path, dialect: str = "spark") -> dict[str, CubeDesc]:
    """
    Load cube definitions from JSON file.

    Args:
        cube_path: Path to cube_meta.json
        dialect: SQL dialect for expressions

    Returns:
        Dict of cube name -> CubeDesc, in file order
    """
    content = json.loads(cube_path.read_text(encoding="utf-8"))
    return {
        name: cube_desc_from_dict(name, data, dialect)
        for name, data in content.get("cubes", {}).items()
    }


def query_digest_from_dict(data: dict, dialect: str = "spark") -> QueryDigest:
    """
    Build a QueryDigest from its JSON representation.

    Query-side joins carry no reliable PK/FK orientation: the right-hand
    column of each equality is taken as the primary key, and the checker
    normalizes against each cube's fact table.

    Args:
        data: Digest JSON object
        dialect: SQL dialect for expressions

    Returns:
        QueryDigest
    """
    sort_orders = []
    for order in data.get("sort_orders", []):
        try:
            sort_orders.append(SortOrder(order.upper()))
        except ValueError:
            raise ValueError(f"Invalid sort order: {order!r}") from None

    return QueryDigest(
        dimension_columns=frozenset(parse_column(c, dialect) for c in data.get("dimensions", [])),
        aggregations=tuple(parse_function(f, dialect) for f in data.get("aggregations", [])),
        joins=tuple(_parse_join(j, pk_table=None, dialect=dialect) for j in data.get("joins", [])),
        metric_columns=frozenset(parse_column(c, dialect) for c in data.get("metric_columns", [])),
        sort_measures=tuple(data.get("sort_measures", [])),
        sort_orders=tuple(sort_orders),
    )


def load_query_digest(digest_path: Path, dialect: str = "spark") -> QueryDigest:
    """Load a query digest from JSON file."""
    content = json.loads(digest_path.read_text(encoding="utf-8"))
    return query_digest_from_dict(content, dialect)
