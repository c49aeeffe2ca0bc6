"""
Model: column references, aggregate functions and join edges shared by the
capability checker and the cube/digest loaders.

FunctionDesc equality is structural (kind + parameters).
JoinDesc equality is direction-sensitive (pk, fk, join type), so a query
edge must be normalized against a cube's fact table before comparison.
"""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class ColumnRef:
    """A column identified by (table, column name), both lower-cased."""
    table: str
    name: str

    def __post_init__(self):
        object.__setattr__(self, "table", self.table.lower())
        object.__setattr__(self, "name", self.name.lower())

    def __str__(self) -> str:
        return f"{self.table}.{self.name}"


class FunctionKind(Enum):
    """Aggregate function kinds a cube can materialize."""
    SUM = "SUM"
    COUNT = "COUNT"
    COUNT_DISTINCT = "COUNT_DISTINCT"
    MIN = "MIN"
    MAX = "MAX"
    AVG = "AVG"
    TOP_N = "TOP_N"
    RAW = "RAW"


@dataclass(frozen=True)
class FunctionDesc:
    """
    An aggregate function plus its ordered parameter columns.

    COUNT(*) and COUNT(1) both carry an empty parameter tuple.
    For TOP_N the first parameter is the value column and the last one is
    the display (ranking group) column.
    """
    kind: FunctionKind
    parameters: tuple[ColumnRef, ...] = ()

    def is_sum(self) -> bool:
        return self.kind == FunctionKind.SUM

    def is_count(self) -> bool:
        return self.kind == FunctionKind.COUNT

    def is_count_distinct(self) -> bool:
        return self.kind == FunctionKind.COUNT_DISTINCT

    def is_top_n(self) -> bool:
        return self.kind == FunctionKind.TOP_N

    def first_parameter(self) -> ColumnRef | None:
        """Return the first parameter column, or None if there is none."""
        if self.parameters:
            return self.parameters[0]
        return None

    def last_parameter(self) -> ColumnRef | None:
        """Return the last parameter column, or None if there is none."""
        if self.parameters:
            return self.parameters[-1]
        return None

    def is_compatible_with(self, other: "FunctionDesc") -> bool:
        """Check if this (cube-side) function can answer `other` (query-side)."""
        return is_compatible(self, other)

    def __str__(self) -> str:
        if self.kind == FunctionKind.COUNT_DISTINCT:
            return f"COUNT(DISTINCT {', '.join(str(p) for p in self.parameters)})"
        if self.kind == FunctionKind.COUNT and not self.parameters:
            return "COUNT(*)"
        return f"{self.kind.value}({', '.join(str(p) for p in self.parameters)})"


# cube-side kind -> query-side kinds it can answer besides itself
COMPATIBLE_KINDS: dict[FunctionKind, frozenset[FunctionKind]] = {
    FunctionKind.TOP_N: frozenset({FunctionKind.SUM}),
}


def is_compatible(cube_fn: FunctionDesc, query_fn: FunctionDesc) -> bool:
    """
    Decide if a cube-side aggregate can answer a query-side aggregate.

    Identical functions are always compatible. Otherwise the kind pair must
    appear in COMPATIBLE_KINDS and both must aggregate the same value
    column (first parameter), e.g. TOP_N(price, seller) answers SUM(price).

    Args:
        cube_fn: Function materialized by the cube
        query_fn: Function requested by the query

    Returns:
        True if cube_fn subsumes query_fn
    """
    if cube_fn == query_fn:
        return True
    if query_fn.kind not in COMPATIBLE_KINDS.get(cube_fn.kind, frozenset()):
        return False
    value_col = cube_fn.first_parameter()
    return value_col is not None and value_col == query_fn.first_parameter()


class JoinType(Enum):
    """Join types supported between a fact table and its lookups."""
    INNER = "INNER"
    LEFT = "LEFT"

    @classmethod
    def parse(cls, value: "str | JoinType") -> "JoinType":
        """Parse a join type name (case-insensitive)."""
        if isinstance(value, JoinType):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unsupported join type: {value!r}") from None


@dataclass(frozen=True)
class JoinDesc:
    """
    An equi-join edge: primary_key[i] = foreign_key[i] for every i.

    Builders must never create an edge with an empty key list or with key
    lists of different lengths.
    """
    primary_key: tuple[ColumnRef, ...]
    foreign_key: tuple[ColumnRef, ...]
    join_type: JoinType = JoinType.INNER

    @property
    def pk_table(self) -> str:
        """Table of the primary-key side (first PK column)."""
        return self.primary_key[0].table

    @property
    def fk_table(self) -> str:
        """Table of the foreign-key side (first FK column)."""
        return self.foreign_key[0].table

    def swapped(self) -> "JoinDesc":
        """Return a copy with primary-key and foreign-key roles exchanged."""
        return JoinDesc(
            primary_key=self.foreign_key,
            foreign_key=self.primary_key,
            join_type=self.join_type,
        )

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "primary_key": [str(c) for c in self.primary_key],
            "foreign_key": [str(c) for c in self.foreign_key],
            "join_type": self.join_type.value,
        }

    def __str__(self) -> str:
        conds = " AND ".join(
            f"{fk} = {pk}" for fk, pk in zip(self.foreign_key, self.primary_key)
        )
        return f"{self.join_type.value} JOIN ON {conds}"
