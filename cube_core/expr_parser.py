"""
Expression parser: turn SQL fragments from cube/digest metadata into model
objects.

Handles:
- Qualified column references: "sales.region"
- Aggregate functions: SUM(x), COUNT(*), COUNT(DISTINCT x), MIN, MAX, AVG,
  TOP_N(value, group...), RAW(x)
- Equi-join conditions: "sales.seller_id = seller.id AND ..."

Join orientation:
- If pk_table is given, the column on that table is the primary-key side
- Otherwise the right-hand column of each equality is the primary-key side
"""

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError

from cube_core.model import ColumnRef, FunctionDesc, FunctionKind, JoinDesc, JoinType


# sqlglot expression type -> function kind
AGG_KIND_MAP: dict[type, FunctionKind] = {
    exp.Sum: FunctionKind.SUM,
    exp.Min: FunctionKind.MIN,
    exp.Max: FunctionKind.MAX,
    exp.Avg: FunctionKind.AVG,
}

# Functions sqlglot does not know parse as exp.Anonymous
ANONYMOUS_KIND_MAP: dict[str, FunctionKind] = {
    "TOP_N": FunctionKind.TOP_N,
    "TOPN": FunctionKind.TOP_N,
    "COUNT_DISTINCT": FunctionKind.COUNT_DISTINCT,
    "RAW": FunctionKind.RAW,
}


def _parse(sql: str, dialect: str) -> exp.Expression:
    """Parse a SQL fragment, converting sqlglot errors to ValueError."""
    try:
        node = sqlglot.parse_one(sql, dialect=dialect)
    except ParseError as e:
        raise ValueError(f"Cannot parse {sql!r}: {e}") from e
    if isinstance(node, exp.Alias):
        node = node.this
    return node


def _to_column_ref(node: exp.Expression, source: str) -> ColumnRef:
    """Convert a qualified Column node to ColumnRef."""
    if not isinstance(node, exp.Column):
        raise ValueError(f"Expected a column reference in {source!r}, got {node.sql()!r}")
    if not node.table:
        raise ValueError(f"Column {node.name!r} in {source!r} must be qualified with its table")
    return ColumnRef(node.table, node.name)


def parse_column(sql: str, dialect: str = "spark") -> ColumnRef:
    """
    Parse a qualified column reference.

    Args:
        sql: Column text, e.g. "sales.region"
        dialect: SQL dialect

    Returns:
        ColumnRef
    """
    return _to_column_ref(_parse(sql, dialect), sql)


def parse_function(sql: str, dialect: str = "spark") -> FunctionDesc:
    """
    Parse an aggregate function expression.

    Args:
        sql: Function text, e.g. "SUM(sales.price)" or "TOP_N(sales.price, sales.seller_id)"
        dialect: SQL dialect

    Returns:
        FunctionDesc
    """
    node = _parse(sql, dialect)

    if isinstance(node, exp.Count):
        inner = node.this
        if isinstance(inner, exp.Distinct):
            params = tuple(_to_column_ref(e, sql) for e in inner.expressions)
            return FunctionDesc(FunctionKind.COUNT_DISTINCT, params)
        if isinstance(inner, exp.Column):
            return FunctionDesc(FunctionKind.COUNT, (_to_column_ref(inner, sql),))
        # COUNT(*), COUNT(1)
        return FunctionDesc(FunctionKind.COUNT)

    for agg_type, kind in AGG_KIND_MAP.items():
        if isinstance(node, agg_type):
            return FunctionDesc(kind, (_to_column_ref(node.this, sql),))

    if isinstance(node, exp.Anonymous):
        kind = ANONYMOUS_KIND_MAP.get(node.name.upper())
        if kind is None:
            raise ValueError(f"Unsupported aggregate function: {node.name!r}")
        params = tuple(_to_column_ref(e, sql) for e in node.expressions)
        if not params:
            raise ValueError(f"{node.name} requires at least one column in {sql!r}")
        return FunctionDesc(kind, params)

    raise ValueError(f"Not an aggregate function: {sql!r}")


def _split_conjuncts(expr: exp.Expression) -> list[exp.Expression]:
    """Split expression into AND conjuncts."""
    conjuncts: list[exp.Expression] = []
    _collect_conjuncts(expr, conjuncts)
    return conjuncts


def _collect_conjuncts(expr: exp.Expression, result: list[exp.Expression]) -> None:
    """Recursively collect AND conjuncts."""
    if isinstance(expr, exp.And):
        _collect_conjuncts(expr.left, result)
        _collect_conjuncts(expr.right, result)
    elif isinstance(expr, exp.Paren):
        _collect_conjuncts(expr.this, result)
    else:
        result.append(expr)


def parse_join_condition(
    on: str,
    join_type: str | JoinType = JoinType.INNER,
    pk_table: str | None = None,
    dialect: str = "spark",
) -> JoinDesc:
    """
    Parse an equi-join ON condition into a JoinDesc.

    Args:
        on: Condition text, e.g. "sales.seller_id = seller.seller_id"
        join_type: INNER or LEFT
        pk_table: Table holding the primary key (lookup table), if known
        dialect: SQL dialect

    Returns:
        JoinDesc with ordered primary/foreign key columns
    """
    node = _parse(on, dialect)
    primary_key: list[ColumnRef] = []
    foreign_key: list[ColumnRef] = []

    for conj in _split_conjuncts(node):
        if not isinstance(conj, exp.EQ):
            raise ValueError(f"Only equality conditions are supported in join: {conj.sql()!r}")

        left = _to_column_ref(conj.left, on)
        right = _to_column_ref(conj.right, on)
        if left.table == right.table:
            raise ValueError(f"Join condition compares columns of one table: {conj.sql()!r}")

        fk_col, pk_col = left, right
        if pk_table is not None and left.table == pk_table.lower():
            fk_col, pk_col = right, left

        primary_key.append(pk_col)
        foreign_key.append(fk_col)

    if not primary_key:
        raise ValueError(f"Join condition has no key columns: {on!r}")

    return JoinDesc(
        primary_key=tuple(primary_key),
        foreign_key=tuple(foreign_key),
        join_type=JoinType.parse(join_type),
    )


def parse_join_keys(
    primary_key: list[str],
    foreign_key: list[str],
    join_type: str | JoinType = JoinType.INNER,
    dialect: str = "spark",
) -> JoinDesc:
    """
    Build a JoinDesc from explicit key column lists.

    Args:
        primary_key: Qualified PK column names, in order
        foreign_key: Qualified FK column names, in order
        join_type: INNER or LEFT
        dialect: SQL dialect

    Returns:
        JoinDesc
    """
    if not primary_key or not foreign_key:
        raise ValueError("Join key lists must not be empty")
    if len(primary_key) != len(foreign_key):
        raise ValueError(
            f"Join key lists differ in length: {len(primary_key)} PK vs {len(foreign_key)} FK columns"
        )
    return JoinDesc(
        primary_key=tuple(parse_column(c, dialect) for c in primary_key),
        foreign_key=tuple(parse_column(c, dialect) for c in foreign_key),
        join_type=JoinType.parse(join_type),
    )
