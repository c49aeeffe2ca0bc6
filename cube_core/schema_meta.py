"""
Schema metadata loader: load and parse schema_meta.json.

Column order is preserved as declared: the cardinality job identifies
columns by their ordinal in this order.
Provides indexes for FK/PK lookups used to validate cube joins.
"""

import json
from pathlib import Path
from dataclasses import dataclass, field


@dataclass
class ColumnMeta:
    """Metadata for a single column."""
    name: str
    data_type: str | None = None
    nullable: bool = True


@dataclass
class ForeignKey:
    """Represents a foreign key relationship (supports composite keys)."""
    from_table: str
    from_columns: tuple[str, ...]  # Tuple for hashability
    to_table: str
    to_columns: tuple[str, ...]


@dataclass
class TableMeta:
    """Metadata for a single table."""
    name: str
    columns: dict[str, ColumnMeta]  # Insertion order = declared order
    primary_key: tuple[str, ...] | None = None
    role: str | None = None  # "fact" or "dimension"

    def ordered_columns(self) -> list[ColumnMeta]:
        """Return columns in declared order."""
        return list(self.columns.values())

    def column_ordinal(self, col: str) -> int | None:
        """Return the declared position of a column, or None."""
        for i, name in enumerate(self.columns):
            if name == col.lower():
                return i
        return None


@dataclass
class SchemaMeta:
    """
    Complete schema metadata with indexes for efficient lookups.

    Indexes:
    - pk_cols[table] -> tuple of PK column names
    - fk_by_childcols[(child_table, tuple(child_cols), parent_table)] -> ForeignKey
    """
    tables: dict[str, TableMeta]
    foreign_keys: list[ForeignKey]

    # Indexes (built after loading)
    pk_cols: dict[str, tuple[str, ...]] = field(default_factory=dict)
    fk_by_childcols: dict[tuple[str, tuple[str, ...], str], ForeignKey] = field(default_factory=dict)

    def build_indexes(self) -> None:
        """Build all indexes from the loaded data."""
        for table_name, table_meta in self.tables.items():
            if table_meta.primary_key:
                self.pk_cols[table_name] = table_meta.primary_key

        for fk in self.foreign_keys:
            key = (fk.from_table, fk.from_columns, fk.to_table)
            self.fk_by_childcols[key] = fk

    def get_table(self, table: str) -> TableMeta:
        """
        Get table metadata.

        Args:
            table: Table name (case-insensitive)

        Returns:
            TableMeta

        Raises:
            ValueError: If the table is not in the schema
        """
        table_meta = self.tables.get(table.lower())
        if table_meta is None:
            raise ValueError(f"Unknown table: {table}")
        return table_meta

    def find_fk_composite(
        self,
        child_table: str,
        child_cols: tuple[str, ...] | list[str],
        parent_table: str,
        parent_cols: tuple[str, ...] | list[str],
    ) -> bool:
        """
        Check if a (possibly composite) FK exists.

        Args:
            child_table: Child (referencing) table
            child_cols: Child columns (in order)
            parent_table: Parent (referenced) table
            parent_cols: Parent columns (in order)

        Returns:
            True if FK exists
        """
        key = (child_table, tuple(child_cols), parent_table)
        fk = self.fk_by_childcols.get(key)
        if fk is None:
            return False
        return fk.to_columns == tuple(parent_cols)

    def get_pk(self, table: str) -> tuple[str, ...] | None:
        """Get primary key columns for a table."""
        return self.pk_cols.get(table)

    def get_role(self, table: str) -> str | None:
        """Get the role (fact/dimension) for a table."""
        if table in self.tables:
            return self.tables[table].role
        return None

    def has_table(self, table: str) -> bool:
        """Check if a table exists in the schema."""
        return table in self.tables

    def has_column(self, table: str, col: str) -> bool:
        """Check if a column exists in a table."""
        if table not in self.tables:
            return False
        return col in self.tables[table].columns


def _parse_columns(table_name: str, cols_data) -> dict[str, ColumnMeta]:
    """Parse columns given as an ordered list of names/dicts or as a dict."""
    columns: dict[str, ColumnMeta] = {}

    if isinstance(cols_data, dict):
        items = list(cols_data.items())
    elif isinstance(cols_data, list):
        items = []
        for col in cols_data:
            if isinstance(col, dict):
                if "name" not in col:
                    raise ValueError(f"Column without name in table {table_name!r}")
                items.append((col["name"], col))
            else:
                items.append((col, {}))
    else:
        raise ValueError(f"Invalid columns for table {table_name!r}")

    for col_name, col_info in items:
        col_info = col_info if isinstance(col_info, dict) else {}
        name = col_name.lower()
        if name in columns:
            raise ValueError(f"Duplicate column {col_name!r} in table {table_name!r}")
        columns[name] = ColumnMeta(
            name=name,
            data_type=col_info.get("type"),
            nullable=col_info.get("nullable", True),
        )
    return columns


def load_schema_meta(schema_path: Path) -> SchemaMeta:
    """
    Load schema metadata from JSON file.

    Args:
        schema_path: Path to schema_meta.json

    Returns:
        SchemaMeta object with indexes built
    """
    content = json.loads(schema_path.read_text(encoding="utf-8"))

    tables: dict[str, TableMeta] = {}
    foreign_keys: list[ForeignKey] = []

    for table_name, table_data in content.get("tables", {}).items():
        name = table_name.lower()
        columns = _parse_columns(table_name, table_data.get("columns", []))

        pk_data = table_data.get("primary_key")
        pk = tuple(c.lower() for c in pk_data) if pk_data else None

        tables[name] = TableMeta(
            name=name,
            columns=columns,
            primary_key=pk,
            role=table_data.get("role"),
        )

    for fk_data in content.get("foreign_keys", []):
        # Support both from_column/to_column and from_columns/to_columns
        from_cols = fk_data.get("from_columns") or [fk_data.get("from_column")]
        to_cols = fk_data.get("to_columns") or [fk_data.get("to_column")]
        if None in from_cols or None in to_cols:
            raise ValueError(f"Foreign key from {fk_data.get('from_table')!r} has no columns")

        fk = ForeignKey(
            from_table=fk_data["from_table"].lower(),
            from_columns=tuple(c.lower() for c in from_cols),
            to_table=fk_data["to_table"].lower(),
            to_columns=tuple(c.lower() for c in to_cols),
        )
        foreign_keys.append(fk)

    schema = SchemaMeta(tables=tables, foreign_keys=foreign_keys)
    schema.build_indexes()

    return schema
