"""
Capability checker: decide whether a cube can answer a query digest.

Checks (fixed order):
1. online, dimensions (cube ⊇ query), aggregations (cube ⊇ query), joins
2. Weak aggregation match: missing aggregates computable from dimensions
3. Top-N rewrite: SUM answered by a TOP_N measure whose display column
   replaces the missing group-by dimension
4. Final verdict: all four predicates must hold

The checker is pure: inputs are never mutated and nothing is cached, so it
can be called concurrently for any (cube, digest) pair.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from cube_core.cube_desc import CubeCapability, QueryDigest
from cube_core.model import ColumnRef, FunctionDesc, JoinDesc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilityResult:
    """Verdict of one capability check, with the predicates behind it."""
    cube_name: str
    capable: bool
    online: bool
    dimensions_matched: bool
    aggregations_matched: bool
    joins_matched: bool
    weak: bool = False  # Accepted via weak aggregation match
    top_n: bool = False  # Accepted via top-N rewrite
    dimension_count: int = 0
    reason: str = ""

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "cube": self.cube_name,
            "capable": self.capable,
            "online": self.online,
            "dimensions_matched": self.dimensions_matched,
            "aggregations_matched": self.aggregations_matched,
            "joins_matched": self.joins_matched,
            "weak": self.weak,
            "top_n": self.top_n,
            "reason": self.reason,
        }


def is_matched_with_dimensions(
    dimension_columns: Iterable[ColumnRef],
    cube: CubeCapability,
) -> bool:
    """Check requested dimensions are a subset of the cube's (derived included)."""
    return cube.dimension_columns.issuperset(dimension_columns)


def is_matched_with_aggregations(
    aggregations: Iterable[FunctionDesc],
    cube: CubeCapability,
) -> bool:
    """Check requested functions are a subset of the cube's measures."""
    return cube.functions.issuperset(aggregations)


def normalize_join(join: JoinDesc, fact_table: str) -> JoinDesc:
    """
    Orient a query join so that its foreign-key side is the fact table.

    The query planner cannot always tell which side is the primary key, so a
    join whose PK side is the fact table is swapped.
    """
    if join.pk_table == fact_table:
        return join.swapped()
    return join


def explain_joins(joins: Iterable[JoinDesc], cube: CubeCapability) -> tuple[bool, str]:
    """
    Check requested joins against the cube's joins, with a failure reason.

    Args:
        joins: Joins required by the query
        cube: Cube capability

    Returns:
        Tuple of (matched, reason); reason is empty when matched
    """
    for join in joins:
        normalized = normalize_join(join, cube.fact_table)

        # All FK columns must come from the cube's fact table; the first
        # column's table is checked.
        if normalized.fk_table != cube.fact_table:
            reason = f"fact table {cube.fact_table} not matched in join: {normalized}"
            logger.info("Cube %s: %s", cube.name, reason)
            return False, reason

        if normalized not in cube.joins:
            reason = f"query join not found in cube: {normalized}"
            logger.info("Cube %s: %s", cube.name, reason)
            return False, reason

    return True, ""


def check_joins(joins: Iterable[JoinDesc], cube: CubeCapability) -> bool:
    """Check every requested join is one of the cube's joins (after normalization)."""
    matched, _ = explain_joins(joins, cube)
    return matched


def is_weakly_matched_with_aggregations(
    aggregations: Iterable[FunctionDesc],
    cube: CubeCapability,
) -> bool:
    """
    Check if functions missing from the cube can be computed downstream.

    Rules for each function not materialized verbatim:
    - COUNT: always accepted (recomputed from row counts downstream)
    - COUNT DISTINCT: never accepted
    - anything else: its first parameter must be a cube dimension column,
      e.g. MIN(cal_dt) where cal_dt is a dimension
    """
    for function in aggregations:
        if function in cube.functions:
            continue
        if function.is_count():
            continue
        if function.is_count_distinct():
            return False
        col = function.first_parameter()
        if col is None or col not in cube.dimension_columns:
            return False
    return True


def is_matched_with_top_n(
    dimension_columns: Iterable[ColumnRef],
    cube: CubeCapability,
    digest: QueryDigest,
) -> bool:
    """
    Try to answer a single SUM through one of the cube's TOP_N measures.

    For each TOP_N measure, its display column (last parameter) is dropped
    from the requested dimensions; the rewrite holds if the remaining
    dimensions match and the measure is compatible with the SUM.
    """
    only_function = digest.aggregations[0]
    if not only_function.is_sum():
        return False

    for measure in cube.top_n_measures:
        display_col = measure.function.last_parameter()
        remaining = set(dimension_columns)
        remaining.discard(display_col)
        if is_matched_with_dimensions(remaining, cube):
            if measure.function.is_compatible_with(only_function):
                return True

    return False


def check(
    cube: CubeCapability,
    digest: QueryDigest,
    allow_weak_match: bool = False,
) -> CapabilityResult:
    """
    Check whether a cube can answer a query digest.

    Args:
        cube: Cube capability
        digest: Query digest
        allow_weak_match: Accept cubes whose missing aggregates can be
            computed from their dimensions

    Returns:
        CapabilityResult
    """
    dimension_columns = digest.dimension_columns
    functions = digest.aggregations

    is_online = cube.online
    match_dimensions = is_matched_with_dimensions(dimension_columns, cube)
    match_aggregation = is_matched_with_aggregations(functions, cube)
    match_join, join_reason = explain_joins(digest.joins, cube)
    dimension_count = len(cube.dimension_columns)

    if allow_weak_match and is_online and match_dimensions and not match_aggregation and match_join:
        if is_weakly_matched_with_aggregations(functions, cube):
            logger.info("Weakly matched cube found %s", cube.name)
            return CapabilityResult(
                cube_name=cube.name,
                capable=True,
                online=is_online,
                dimensions_matched=match_dimensions,
                aggregations_matched=match_aggregation,
                joins_matched=match_join,
                weak=True,
                dimension_count=dimension_count,
            )

    # The group-by column of a TOP_N query can come from the measure itself
    top_n = False
    if cube.has_top_n() and match_join and not match_dimensions and len(functions) == 1:
        top_n = is_matched_with_top_n(dimension_columns, cube, digest)
        match_dimensions = top_n
        match_aggregation = top_n

    capable = is_online and match_dimensions and match_aggregation and match_join
    reason = ""
    if not capable:
        failed = [
            name
            for name, ok in (
                ("online", is_online),
                ("dimensions", match_dimensions),
                ("aggregations", match_aggregation),
                ("joins", match_join),
            )
            if not ok
        ]
        reason = f"not matched: {', '.join(failed)}"
        if join_reason:
            reason += f" ({join_reason})"
        logger.info(
            "Exclude cube %s because isOnline=%s, matchDimensions=%s, matchAggregation=%s, matchJoin=%s",
            cube.name, is_online, match_dimensions, match_aggregation, match_join,
        )

    return CapabilityResult(
        cube_name=cube.name,
        capable=capable,
        online=is_online,
        dimensions_matched=match_dimensions,
        aggregations_matched=match_aggregation,
        joins_matched=match_join,
        top_n=top_n and capable,
        dimension_count=dimension_count,
        reason=reason,
    )


def match(cube: CubeCapability, digest: QueryDigest, allow_weak_match: bool = False) -> bool:
    """Return True if the cube can answer the digest."""
    return check(cube, digest, allow_weak_match).capable


def check_all(
    cubes: Iterable[CubeCapability],
    digest: QueryDigest,
    allow_weak_match: bool = False,
) -> list[CapabilityResult]:
    """Check a digest against every cube, keeping input order."""
    return [check(cube, digest, allow_weak_match) for cube in cubes]


def rank_capable(results: Iterable[CapabilityResult]) -> list[CapabilityResult]:
    """
    Keep the capable results, smallest dimension count first.

    Fewer dimension columns means less roll-up work; ties keep input order.
    """
    return sorted((r for r in results if r.capable), key=lambda r: r.dimension_count)


def find_capable_cubes(
    cubes: Iterable[CubeCapability],
    digest: QueryDigest,
    allow_weak_match: bool = False,
) -> list[CapabilityResult]:
    """
    Check a digest against every cube and keep the capable ones.

    Args:
        cubes: Candidate cubes
        digest: Query digest
        allow_weak_match: Passed through to check()

    Returns:
        Capable results as ordered by rank_capable(); empty if no cube is
        capable
    """
    return rank_capable(check_all(cubes, digest, allow_weak_match))
