"""
Cardinality merge: union per-partition counters into per-column estimates.

Pairs from any number of partitions can be merged in any order: the union
takes the register-wise maximum, which is commutative and associative.
"""

from typing import Iterable

from datasketch import HyperLogLogPlusPlus

# Columns with at least this many distinct values get fixed-length encoding
DICT_ENCODING_THRESHOLD = 1_000_000


def merge_partials(pairs: Iterable[tuple[int, bytes]]) -> dict[int, HyperLogLogPlusPlus]:
    """
    Group serialized counters by column ordinal and union them.

    Args:
        pairs: (column ordinal, serialized registers) from all partitions

    Returns:
        Dict of column ordinal -> merged counter
    """
    merged: dict[int, HyperLogLogPlusPlus] = {}
    for ordinal, payload in pairs:
        counter = HyperLogLogPlusPlus.deserialize(payload)
        if ordinal not in merged:
            merged[ordinal] = counter
        else:
            merged[ordinal].merge(counter)
    return merged


def estimate_cardinalities(pairs: Iterable[tuple[int, bytes]]) -> dict[int, int]:
    """
    Merge partial counters and estimate each column's distinct count.

    Returns:
        Dict of column ordinal -> approximate distinct count
    """
    return {
        ordinal: int(round(counter.count()))
        for ordinal, counter in merge_partials(pairs).items()
    }


def standard_error(precision: int) -> float:
    """Relative standard error of a counter with 2^precision registers."""
    return 1.04 / (1 << precision) ** 0.5


def recommend_encoding(cardinality: int, threshold: int = DICT_ENCODING_THRESHOLD) -> str:
    """Suggest a dimension encoding: "dict" for low cardinality, else "fixed_length"."""
    if cardinality < threshold:
        return "dict"
    return "fixed_length"
