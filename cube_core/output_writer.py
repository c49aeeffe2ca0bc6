"""
Output writer: write capability match and cardinality reports to files.
"""

import json
from pathlib import Path
from datetime import datetime

from cube_core.capability_checker import CapabilityResult, rank_capable
from cube_core.cardinality_job import CardinalityJobResult
from cube_core.cube_desc import QueryDigest


def write_match_report(
    out_dir: Path,
    digest: QueryDigest,
    results: list[CapabilityResult],
    meta: dict | None = None,
) -> Path:
    """
    Write capability check results to match_report.json.

    Args:
        out_dir: Output directory
        digest: The checked query digest
        results: One result per checked cube (capable or not)
        meta: Optional metadata dict

    Returns:
        Path to the written file
    """
    out_path = out_dir / "match_report.json"

    capable = rank_capable(results)

    output = {
        "meta": meta or {},
        "generated_at": datetime.now().isoformat(),
        "digest": digest.to_dict(),
        "cube_count": len(results),
        "capable_count": len(capable),
        "selected_cube": capable[0].cube_name if capable else None,
        "results": [r.to_dict() for r in results],
    }

    content = json.dumps(output, indent=2, ensure_ascii=False)
    out_path.write_text(content, encoding="utf-8")
    return out_path


def write_cardinality_report(
    out_dir: Path,
    result: CardinalityJobResult,
    meta: dict | None = None,
) -> Path:
    """
    Write per-column cardinality estimates to <table>_cardinality.json.

    Args:
        out_dir: Output directory
        result: Merged job result
        meta: Optional metadata dict

    Returns:
        Path to the written file
    """
    out_path = out_dir / f"{result.table}_cardinality.json"

    output = {
        "meta": meta or {},
        "generated_at": datetime.now().isoformat(),
        **result.to_dict(),
    }

    content = json.dumps(output, indent=2, ensure_ascii=False)
    out_path.write_text(content, encoding="utf-8")
    return out_path
