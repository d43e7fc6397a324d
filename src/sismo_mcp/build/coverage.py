"""Clover coverage report parsing.

Missing coverage is not a build failure: every problem here degrades to 0.
"""

from __future__ import annotations

import logging
import math
import os
import xml.etree.ElementTree as ET

logger = logging.getLogger(__name__)

COVERED_ATTRIBUTES = ("coveredconditionals", "coveredstatements", "coveredmethods")
TOTAL_ATTRIBUTES = ("conditionals", "statements", "methods")


def _sum_attributes(metrics: ET.Element, names: tuple[str, ...]) -> float:
    return sum(float(metrics.get(name) or 0) for name in names)


def extract_coverage(coverage_path: str | None) -> int:
    """Compute the coverage percentage from a Clover XML report.

    Args:
        coverage_path: Path to the report, or None when not configured

    Returns:
        Truncated percentage 0..100; 0 when unavailable
    """
    if not coverage_path or not os.path.isfile(coverage_path):
        return 0

    try:
        root = ET.parse(coverage_path).getroot()
    except (ET.ParseError, OSError) as e:
        logger.debug(f"Unreadable coverage report {coverage_path}: {e}")
        return 0

    metrics = root.find("project/metrics")
    if metrics is None:
        logger.debug(f"No project/metrics node in {coverage_path}")
        return 0

    try:
        covered = _sum_attributes(metrics, COVERED_ATTRIBUTES)
        total = _sum_attributes(metrics, TOTAL_ATTRIBUTES)
    except ValueError:
        logger.debug(f"Non-numeric coverage metrics in {coverage_path}")
        return 0

    if not (math.isfinite(covered) and math.isfinite(total)) or total <= 0:
        return 0

    percentage = covered / total * 100
    if not math.isfinite(percentage):
        return 0

    return max(0, min(100, int(percentage)))
