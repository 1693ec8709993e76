"""Reports over the consolidated recipe collection."""

from recipecards.analysis.report import (
    build_report,
    calculate_statistics,
    generate_report,
    render_markdown,
    unit_usage,
)

__all__ = [
    "build_report",
    "calculate_statistics",
    "generate_report",
    "render_markdown",
    "unit_usage",
]
