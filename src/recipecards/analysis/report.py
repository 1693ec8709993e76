"""Post-hoc statistics and reports over the recipe collection."""

import re
from collections import Counter
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from recipecards.logging_config import get_logger
from recipecards.quality.units import CANONICAL_UNITS
from recipecards.recipes.recipe import Recipe, utc_timestamp
from recipecards.recipes.repository import write_json_atomic

logger = get_logger(__name__)

REPORT_VERSION = "1.0.0"


def extract_minutes(cooking_time: Any) -> int:
    """
    Convert a free-text cooking time into minutes.

    Examples:
        "30 min" -> 30
        "1h 15 min" -> 75
    """
    if not cooking_time:
        return 0

    text = str(cooking_time).lower()
    minutes = 0
    if minute_match := re.search(r"(\d+)\s*min", text):
        minutes += int(minute_match.group(1))
    if hour_match := re.search(r"(\d+)\s*h", text):
        minutes += int(hour_match.group(1)) * 60
    return minutes


def unit_usage(recipes: list[Recipe]) -> dict[str, dict[str, int]]:
    """Count ingredient units, split into canonical and non-canonical."""
    counts: Counter[str] = Counter()
    for recipe in recipes:
        for ingredient in recipe.ingredients or []:
            if not isinstance(ingredient, Mapping):
                continue
            quantity = ingredient.get("quantity")
            if isinstance(quantity, Mapping) and isinstance(quantity.get("unit"), str):
                counts[quantity["unit"]] += 1

    return {
        "canonical": {u: n for u, n in counts.most_common() if u in CANONICAL_UNITS},
        "non_canonical": {u: n for u, n in counts.most_common() if u not in CANONICAL_UNITS},
    }


def calculate_statistics(recipes: list[Recipe]) -> dict[str, Any]:
    """Aggregate extraction, quality and content statistics."""
    total = len(recipes)
    extracted = sum(1 for r in recipes if r.extracted)
    validated = sum(1 for r in recipes if r.validated)
    with_errors = [r for r in recipes if r.has_error()]

    names = [
        ingredient["name"].strip().lower()
        for recipe in recipes
        for ingredient in recipe.ingredients or []
        if isinstance(ingredient, Mapping)
        and isinstance(ingredient.get("name"), str)
        and ingredient["name"].strip()
    ]
    cooking_times = [m for m in (extract_minutes(r.cooking_time) for r in recipes) if m > 0]

    return {
        "total": total,
        "extracted": extracted,
        "validated": validated,
        "with_errors": len(with_errors),
        "success_rate": round(extracted / total * 100) if total else 0,
        "quality_rate": round(validated / max(extracted, 1) * 100),
        "avg_ingredients_per_recipe": round(len(names) / max(extracted, 1), 1),
        "avg_cooking_time": round(sum(cooking_times) / len(cooking_times)) if cooking_times else 0,
        "quality_issues": sum(1 for r in recipes if r.extracted and not r.validated),
        "top_ingredients": [
            {"name": name, "count": count} for name, count in Counter(names).most_common(10)
        ],
        "unit_usage": unit_usage(recipes),
        "errors": [
            {
                "id": r.id,
                "error": (r.error or {}).get("message"),
                "timestamp": (r.error or {}).get("timestamp"),
            }
            for r in with_errors
        ],
    }


def build_report(stats: dict[str, Any]) -> dict[str, Any]:
    """Shape the statistics into the published report structure."""
    return {
        "metadata": {"generatedAt": utc_timestamp(), "version": REPORT_VERSION},
        "summary": {
            "totalRecipes": stats["total"],
            "successfulExtractions": stats["extracted"],
            "validatedRecipes": stats["validated"],
            "failedExtractions": stats["with_errors"],
            "successRate": f"{stats['success_rate']}%",
            "qualityRate": f"{stats['quality_rate']}%",
        },
        "insights": {
            "averageIngredientsPerRecipe": stats["avg_ingredients_per_recipe"],
            "averageCookingTimeMinutes": stats["avg_cooking_time"],
            "qualityIssuesCount": stats["quality_issues"],
            "topIngredients": stats["top_ingredients"],
            "unitUsage": stats["unit_usage"],
        },
        "issues": {
            "extractionErrors": stats["errors"],
            "qualityIssuesCount": stats["quality_issues"],
        },
    }


def render_markdown(report: dict[str, Any]) -> str:
    """Render the report as Markdown."""
    summary = report["summary"]
    insights = report["insights"]
    generated = datetime.fromisoformat(report["metadata"]["generatedAt"].replace("Z", "+00:00"))

    top = [f"- {i['name']}: {i['count']} recipes" for i in insights["topIngredients"]]
    non_canonical = insights["unitUsage"]["non_canonical"]
    units = [f'- "{u}": {n}' for u, n in non_canonical.items()] or ["- None"]
    errors = [
        f"- Recipe {e['id']}: {e['error']}" for e in report["issues"]["extractionErrors"]
    ] or ["- No extraction errors"]

    lines = [
        "# Recipe Analysis Report",
        "",
        f"Generated on: {generated:%Y-%m-%d %H:%M} UTC",
        "",
        "## Summary",
        "",
        f"- **Total Recipes**: {summary['totalRecipes']}",
        f"- **Successful Extractions**: {summary['successfulExtractions']}",
        f"- **Validated Recipes**: {summary['validatedRecipes']}",
        f"- **Failed Extractions**: {summary['failedExtractions']}",
        f"- **Success Rate**: {summary['successRate']}",
        f"- **Quality Rate**: {summary['qualityRate']}",
        "",
        "## Insights",
        "",
        f"- **Average Ingredients per Recipe**: {insights['averageIngredientsPerRecipe']}",
        f"- **Average Cooking Time**: {insights['averageCookingTimeMinutes']} minutes",
        f"- **Quality Issues**: {insights['qualityIssuesCount']}",
        "",
        "### Top Ingredients",
        *top,
        "",
        "### Non-standard Units",
        *units,
        "",
        "## Issues",
        "",
        "### Extraction Errors",
        *errors,
        "",
    ]
    return "\n".join(lines)


def generate_report(recipes: list[Recipe], output_dir: Path | str) -> dict[str, Any]:
    """Write analysis_report.json and analysis_report.md and return the report."""
    output_dir = Path(output_dir)
    stats = calculate_statistics(recipes)
    report = build_report(stats)

    json_path = output_dir / "analysis_report.json"
    markdown_path = output_dir / "analysis_report.md"
    write_json_atomic(json_path, report)
    markdown_path.write_text(render_markdown(report), encoding="utf-8")

    logger.info(f"Analysis report saved to {json_path} and {markdown_path}")
    logger.info(
        f"Recipes: {stats['total']}, extracted: {stats['extracted']}, "
        f"validation rate: {stats['quality_rate']}%, "
        f"average cooking time: {stats['avg_cooking_time']} min"
    )
    return report
