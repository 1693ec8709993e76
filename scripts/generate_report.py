#!/usr/bin/env python
"""
Write analysis_report.json and analysis_report.md next to the consolidated store.

Run with: python scripts/generate_report.py
"""

from recipecards.analysis.report import generate_report
from recipecards.config import get_settings
from recipecards.logging_config import configure_logging, get_logger
from recipecards.recipes.repository import RecipeRepository

settings = get_settings()
configure_logging(log_level=settings.log_level)
logger = get_logger(__name__)


def main():
    """Entry point for the report script."""
    repository = RecipeRepository(
        settings.input_dir, settings.output_dir, settings.consolidated_filename
    )
    recipes = repository.load_existing_recipes()
    report = generate_report(recipes, settings.output_dir)
    logger.info(f"Report summary: {report['summary']}")


if __name__ == "__main__":
    main()
