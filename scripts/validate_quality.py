#!/usr/bin/env python
"""
Quality audit of the consolidated recipe store.

Normalizes ingredient units and records the remaining ingredient defects in
each recipe's metadata. No provider calls are made.

Run with: python scripts/validate_quality.py
"""

import sys

from recipecards.config import get_settings
from recipecards.extraction.processor import RecipeProcessor
from recipecards.logging_config import configure_logging, get_logger

settings = get_settings()
configure_logging(log_level=settings.log_level)
logger = get_logger(__name__)


def main():
    """Entry point for the quality audit script."""
    processor = RecipeProcessor(settings)
    recipes = processor.repository.load_existing_recipes()
    if not recipes:
        logger.warning(f"No recipes found in {settings.consolidated_path}")
        sys.exit(0)

    summary = processor.audit_recipes(recipes)
    processor.repository.save_all_recipes(recipes)

    for key, value in summary.to_dict().items():
        logger.info(f"  {key}: {value}")
    sys.exit(0)


if __name__ == "__main__":
    main()
