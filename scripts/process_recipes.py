#!/usr/bin/env python
"""
Batch extraction of recipe cards.

Pairs the card images in <INPUT_DIR>/compressed, extracts every pair that is
not in the consolidated store yet, runs the ingredient quality gate and saves
the results to <OUTPUT_DIR>/all_recipes.json.

Run with: python scripts/process_recipes.py

Environment Variables:
    OPENAI_API_KEY: Provider API key (required)
    OPENAI_MODEL: Vision model name (default: gpt-4o)
    INPUT_DIR: Directory holding the compressed/ images (default: ./recipes)
    OUTPUT_DIR: Directory for the consolidated store (default: ./output)
    AUTO_CORRECTION: Ask the model to correct defective ingredients (default: false)
"""

import asyncio
import sys

from recipecards.config import get_settings
from recipecards.errors import ConfigurationError
from recipecards.extraction.processor import RecipeProcessor
from recipecards.logging_config import configure_logging, get_logger

settings = get_settings()
configure_logging(log_level=settings.log_level)
logger = get_logger(__name__)


async def process_recipes() -> dict:
    """Run the extraction pipeline once."""
    processor = RecipeProcessor(settings)
    summary = await processor.process_all()
    return summary.to_dict()


def main():
    """Entry point for the extraction script."""
    logger.info("=" * 60)
    logger.info("Recipe Card Extraction")
    logger.info("=" * 60)
    logger.info(f"Input: {settings.input_dir}")
    logger.info(f"Output: {settings.consolidated_path}")
    logger.info(f"Model: {settings.openai_model}")
    logger.info(f"Auto correction: {settings.auto_correction}")
    logger.info("=" * 60)

    try:
        results = asyncio.run(process_recipes())

        logger.info("=" * 60)
        logger.info("Extraction Results:")
        for key, value in results.items():
            logger.info(f"  {key}: {value}")
        logger.info("=" * 60)

        sys.exit(0 if not results["failed"] else 1)

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Extraction interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.exception(f"Extraction failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
