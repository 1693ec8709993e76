"""Recipe extraction from card images and batch processing."""

from recipecards.extraction.client import (
    ExtractionClient,
    parse_correction_response,
    parse_extraction_response,
    strip_code_fence,
)
from recipecards.extraction.processor import ProcessingSummary, QualityOutcome, RecipeProcessor
from recipecards.extraction.schemas import CorrectionReply, ExtractedRecipe

__all__ = [
    "CorrectionReply",
    "ExtractedRecipe",
    "ExtractionClient",
    "ProcessingSummary",
    "QualityOutcome",
    "RecipeProcessor",
    "parse_correction_response",
    "parse_extraction_response",
    "strip_code_fence",
]
