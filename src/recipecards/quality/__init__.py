"""Ingredient data quality: unit normalization, defect detection and correction."""

from recipecards.quality.correction import (
    ApplyResult,
    CorrectionApplier,
    CorrectionPrompt,
    CorrectionRequestBuilder,
    CorrectionTarget,
)
from recipecards.quality.gate import QualityFlags, RecipeQualityGate, ValidationResult
from recipecards.quality.inspector import Defect, IngredientQualityInspector
from recipecards.quality.units import (
    CANONICAL_UNITS,
    UNIT_NORMALIZATION,
    UnitNormalizer,
    is_valid_unit,
    normalize_unit,
)

__all__ = [
    "ApplyResult",
    "CANONICAL_UNITS",
    "CorrectionApplier",
    "CorrectionPrompt",
    "CorrectionRequestBuilder",
    "CorrectionTarget",
    "Defect",
    "IngredientQualityInspector",
    "QualityFlags",
    "RecipeQualityGate",
    "UNIT_NORMALIZATION",
    "UnitNormalizer",
    "ValidationResult",
    "is_valid_unit",
    "normalize_unit",
]
