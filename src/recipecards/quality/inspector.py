"""Ingredient-level defect detection."""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from recipecards.logging_config import get_logger
from recipecards.quality.units import UnitNormalizer, default_normalizer

logger = get_logger(__name__)


# Problem messages, in check order
NAME_MISSING = "name missing or empty"
QUANTITY_MISSING = "quantity object missing"
INVALID_VALUE = "invalid quantity value (must be a number or null)"
UNIT_MISSING = "unit missing"
UNIT_NOT_STRING = "unit must be a string"
VALUE_MISSING_WITH_UNIT = "value missing while unit is present"


def non_standard_unit(unit: str) -> str:
    """Problem message for a unit outside the canonical vocabulary."""
    return f'unit "{unit}" non-standard'


def is_finite_number(value: Any) -> bool:
    """Check for a real, finite number (booleans excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


@dataclass
class Defect:
    """Every problem found on a single ingredient."""

    index: int
    ingredient: Any
    problems: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "index": self.index,
            "ingredient": self.ingredient,
            "problems": list(self.problems),
        }


class IngredientQualityInspector:
    """Read-only scan of an ingredient list for structural and semantic defects."""

    def __init__(self, normalizer: UnitNormalizer | None = None):
        self.normalizer = normalizer or default_normalizer

    def detect_issues(self, ingredients: Any) -> list[Defect]:
        """
        Report every defective ingredient, in list order.

        Args:
            ingredients: The recipe's ingredient list. Anything that is not a
                list yields no defects.

        Returns:
            One Defect per ingredient with at least one problem.
        """
        if not isinstance(ingredients, list):
            return []

        issues: list[Defect] = []
        for index, ingredient in enumerate(ingredients):
            problems = self.inspect_ingredient(ingredient)
            if problems:
                issues.append(Defect(index=index, ingredient=ingredient, problems=problems))

        if issues:
            logger.debug(f"{len(issues)} of {len(ingredients)} ingredients have defects")
        return issues

    def inspect_ingredient(self, ingredient: Any) -> list[str]:
        """List the problems of one ingredient."""
        problems: list[str] = []
        entry = ingredient if isinstance(ingredient, Mapping) else {}

        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            problems.append(NAME_MISSING)

        quantity = entry.get("quantity")
        if not isinstance(quantity, Mapping):
            problems.append(QUANTITY_MISSING)
            return problems

        value = quantity.get("value")
        unit = quantity.get("unit")

        if "value" in quantity and value is not None and not is_finite_number(value):
            problems.append(INVALID_VALUE)

        if unit is None:
            problems.append(UNIT_MISSING)
        elif not isinstance(unit, str):
            problems.append(UNIT_NOT_STRING)
        elif not self.normalizer.is_valid_unit(unit):
            problems.append(non_standard_unit(unit))

        # A stated unit without an amount is incomplete, not "to taste"
        if "value" in quantity and value is None and isinstance(unit, str) and unit != "":
            problems.append(VALUE_MISSING_WITH_UNIT)

        return problems
