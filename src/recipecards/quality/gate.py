"""Quality gate: unit normalization followed by ingredient inspection."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from recipecards.logging_config import get_logger
from recipecards.quality.inspector import Defect, IngredientQualityInspector
from recipecards.quality.units import UnitNormalizer, default_normalizer

logger = get_logger(__name__)


@dataclass(frozen=True)
class QualityFlags:
    """Switches controlling the quality gate and the correction round trip."""

    enabled: bool = True
    validate_ingredients: bool = True
    auto_correction: bool = False

    @property
    def is_active(self) -> bool:
        """Check whether ingredient validation should run at all."""
        return self.enabled and self.validate_ingredients


@dataclass
class ValidationResult:
    """Outcome of running a recipe through the quality gate."""

    normalized_recipe: Any
    issues: list[Defect] = field(default_factory=list)
    needs_correction: bool = False

    def issues_as_dicts(self) -> list[dict[str, Any]]:
        """Serialize the defects for audit metadata."""
        return [issue.to_dict() for issue in self.issues]


class RecipeQualityGate:
    """
    Single entry point for recipe data quality.

    Normalizes units on a copy of the recipe, then inspects the normalized
    ingredients. The caller's recipe is never mutated.
    """

    def __init__(
        self,
        flags: QualityFlags | None = None,
        normalizer: UnitNormalizer | None = None,
        inspector: IngredientQualityInspector | None = None,
    ):
        self.flags = flags or QualityFlags()
        self.normalizer = normalizer or default_normalizer
        self.inspector = inspector or IngredientQualityInspector(self.normalizer)

    def validate_recipe(self, recipe: Any, flags: QualityFlags | None = None) -> ValidationResult:
        """
        Normalize and inspect a recipe.

        Args:
            recipe: Mapping with at least "title" and "ingredients".
            flags: Per-call override of the gate's configured flags.

        Returns:
            ValidationResult with the normalized copy and any defects.
        """
        flags = flags or self.flags
        if not flags.is_active:
            return ValidationResult(normalized_recipe=recipe)

        normalized_recipe = self.normalize_recipe_units(recipe)
        ingredients = (
            normalized_recipe.get("ingredients") if isinstance(normalized_recipe, Mapping) else None
        )
        issues = self.inspector.detect_issues(ingredients)
        needs_correction = len(issues) > 0

        if needs_correction:
            logger.info(f"{len(issues)} ingredient quality issue(s) detected")
        else:
            logger.debug("Ingredient data passed the quality gate")

        return ValidationResult(
            normalized_recipe=normalized_recipe,
            issues=issues,
            needs_correction=needs_correction,
        )

    def normalize_recipe_units(self, recipe: Any) -> Any:
        """Return a copy of the recipe with every string unit normalized."""
        if not isinstance(recipe, Mapping):
            return recipe

        normalized = dict(recipe)
        ingredients = recipe.get("ingredients")
        if not isinstance(ingredients, list):
            return normalized

        normalized_count = 0
        copied: list[Any] = []
        for ingredient in ingredients:
            if not isinstance(ingredient, Mapping):
                copied.append(ingredient)
                continue

            entry = dict(ingredient)
            quantity = ingredient.get("quantity")
            if isinstance(quantity, Mapping):
                entry["quantity"] = dict(quantity)
                unit = quantity.get("unit")
                # Non-string units are left for the inspector to report
                if isinstance(unit, str):
                    normalized_unit = self.normalizer.normalize(unit)
                    if normalized_unit != unit:
                        normalized_count += 1
                        logger.debug(f'Normalized unit "{unit}" -> "{normalized_unit}"')
                    entry["quantity"]["unit"] = normalized_unit
            copied.append(entry)

        if normalized_count:
            logger.info(f"{normalized_count} unit(s) normalized")

        normalized["ingredients"] = copied
        return normalized
