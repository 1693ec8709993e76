"""Correction round trip: targeted request building and response merging."""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from recipecards.logging_config import get_logger
from recipecards.quality.inspector import Defect
from recipecards.quality.units import CANONICAL_UNITS

logger = get_logger(__name__)

NAME_NOT_SET = "not set"


def format_unit_vocabulary(units: frozenset[str] = CANONICAL_UNITS) -> str:
    """Render the canonical units as a stable, comma-separated list."""
    named = sorted(u for u in units if u)
    return ", ".join(named) + ', or "" when the ingredient has no unit'


def build_system_prompt(units: frozenset[str] = CANONICAL_UNITS) -> str:
    """System message for the correction request."""
    return f"""You are an expert at correcting recipe ingredient data. You analyze scanned recipe cards and fix only the missing or incorrect information for the ingredients you are given.

ACCEPTED UNITS:
{format_unit_vocabulary(units)}

REQUIRED RESPONSE - JSON only:
{{
  "corrections": [
    {{
      "index": 0,
      "name": "Ingredient name as printed on the card",
      "quantity": {{
        "value": 150,
        "unit": "g"
      }}
    }}
  ]
}}

RULES:
1. Only correct the ingredients listed in the request
2. If a quantity is not visible, set "value": null
3. Always provide the unit when it can be identified
4. Use the ingredient names exactly as printed on the card
5. Reply with the JSON only, without explanations"""


# =============================================================================
# Request Building
# =============================================================================


@dataclass
class CorrectionTarget:
    """One defective ingredient as presented to the provider."""

    index: int
    name: str
    current_value: Any
    current_unit: Any
    problems: list[str] = field(default_factory=list)


@dataclass
class CorrectionPrompt:
    """Everything the orchestration layer needs to send a correction request."""

    text: str
    targets: list[CorrectionTarget]
    system_prompt: str

    @property
    def indices(self) -> list[int]:
        """Ingredient indices referenced by the request."""
        return [target.index for target in self.targets]


def _format_current(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


class CorrectionRequestBuilder:
    """Builds the minimal prompt asking the provider to re-derive broken fields."""

    def __init__(self, canonical_units: frozenset[str] = CANONICAL_UNITS):
        self.canonical_units = canonical_units

    def build_targets(self, defects: list[Defect]) -> list[CorrectionTarget]:
        """Extract the fields the provider needs for each defective ingredient."""
        targets = []
        for defect in defects:
            ingredient = defect.ingredient if isinstance(defect.ingredient, Mapping) else {}
            name = ingredient.get("name")
            quantity = ingredient.get("quantity")
            quantity = quantity if isinstance(quantity, Mapping) else {}

            targets.append(
                CorrectionTarget(
                    index=defect.index,
                    name=name.strip() if isinstance(name, str) and name.strip() else NAME_NOT_SET,
                    current_value=quantity.get("value"),
                    current_unit=quantity.get("unit"),
                    problems=list(defect.problems),
                )
            )
        return targets

    def build_request(self, defects: list[Defect], recipe_title: str) -> CorrectionPrompt:
        """
        Build the correction prompt for a recipe's defects.

        Only the defective ingredients are listed, numbered from 1 and tagged
        with their original index. The output is deterministic for a given
        defect list and title.
        """
        targets = self.build_targets(defects)

        lines = [
            f'Recipe: "{recipe_title or ""}"',
            "",
            "The following ingredients have missing or incorrect information.",
            "Read the card images carefully to find the exact quantities and units.",
            "",
            "INGREDIENTS TO CORRECT:",
        ]
        for position, target in enumerate(targets, start=1):
            lines.extend(
                [
                    f'{position}. "{target.name}" (index {target.index})',
                    f"   - Current value: {_format_current(target.current_value)}",
                    f"   - Current unit: {_format_current(target.current_unit)}",
                    f"   - Problems: {', '.join(target.problems)}",
                ]
            )
        lines.extend(
            [
                "",
                "Instructions:",
                "- Supply the corrected name and quantity.value / quantity.unit for each ingredient",
                f"- Use only these units: {format_unit_vocabulary(self.canonical_units)}",
                "- If a quantity really cannot be read from the card, keep value as null",
                "- Fix the ingredient name if needed",
                "- Do not change any ingredient that is not listed above",
            ]
        )

        return CorrectionPrompt(
            text="\n".join(lines),
            targets=targets,
            system_prompt=build_system_prompt(self.canonical_units),
        )


# =============================================================================
# Response Merging
# =============================================================================


@dataclass
class ApplyResult:
    """Merged ingredient list plus bookkeeping on which corrections were used."""

    ingredients: list[Any]
    applied: list[int] = field(default_factory=list)
    skipped: list[Any] = field(default_factory=list)


class CorrectionApplier:
    """Merges provider corrections into an ingredient list without touching the caller's data."""

    def apply_corrections(self, original: list[Any], corrections: Any) -> ApplyResult:
        """
        Merge correction entries into a copy of the ingredient list.

        Args:
            original: The ingredient list the corrections refer to.
            corrections: Parsed entries of the form
                {"index": int, "name"?: str, "quantity"?: {"value"?, "unit"?}}.

        Returns:
            ApplyResult with the merged list. Out-of-range or malformed
            entries are skipped and listed in ``skipped``.

        Raises:
            TypeError: If original is not a list.
        """
        if not isinstance(original, list):
            raise TypeError(f"original must be a list, got {type(original).__name__}")

        result = ApplyResult(ingredients=list(original))
        if not isinstance(corrections, list):
            logger.warning("Correction payload is not a list, nothing applied")
            return result

        for correction in corrections:
            index = correction.get("index") if isinstance(correction, Mapping) else None
            if (
                isinstance(index, bool)
                or not isinstance(index, int)
                or not 0 <= index < len(result.ingredients)
            ):
                logger.warning(f"Skipping correction with invalid index: {index!r}")
                result.skipped.append(correction)
                continue

            result.ingredients[index] = self._merge(result.ingredients[index], correction)
            result.applied.append(index)

            merged = result.ingredients[index]
            logger.debug(f'Corrected "{merged.get("name")}": {merged.get("quantity")!r}')

        return result

    def _merge(self, ingredient: Any, correction: Mapping[str, Any]) -> dict[str, Any]:
        merged = dict(ingredient) if isinstance(ingredient, Mapping) else {}

        name = correction.get("name")
        if isinstance(name, str) and name.strip():
            merged["name"] = name.strip()

        patch = correction.get("quantity")
        if isinstance(patch, Mapping):
            current = merged.get("quantity")
            quantity = dict(current) if isinstance(current, Mapping) else {}
            # Key presence matters: an explicit null overwrites, a missing key does not
            if "value" in patch:
                quantity["value"] = patch["value"]
            if "unit" in patch:
                quantity["unit"] = patch["unit"]
            merged["quantity"] = quantity

        return merged
