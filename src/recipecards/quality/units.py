"""Unit normalization for extracted recipe ingredients."""

from collections.abc import Iterable, Mapping
from typing import Any

from recipecards.logging_config import get_logger

logger = get_logger(__name__)


# =============================================================================
# Unit Vocabulary
# =============================================================================

# Units the consolidated store is allowed to contain ("" means unitless)
CANONICAL_UNITS: frozenset[str] = frozenset(
    {
        "",
        # Mass
        "g",
        "kg",
        # Volume
        "ml",
        "cl",
        "l",
        "dl",
        # Spoons (cs = tablespoon, cc = teaspoon)
        "cs",
        "cc",
        # Counts, containers and plant parts
        "piece",
        "clove",
        "sachet",
        "box",
        "slice",
        "stalk",
        "bunch",
        "cube",
        "cm",
    }
)

# Raw variants seen on the cards -> canonical unit
UNIT_NORMALIZATION: dict[str, str] = {
    # Tablespoons
    "tablespoon": "cs",
    "tablespoons": "cs",
    "tbsp": "cs",
    "tbs": "cs",
    "spoonful": "cs",
    "spoon": "cs",
    "cuillère": "cs",
    "cuillère à soupe": "cs",
    "cuillères à soupe": "cs",
    "c. à soupe": "cs",
    "c.à.s": "cs",
    # Teaspoons
    "teaspoon": "cc",
    "teaspoons": "cc",
    "tsp": "cc",
    "cuillère à café": "cc",
    "cuillères à café": "cc",
    "c. à café": "cc",
    "c.à.c": "cc",
    # Mass and volume spellings
    "gram": "g",
    "grams": "g",
    "gr": "g",
    "kilogram": "kg",
    "kilograms": "kg",
    "milliliter": "ml",
    "milliliters": "ml",
    "millilitre": "ml",
    "millilitres": "ml",
    "centiliter": "cl",
    "centiliters": "cl",
    "liter": "l",
    "liters": "l",
    "litre": "l",
    "litres": "l",
    "L": "l",
    "deciliter": "dl",
    "deciliters": "dl",
    # Pieces
    "pieces": "piece",
    "piece(s)": "piece",
    "pc": "piece",
    "pcs": "piece",
    "unit": "piece",
    "units": "piece",
    "pièce": "piece",
    "pièces": "piece",
    "pièce(s)": "piece",
    "unité": "piece",
    "unités": "piece",
    # Containers
    "sachets": "sachet",
    "sachet(s)": "sachet",
    "packet": "sachet",
    "packets": "sachet",
    "paquet": "sachet",
    "paquets": "sachet",
    "boxes": "box",
    "can": "box",
    "cans": "box",
    "jar": "box",
    "jars": "box",
    "tin": "box",
    "boîte": "box",
    "boîtes": "box",
    "conserve": "box",
    "pot": "box",
    "pots": "box",
    "flacon": "box",
    "barquette": "box",
    # Plant parts
    "cloves": "clove",
    "gousse": "clove",
    "gousses": "clove",
    "slices": "slice",
    "tranche": "slice",
    "tranches": "slice",
    "stalks": "stalk",
    "stem": "stalk",
    "stems": "stalk",
    "sprig": "stalk",
    "sprigs": "stalk",
    "leaf": "stalk",
    "leaves": "stalk",
    "tige": "stalk",
    "tiges": "stalk",
    "branche": "stalk",
    "branches": "stalk",
    "feuille": "stalk",
    "feuilles": "stalk",
    "bunches": "bunch",
    "botte": "bunch",
    "bottes": "bunch",
    "cubes": "cube",
    # Dosed to taste: no unit
    "to taste": "",
    "as needed": "",
    "selon votre goût": "",
    "à doser": "",
}


# =============================================================================
# Normalizer
# =============================================================================


class UnitNormalizer:
    """
    Maps raw unit strings to the canonical unit vocabulary.

    Instances hold only immutable configuration and are safe to share
    across recipes.
    """

    def __init__(
        self,
        canonical_units: Iterable[str] = CANONICAL_UNITS,
        table: Mapping[str, str] = UNIT_NORMALIZATION,
    ):
        self.canonical_units = frozenset(canonical_units)
        self.table = dict(table)

        unreachable = {v for v in self.table.values() if v not in self.canonical_units}
        if unreachable:
            raise ValueError(f"Normalization targets are not canonical units: {sorted(unreachable)}")

        shadowed = {k for k, v in self.table.items() if k in self.canonical_units and k != v}
        if shadowed:
            raise ValueError(f"Canonical units cannot be remapped: {sorted(shadowed)}")

    def normalize(self, unit: Any) -> str:
        """
        Normalize a unit to its canonical form.

        Non-string input (None included) normalizes to "". Unknown units are
        returned trimmed but otherwise unchanged.
        """
        if not isinstance(unit, str):
            return ""

        trimmed = unit.strip()

        if trimmed in self.table:
            return self.table[trimmed]

        return trimmed

    def is_valid_unit(self, unit: Any) -> bool:
        """Check whether a unit normalizes into the canonical vocabulary."""
        return self.normalize(unit) in self.canonical_units


default_normalizer = UnitNormalizer()


def normalize_unit(unit: Any) -> str:
    """Normalize a unit with the default vocabulary."""
    return default_normalizer.normalize(unit)


def is_valid_unit(unit: Any) -> bool:
    """Check a unit against the default vocabulary."""
    return default_normalizer.is_valid_unit(unit)
