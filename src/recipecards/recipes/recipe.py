"""Recipe record and conversion between stored formats."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Recipe:
    """A recipe card: source images, extracted data and processing status."""

    id: str
    recto_path: str | None = None
    verso_path: str | None = None

    # Recipe data
    title: str | None = None
    subtitle: str | None = None
    cooking_time: str | None = None
    difficulty: str | None = None
    servings: Any = None
    ingredients: list[Any] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    nutritional_info: dict[str, Any] = field(default_factory=dict)
    allergens: list[str] = field(default_factory=list)
    tips: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    image: str = ""
    source: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    # Status tracking
    extracted: bool = False
    validated: bool = False
    extracted_at: str | None = None
    error: dict[str, str] | None = None

    @classmethod
    def from_image_paths(cls, recipe_id: str, recto_path: str, verso_path: str) -> "Recipe":
        """Create an unextracted recipe for a recto/verso image pair."""
        return cls(id=recipe_id, recto_path=recto_path, verso_path=verso_path)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Recipe":
        """
        Build a recipe from any of the stored JSON shapes.

        Handles:
        - the card format written by ``to_json`` ("steps", "duration", "nutrition")
        - records already using the in-memory field names
        - legacy records with "instructions" and "nutritionalInfo"
        """
        recipe = cls(
            id=str(data.get("id", "")),
            recto_path=data.get("rectoPath"),
            verso_path=data.get("versoPath"),
        )

        if "steps" in data:
            metadata = dict(data.get("metadata") or {})
            original_files = metadata.get("originalFiles") or {}
            recipe.recto_path = recipe.recto_path or original_files.get("recto")
            recipe.verso_path = recipe.verso_path or original_files.get("verso")

            recipe.title = data.get("title") or "Unknown Recipe"
            recipe.subtitle = data.get("subtitle")
            recipe.cooking_time = data.get("duration")
            recipe.difficulty = data.get("difficulty")
            recipe.servings = data.get("servings")
            recipe.ingredients = data.get("ingredients") or []
            recipe.instructions = [
                step.get("text", "") if isinstance(step, dict) else str(step)
                for step in data.get("steps") or []
            ]
            recipe.nutritional_info = data.get("nutrition") or {}
            recipe.allergens = data.get("allergens") or []
            recipe.tips = data.get("tips") or []
            recipe.tags = data.get("tags") or []
            recipe.image = data.get("image") or ""
            recipe.source = data.get("source")
            recipe.extracted = metadata.pop("extracted", True)
            recipe.validated = metadata.pop("validated", False)
            recipe.extracted_at = metadata.pop("extractedAt", None) or metadata.get(
                "processedAt", utc_timestamp()
            )
            recipe.error = metadata.pop("error", None)
            recipe.metadata = metadata
        elif data.get("title"):
            recipe.title = data.get("title")
            recipe.subtitle = data.get("subtitle")
            recipe.cooking_time = data.get("cookingTime")
            recipe.difficulty = data.get("difficulty")
            recipe.servings = data.get("servings")
            recipe.ingredients = data.get("ingredients") or []
            recipe.instructions = data.get("instructions") or []
            recipe.nutritional_info = data.get("nutritionalInfo") or {}
            recipe.allergens = data.get("allergens") or []
            recipe.tips = data.get("tips") or []
            recipe.tags = data.get("tags") or []
            recipe.image = data.get("image") or ""
            recipe.source = data.get("source")
            recipe.metadata = dict(data.get("metadata") or {})
            recipe.extracted = bool(data.get("extracted", False))
            recipe.validated = bool(data.get("validated", False))
            recipe.extracted_at = data.get("extractedAt")
            recipe.error = data.get("error")
        else:
            recipe.title = "Unknown Recipe"
            recipe.cooking_time = data.get("duration") or data.get("cookingTime")
            recipe.servings = data.get("servings")
            recipe.ingredients = data.get("ingredients") or []
            recipe.instructions = data.get("instructions") or []
            recipe.nutritional_info = data.get("nutritionalInfo") or {}
            recipe.extracted = True
            recipe.extracted_at = utc_timestamp()

        return recipe

    def update_from_extraction(self, data: dict[str, Any]) -> None:
        """Store the fields returned by the extraction provider."""
        self.title = data.get("title")
        self.cooking_time = data.get("cookingTime")
        self.servings = data.get("servings")
        self.ingredients = data.get("ingredients") or []
        self.instructions = data.get("instructions") or []
        self.nutritional_info = data.get("nutritionalInfo") or {}
        self.extracted = True
        self.validated = False
        self.extracted_at = utc_timestamp()
        self.error = None

    def set_error(self, error: BaseException | str) -> None:
        """Record a failed extraction."""
        self.error = {"message": str(error), "timestamp": utc_timestamp()}
        self.extracted = False

    def needs_extraction(self) -> bool:
        """Check if the recipe still has to go through the provider."""
        return not self.extracted and not self.error

    def has_error(self) -> bool:
        """Check if the last extraction failed."""
        return bool(self.error)

    def is_valid(self) -> tuple[bool, list[str]]:
        """Check that the essential recipe sections are present."""
        errors = []
        if not self.title:
            errors.append("Missing title")
        if not self.ingredients:
            errors.append("Missing ingredients")
        if not self.instructions:
            errors.append("Missing instructions")
        return not errors, errors

    def to_core(self) -> dict[str, Any]:
        """The {title, ingredients} view consumed by the quality gate."""
        return {"title": self.title or "", "ingredients": self.ingredients}

    def to_json(self) -> dict[str, Any]:
        """Export in card format for the consolidated store."""
        metadata = dict(self.metadata)

        if not metadata.get("originalFiles") and (self.recto_path or self.verso_path):
            metadata["originalFiles"] = {"recto": self.recto_path, "verso": self.verso_path}
        if metadata.get("originalFiles"):
            metadata.pop("rectoPath", None)
            metadata.pop("versoPath", None)

        metadata["extracted"] = self.extracted
        metadata["validated"] = self.validated
        metadata["extractedAt"] = self.extracted_at
        metadata["error"] = self.error

        return {
            "id": self.id,
            "title": self.title,
            "subtitle": self.subtitle,
            "duration": self.cooking_time,
            "difficulty": self.difficulty,
            "servings": self.servings,
            "ingredients": self.ingredients,
            "steps": [{"text": instruction} for instruction in self.instructions],
            "nutrition": self.nutritional_info,
            "allergens": self.allergens or [],
            "tips": self.tips or [],
            "tags": self.tags or [],
            "image": self.image or "",
            "source": self.source or "Extracted",
            "metadata": metadata,
        }
