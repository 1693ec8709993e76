"""JSON-backed store for the consolidated recipe collection."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from recipecards.logging_config import get_logger
from recipecards.recipes.recipe import Recipe, utc_timestamp

logger = get_logger(__name__)


class RecipeRepository:
    """Loads recipe image pairs and reads/writes the consolidated JSON file."""

    IMAGE_EXTENSION = ".jpg"

    def __init__(
        self,
        input_dir: Path | str,
        output_dir: Path | str,
        consolidated_filename: str = "all_recipes.json",
    ):
        self.input_dir = Path(input_dir)
        self.output_dir = Path(output_dir)
        self.consolidated_path = self.output_dir / consolidated_filename

    @property
    def images_dir(self) -> Path:
        """Directory holding the optimized card images."""
        return self.input_dir / "compressed"

    def load_from_images(self) -> list[Recipe]:
        """Create one unextracted recipe per recto/verso image pair."""
        pairs = self.group_image_pairs(self.list_images())
        logger.info(f"Found {len(pairs)} image pairs in {self.images_dir}")

        return [
            Recipe.from_image_paths(f"{index:03d}", str(recto), str(verso))
            for index, (recto, verso) in enumerate(pairs, start=1)
        ]

    def list_images(self) -> list[Path]:
        """List card images in name order."""
        if not self.images_dir.is_dir():
            return []
        return sorted(
            path
            for path in self.images_dir.iterdir()
            if path.is_file() and path.suffix.lower() == self.IMAGE_EXTENSION
        )

    @staticmethod
    def group_image_pairs(images: list[Path]) -> list[tuple[Path, Path]]:
        """Pair consecutive images as (recto, verso); a trailing odd image is ignored."""
        ordered = sorted(images)
        if len(ordered) % 2:
            logger.warning(f"Ignoring unpaired image: {ordered[-1].name}")
        return [(ordered[i], ordered[i + 1]) for i in range(0, len(ordered) - 1, 2)]

    def load_existing_recipes(self) -> list[Recipe]:
        """Load every recipe from the consolidated file (empty if it does not exist)."""
        if not self.consolidated_path.exists():
            logger.info(f"No consolidated file at {self.consolidated_path}")
            return []

        with self.consolidated_path.open(encoding="utf-8") as f:
            data = json.load(f)

        recipes = []
        for i, entry in enumerate(data.get("recipes") or [], start=1):
            entry = dict(entry)
            entry["id"] = entry.get("id") or f"{i:03d}"
            recipes.append(Recipe.from_json(entry))

        logger.info(f"Loaded {len(recipes)} existing recipes from consolidated file")
        return recipes

    def save_recipe(self, recipe: Recipe) -> Path:
        """Insert or replace a single recipe in the consolidated file."""
        return self.save_recipes([recipe])

    def save_recipes(self, recipes: list[Recipe]) -> Path:
        """Insert or replace recipes by id, keeping existing order."""
        merged = {existing.id: existing for existing in self.load_existing_recipes()}
        for recipe in recipes:
            merged[recipe.id] = recipe

        logger.info(f"Batch saving {len(recipes)} recipes")
        return self.save_all_recipes(list(merged.values()))

    def save_all_recipes(self, recipes: list[Recipe], stats: dict[str, Any] | None = None) -> Path:
        """Replace the consolidated file with the given recipes."""
        data = {
            "metadata": {
                "totalRecipes": len(recipes),
                "generatedAt": utc_timestamp(),
                **(stats or {}),
            },
            "recipes": [recipe.to_json() for recipe in recipes],
        }

        write_json_atomic(self.consolidated_path, data)
        logger.info(f"Saved {len(recipes)} recipes to consolidated file: {self.consolidated_path}")
        return self.consolidated_path


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON through a temporary file so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
