"""Recipe records and the consolidated JSON store."""

from recipecards.recipes.recipe import Recipe
from recipecards.recipes.repository import RecipeRepository

__all__ = ["Recipe", "RecipeRepository"]
