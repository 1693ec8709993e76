"""Pydantic schemas for validating provider replies."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExtractedRecipe(BaseModel):
    """Recipe JSON returned by the extraction provider."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: str = Field(min_length=1)
    ingredients: list[Any] = Field(min_length=1)
    instructions: list[Any] = Field(min_length=1)
    cooking_time: Any = Field(default=None, alias="cookingTime")
    servings: Any = None
    nutritional_info: dict[str, Any] | None = Field(default=None, alias="nutritionalInfo")


class CorrectionReply(BaseModel):
    """Correction JSON returned by the provider.

    Entries stay untyped so malformed ones can be skipped individually when merged.
    """

    corrections: list[Any]
