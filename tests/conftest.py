"""Pytest configuration and shared fixtures."""

import pytest

from recipecards.config import Settings
from recipecards.quality.gate import QualityFlags, RecipeQualityGate
from recipecards.recipes.repository import RecipeRepository

# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow running")


# =============================================================================
# Recipe Fixtures
# =============================================================================


@pytest.fixture
def clean_ingredients():
    """Ingredients that already use the canonical vocabulary."""
    return [
        {"name": "garlic", "quantity": {"value": 2, "unit": "clove"}},
        {"name": "flour", "quantity": {"value": 250, "unit": "g"}},
        {"name": "olive oil", "quantity": {"value": 1, "unit": "cs"}},
        {"name": "salt", "quantity": {"value": None, "unit": ""}},
    ]


@pytest.fixture
def raw_recipe():
    """A freshly extracted recipe with raw units and one defect."""
    return {
        "title": "Garlic chicken",
        "ingredients": [
            {"name": "garlic", "quantity": {"value": 2, "unit": "cloves"}},
            {"name": "chicken breast", "quantity": {"value": 2, "unit": "pieces"}},
            {"name": "olive oil", "quantity": {"value": 1, "unit": " tablespoon "}},
            {"name": "salt", "quantity": {"value": None, "unit": "pinch"}},
        ],
        "instructions": ["Crush the garlic.", "Sear the chicken."],
    }


@pytest.fixture
def card_json():
    """A recipe as stored in the consolidated file."""
    return {
        "id": "001",
        "title": "Garlic chicken",
        "subtitle": "with roasted potatoes",
        "duration": "35 min",
        "difficulty": "Easy",
        "servings": "2",
        "ingredients": [
            {"name": "garlic", "quantity": {"value": 2, "unit": "clove"}},
            {"name": "salt", "quantity": {"value": None, "unit": "pinch"}},
        ],
        "steps": [{"text": "Crush the garlic."}, {"text": "Sear the chicken."}],
        "nutrition": {"calories": "650 kcal"},
        "allergens": ["milk"],
        "tips": [],
        "tags": ["quick"],
        "image": "",
        "source": "Extracted",
        "metadata": {
            "originalFiles": {"recto": "cards/001.jpg", "verso": "cards/002.jpg"},
            "extracted": True,
            "validated": False,
            "extractedAt": "2026-01-05T10:00:00Z",
            "error": None,
        },
    }


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def enabled_flags():
    """Quality gate enabled, correction disabled."""
    return QualityFlags(enabled=True, validate_ingredients=True, auto_correction=False)


@pytest.fixture
def gate(enabled_flags):
    """Quality gate with the default vocabulary."""
    return RecipeQualityGate(enabled_flags)


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and .env files."""
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        input_dir=tmp_path / "recipes",
        output_dir=tmp_path / "output",
        retry_attempts=2,
        delay_between_requests=0.0,
    )


@pytest.fixture
def repository(settings):
    """Repository rooted in the test's temporary directory."""
    return RecipeRepository(settings.input_dir, settings.output_dir)


@pytest.fixture
def card_images(settings):
    """Two recto/verso pairs of (fake) JPEG images on disk."""
    images_dir = settings.input_dir / "compressed"
    images_dir.mkdir(parents=True)
    paths = []
    for name in ("card_01.jpg", "card_02.jpg", "card_03.jpg", "card_04.jpg"):
        path = images_dir / name
        path.write_bytes(b"\xff\xd8" + name.encode())
        paths.append(path)
    return paths
