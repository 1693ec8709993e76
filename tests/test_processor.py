"""Tests for the batch extraction pipeline."""

import copy
import json

import pytest

from recipecards.errors import ConfigurationError, CorrectionParseError, ExtractionError
from recipecards.extraction.processor import ProcessingSummary, RecipeProcessor
from recipecards.quality.gate import QualityFlags, RecipeQualityGate
from recipecards.recipes.recipe import Recipe


class FakeClient:
    """In-memory stand-in for ExtractionClient."""

    def __init__(self, extraction, corrections=None, failures=0, correction_error=None):
        self.extraction = extraction
        self.corrections = corrections or []
        self.failures = failures
        self.correction_error = correction_error
        self.extract_calls = 0
        self.prompts = []

    async def extract_recipe(self, recto, verso):
        self.extract_calls += 1
        if self.failures:
            self.failures -= 1
            raise ExtractionError("provider unavailable", status_code=503)
        return copy.deepcopy(self.extraction)

    async def request_corrections(self, prompt, recto, verso):
        self.prompts.append(prompt)
        if self.correction_error:
            raise self.correction_error
        return copy.deepcopy(self.corrections)


@pytest.fixture
def delays():
    return []


@pytest.fixture
def fake_sleep(delays):
    async def _sleep(seconds):
        delays.append(seconds)

    return _sleep


def make_processor(settings, repository, client, sleep, flags=None):
    return RecipeProcessor(
        settings=settings,
        repository=repository,
        client=client,
        gate=RecipeQualityGate(flags or settings.quality_flags()),
        sleep=sleep,
    )


def stored(repository):
    with repository.consolidated_path.open(encoding="utf-8") as f:
        return {entry["id"]: entry for entry in json.load(f)["recipes"]}


class TestProcessingSummary:
    """Tests for ProcessingSummary."""

    def test_success_rate(self):
        """Test the rate is a rounded percentage."""
        assert ProcessingSummary(total=3, extracted=2).success_rate == 67
        assert ProcessingSummary().success_rate == 0

    def test_to_dict(self):
        """Test serialization includes the derived rate."""
        data = ProcessingSummary(total=2, extracted=2, passed_quality=1, with_issues=1).to_dict()
        assert data["success_rate"] == 100
        assert data["with_issues"] == 1
        assert data["errors"] == []


class TestProcessAll:
    """Tests for RecipeProcessor.process_all."""

    @pytest.mark.asyncio
    async def test_extracts_and_saves(
        self, settings, repository, card_images, raw_recipe, fake_sleep, delays
    ):
        """Test every pair is extracted, normalized and stored."""
        client = FakeClient(raw_recipe)
        processor = make_processor(settings, repository, client, fake_sleep)

        summary = await processor.process_all()

        assert summary.total == 2
        assert summary.extracted == 2
        assert summary.failed == 0
        assert summary.with_issues == 2
        assert client.extract_calls == 2
        assert delays == [0.0]

        recipes = stored(repository)
        assert set(recipes) == {"001", "002"}
        entry = recipes["001"]
        assert entry["title"] == "Garlic chicken"
        assert [i["quantity"]["unit"] for i in entry["ingredients"]] == [
            "clove",
            "piece",
            "cs",
            "pinch",
        ]
        assert entry["metadata"]["extracted"] is True
        assert entry["metadata"]["validated"] is False
        assert entry["metadata"]["qualityIssues"][0]["index"] == 3
        assert entry["steps"] == [{"text": "Crush the garlic."}, {"text": "Sear the chicken."}]

    @pytest.mark.asyncio
    async def test_clean_recipe_is_validated(
        self, settings, repository, card_images, clean_ingredients, fake_sleep
    ):
        """Test a recipe without defects is marked validated."""
        extraction = {"title": "Bread", "ingredients": clean_ingredients, "instructions": ["Bake."]}
        processor = make_processor(settings, repository, FakeClient(extraction), fake_sleep)

        summary = await processor.process_all()

        assert summary.passed_quality == 2
        entry = stored(repository)["002"]
        assert entry["metadata"]["validated"] is True
        assert "qualityIssues" not in entry["metadata"]

    @pytest.mark.asyncio
    async def test_skips_extracted_recipes(
        self, settings, repository, card_images, card_json, raw_recipe, fake_sleep
    ):
        """Test recipes already in the store are not sent again."""
        repository.save_recipes([Recipe.from_json(card_json)])
        client = FakeClient(raw_recipe)
        processor = make_processor(settings, repository, client, fake_sleep)

        summary = await processor.process_all()

        assert summary.total == 1
        assert client.extract_calls == 1
        recipes = stored(repository)
        assert recipes["001"]["subtitle"] == "with roasted potatoes"
        assert recipes["002"]["metadata"]["extracted"] is True

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, settings, repository, raw_recipe, fake_sleep):
        """Test an empty input directory writes nothing."""
        processor = make_processor(settings, repository, FakeClient(raw_recipe), fake_sleep)

        summary = await processor.process_all()

        assert summary.total == 0
        assert not repository.consolidated_path.exists()

    @pytest.mark.asyncio
    async def test_missing_api_key(self, settings, repository, card_images, fake_sleep):
        """Test a missing key fails before anything is written."""
        settings.openai_api_key = ""
        processor = RecipeProcessor(settings=settings, repository=repository, sleep=fake_sleep)

        with pytest.raises(ConfigurationError):
            await processor.process_all()

        assert not repository.consolidated_path.exists()

    @pytest.mark.asyncio
    async def test_retry_then_succeed(
        self, settings, repository, card_images, raw_recipe, fake_sleep
    ):
        """Test a transient failure is retried."""
        client = FakeClient(raw_recipe, failures=1)
        processor = make_processor(settings, repository, client, fake_sleep)

        summary = await processor.process_all()

        assert summary.extracted == 2
        assert summary.failed == 0
        assert client.extract_calls == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_record_error(
        self, settings, repository, card_images, raw_recipe, fake_sleep
    ):
        """Test failures are stored on the recipe and counted."""
        client = FakeClient(raw_recipe, failures=10)
        processor = make_processor(settings, repository, client, fake_sleep)

        summary = await processor.process_all()

        assert summary.failed == 2
        assert summary.extracted == 0
        assert client.extract_calls == 4
        assert [e["id"] for e in summary.errors] == ["001", "002"]

        entry = stored(repository)["001"]
        assert entry["metadata"]["extracted"] is False
        assert entry["metadata"]["error"]["message"] == "provider unavailable"

        # Failed recipes are not retried on the next run
        again = await processor.process_all()
        assert again.total == 0


class TestQualityStage:
    """Tests for the quality gate and correction round trip in the pipeline."""

    @pytest.mark.asyncio
    async def test_correction_applied(
        self, settings, repository, card_images, raw_recipe, fake_sleep
    ):
        """Test a successful correction clears the defect."""
        client = FakeClient(
            raw_recipe, corrections=[{"index": 3, "quantity": {"value": 1, "unit": ""}}]
        )
        processor = make_processor(
            settings, repository, client, fake_sleep, QualityFlags(auto_correction=True)
        )

        summary = await processor.process_all()

        assert summary.corrected == 2
        assert summary.passed_quality == 2
        assert summary.with_issues == 0
        assert client.prompts[0].indices == [3]
        assert 'Recipe: "Garlic chicken"' in client.prompts[0].text

        entry = stored(repository)["001"]
        assert entry["ingredients"][3] == {"name": "salt", "quantity": {"value": 1, "unit": ""}}
        assert entry["metadata"]["validated"] is True

    @pytest.mark.asyncio
    async def test_correction_failure_keeps_normalized_data(
        self, settings, repository, card_images, raw_recipe, fake_sleep
    ):
        """Test an unparseable correction does not fail the recipe."""
        client = FakeClient(raw_recipe, correction_error=CorrectionParseError("bad json", "{"))
        processor = make_processor(
            settings, repository, client, fake_sleep, QualityFlags(auto_correction=True)
        )

        summary = await processor.process_all()

        assert summary.extracted == 2
        assert summary.correction_failures == 2
        assert summary.corrected == 0
        entry = stored(repository)["001"]
        assert entry["ingredients"][0]["quantity"]["unit"] == "clove"
        assert entry["metadata"]["qualityIssues"][0]["index"] == 3

    @pytest.mark.asyncio
    async def test_no_correction_when_disabled(
        self, settings, repository, card_images, raw_recipe, fake_sleep
    ):
        """Test defects are only recorded when auto correction is off."""
        client = FakeClient(raw_recipe)
        processor = make_processor(settings, repository, client, fake_sleep)

        await processor.process_all()

        assert client.prompts == []

    @pytest.mark.asyncio
    async def test_gate_disabled(self, settings, repository, card_images, raw_recipe, fake_sleep):
        """Test a disabled gate stores the extraction as returned."""
        processor = make_processor(
            settings, repository, FakeClient(raw_recipe), fake_sleep, QualityFlags(enabled=False)
        )

        summary = await processor.process_all()

        assert summary.passed_quality == 0
        assert summary.with_issues == 0
        entry = stored(repository)["001"]
        assert entry["ingredients"][0]["quantity"]["unit"] == "cloves"
        assert "qualityIssues" not in entry["metadata"]

    @pytest.mark.asyncio
    async def test_unreadable_images(self, settings, repository, raw_recipe, fake_sleep, tmp_path):
        """Test missing image files fail the recipe without calling the provider."""
        client = FakeClient(raw_recipe)
        processor = make_processor(settings, repository, client, fake_sleep)
        recipe = Recipe.from_image_paths(
            "009", str(tmp_path / "missing_1.jpg"), str(tmp_path / "missing_2.jpg")
        )
        summary = ProcessingSummary(total=1)

        await processor.process_recipe(recipe, summary)

        assert summary.failed == 1
        assert recipe.has_error()
        assert client.extract_calls == 0


class TestAuditRecipes:
    """Tests for RecipeProcessor.audit_recipes."""

    def test_audit(self, settings, repository, card_json, fake_sleep):
        """Test stored recipes are normalized and flagged without the provider."""
        checked = Recipe.from_json(card_json)
        failed = Recipe(id="002", error={"message": "boom", "timestamp": "t"})
        pending = Recipe(id="003")
        processor = make_processor(settings, repository, None, fake_sleep)

        summary = processor.audit_recipes([checked, failed, pending])

        assert summary.total == 1
        assert summary.with_issues == 1
        assert checked.validated is False
        assert checked.metadata["qualityIssues"][0]["index"] == 1
        assert "qualityIssues" not in failed.metadata

    def test_audit_clears_resolved_issues(self, settings, repository, card_json, fake_sleep):
        """Test a recipe that now passes loses its recorded issues."""
        card_json["ingredients"][1]["quantity"] = {"value": None, "unit": "to taste"}
        card_json["metadata"]["qualityIssues"] = [{"index": 1, "problems": ["old"]}]
        recipe = Recipe.from_json(card_json)
        processor = make_processor(settings, repository, None, fake_sleep)

        summary = processor.audit_recipes([recipe])

        assert summary.passed_quality == 1
        assert recipe.validated is True
        assert recipe.ingredients[1]["quantity"]["unit"] == ""
        assert "qualityIssues" not in recipe.metadata


class ExplodingApplier:
    """Applier that fails on any input."""

    def apply_corrections(self, original, corrections):
        raise RuntimeError("merge failed")


class TestCorrectionFailures:
    """Tests that correction problems never cost the batch."""

    @pytest.mark.asyncio
    async def test_name_fix_on_malformed_quantity(
        self, settings, repository, card_images, fake_sleep
    ):
        """Test a name-only correction on a string quantity is stored."""
        extraction = {
            "title": "Syrup",
            "ingredients": [{"name": "", "quantity": "2 g"}],
            "instructions": ["Boil."],
        }
        client = FakeClient(extraction, corrections=[{"index": 0, "name": "sugar"}])
        processor = make_processor(
            settings, repository, client, fake_sleep, QualityFlags(auto_correction=True)
        )

        summary = await processor.process_all()

        assert summary.extracted == 2
        assert summary.corrected == 2
        entry = stored(repository)["001"]
        assert entry["ingredients"] == [{"name": "sugar", "quantity": "2 g"}]
        assert entry["metadata"]["qualityIssues"][0]["problems"] == ["quantity object missing"]

    @pytest.mark.asyncio
    async def test_unexpected_merge_error_keeps_batch(
        self, settings, repository, card_images, raw_recipe, fake_sleep
    ):
        """Test an unexpected merge error keeps the normalized data and saves the batch."""
        client = FakeClient(raw_recipe, corrections=[{"index": 3, "quantity": {"value": 1}}])
        processor = RecipeProcessor(
            settings=settings,
            repository=repository,
            client=client,
            gate=RecipeQualityGate(QualityFlags(auto_correction=True)),
            applier=ExplodingApplier(),
            sleep=fake_sleep,
        )

        summary = await processor.process_all()

        assert summary.extracted == 2
        assert summary.correction_failures == 2
        assert summary.corrected == 0
        recipes = stored(repository)
        assert set(recipes) == {"001", "002"}
        entry = recipes["002"]
        assert entry["ingredients"][0]["quantity"]["unit"] == "clove"
        assert entry["metadata"]["qualityIssues"][0]["index"] == 3


class TestClientLifecycle:
    """Tests for the client created by the processor itself."""

    @pytest.mark.asyncio
    async def test_own_client_is_closed(
        self, monkeypatch, settings, repository, card_images, raw_recipe, fake_sleep
    ):
        """Test a client built from settings is closed when the run ends."""
        created = []

        class ClosingClient(FakeClient):
            def __init__(self, **kwargs):
                super().__init__(raw_recipe)
                self.kwargs = kwargs
                self.closed = False
                created.append(self)

            async def __aenter__(self):
                return self

            async def __aexit__(self, *args):
                self.closed = True

        monkeypatch.setattr("recipecards.extraction.processor.ExtractionClient", ClosingClient)
        processor = RecipeProcessor(settings=settings, repository=repository, sleep=fake_sleep)

        summary = await processor.process_all()

        assert summary.extracted == 2
        assert len(created) == 1
        assert created[0].closed is True
        assert created[0].kwargs["api_key"] == "test-key"
        assert processor.client is None

    @pytest.mark.asyncio
    async def test_injected_client_is_left_open(
        self, settings, repository, card_images, raw_recipe, fake_sleep
    ):
        """Test an injected client stays with its owner."""
        client = FakeClient(raw_recipe)
        processor = make_processor(settings, repository, client, fake_sleep)

        await processor.process_all()

        assert processor.client is client
