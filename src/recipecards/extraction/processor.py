"""Batch pipeline: card images -> extraction -> quality gate -> consolidated store."""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from recipecards.config import Settings, get_settings
from recipecards.errors import CorrectionParseError, ExtractionError
from recipecards.extraction.client import ExtractionClient
from recipecards.logging_config import LoggingContext, get_logger
from recipecards.quality.correction import CorrectionApplier, CorrectionRequestBuilder
from recipecards.quality.gate import RecipeQualityGate
from recipecards.quality.inspector import Defect
from recipecards.recipes.recipe import Recipe
from recipecards.recipes.repository import RecipeRepository

logger = get_logger(__name__)


@dataclass
class ProcessingSummary:
    """Counters for one batch run."""

    total: int = 0
    extracted: int = 0
    failed: int = 0
    passed_quality: int = 0
    with_issues: int = 0
    corrected: int = 0
    correction_failures: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def success_rate(self) -> int:
        """Percentage of attempted recipes that were extracted."""
        if not self.total:
            return 0
        return round(self.extracted / self.total * 100)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total": self.total,
            "extracted": self.extracted,
            "failed": self.failed,
            "passed_quality": self.passed_quality,
            "with_issues": self.with_issues,
            "corrected": self.corrected,
            "correction_failures": self.correction_failures,
            "success_rate": self.success_rate,
            "errors": self.errors,
        }


@dataclass
class QualityOutcome:
    """What the quality stage did to one recipe."""

    issues: list[Defect] = field(default_factory=list)
    corrected: bool = False
    correction_failed: bool = False


class RecipeProcessor:
    """
    Runs recipe cards through extraction and the quality gate.

    Provider calls are bounded by ``max_concurrent`` and spaced by
    ``delay_between_requests``. Each recipe gets at most one correction
    round trip per run; a failed correction keeps the normalized data.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        repository: RecipeRepository | None = None,
        client: ExtractionClient | None = None,
        gate: RecipeQualityGate | None = None,
        builder: CorrectionRequestBuilder | None = None,
        applier: CorrectionApplier | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.repository = repository or RecipeRepository(
            self.settings.input_dir,
            self.settings.output_dir,
            self.settings.consolidated_filename,
        )
        self.client = client
        self.gate = gate or RecipeQualityGate(self.settings.quality_flags())
        self.builder = builder or CorrectionRequestBuilder(self.gate.normalizer.canonical_units)
        self.applier = applier or CorrectionApplier()
        self._sleep = sleep

    # -------------------------------------------------------------------------
    # Batch entry points
    # -------------------------------------------------------------------------

    async def process_all(self) -> ProcessingSummary:
        """
        Extract every card that has not been extracted yet and save the results.

        A client created here is closed when the run ends; an injected client
        is left open for its owner.

        Raises:
            ConfigurationError: If no API key is configured. Nothing is written.
        """
        if self.client is not None:
            return await self._run_batch()

        self.settings.require_api_key()
        async with ExtractionClient(
            api_key=self.settings.openai_api_key,
            model=self.settings.openai_model,
            base_url=self.settings.openai_base_url,
            max_tokens=self.settings.max_tokens,
            correction_max_tokens=self.settings.correction_max_tokens,
            timeout=self.settings.request_timeout,
        ) as client:
            self.client = client
            try:
                return await self._run_batch()
            finally:
                self.client = None

    async def _run_batch(self) -> ProcessingSummary:
        run_id = uuid.uuid4().hex
        with LoggingContext(run_id=run_id):
            recipes = self.collect_recipes()
            pending = [recipe for recipe in recipes if recipe.needs_extraction()]
            summary = ProcessingSummary(total=len(pending))

            if not pending:
                logger.info("No recipes need extraction")
                return summary

            logger.info(f"Extracting {len(pending)} recipes")
            semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrent))

            async def _bounded(position: int, recipe: Recipe) -> None:
                async with semaphore:
                    await self.process_recipe(recipe, summary)
                    if position < len(pending) - 1:
                        await self._sleep(self.settings.delay_between_requests)

            await asyncio.gather(*(_bounded(i, recipe) for i, recipe in enumerate(pending)))

            self.repository.save_recipes(pending)
            logger.info(
                f"Extraction finished: {summary.extracted} succeeded, {summary.failed} failed "
                f"({summary.success_rate}%), {summary.with_issues} with quality issues"
            )
            return summary

    def collect_recipes(self) -> list[Recipe]:
        """Stored recipes plus any image pair that is not stored yet."""
        existing = self.repository.load_existing_recipes()
        known = {recipe.id for recipe in existing}
        new = [recipe for recipe in self.repository.load_from_images() if recipe.id not in known]
        if new:
            logger.info(f"Found {len(new)} new image pairs")
        return existing + new

    def audit_recipes(self, recipes: list[Recipe]) -> ProcessingSummary:
        """Run the quality gate over stored recipes without calling the provider."""
        candidates = [recipe for recipe in recipes if recipe.extracted and not recipe.has_error()]
        summary = ProcessingSummary(total=len(candidates), extracted=len(candidates))

        if not candidates:
            logger.info("No recipes need quality validation")
            return summary

        for recipe in candidates:
            with LoggingContext(recipe_id=recipe.id):
                result = self.gate.validate_recipe(recipe.to_core())
                self._record_quality(recipe, result.normalized_recipe, result.issues)
                self._count_quality(summary, result.issues)
                for issue in result.issues:
                    logger.warning(
                        f"Ingredient {issue.index}: {', '.join(issue.problems)}"
                    )

        logger.info(
            f"Quality audit: {summary.passed_quality} passed, {summary.with_issues} with issues"
        )
        return summary

    # -------------------------------------------------------------------------
    # Single recipe
    # -------------------------------------------------------------------------

    async def process_recipe(self, recipe: Recipe, summary: ProcessingSummary) -> None:
        """Extract one recipe (with retries) and run it through the quality stage."""
        with LoggingContext(recipe_id=recipe.id):
            try:
                recto, verso = self.read_images(recipe)
            except OSError as e:
                logger.error(f"Cannot read images for recipe {recipe.id}: {e}")
                self._fail(recipe, summary, e)
                return

            try:
                data = await self.extract_with_retry(recto, verso)
            except ExtractionError as e:
                logger.error(
                    f"Failed to extract recipe {recipe.id} after "
                    f"{self.settings.retry_attempts} attempts: {e}"
                )
                self._fail(recipe, summary, e)
                return

            recipe.update_from_extraction(data)
            summary.extracted += 1
            logger.info(f'Extracted recipe: "{recipe.title}"')

            try:
                outcome = await self.apply_quality(recipe, recto, verso)
            except Exception:
                logger.exception(f"Quality stage failed for recipe {recipe.id}")
                return
            self._count_quality(summary, outcome.issues)
            if outcome.corrected:
                summary.corrected += 1
            if outcome.correction_failed:
                summary.correction_failures += 1

    async def extract_with_retry(self, recto: bytes, verso: bytes) -> dict[str, Any]:
        """Call the provider up to ``retry_attempts`` times."""
        attempts = max(1, self.settings.retry_attempts)
        last_error: ExtractionError | None = None

        for attempt in range(1, attempts + 1):
            try:
                return await self.client.extract_recipe(recto, verso)
            except ExtractionError as e:
                last_error = e
                if attempt < attempts:
                    logger.warning(f"Attempt {attempt} failed, retrying: {e}")
                    await self._sleep(self.settings.delay_between_requests)

        raise last_error

    async def apply_quality(
        self,
        recipe: Recipe,
        recto: bytes | None = None,
        verso: bytes | None = None,
    ) -> QualityOutcome:
        """
        Normalize and inspect the recipe, correcting it once if enabled.

        The recipe's ingredients are replaced by the normalized (and possibly
        corrected) list; remaining defects are kept in its metadata.
        """
        flags = self.gate.flags
        result = self.gate.validate_recipe(recipe.to_core())
        if not flags.is_active:
            return QualityOutcome()

        normalized = result.normalized_recipe
        issues = result.issues
        outcome = QualityOutcome(issues=issues)

        can_correct = recto is not None and verso is not None and self.client is not None
        if result.needs_correction and flags.auto_correction and can_correct:
            prompt = self.builder.build_request(issues, recipe.title or "")
            try:
                corrections = await self.client.request_corrections(prompt, recto, verso)
                merged = self.applier.apply_corrections(normalized["ingredients"], corrections)
                revalidated = self.gate.validate_recipe(
                    {**normalized, "ingredients": merged.ingredients}
                )
            except (CorrectionParseError, ExtractionError) as e:
                logger.warning(f"Correction failed, keeping normalized data: {e}")
                outcome.correction_failed = True
            except Exception:
                logger.exception("Unexpected error applying corrections, keeping normalized data")
                outcome.correction_failed = True
            else:
                if merged.skipped:
                    logger.warning(f"{len(merged.skipped)} correction(s) could not be applied")
                normalized = revalidated.normalized_recipe
                outcome.issues = revalidated.issues
                outcome.corrected = bool(merged.applied)
                logger.info(
                    f"Applied {len(merged.applied)} correction(s), "
                    f"{len(outcome.issues)} issue(s) remaining"
                )

        self._record_quality(recipe, normalized, outcome.issues)
        return outcome

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def read_images(recipe: Recipe) -> tuple[bytes, bytes]:
        """Read the recto and verso image bytes."""
        if not recipe.recto_path or not recipe.verso_path:
            raise FileNotFoundError(f"Recipe {recipe.id} has no image pair")
        return Path(recipe.recto_path).read_bytes(), Path(recipe.verso_path).read_bytes()

    @staticmethod
    def _fail(recipe: Recipe, summary: ProcessingSummary, error: Exception) -> None:
        recipe.set_error(error)
        summary.failed += 1
        summary.errors.append({"id": recipe.id, "error": str(error)})

    def _record_quality(self, recipe: Recipe, normalized: Any, issues: list[Defect]) -> None:
        if not self.gate.flags.is_active:
            return
        recipe.ingredients = normalized.get("ingredients", recipe.ingredients)
        if issues:
            recipe.metadata["qualityIssues"] = [issue.to_dict() for issue in issues]
            recipe.validated = False
        else:
            recipe.metadata.pop("qualityIssues", None)
            recipe.validated = True

    def _count_quality(self, summary: ProcessingSummary, issues: list[Defect]) -> None:
        if not self.gate.flags.is_active:
            return
        if issues:
            summary.with_issues += 1
        else:
            summary.passed_quality += 1
