"""Vision model client for recipe card extraction and ingredient correction."""

import base64
import json
import re
from typing import Any

import httpx
from pydantic import ValidationError
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from recipecards.config import get_settings
from recipecards.errors import ConfigurationError, CorrectionParseError, ExtractionError
from recipecards.extraction.schemas import CorrectionReply, ExtractedRecipe
from recipecards.logging_config import get_logger
from recipecards.quality.correction import CorrectionPrompt, format_unit_vocabulary

logger = get_logger(__name__)


EXTRACTION_PROMPT = f"""You are analyzing TWO images that show the FRONT and BACK of the SAME recipe card.

IMPORTANT: These are two sides of ONE recipe card - combine ALL information from BOTH images into a SINGLE JSON response.

- Image 1: Front of the card (usually the dish photo and title)
- Image 2: Back of the card (usually ingredients, instructions and nutritional info)

Return ONE JSON object with this shape:

{{
  "title": "Recipe name from the front of the card",
  "cookingTime": "XX min",
  "servings": "X",
  "ingredients": [
    {{
      "name": "ingredient name",
      "quantity": {{"value": 150, "unit": "g"}}
    }}
  ],
  "instructions": [
    "Step 1",
    "Step 2"
  ],
  "nutritionalInfo": {{
    "calories": "XXX kcal",
    "protein": "XX g",
    "carbs": "XX g",
    "fat": "XX g"
  }}
}}

Quantity units must be one of: {format_unit_vocabulary()}.
Use null for a value that is not printed on the card.

CRITICAL: Return EXACTLY ONE JSON object that combines information from BOTH images."""


# =============================================================================
# Response Parsing
# =============================================================================


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence (with optional language tag)."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", cleaned, count=1)
        cleaned = re.sub(r"\s*```$", "", cleaned, count=1)
    return cleaned.strip()


def _field_names(error: ValidationError) -> str:
    return ", ".join(sorted({str(e["loc"][0]) if e["loc"] else "reply" for e in error.errors()}))


def parse_extraction_response(content: str) -> dict[str, Any]:
    """
    Parse the provider's extraction reply.

    Raises:
        ExtractionError: If the reply is not a JSON object with the required fields.
    """
    try:
        data = json.loads(strip_code_fence(content))
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Extraction reply is not valid JSON: {e}", response=content) from e

    try:
        recipe = ExtractedRecipe.model_validate(data)
    except ValidationError as e:
        raise ExtractionError(
            f"Missing or invalid fields in extraction result: {_field_names(e)}",
            response=content,
        ) from e
    return recipe.model_dump(by_alias=True)


def parse_correction_response(content: str) -> list[dict[str, Any]]:
    """
    Parse the provider's correction reply into its corrections list.

    Raises:
        CorrectionParseError: If the reply is not JSON or lacks a "corrections" list.
    """
    try:
        data = json.loads(strip_code_fence(content))
    except json.JSONDecodeError as e:
        raise CorrectionParseError(f"Correction reply is not valid JSON: {e}", content) from e

    try:
        reply = CorrectionReply.model_validate(data)
    except ValidationError as e:
        raise CorrectionParseError("Correction reply has no corrections list", content) from e
    return reply.corrections


def encode_image(image: bytes, media_type: str = "image/jpeg") -> str:
    """Encode image bytes as a data URL."""
    return f"data:{media_type};base64,{base64.b64encode(image).decode('ascii')}"


# =============================================================================
# Client
# =============================================================================


class ExtractionClient:
    """Client for an OpenAI-compatible chat completions API with image input."""

    MAX_RETRIES = 3
    BACKOFF_BASE = 1
    BACKOFF_MAX = 30

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        max_tokens: int | None = None,
        correction_max_tokens: int | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.openai_api_key
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY is required")
        self.model = model or settings.openai_model
        self.base_url = (base_url or settings.openai_base_url).rstrip("/")
        self.max_tokens = max_tokens or settings.max_tokens
        self.correction_max_tokens = correction_max_tokens or settings.correction_max_tokens
        self.timeout = timeout or settings.request_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _chat(self, messages: list[dict[str, Any]], max_tokens: int) -> str:
        """Send a chat completion request and return the reply text."""
        url = f"{self.base_url}/chat/completions"
        payload = {"model": self.model, "max_tokens": max_tokens, "messages": messages}
        client = await self._get_client()

        @retry(
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
            stop=stop_after_attempt(self.MAX_RETRIES),
            wait=wait_exponential(multiplier=self.BACKOFF_BASE, max=self.BACKOFF_MAX),
            reraise=True,
        )
        async def _do_request() -> httpx.Response:
            return await client.post(url, json=payload)

        try:
            response = await _do_request()
        except (RetryError, httpx.TransportError) as e:
            logger.error(f"Request failed after {self.MAX_RETRIES} retries: {url}")
            raise ExtractionError(
                f"Request failed after {self.MAX_RETRIES} retries",
                response=str(e),
            ) from e

        if response.status_code >= 400:
            error_detail = response.text[:500] if response.text else "No details"
            logger.error(f"API error {response.status_code} for {url}: {error_detail}")
            raise ExtractionError(
                f"API request failed with status {response.status_code}",
                status_code=response.status_code,
                response=error_detail,
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExtractionError(
                "Unexpected chat completion payload", response=response.text[:500]
            ) from e

        if not content:
            raise ExtractionError("Empty reply from the extraction provider")
        return content

    @staticmethod
    def _user_message(text: str, recto: bytes, verso: bytes) -> dict[str, Any]:
        return {
            "role": "user",
            "content": [
                {"type": "text", "text": text},
                *(
                    {"type": "image_url", "image_url": {"url": encode_image(image), "detail": "high"}}
                    for image in (recto, verso)
                ),
            ],
        }

    async def extract_recipe(self, recto: bytes, verso: bytes) -> dict[str, Any]:
        """
        Extract a recipe from the two sides of a card.

        Args:
            recto: Front image bytes (JPEG).
            verso: Back image bytes (JPEG).

        Returns:
            The parsed recipe JSON (title, ingredients, instructions, ...).
        """
        content = await self._chat(
            [self._user_message(EXTRACTION_PROMPT, recto, verso)],
            self.max_tokens,
        )
        return parse_extraction_response(content)

    async def request_corrections(
        self,
        prompt: CorrectionPrompt,
        recto: bytes,
        verso: bytes,
    ) -> list[dict[str, Any]]:
        """
        Ask the provider to re-derive the defective ingredients only.

        Returns:
            The parsed corrections list.

        Raises:
            CorrectionParseError: If the reply cannot be parsed.
        """
        logger.info(f"Requesting corrections for {len(prompt.targets)} ingredient(s)")
        content = await self._chat(
            [
                {"role": "system", "content": prompt.system_prompt},
                self._user_message(prompt.text, recto, verso),
            ],
            self.correction_max_tokens,
        )
        return parse_correction_response(content)

    async def __aenter__(self) -> "ExtractionClient":
        """Async context manager entry."""
        await self._get_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()
