"""
Identification engine adapter.

Sends the ordered capture payloads, plus the current catalog snapshot when
one exists, to a vision model and validates its structured answer.
"""
import json
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from loguru import logger
from pydantic import ValidationError as SchemaValidationError

from partscan.core.config import settings
from partscan.core.exceptions import EngineError
from partscan.models.schemas import CatalogItem, IdentificationResult

IDENTIFY_PROMPT = (
    "Analyze these images of an automotive part taken from different angles. "
    "Identify the part and provide a list of matches including part number, name, "
    "station location, specific vehicle model, and color. Return ONLY the top matches "
    "that have at least {threshold:g}% confidence. Be precise and technical."
)

CATALOG_PROMPT = (
    "\n\nIMPORTANT: Use this reference catalog to verify the Part Number, Name, and Station "
    "location. Even if the catalog doesn't list the model or color, identify those from "
    "the visual data:\n{catalog}"
)

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "parts": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "partNumber": {"type": "STRING"},
                    "partName": {"type": "STRING"},
                    "station": {"type": "STRING"},
                    "model": {"type": "STRING"},
                    "color": {"type": "STRING"},
                    "matchPercentage": {"type": "NUMBER"},
                    "description": {"type": "STRING"},
                    "category": {"type": "STRING"},
                },
                "required": ["partNumber", "partName", "station", "model", "color", "matchPercentage"],
            },
        },
        "summary": {"type": "STRING"},
    },
    "required": ["parts", "summary"],
}


def build_prompt(catalog: Optional[Sequence[CatalogItem]], threshold: float = None) -> str:
    """Identification instructions, with the catalog appended when non-empty."""
    prompt = IDENTIFY_PROMPT.format(threshold=settings.MATCH_THRESHOLD if threshold is None else threshold)
    if catalog:
        rows = [item.model_dump(by_alias=True) for item in catalog]
        prompt += CATALOG_PROMPT.format(catalog=json.dumps(rows, ensure_ascii=False))
    return prompt


def parse_result(text: Optional[str]) -> IdentificationResult:
    """
    Validate the engine's raw JSON answer.

    Raises:
        EngineError: On an empty, non-JSON or off-schema answer
    """
    if not text or not text.strip():
        raise EngineError("AI processing failed: no response from AI")
    try:
        return IdentificationResult.model_validate(json.loads(text.strip()))
    except json.JSONDecodeError as e:
        logger.error(f"Engine returned non-JSON output: {e}")
        raise EngineError("AI processing failed: malformed response") from e
    except SchemaValidationError as e:
        logger.error(f"Engine returned off-schema output: {e}")
        raise EngineError("AI processing failed: malformed response") from e


class IdentificationEngine(ABC):
    """Collaborator that turns capture payloads into ranked part matches."""

    @abstractmethod
    async def identify(
        self,
        images: Sequence[bytes],
        catalog: Optional[Sequence[CatalogItem]] = None,
    ) -> IdentificationResult:
        """Identify the part shown in ``images``. Raises ``EngineError``."""


class GeminiIdentificationEngine(IdentificationEngine):
    """Gemini backed engine using structured JSON output."""

    def __init__(self, api_key: str = None, model: str = None, client=None):
        self.model = model or settings.GEMINI_MODEL
        self._api_key = api_key or settings.GEMINI_API_KEY
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from google import genai
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def _build_contents(self, images: Sequence[bytes], catalog: Optional[Sequence[CatalogItem]]) -> list:
        from google.genai import types

        contents = [types.Part.from_bytes(data=img, mime_type="image/jpeg") for img in images]
        contents.append(build_prompt(catalog))
        return contents

    async def identify(
        self,
        images: Sequence[bytes],
        catalog: Optional[Sequence[CatalogItem]] = None,
    ) -> IdentificationResult:
        from google.genai import types

        logger.info(f"Identifying part from {len(images)} images with {self.model} "
                    f"(catalog rows: {len(catalog or [])})")
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=self._build_contents(images, catalog),
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=RESPONSE_SCHEMA,
                ),
            )
        except Exception as e:
            logger.error(f"Error identifying part: {e}")
            raise EngineError(f"AI processing failed: {e}") from e

        result = parse_result(response.text)
        logger.info(f"Engine returned {len(result.parts)} matches")
        return result
