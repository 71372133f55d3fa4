"""
Analysis and comparison providers using Google's Gemini API.

Authentication (checked in priority order):
1. api_key parameter (if provided, uses Google AI Studio)
2. GOOGLE_CLOUD_PROJECT env var (uses Vertex AI with ADC)
3. GEMINI_API_KEY or GOOGLE_API_KEY (uses Google AI Studio)
"""

import logging
import os
from typing import Any

from ..errors import ComparisonError
from ..types import AnalysisResult, FileNode, IMAGE_MIME_PREFIX
from .base import (
    ANALYSIS_SCHEMA,
    COMPARISON_PROMPT,
    MATCH_SCHEMA,
    as_text,
    build_analysis_prompt,
    build_document_text,
    classify_error,
    get_registry,
    image_bytes,
    is_quota_error,
    parse_analysis,
    parse_match,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


def create_gemini_client(api_key: str | None = None):
    """Create a google-genai client from an explicit key or the environment."""
    try:
        from google import genai
    except ImportError:
        raise RuntimeError("Gemini providers require the 'google-genai' library")

    if api_key:
        return genai.Client(api_key=api_key)

    project = os.environ.get("GOOGLE_CLOUD_PROJECT")
    if project:
        location = os.environ.get("GOOGLE_CLOUD_LOCATION", "us-central1")
        return genai.Client(vertexai=True, project=project, location=location)

    key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
    if not key:
        raise ValueError(
            "Gemini authentication required. Set one of:\n"
            "  GEMINI_API_KEY or GOOGLE_API_KEY (Google AI Studio)\n"
            "  GOOGLE_CLOUD_PROJECT (Vertex AI with application default credentials)"
        )
    return genai.Client(api_key=key)


def to_gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Gemini's Schema type spells JSON types in upper case."""
    out: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type":
            out[key] = value.upper()
        elif key == "properties":
            out[key] = {k: to_gemini_schema(v) for k, v in value.items()}
        elif key == "items":
            out[key] = to_gemini_schema(value)
        else:
            out[key] = value
    return out


def _image_part(node_content: str | bytes, mime_type: str):
    from google.genai import types
    return types.Part.from_bytes(data=image_bytes(node_content), mime_type=mime_type)


class GeminiAnalyzer:
    """
    Document analyzer using Gemini structured JSON output.

    Images are sent inline; text documents are wrapped in document markers
    followed by the analysis prompt.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
    ):
        self.model = model
        self._client = create_gemini_client(api_key)

    def _build_contents(self, name: str, content: str | bytes, mime_type: str) -> list:
        prompt = build_analysis_prompt(name)
        if mime_type.startswith(IMAGE_MIME_PREFIX):
            return [prompt, _image_part(content, mime_type)]
        return [build_document_text(name, as_text(content)), prompt]

    async def analyze(self, name: str, content: str | bytes, mime_type: str) -> AnalysisResult:
        """Analyze a file using Google Gemini."""
        from google.genai import types

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=self._build_contents(name, content, mime_type),
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=to_gemini_schema(ANALYSIS_SCHEMA),
                ),
            )
        except Exception as e:
            logger.warning("Gemini analysis failed for %s: %s", name, e)
            raise classify_error(e) from e
        return parse_analysis(response.text)


class GeminiComparator:
    """Image comparator asking Gemini whether two images share a subject."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
    ):
        self.model = model
        self._client = create_gemini_client(api_key)

    async def _ask(self, image_a: FileNode, image_b: FileNode) -> bool:
        from google.genai import types

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=[
                    COMPARISON_PROMPT,
                    _image_part(image_a.content, image_a.mime_type),
                    _image_part(image_b.content, image_b.mime_type),
                ],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=to_gemini_schema(MATCH_SCHEMA),
                ),
            )
            return parse_match(response.text)
        except Exception as e:
            raise ComparisonError(str(e)) from e

    async def compare(self, image_a: FileNode, image_b: FileNode) -> bool:
        try:
            return await self._ask(image_a, image_b)
        except ComparisonError as e:
            if is_quota_error(e):
                logger.error("Gemini API quota exceeded during image comparison. The comparison will be skipped.")
            else:
                logger.warning("Error comparing %s with %s: %s", image_a.name, image_b.name, e)
            return False


# Register providers
_registry = get_registry()
_registry.register_analyzer("gemini", GeminiAnalyzer)
_registry.register_comparator("gemini", GeminiComparator)
