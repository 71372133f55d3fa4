"""
Analysis and comparison providers using the Anthropic and OpenAI APIs,
plus offline providers for use without any API key.
"""

import base64
import logging
import os
import re

from ..errors import ComparisonError
from ..types import AnalysisResult, FileNode, IMAGE_MIME_PREFIX, TagSet
from .base import (
    ANALYSIS_SCHEMA_HINT,
    COMPARISON_PROMPT,
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

ANALYSIS_SYSTEM_PROMPT = (
    "You analyze documents and images for a file organizer. "
    + ANALYSIS_SCHEMA_HINT
)

COMPARISON_SYSTEM_PROMPT = (
    'You compare images. Respond with only a JSON object: {"match": true} or {"match": false}.'
)


def _b64(content: str | bytes) -> str:
    return base64.b64encode(image_bytes(content)).decode("ascii")


def _anthropic_key(api_key: str | None) -> str:
    # Explicit parameter, then API key from console.anthropic.com,
    # then OAuth token from 'claude setup-token'
    key = (
        api_key or
        os.environ.get("ANTHROPIC_API_KEY") or
        os.environ.get("CLAUDE_CODE_OAUTH_TOKEN")
    )
    if not key:
        raise ValueError(
            "Anthropic authentication required. Set one of:\n"
            "  ANTHROPIC_API_KEY (API key from console.anthropic.com)\n"
            "  CLAUDE_CODE_OAUTH_TOKEN (OAuth token from 'claude setup-token')"
        )
    return key


def _openai_key(api_key: str | None) -> str:
    key = api_key or os.environ.get("TAGTREE_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
    if not key:
        raise ValueError(
            "OpenAI API key required. Set TAGTREE_OPENAI_API_KEY or OPENAI_API_KEY"
        )
    return key


# -----------------------------------------------------------------------------
# Anthropic
# -----------------------------------------------------------------------------

class _AnthropicBase:
    def __init__(
        self,
        model: str = "claude-haiku-4-5-20251001",
        api_key: str | None = None,
        max_tokens: int = 1024,
    ):
        try:
            from anthropic import AsyncAnthropic
        except ImportError:
            raise RuntimeError(f"{type(self).__name__} requires 'anthropic' library")

        self.model = model
        self.max_tokens = max_tokens
        self._client = AsyncAnthropic(api_key=_anthropic_key(api_key))

    @staticmethod
    def _image_block(node_content: str | bytes, mime_type: str) -> dict:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": mime_type, "data": _b64(node_content)},
        }

    async def _complete(self, system: str, blocks: list[dict]) -> str | None:
        # The Anthropic SDK retries rate limits with backoff before raising
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=system,
            messages=[{"role": "user", "content": blocks}],
        )
        if response.content:
            return response.content[0].text
        return None


class AnthropicAnalyzer(_AnthropicBase):
    """
    Document analyzer using Anthropic's Claude API.

    Authentication (checked in priority order):
    1. api_key parameter (if provided)
    2. ANTHROPIC_API_KEY
    3. CLAUDE_CODE_OAUTH_TOKEN
    """

    def _build_blocks(self, name: str, content: str | bytes, mime_type: str) -> list[dict]:
        prompt = build_analysis_prompt(name)
        if mime_type.startswith(IMAGE_MIME_PREFIX):
            return [self._image_block(content, mime_type), {"type": "text", "text": prompt}]
        return [
            {"type": "text", "text": build_document_text(name, as_text(content))},
            {"type": "text", "text": prompt},
        ]

    async def analyze(self, name: str, content: str | bytes, mime_type: str) -> AnalysisResult:
        try:
            text = await self._complete(ANALYSIS_SYSTEM_PROMPT, self._build_blocks(name, content, mime_type))
        except Exception as e:
            logger.warning("Anthropic analysis failed for %s: %s", name, e)
            raise classify_error(e) from e
        return parse_analysis(text)


class AnthropicComparator(_AnthropicBase):
    """Image comparator using Anthropic's Claude vision input."""

    def __init__(self, model: str = "claude-haiku-4-5-20251001", api_key: str | None = None):
        super().__init__(model=model, api_key=api_key, max_tokens=50)

    async def _ask(self, image_a: FileNode, image_b: FileNode) -> bool:
        try:
            blocks = [
                {"type": "text", "text": COMPARISON_PROMPT},
                self._image_block(image_a.content, image_a.mime_type),
                self._image_block(image_b.content, image_b.mime_type),
            ]
            return parse_match(await self._complete(COMPARISON_SYSTEM_PROMPT, blocks))
        except Exception as e:
            raise ComparisonError(str(e)) from e

    async def compare(self, image_a: FileNode, image_b: FileNode) -> bool:
        try:
            return await self._ask(image_a, image_b)
        except ComparisonError as e:
            _log_comparison_failure("Anthropic", image_a, image_b, e)
            return False


# -----------------------------------------------------------------------------
# OpenAI
# -----------------------------------------------------------------------------

class _OpenAIBase:
    def __init__(
        self,
        model: str = "gpt-4.1-mini",
        api_key: str | None = None,
        max_tokens: int = 1024,
    ):
        try:
            from openai import AsyncOpenAI
        except ImportError:
            raise RuntimeError(f"{type(self).__name__} requires 'openai' library")

        self.model = model
        self.max_tokens = max_tokens
        self._client = AsyncOpenAI(api_key=_openai_key(api_key))

        # GPT-5+ and reasoning models use a different API surface:
        # - max_completion_tokens instead of max_tokens
        # - temperature must be omitted (only default=1 supported)
        self._new_api = self.model.startswith(("gpt-5", "o3", "o4"))

    def _completion_kwargs(self) -> dict:
        if self._new_api:
            return {"max_completion_tokens": self.max_tokens}
        return {"max_tokens": self.max_tokens, "temperature": 0.2}

    @staticmethod
    def _image_part(node_content: str | bytes, mime_type: str) -> dict:
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{mime_type};base64,{_b64(node_content)}"},
        }

    async def _complete(self, system: str, parts: list[dict]) -> str | None:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": parts},
            ],
            response_format={"type": "json_object"},
            **self._completion_kwargs(),
        )
        if response.choices:
            return response.choices[0].message.content
        return None


class OpenAIAnalyzer(_OpenAIBase):
    """
    Document analyzer using OpenAI's chat API with JSON output.

    Requires: TAGTREE_OPENAI_API_KEY or OPENAI_API_KEY environment variable.
    """

    def _build_parts(self, name: str, content: str | bytes, mime_type: str) -> list[dict]:
        prompt = build_analysis_prompt(name)
        if mime_type.startswith(IMAGE_MIME_PREFIX):
            return [{"type": "text", "text": prompt}, self._image_part(content, mime_type)]
        return [
            {"type": "text", "text": build_document_text(name, as_text(content))},
            {"type": "text", "text": prompt},
        ]

    async def analyze(self, name: str, content: str | bytes, mime_type: str) -> AnalysisResult:
        try:
            text = await self._complete(ANALYSIS_SYSTEM_PROMPT, self._build_parts(name, content, mime_type))
        except Exception as e:
            logger.warning("OpenAI analysis failed for %s: %s", name, e)
            raise classify_error(e) from e
        return parse_analysis(text)


class OpenAIComparator(_OpenAIBase):
    """Image comparator using OpenAI vision input."""

    def __init__(self, model: str = "gpt-4.1-mini", api_key: str | None = None):
        super().__init__(model=model, api_key=api_key, max_tokens=50)

    async def _ask(self, image_a: FileNode, image_b: FileNode) -> bool:
        try:
            parts = [
                {"type": "text", "text": COMPARISON_PROMPT},
                self._image_part(image_a.content, image_a.mime_type),
                self._image_part(image_b.content, image_b.mime_type),
            ]
            return parse_match(await self._complete(COMPARISON_SYSTEM_PROMPT, parts))
        except Exception as e:
            raise ComparisonError(str(e)) from e

    async def compare(self, image_a: FileNode, image_b: FileNode) -> bool:
        try:
            return await self._ask(image_a, image_b)
        except ComparisonError as e:
            _log_comparison_failure("OpenAI", image_a, image_b, e)
            return False


def _log_comparison_failure(vendor: str, image_a: FileNode, image_b: FileNode, exc: Exception) -> None:
    if is_quota_error(exc):
        logger.error("%s quota exceeded during image comparison. The comparison will be skipped.", vendor)
    else:
        logger.warning("Error comparing %s with %s: %s", image_a.name, image_b.name, exc)


# -----------------------------------------------------------------------------
# Offline providers
# -----------------------------------------------------------------------------

_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def kebab_case(name: str) -> str:
    """'Final Report (v2).txt' -> 'final-report-v2.txt'"""
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        stem, ext = name, ""
    slug = _NON_SLUG_RE.sub("-", stem.lower()).strip("-") or "untitled"
    return f"{slug}.{ext.lower()}" if ext else slug


class PassthroughAnalyzer:
    """
    Analyzer that needs no model: the summary is the start of the text.

    Useful for testing or when no API key is configured.
    """

    def __init__(self, max_chars: int = 200):
        self.max_chars = max_chars

    async def analyze(self, name: str, content: str | bytes, mime_type: str) -> AnalysisResult:
        if mime_type.startswith(IMAGE_MIME_PREFIX):
            return AnalysisResult(
                summary=f"Image file {name}.",
                suggested_name=kebab_case(name),
                tags=TagSet(),
                document_type="Image",
            )
        text = as_text(content).strip()
        if len(text) > self.max_chars:
            text = text[:self.max_chars].rsplit(" ", 1)[0] + "..."
        return AnalysisResult(
            summary=text,
            suggested_name=kebab_case(name),
            tags=TagSet(),
            document_type="Document",
        )


class NeverComparator:
    """Comparator that never reports a match."""

    async def compare(self, image_a: FileNode, image_b: FileNode) -> bool:
        return False


# Register providers
_registry = get_registry()
_registry.register_analyzer("anthropic", AnthropicAnalyzer)
_registry.register_analyzer("openai", OpenAIAnalyzer)
_registry.register_analyzer("passthrough", PassthroughAnalyzer)
_registry.register_comparator("anthropic", AnthropicComparator)
_registry.register_comparator("openai", OpenAIComparator)
_registry.register_comparator("never", NeverComparator)
