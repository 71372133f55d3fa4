"""
Base provider protocols.

These define the interfaces that concrete providers must implement.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

import base64
import json
import logging
from typing import Any, Protocol, runtime_checkable

from ..errors import AnalysisError, AnalysisFailure
from ..types import AnalysisResult, FileNode

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Prompts and response schema
# -----------------------------------------------------------------------------

ANALYSIS_PROMPT = (
    'Analyze the following document named "{name}". Based on its content, '
    "provide a detailed analysis in JSON format according to the provided schema."
)

COMPARISON_PROMPT = (
    "The user has tagged the primary subject in the first image. Does the second "
    "image contain the exact same primary subject? Please answer with a simple "
    'JSON object: {"match": boolean}.'
)

# JSON schema shared by providers that support structured output
ANALYSIS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "summary": {
            "type": "string",
            "description": "A concise summary of the document's content, no more than 3-4 sentences.",
        },
        "suggestedName": {
            "type": "string",
            "description": (
                "A short, descriptive file name based on the content, using kebab-case "
                "(e.g., 'meeting-notes-project-alpha.txt'). Include the original "
                "extension if present."
            ),
        },
        "tags": {
            "type": "array",
            "description": "A list of 3-5 relevant keywords or tags.",
            "items": {"type": "string"},
        },
        "documentType": {
            "type": "string",
            "description": (
                "The type of document (e.g., 'Invoice', 'Meeting Notes', 'Contract', "
                "'Code Snippet', 'Image', 'Receipt')."
            ),
        },
    },
    "required": ["summary", "suggestedName", "tags", "documentType"],
}

MATCH_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"match": {"type": "boolean"}},
    "required": ["match"],
}

# Schema rendered into the prompt for providers without structured output
ANALYSIS_SCHEMA_HINT = (
    "Respond with only a JSON object with these keys: "
    '"summary" (string, 3-4 sentences), '
    '"suggestedName" (string, kebab-case file name keeping the extension), '
    '"tags" (array of 3-5 strings), '
    '"documentType" (string such as Invoice, Meeting Notes, Image, Receipt).'
)

# Text documents are wrapped with these markers before the prompt
DOCUMENT_TEMPLATE = "--- Document: {name} ---\n\n{content}\n\n--- End of Document ---"

# Characters of text content sent to the model
MAX_TEXT_CHARS = 50000


def build_analysis_prompt(name: str) -> str:
    return ANALYSIS_PROMPT.format(name=name)


def build_document_text(name: str, content: str) -> str:
    truncated = content[:MAX_TEXT_CHARS] if len(content) > MAX_TEXT_CHARS else content
    return DOCUMENT_TEMPLATE.format(name=name, content=truncated)


def image_bytes(content: str | bytes) -> bytes:
    """Raw image bytes; string content is taken to be base64 (browser upload format)."""
    if isinstance(content, bytes):
        return content
    return base64.b64decode(content)


def as_text(content: str | bytes) -> str:
    """Text content; bytes are decoded as UTF-8 with replacement characters."""
    return content if isinstance(content, str) else content.decode("utf-8", errors="replace")


def parse_json_response(text: str | None) -> Any:
    """
    Parse a model's JSON answer.

    Strips markdown code fences that some models add despite being asked
    for bare JSON. Raises ValueError (json.JSONDecodeError) on bad input.
    """
    if text is None:
        raise ValueError("Empty response")
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3].strip()
    return json.loads(text)


def parse_analysis(text: str | None) -> AnalysisResult:
    """Parse a model answer into a complete AnalysisResult or raise MALFORMED."""
    try:
        data = parse_json_response(text)
        return AnalysisResult.from_dict(data)
    except ValueError as e:
        raise AnalysisError(AnalysisFailure.MALFORMED) from e


def parse_match(text: str | None) -> bool:
    """Parse a ``{"match": bool}`` answer. Raises ValueError if malformed."""
    data = parse_json_response(text)
    if not isinstance(data, dict) or not isinstance(data.get("match"), bool):
        raise ValueError(f"Unexpected comparison response: {data!r}")
    return data["match"]


def is_quota_error(exc: BaseException) -> bool:
    message = str(exc)
    return (
        "RESOURCE_EXHAUSTED" in message
        or "429" in message
        or "quota" in message.lower()
        or getattr(exc, "status_code", None) == 429
        or getattr(exc, "code", None) == 429
    )


def classify_error(exc: BaseException) -> AnalysisError:
    """Map a provider exception to an AnalysisError with a reason."""
    if isinstance(exc, AnalysisError):
        return exc
    if is_quota_error(exc):
        return AnalysisError(AnalysisFailure.QUOTA_EXCEEDED)
    if isinstance(exc, ValueError):
        return AnalysisError(AnalysisFailure.MALFORMED)
    return AnalysisError(AnalysisFailure.NETWORK)


# -----------------------------------------------------------------------------
# Document Analysis
# -----------------------------------------------------------------------------

@runtime_checkable
class DocumentAnalyzer(Protocol):
    """
    Produces an AnalysisResult for a file.

    Example implementation:
        class FixedAnalyzer:
            async def analyze(self, name, content, mime_type):
                return AnalysisResult(summary=name, suggested_name=name,
                                      tags=TagSet(), document_type="Document")
    """

    async def analyze(
        self,
        name: str,
        content: str | bytes,
        mime_type: str,
    ) -> AnalysisResult:
        """
        Analyze one file.

        Args:
            name: Display name of the file
            content: Text, or raw bytes for images
            mime_type: MIME type of the content

        Returns:
            A fully-populated AnalysisResult

        Raises:
            AnalysisError: with reason QUOTA_EXCEEDED, NETWORK or MALFORMED
        """
        ...


# -----------------------------------------------------------------------------
# Image Comparison
# -----------------------------------------------------------------------------

@runtime_checkable
class ImageComparator(Protocol):
    """
    Decides whether two images show the same primary subject.

    Implementations must not raise in normal operation: any internal
    failure is logged and reported as ``False`` (no match).
    """

    async def compare(self, image_a: FileNode, image_b: FileNode) -> bool:
        """
        Args:
            image_a: The source image (the one the user tagged)
            image_b: The candidate image

        Returns:
            True if image_b contains the same primary subject as image_a
        """
        ...


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating providers.

    Providers are registered by name and can be instantiated from configuration.
    This allows the workspace configuration (TOML) to specify providers by name
    rather than requiring code changes.

    Example:
        registry = get_registry()
        analyzer = registry.create_analyzer("gemini", {"model": "gemini-2.5-flash"})
    """

    def __init__(self):
        self._analyzer_providers: dict[str, type] = {}
        self._comparator_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load all provider modules."""
        if self._lazy_loaded:
            return

        self._lazy_loaded = True

        # Import provider modules to trigger registration.
        # SDKs are imported inside provider constructors, so these imports
        # succeed even when a vendor library is missing.
        from . import gemini  # noqa: F401
        from . import llm  # noqa: F401

    def register_analyzer(self, name: str, provider_class: type) -> None:
        """Register a document analyzer class."""
        self._analyzer_providers[name] = provider_class

    def register_comparator(self, name: str, provider_class: type) -> None:
        """Register an image comparator class."""
        self._comparator_providers[name] = provider_class

    @staticmethod
    def _create_provider(kind: str, name: str, providers: dict, params: dict | None):
        """Shared factory logic for all provider types."""
        if name not in providers:
            available = ", ".join(providers.keys()) or "none"
            raise ValueError(
                f"Unknown {kind} provider: '{name}'. "
                f"Available providers: {available}. "
                f"Install missing dependencies or check provider name."
            )
        try:
            return providers[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create {kind} provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e
        except Exception as e:
            raise RuntimeError(
                f"Failed to create {kind} provider '{name}': {e}"
            ) from e

    def create_analyzer(self, name: str, params: dict | None = None) -> DocumentAnalyzer:
        """Create a document analyzer instance."""
        self._ensure_providers_loaded()
        return self._create_provider("analyzer", name, self._analyzer_providers, params)

    def create_comparator(self, name: str, params: dict | None = None) -> ImageComparator:
        """Create an image comparator instance."""
        self._ensure_providers_loaded()
        return self._create_provider("comparator", name, self._comparator_providers, params)

    def list_analyzer_providers(self) -> list[str]:
        self._ensure_providers_loaded()
        return list(self._analyzer_providers.keys())

    def list_comparator_providers(self) -> list[str]:
        self._ensure_providers_loaded()
        return list(self._comparator_providers.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
