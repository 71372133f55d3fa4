"""
Provider interfaces for the AI services tagtree talks to.

Each provider type defines a protocol that concrete implementations must follow:
- Document analysis (summary, suggested name, tags, document type)
- Image comparison (do two images share a primary subject?)

Concrete providers are auto-registered when this module is imported.
"""

from .base import (
    DocumentAnalyzer,
    ImageComparator,
    ProviderRegistry,
    get_registry,
)

# Import concrete providers to trigger registration
from . import gemini
from . import llm

__all__ = [
    # Protocols
    "DocumentAnalyzer",
    "ImageComparator",
    # Registry
    "ProviderRegistry",
    "get_registry",
]
