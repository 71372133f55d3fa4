"""
tagtree

A document workspace with AI analysis and smart tags.

Quick Start:
    import asyncio
    from tagtree import Workspace

    async def main():
        async with Workspace() as ws:  # uses ~/.tagtree/
            photo = ws.upload_file("cat.png")
            await ws.select(photo.id)             # analyze
            result = await ws.propagate_tag(photo.id, "cat")
            print(result.message)

    asyncio.run(main())

CLI Usage:
    tagtree upload cat.png other.jpg
    tagtree smart-tag <id> cat
    tagtree ls

Environment Variables:
    TAGTREE_STORE_PATH      - Override default store location
    TAGTREE_VERBOSE         - Set to 1 for debug logging in the CLI
    GEMINI_API_KEY          - API key for the Gemini providers
    TAGTREE_OPENAI_API_KEY  - API key for OpenAI providers

The store is initialized automatically on first use. Configuration is persisted
in a TOML file within the store directory.
"""

from .analysis import AnalysisOrchestrator
from .errors import (
    AnalysisError,
    AnalysisFailure,
    ComparisonError,
    NodeNotFoundError,
    PersistenceError,
    PropagationInProgressError,
    TagTreeError,
    ValidationError,
)
from .persistence import DebounceTimer, PersistenceGateway, SaveStatus
from .propagation import PropagationEngine, PropagationPhase, PropagationResult, PropagationStatus
from .tree import collect, find, insert_at_root, remove, update
from .types import AnalysisResult, FileNode, FolderNode, TagSet, Tree, TreeNode
from .workspace import Workspace

__version__ = "0.1.0"
__all__ = [
    "Workspace",
    # Tree
    "AnalysisResult",
    "FileNode",
    "FolderNode",
    "TagSet",
    "Tree",
    "TreeNode",
    "find",
    "update",
    "remove",
    "collect",
    "insert_at_root",
    # Services
    "AnalysisOrchestrator",
    "PropagationEngine",
    "PropagationPhase",
    "PropagationResult",
    "PropagationStatus",
    "PersistenceGateway",
    "DebounceTimer",
    "SaveStatus",
    # Errors
    "TagTreeError",
    "ValidationError",
    "NodeNotFoundError",
    "AnalysisError",
    "AnalysisFailure",
    "ComparisonError",
    "PersistenceError",
    "PropagationInProgressError",
]
