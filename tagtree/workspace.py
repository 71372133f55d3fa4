"""
The workspace: one owned tree plus the services that act on it.

Workspace is the single owner of the authoritative tree. Every user action
goes through it, is applied with the pure operations in tree.py, and
schedules a debounced snapshot. Long-running work (analysis, smart tags)
computes its result against a snapshot and is then merged onto whatever
the tree has become in the meantime, so edits made while a request is
suspended are never lost.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

from . import tree as treeops
from .analysis import AnalysisOrchestrator
from .config import WorkspaceConfig, get_store_path, load_or_create_config
from .errors import AnalysisError, NodeNotFoundError, PropagationInProgressError, ValidationError
from .logging_config import configure_ops_log
from .persistence import PersistenceGateway, SaveStatus
from .propagation import IDLE_STATUS, PropagationEngine, PropagationResult, PropagationStatus, StatusCallback
from .providers.base import DocumentAnalyzer, ImageComparator, get_registry
from .storage import SqliteStorage, Storage
from .types import (
    AnalysisResult,
    FileNode,
    Tree,
    TreeNode,
    new_node_id,
    validate_name,
    validate_tag,
)

logger = logging.getLogger(__name__)

# File extension -> MIME type for uploads from disk
EXTENSION_TYPES = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".py": "text/x-python",
    ".js": "text/javascript",
    ".ts": "text/typescript",
    ".json": "application/json",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".xml": "application/xml",
    ".rst": "text/x-rst",
    # Images
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".tiff": "image/tiff",
    ".tif": "image/tiff",
    ".webp": "image/webp",
    ".heic": "image/heic",
}

# Uploads larger than this are rejected
MAX_UPLOAD_BYTES = 20 * 1024 * 1024


class Workspace:
    """
    Owned document tree with analysis, smart tags and persistence.

    Args:
        store_path: Directory for config, snapshot and logs
            (default: TAGTREE_STORE_PATH or ~/.tagtree)
        config: Explicit configuration (skips reading tagtree.toml)
        analyzer: Document analyzer (default: from config)
        comparator: Image comparator (default: from config)
        storage: Snapshot storage (default: SQLite file in the store)
        on_propagation_status: Receives smart tag progress reports
        ops_log: Write an operations log into the store directory
    """

    def __init__(
        self,
        store_path: Optional[Path] = None,
        *,
        config: Optional[WorkspaceConfig] = None,
        analyzer: Optional[DocumentAnalyzer] = None,
        comparator: Optional[ImageComparator] = None,
        storage: Optional[Storage] = None,
        on_propagation_status: Optional[StatusCallback] = None,
        ops_log: bool = True,
    ):
        self._store_path = Path(store_path) if store_path is not None else get_store_path()
        self.config = config if config is not None else load_or_create_config(self._store_path)

        self._analyzer = analyzer
        self._comparator = comparator
        self._orchestrator: Optional[AnalysisOrchestrator] = None
        self._engine: Optional[PropagationEngine] = None
        self._on_propagation_status = on_propagation_status

        self._owns_storage = storage is None
        self._storage = storage if storage is not None else SqliteStorage(self.config.storage_path)
        self._gateway = PersistenceGateway(self._storage, delay=self.config.save_delay)

        self._ops_handler = configure_ops_log(self._store_path) if ops_log else None

        self._tree: Tree = self._gateway.load_or_default()
        self.selected_id: Optional[str] = None
        self.last_error: Optional[Exception] = None
        self._closed = False

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def _get_orchestrator(self) -> AnalysisOrchestrator:
        if self._orchestrator is None:
            if self._analyzer is None:
                cfg = self.config.analyzer
                self._analyzer = get_registry().create_analyzer(cfg.name, cfg.params)
            self._orchestrator = AnalysisOrchestrator(self._analyzer)
        return self._orchestrator

    def _get_engine(self) -> PropagationEngine:
        if self._engine is None:
            if self._comparator is None:
                cfg = self.config.comparator
                self._comparator = get_registry().create_comparator(cfg.name, cfg.params)
            self._engine = PropagationEngine(self._comparator, on_status=self._on_propagation_status)
        return self._engine

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def tree(self) -> Tree:
        return self._tree

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def loading(self) -> bool:
        """True while an analysis request is in flight."""
        return self._orchestrator is not None and self._orchestrator.loading

    @property
    def save_status(self) -> SaveStatus:
        return self._gateway.status

    @property
    def save_error(self):
        return self._gateway.last_error

    @property
    def propagation_status(self) -> PropagationStatus:
        return self._engine.status if self._engine is not None else IDLE_STATUS

    @property
    def selected(self) -> Optional[FileNode]:
        if self.selected_id is None:
            return None
        node = treeops.find(self._tree, self.selected_id)
        return node if isinstance(node, FileNode) else None

    def _commit(self, tree: Tree) -> None:
        if tree is self._tree:
            return
        self._tree = tree
        if self.selected_id is not None and treeops.find(tree, self.selected_id) is None:
            self.selected_id = None
        self._gateway.schedule_save(tree)

    def find(self, node_id: str) -> Optional[TreeNode]:
        return treeops.find(self._tree, node_id)

    def _require(self, node_id: str) -> TreeNode:
        node = treeops.find(self._tree, node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def _require_file(self, node_id: str) -> FileNode:
        node = self._require(node_id)
        if not isinstance(node, FileNode):
            raise ValidationError(f"Not a file: {node.name}")
        return node

    def images(self) -> list[FileNode]:
        return list(treeops.collect(self._tree, lambda n: n.is_image))

    # -------------------------------------------------------------------------
    # Uploads
    # -------------------------------------------------------------------------

    def upload(self, name: str, content: str | bytes, mime_type: str) -> FileNode:
        """Add a new file at the top level of the workspace."""
        name = validate_name(name)
        if not mime_type or "/" not in mime_type:
            raise ValidationError(f"Invalid MIME type: {mime_type!r}")
        node = FileNode(
            id=new_node_id(),
            name=name,
            content=content,
            mime_type=mime_type,
            path=f"/{name}",
        )
        self._commit(treeops.insert_at_root(self._tree, node))
        logger.info("Uploaded %s as %s (%s)", name, node.id, mime_type)
        return node

    def upload_file(self, path: Path) -> FileNode:
        """
        Upload a file from disk.

        Images are stored as raw bytes, everything else as UTF-8 text.
        Files that are not valid UTF-8 are stored as bytes with type
        application/octet-stream.
        """
        path = Path(path).expanduser()
        if not path.is_file():
            raise ValidationError(f"Not a file: {path}")
        size = path.stat().st_size
        if size > MAX_UPLOAD_BYTES:
            raise ValidationError(
                f"File too large: {size:,} bytes (limit: {MAX_UPLOAD_BYTES:,} bytes)"
            )
        mime_type = EXTENSION_TYPES.get(path.suffix.lower(), "text/plain")
        data = path.read_bytes()
        if mime_type.startswith("image/"):
            return self.upload(path.name, data, mime_type)
        try:
            return self.upload(path.name, data.decode("utf-8"), mime_type)
        except UnicodeDecodeError:
            return self.upload(path.name, data, "application/octet-stream")

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    async def analyze(self, file_id: str) -> AnalysisResult:
        """Analysis for a file, computed on first request and cached in the tree."""
        node = treeops.find(self._tree, file_id)
        cached = isinstance(node, FileNode) and node.analysis is not None
        _, result = await self._get_orchestrator().request_analysis(self._tree, file_id)
        if cached:
            return result

        current = treeops.find(self._tree, file_id)
        if not isinstance(current, FileNode):
            return result
        if current.analysis is not None:
            # Tags added while the request was in flight are kept
            result = replace(result, tags=result.tags.union(current.analysis.tags))
        self._commit(treeops.update(
            self._tree, file_id, lambda n: treeops.attach_analysis(n, result)
        ))
        return result

    async def select(self, file_id: str) -> AnalysisResult:
        """Select a file and make sure it has an analysis."""
        self._require_file(file_id)
        self.selected_id = file_id
        self.last_error = None
        try:
            return await self.analyze(file_id)
        except AnalysisError as e:
            self.last_error = e
            raise

    # -------------------------------------------------------------------------
    # Edits
    # -------------------------------------------------------------------------

    def rename(self, node_id: str, name: str) -> TreeNode:
        name = validate_name(name)
        self._require(node_id)
        self._commit(treeops.update(self._tree, node_id, lambda n: treeops.rename(n, name)))
        return self._require(node_id)

    def apply_suggested_name(self, file_id: str) -> FileNode:
        """Rename a file to the name its analysis suggested."""
        node = self._require_file(file_id)
        if node.analysis is None or not node.analysis.suggested_name.strip():
            raise ValidationError(f"No suggested name for {node.name}")
        return self.rename(file_id, node.analysis.suggested_name)

    def add_tag(self, file_id: str, tag: str) -> FileNode:
        tag = validate_tag(tag)
        self._require_file(file_id)
        self._commit(treeops.update(self._tree, file_id, lambda n: treeops.add_tag(n, tag)))
        return self._require_file(file_id)

    def remove_tag(self, file_id: str, tag: str) -> FileNode:
        tag = validate_tag(tag)
        self._require_file(file_id)
        self._commit(treeops.update(self._tree, file_id, lambda n: treeops.remove_tag(n, tag)))
        return self._require_file(file_id)

    def remove(self, node_id: str) -> bool:
        """Remove a node (folders with everything in them). False if absent."""
        new_tree = treeops.remove(self._tree, node_id)
        if new_tree is self._tree:
            return False
        self._commit(new_tree)
        logger.info("Removed %s", node_id)
        return True

    def reset(self) -> None:
        """Discard everything and start again from the seed tree."""
        self._gateway.clear()
        self._tree = treeops.seed_tree()
        self.selected_id = None
        self.last_error = None
        logger.info("Workspace reset")

    # -------------------------------------------------------------------------
    # Smart tags
    # -------------------------------------------------------------------------

    async def propagate_tag(self, file_id: str, tag: str) -> PropagationResult:
        """
        Tag an image and every other image showing the same subject.

        The source tag is committed before the scan starts, so it is
        visible (and saved) while comparisons run.
        """
        tag = validate_tag(tag)
        source = self._require_file(file_id)
        if not source.is_image:
            raise ValidationError(f"Smart tags apply to images only: {source.name}")
        engine = self._get_engine()
        if engine.running:
            raise PropagationInProgressError()

        self._commit(treeops.update(self._tree, file_id, lambda n: treeops.add_tag(n, tag)))
        result = await engine.propagate_tag(self._tree, file_id, tag)

        merged = treeops.update(self._tree, file_id, lambda n: treeops.add_tag(n, tag))
        merged = treeops.add_tag_to_many(merged, result.matched_ids, tag)
        self._commit(merged)
        return replace(result, tree=self._tree)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def flush(self) -> None:
        """Write any pending snapshot now."""
        self._gateway.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._gateway.flush()
        if self._owns_storage:
            self._storage.close()
        if self._ops_handler is not None:
            logging.getLogger("tagtree").removeHandler(self._ops_handler)
            self._ops_handler.close()
            self._ops_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
