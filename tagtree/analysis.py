"""
Per-file analysis with caching.

An analysis is requested at most once per file: when the node already
carries one, it is returned without calling the analyzer. Results are
attached to the tree only when complete, so a failed request leaves the
tree exactly as it was and can simply be retried.
"""

import logging

from . import tree as treeops
from .errors import AnalysisError, AnalysisFailure, NodeNotFoundError, ValidationError
from .providers.base import DocumentAnalyzer
from .types import AnalysisResult, FileNode, Tree

logger = logging.getLogger(__name__)


class AnalysisOrchestrator:
    """
    Fetches and caches per-file analyses.

    ``loading`` is True while any request is waiting on the analyzer.
    Requests for different files may overlap; the flag stays set until the
    last one finishes, whether it succeeded or failed.
    """

    def __init__(self, analyzer: DocumentAnalyzer):
        self._analyzer = analyzer
        self._in_flight = 0

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    async def request_analysis(self, tree: Tree, file_id: str) -> tuple[Tree, AnalysisResult]:
        """
        Return the analysis for ``file_id`` and the tree carrying it.

        Raises:
            NodeNotFoundError: no node with that id
            ValidationError: the node is a folder
            AnalysisError: the analyzer failed (tree unchanged)
        """
        node = treeops.find(tree, file_id)
        if node is None:
            raise NodeNotFoundError(file_id)
        if not isinstance(node, FileNode):
            raise ValidationError(f"Only files can be analyzed: {node.name}")

        if node.analysis is not None:
            logger.debug("Analysis cache hit for %s", file_id)
            return tree, node.analysis

        self._in_flight += 1
        try:
            logger.info("Analyzing %s (%s)", node.name, node.mime_type)
            try:
                result = await self._analyzer.analyze(node.name, node.content, node.mime_type)
            except AnalysisError:
                raise
            except Exception as e:
                logger.warning("Analyzer raised unexpected error for %s: %s", file_id, e)
                raise AnalysisError(AnalysisFailure.NETWORK) from e
            if not isinstance(result, AnalysisResult):
                raise AnalysisError(AnalysisFailure.MALFORMED)
        finally:
            self._in_flight -= 1

        new_tree = treeops.update(tree, file_id, lambda n: treeops.attach_analysis(n, result))
        return new_tree, result
