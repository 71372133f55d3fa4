"""Tests for AnalysisOrchestrator: caching, failure modes, loading flag."""

import asyncio

import pytest

from tagtree import tree as treeops
from tagtree.analysis import AnalysisOrchestrator
from tagtree.errors import AnalysisError, AnalysisFailure, NodeNotFoundError, ValidationError

from conftest import MockAnalyzer, make_image, make_text


@pytest.fixture
def tree():
    return (make_text("t", "notes.txt"), make_image("i", "cat.png"))


class TestRequestAnalysis:

    @pytest.mark.asyncio
    async def test_attaches_result(self, tree):
        analyzer = MockAnalyzer(tags=("alpha", "beta"))
        orch = AnalysisOrchestrator(analyzer)
        new_tree, result = await orch.request_analysis(tree, "t")
        assert treeops.find(new_tree, "t").analysis is result
        assert result.tags == ["alpha", "beta"]
        assert result.document_type == "Document"
        # Input tree unchanged
        assert treeops.find(tree, "t").analysis is None

    @pytest.mark.asyncio
    async def test_second_request_is_cache_hit(self, tree):
        analyzer = MockAnalyzer()
        orch = AnalysisOrchestrator(analyzer)
        tree1, first = await orch.request_analysis(tree, "t")
        tree2, second = await orch.request_analysis(tree1, "t")
        assert analyzer.calls == ["notes.txt"]
        assert second is first
        assert tree2 is tree1

    @pytest.mark.asyncio
    async def test_tag_shell_counts_as_cached(self, tree):
        analyzer = MockAnalyzer()
        orch = AnalysisOrchestrator(analyzer)
        shelled = treeops.update(tree, "i", lambda n: treeops.add_tag(n, "cat"))
        _, result = await orch.request_analysis(shelled, "i")
        assert analyzer.calls == []
        assert result.document_type == "Unknown"

    @pytest.mark.asyncio
    async def test_missing_node(self, tree):
        orch = AnalysisOrchestrator(MockAnalyzer())
        with pytest.raises(NodeNotFoundError):
            await orch.request_analysis(tree, "nope")

    @pytest.mark.asyncio
    async def test_folder_rejected(self, mixed_tree):
        orch = AnalysisOrchestrator(MockAnalyzer())
        with pytest.raises(ValidationError):
            await orch.request_analysis(mixed_tree, "d")


class TestFailures:

    @pytest.mark.asyncio
    async def test_analysis_error_propagates_and_can_retry(self, tree):
        analyzer = MockAnalyzer(error=AnalysisError(AnalysisFailure.QUOTA_EXCEEDED))
        orch = AnalysisOrchestrator(analyzer)
        with pytest.raises(AnalysisError) as exc_info:
            await orch.request_analysis(tree, "t")
        assert exc_info.value.reason is AnalysisFailure.QUOTA_EXCEEDED
        assert exc_info.value.retryable
        assert not orch.loading

        analyzer.error = None
        new_tree, _ = await orch.request_analysis(tree, "t")
        assert treeops.find(new_tree, "t").analysis is not None
        assert len(analyzer.calls) == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_network_failure(self, tree):
        orch = AnalysisOrchestrator(MockAnalyzer(error=ConnectionError("down")))
        with pytest.raises(AnalysisError) as exc_info:
            await orch.request_analysis(tree, "t")
        assert exc_info.value.reason is AnalysisFailure.NETWORK
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_non_result_is_malformed(self, tree):
        class BadAnalyzer:
            async def analyze(self, name, content, mime_type):
                return {"summary": "not a result"}

        orch = AnalysisOrchestrator(BadAnalyzer())
        with pytest.raises(AnalysisError) as exc_info:
            await orch.request_analysis(tree, "t")
        assert exc_info.value.reason is AnalysisFailure.MALFORMED
        assert not exc_info.value.retryable


class TestLoadingFlag:

    @pytest.mark.asyncio
    async def test_loading_while_in_flight(self, tree):
        analyzer = MockAnalyzer()
        analyzer.gate = asyncio.Event()
        orch = AnalysisOrchestrator(analyzer)
        assert not orch.loading

        task = asyncio.create_task(orch.request_analysis(tree, "t"))
        await asyncio.sleep(0)
        assert orch.loading

        analyzer.gate.set()
        await task
        assert not orch.loading

    @pytest.mark.asyncio
    async def test_overlapping_requests_keep_flag_until_last(self, tree):
        analyzer = MockAnalyzer()
        analyzer.gate = asyncio.Event()
        orch = AnalysisOrchestrator(analyzer)

        first = asyncio.create_task(orch.request_analysis(tree, "t"))
        second = asyncio.create_task(orch.request_analysis(tree, "i"))
        await asyncio.sleep(0)
        assert orch.loading

        analyzer.gate.set()
        await asyncio.gather(first, second)
        assert not orch.loading
