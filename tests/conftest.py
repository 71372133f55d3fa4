"""
Shared pytest fixtures for tagtree tests.

Provides mock analyzers and comparators so no test talks to a real model.
"""

import asyncio
from pathlib import Path

import pytest

from tagtree.storage import MemoryStorage
from tagtree.types import AnalysisResult, FileNode, FolderNode, TagSet


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class MockAnalyzer:
    """
    Deterministic analyzer for testing.

    Records every call; can be told to fail or to wait on an event so
    tests can interleave other work with an in-flight request.
    """

    def __init__(self, tags: tuple[str, ...] = ("mock",), error: Exception | None = None):
        self.tags = tags
        self.error = error
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def analyze(self, name: str, content, mime_type: str) -> AnalysisResult:
        self.calls.append(name)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return AnalysisResult(
            summary=f"Summary of {name}",
            suggested_name=f"renamed-{name}",
            tags=TagSet(self.tags),
            document_type="Image" if mime_type.startswith("image/") else "Document",
        )


class MockComparator:
    """
    Comparator answering from a fixed set of matching candidate ids.

    Candidates listed in ``failing`` raise instead of answering.
    """

    def __init__(self, matches=(), failing=()):
        self.matches = set(matches)
        self.failing = set(failing)
        self.calls: list[tuple[str, str]] = []

    async def compare(self, image_a: FileNode, image_b: FileNode) -> bool:
        self.calls.append((image_a.id, image_b.id))
        if image_b.id in self.failing:
            raise RuntimeError(f"simulated comparison failure for {image_b.id}")
        return image_b.id in self.matches


def make_image(node_id: str, name: str | None = None, tags=None, path: str | None = None) -> FileNode:
    name = name or f"{node_id}.png"
    analysis = None
    if tags is not None:
        analysis = AnalysisResult(
            summary="", suggested_name="", tags=TagSet(tags), document_type="Image"
        )
    return FileNode(
        id=node_id,
        name=name,
        content=PNG_BYTES,
        mime_type="image/png",
        path=path or f"/Images/{name}",
        analysis=analysis,
    )


def make_text(node_id: str, name: str | None = None, content: str = "hello") -> FileNode:
    name = name or f"{node_id}.txt"
    return FileNode(
        id=node_id,
        name=name,
        content=content,
        mime_type="text/plain",
        path=f"/{name}",
    )


@pytest.fixture
def image_tree():
    """Folder "Images" with two untagged PNGs, A and B."""
    return (
        FolderNode(
            id="img",
            name="Images",
            path="/Images",
            children=(make_image("A"), make_image("B")),
        ),
    )


@pytest.fixture
def mixed_tree():
    """
    A small tree with nesting:

        docs/        (d)
          notes.txt  (t1)
          nested/    (n)
            a.png    (i1)
        b.png        (i2)
        c.png        (i3)
        readme.txt   (t2)
    """
    return (
        FolderNode(
            id="d",
            name="docs",
            path="/docs",
            children=(
                make_text("t1", "notes.txt"),
                FolderNode(
                    id="n",
                    name="nested",
                    path="/docs/nested",
                    children=(make_image("i1", "a.png"),),
                ),
            ),
        ),
        make_image("i2", "b.png"),
        make_image("i3", "c.png"),
        make_text("t2", "readme.txt"),
    )


@pytest.fixture
def mock_analyzer():
    return MockAnalyzer()


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def workspace_factory(tmp_path: Path, memory_storage):
    """
    Build Workspaces over a temp store with mock providers.

    Usage:
        def test_something(workspace_factory):
            ws = workspace_factory(comparator=MockComparator(matches={"x"}))
    """
    from tagtree.config import WorkspaceConfig
    from tagtree.workspace import Workspace

    created = []

    def _make(analyzer=None, comparator=None, storage=None, **kwargs):
        ws = Workspace(
            tmp_path,
            config=WorkspaceConfig(path=tmp_path, save_delay=0.01),
            analyzer=analyzer or MockAnalyzer(),
            comparator=comparator or MockComparator(),
            storage=storage if storage is not None else memory_storage,
            ops_log=False,
            **kwargs,
        )
        created.append(ws)
        return ws

    yield _make
    for ws in created:
        ws.close()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "e2e: marks tests as end-to-end (require real providers)"
    )
