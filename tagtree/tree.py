"""
Immutable tree operations.

A tree is a tuple of top-level nodes. Every operation here is a pure
function: it takes a tree and returns a tree, rebuilding only the path from
the root to the affected node and sharing everything else. When the target
id is absent, the input tree object is returned unchanged.
"""

from dataclasses import replace
from typing import Callable, Iterable, Iterator, Optional

from .types import (
    AnalysisResult,
    FileNode,
    FolderNode,
    Tree,
    TreeNode,
)


def find(tree: Tree, node_id: str) -> Optional[TreeNode]:
    """Pre-order depth-first search for ``node_id``."""
    for node in tree:
        if node.id == node_id:
            return node
        if isinstance(node, FolderNode):
            found = find(node.children, node_id)
            if found is not None:
                return found
    return None


def _update_nodes(
    nodes: tuple[TreeNode, ...],
    node_id: str,
    transform: Callable[[TreeNode], TreeNode],
) -> tuple[TreeNode, ...]:
    changed = False
    result = []
    for node in nodes:
        new = node
        if node.id == node_id:
            new = transform(node)
        elif isinstance(node, FolderNode):
            children = _update_nodes(node.children, node_id, transform)
            if children is not node.children:
                new = replace(node, children=children)
        if new is not node:
            changed = True
        result.append(new)
    return tuple(result) if changed else nodes


def update(tree: Tree, node_id: str, transform: Callable[[TreeNode], TreeNode]) -> Tree:
    """Replace the node matching ``node_id`` with ``transform(node)``."""
    return _update_nodes(tree, node_id, transform)


def remove(tree: Tree, node_id: str) -> Tree:
    """Drop the node matching ``node_id``; folders go with their whole subtree."""
    changed = False
    result = []
    for node in tree:
        if node.id == node_id:
            changed = True
            continue
        if isinstance(node, FolderNode):
            children = remove(node.children, node_id)
            if children is not node.children:
                node = replace(node, children=children)
                changed = True
        result.append(node)
    return tuple(result) if changed else tree


def collect(tree: Tree, predicate: Callable[[FileNode], bool]) -> Iterator[FileNode]:
    """Lazily yield FileNodes satisfying ``predicate``, in pre-order."""
    for node in tree:
        if isinstance(node, FolderNode):
            yield from collect(node.children, predicate)
        elif predicate(node):
            yield node


def insert_at_root(tree: Tree, node: TreeNode) -> Tree:
    """Append ``node`` to the top-level sequence."""
    return (*tree, node)


def iter_nodes(tree: Tree, depth: int = 0) -> Iterator[tuple[int, TreeNode]]:
    """Pre-order walk over every node, yielding ``(depth, node)``."""
    for node in tree:
        yield depth, node
        if isinstance(node, FolderNode):
            yield from iter_nodes(node.children, depth + 1)


def is_image_file(node: TreeNode) -> bool:
    return isinstance(node, FileNode) and node.is_image


# ---------------------------------------------------------------------------
# Node transforms (for use with update)
# ---------------------------------------------------------------------------


def add_tag(node: TreeNode, tag: str) -> TreeNode:
    """Add ``tag`` to a file's analysis, creating the empty shell if needed."""
    if not isinstance(node, FileNode):
        return node
    analysis = node.analysis if node.analysis is not None else AnalysisResult.empty()
    tagged = analysis.with_tag(tag)
    if tagged is node.analysis:
        return node
    return replace(node, analysis=tagged)


def remove_tag(node: TreeNode, tag: str) -> TreeNode:
    if not isinstance(node, FileNode) or node.analysis is None:
        return node
    untagged = node.analysis.without_tag(tag)
    if untagged is node.analysis:
        return node
    return replace(node, analysis=untagged)


def rename(node: TreeNode, name: str) -> TreeNode:
    if node.name == name:
        return node
    return replace(node, name=name)


def attach_analysis(node: TreeNode, analysis: AnalysisResult) -> TreeNode:
    if not isinstance(node, FileNode):
        return node
    return replace(node, analysis=analysis)


def add_tag_to_many(tree: Tree, node_ids: Iterable[str], tag: str) -> Tree:
    """Add ``tag`` to every file in ``node_ids`` in a single rebuild."""
    targets = frozenset(node_ids)
    if not targets:
        return tree

    def _walk(nodes: tuple[TreeNode, ...]) -> tuple[TreeNode, ...]:
        changed = False
        result = []
        for node in nodes:
            new = node
            if isinstance(node, FolderNode):
                children = _walk(node.children)
                if children is not node.children:
                    new = replace(node, children=children)
            elif node.id in targets:
                new = add_tag(node, tag)
            if new is not node:
                changed = True
            result.append(new)
        return tuple(result) if changed else nodes

    return _walk(tree)


# ---------------------------------------------------------------------------
# Seed
# ---------------------------------------------------------------------------


def seed_tree() -> Tree:
    """The fixed tree a fresh or reset workspace starts from."""
    return (
        FolderNode(
            id="1",
            name="Documents",
            path="/Documents",
            children=(
                FileNode(
                    id="2",
                    name="report.txt",
                    content=(
                        "This is the final report for Project Alpha. It includes "
                        "a summary of findings and recommendations."
                    ),
                    mime_type="text/plain",
                    path="/Documents/report.txt",
                ),
            ),
        ),
        FolderNode(id="3", name="Images", path="/Images", children=()),
    )
