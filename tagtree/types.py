"""
Data types for the document workspace.

Nodes are immutable snapshots. Every change to the workspace produces a new
tree (see tree.py), so a node handed out to a caller never changes under it.
"""

import base64
import random
import string
import time
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Iterator, Union

from .errors import ValidationError


IMAGE_MIME_PREFIX = "image/"

# Document type used for the analysis shell created when a tag is added
# to a file that has not been analyzed yet
UNKNOWN_DOCUMENT_TYPE = "Unknown"

MAX_NAME_LENGTH = 255
MAX_TAG_LENGTH = 128

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def new_node_id() -> str:
    """Fresh opaque node id: base-36 millisecond timestamp plus a random suffix."""
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=10))
    return stamp + suffix


def validate_tag(tag: str) -> str:
    """Trim and validate a user-supplied tag. Returns the trimmed tag."""
    if not isinstance(tag, str):
        raise ValidationError(f"Tag must be a string: {tag!r}")
    tag = tag.strip()
    if not tag:
        raise ValidationError("Tag must not be empty")
    if len(tag) > MAX_TAG_LENGTH:
        raise ValidationError(f"Tag must be at most {MAX_TAG_LENGTH} characters: {tag[:20]!r}...")
    return tag


def validate_name(name: str) -> str:
    """Trim and validate a display name. Returns the trimmed name."""
    if not isinstance(name, str):
        raise ValidationError(f"Name must be a string: {name!r}")
    name = name.strip()
    if not name:
        raise ValidationError("Name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters")
    if "/" in name:
        raise ValidationError(f"Name must not contain '/': {name!r}")
    return name


# ---------------------------------------------------------------------------
# TagSet
# ---------------------------------------------------------------------------


class TagSet:
    """
    Immutable set of tags that remembers insertion order.

    Display order is the order tags were first added. Adding a tag that is
    already present returns the same set, so duplicates cannot exist.
    """

    __slots__ = ("_tags",)

    def __init__(self, tags: Iterable[str] = ()):
        # dict keys give set semantics with stable ordering
        self._tags: dict[str, None] = dict.fromkeys(tags)

    def add(self, tag: str) -> "TagSet":
        """Return a set containing ``tag`` (self if already present)."""
        if tag in self._tags:
            return self
        return TagSet([*self._tags, tag])

    def union(self, tags: Iterable[str]) -> "TagSet":
        """Return a set with ``tags`` appended after the existing ones."""
        merged = TagSet([*self._tags, *tags])
        return self if len(merged) == len(self) else merged

    def discard(self, tag: str) -> "TagSet":
        """Return a set without ``tag`` (self if it was not present)."""
        if tag not in self._tags:
            return self
        return TagSet(t for t in self._tags if t != tag)

    def to_list(self) -> list[str]:
        return list(self._tags)

    def __contains__(self, tag: object) -> bool:
        return tag in self._tags

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __bool__(self) -> bool:
        return bool(self._tags)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TagSet):
            return list(self._tags) == list(other._tags)
        if isinstance(other, (list, tuple)):
            return list(self._tags) == list(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._tags))

    def __repr__(self) -> str:
        return f"TagSet({list(self._tags)!r})"


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalysisResult:
    """
    AI-generated analysis of a file.

    Attributes:
        summary: Short description of the content
        suggested_name: Proposed kebab-case file name
        tags: Keywords, deduplicated and in display order
        document_type: Label such as "Invoice", "Meeting Notes" or "Image"
    """
    summary: str
    suggested_name: str
    tags: TagSet = field(default_factory=TagSet)
    document_type: str = UNKNOWN_DOCUMENT_TYPE

    def __post_init__(self):
        if not isinstance(self.tags, TagSet):
            object.__setattr__(self, "tags", TagSet(self.tags))

    @classmethod
    def empty(cls) -> "AnalysisResult":
        """Shell analysis used when a tag is attached before any analysis ran."""
        return cls(summary="", suggested_name="", tags=TagSet(), document_type=UNKNOWN_DOCUMENT_TYPE)

    def with_tag(self, tag: str) -> "AnalysisResult":
        tags = self.tags.add(tag)
        return self if tags is self.tags else replace(self, tags=tags)

    def without_tag(self, tag: str) -> "AnalysisResult":
        tags = self.tags.discard(tag)
        return self if tags is self.tags else replace(self, tags=tags)

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "suggestedName": self.suggested_name,
            "tags": self.tags.to_list(),
            "documentType": self.document_type,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "AnalysisResult":
        """Build from the wire/persisted shape. Raises ValueError if incomplete."""
        try:
            summary = d["summary"]
            suggested = d["suggestedName"]
            tags = d["tags"]
            doc_type = d["documentType"]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Incomplete analysis: missing {e}") from e
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValueError("Analysis tags must be a list of strings")
        if not all(isinstance(v, str) for v in (summary, suggested, doc_type)):
            raise ValueError("Analysis fields must be strings")
        return cls(
            summary=summary,
            suggested_name=suggested,
            tags=TagSet(t.strip() for t in tags if t.strip()),
            document_type=doc_type,
        )


@dataclass(frozen=True)
class FileNode:
    """A file in the workspace. Content and MIME type never change after creation."""
    id: str
    name: str
    content: Union[str, bytes]
    mime_type: str
    path: str
    analysis: AnalysisResult | None = None

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith(IMAGE_MIME_PREFIX)

    @property
    def tags(self) -> TagSet:
        """Tags from the analysis, or an empty set if not analyzed."""
        return self.analysis.tags if self.analysis is not None else TagSet()

    def __str__(self) -> str:
        return f"{self.id}: {self.name} ({self.mime_type})"


@dataclass(frozen=True)
class FolderNode:
    """A folder. ``children`` order is display order."""
    id: str
    name: str
    path: str
    children: tuple["TreeNode", ...] = ()

    def __post_init__(self):
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))

    def __str__(self) -> str:
        return f"{self.id}: {self.name}/ ({len(self.children)} items)"


TreeNode = Union[FileNode, FolderNode]

# The workspace is an ordered sequence of top-level nodes
Tree = tuple[TreeNode, ...]


# ---------------------------------------------------------------------------
# Serialization: tagged union, camelCase keys
# ---------------------------------------------------------------------------


def node_to_dict(node: TreeNode) -> dict[str, Any]:
    """Serialize a node (recursively for folders) to JSON-ready data."""
    if isinstance(node, FolderNode):
        return {
            "id": node.id,
            "name": node.name,
            "type": "folder",
            "path": node.path,
            "children": [node_to_dict(c) for c in node.children],
        }
    d: dict[str, Any] = {
        "id": node.id,
        "name": node.name,
        "type": "file",
        "mimeType": node.mime_type,
        "path": node.path,
    }
    if isinstance(node.content, bytes):
        d["content"] = base64.b64encode(node.content).decode("ascii")
        d["encoding"] = "base64"
    else:
        d["content"] = node.content
    if node.analysis is not None:
        d["analysis"] = node.analysis.to_dict()
    return d


def node_from_dict(d: dict[str, Any]) -> TreeNode:
    """
    Deserialize a node.

    Raises ValueError on any malformed input; callers decide whether
    to fall back (persistence) or surface the error.
    """
    if not isinstance(d, dict):
        raise ValueError(f"Node must be an object, got {type(d).__name__}")
    kind = d.get("type")
    try:
        node_id = d["id"]
        name = d["name"]
        path = d.get("path", "")
    except KeyError as e:
        raise ValueError(f"Node missing field {e}") from e
    if not isinstance(node_id, str) or not node_id:
        raise ValueError(f"Invalid node id: {node_id!r}")
    if not isinstance(name, str) or not isinstance(path, str):
        raise ValueError(f"Node {node_id} name and path must be strings")

    if kind == "folder":
        children = d.get("children", [])
        if not isinstance(children, list):
            raise ValueError(f"Folder {node_id} children must be a list")
        return FolderNode(
            id=node_id,
            name=name,
            path=path,
            children=tuple(node_from_dict(c) for c in children),
        )
    if kind == "file":
        try:
            content = d["content"]
            mime_type = d["mimeType"]
        except KeyError as e:
            raise ValueError(f"File {node_id} missing field {e}") from e
        if not isinstance(content, str) or not isinstance(mime_type, str):
            raise ValueError(f"File {node_id} content and mimeType must be strings")
        if d.get("encoding") == "base64":
            try:
                content = base64.b64decode(content, validate=True)
            except (ValueError, TypeError) as e:
                raise ValueError(f"File {node_id} has invalid base64 content") from e
        analysis = d.get("analysis")
        return FileNode(
            id=node_id,
            name=name,
            content=content,
            mime_type=mime_type,
            path=path,
            analysis=AnalysisResult.from_dict(analysis) if analysis is not None else None,
        )
    raise ValueError(f"Unknown node type: {kind!r}")


def tree_to_list(tree: Tree) -> list[dict[str, Any]]:
    return [node_to_dict(n) for n in tree]


def tree_from_list(data: list) -> Tree:
    """Deserialize a whole tree and check id uniqueness."""
    if not isinstance(data, list):
        raise ValueError(f"Tree must be a list, got {type(data).__name__}")
    tree = tuple(node_from_dict(d) for d in data)
    seen: set[str] = set()
    stack = list(tree)
    while stack:
        node = stack.pop()
        if node.id in seen:
            raise ValueError(f"Duplicate node id: {node.id}")
        seen.add(node.id)
        if isinstance(node, FolderNode):
            stack.extend(node.children)
    return tree
