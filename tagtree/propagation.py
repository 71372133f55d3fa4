"""
Smart tag propagation.

A run tags the source image, then asks the comparator about every other
image that does not carry the tag yet, one at a time. Matches are collected
during the scan and written in one combined update at the end, so the
result depends only on the tree, the tag and the comparator's answers,
never on timing.

Phases of a run:

    IDLE -> SCANNING -> COMPARING (i of n) -> FINALIZING -> IDLE

Only one run may be active per engine. A comparator failure counts as
"no match" for that one candidate and the scan continues.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from . import tree as treeops
from .errors import NodeNotFoundError, PropagationInProgressError, ValidationError
from .providers.base import ImageComparator
from .types import FileNode, Tree, validate_tag

logger = logging.getLogger(__name__)


class PropagationPhase(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPARING = "comparing"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class PropagationStatus:
    """Progress report for display. ``current``/``total`` are set while comparing."""
    phase: PropagationPhase
    message: str = ""
    current: int = 0
    total: int = 0


IDLE_STATUS = PropagationStatus(PropagationPhase.IDLE)

SCANNING_MESSAGE = "Scanning for similar images... This may take a moment."
NO_CANDIDATES_MESSAGE = "No other images found to compare."


@dataclass(frozen=True)
class PropagationResult:
    """Outcome of one run."""
    tree: Tree
    tag: str
    source_id: str
    matched_ids: tuple[str, ...] = ()
    compared: int = 0

    @property
    def matched(self) -> int:
        return len(self.matched_ids)

    @property
    def message(self) -> str:
        if self.compared == 0:
            return NO_CANDIDATES_MESSAGE
        return f"Smart tag applied! {self.matched} other image(s) were updated."


StatusCallback = Callable[[PropagationStatus], None]


class PropagationEngine:
    """
    Runs smart tag propagation against an image comparator.

    Args:
        comparator: Decides whether two images share a subject
        on_status: Called with every status change (optional)
    """

    def __init__(
        self,
        comparator: ImageComparator,
        on_status: Optional[StatusCallback] = None,
    ):
        self._comparator = comparator
        self._on_status = on_status
        self._running = False
        self.status: PropagationStatus = IDLE_STATUS

    @property
    def running(self) -> bool:
        return self._running

    def _report(self, status: PropagationStatus) -> None:
        self.status = status
        if self._on_status is not None:
            try:
                self._on_status(status)
            except Exception as e:
                logger.warning("Status callback failed: %s", e)

    async def propagate_tag(self, tree: Tree, source_file_id: str, tag: str) -> PropagationResult:
        """
        Tag ``source_file_id`` and every image the comparator matches with it.

        Raises:
            ValidationError: empty tag, or the source is not an image file
            NodeNotFoundError: no node with that id
            PropagationInProgressError: another run is active
        """
        tag = validate_tag(tag)
        source = treeops.find(tree, source_file_id)
        if source is None:
            raise NodeNotFoundError(source_file_id)
        if not treeops.is_image_file(source):
            raise ValidationError(f"Smart tags apply to images only: {source.name}")
        if self._running:
            raise PropagationInProgressError()

        self._running = True
        try:
            return await self._run(tree, source, tag)
        finally:
            self._running = False
            self._report(IDLE_STATUS)

    async def _run(self, tree: Tree, source: FileNode, tag: str) -> PropagationResult:
        # The tagged source comes straight from the transform; nothing is re-read
        tagged_source = treeops.add_tag(source, tag)
        tree = treeops.update(tree, source.id, lambda _: tagged_source)

        self._report(PropagationStatus(PropagationPhase.SCANNING, SCANNING_MESSAGE))
        candidates = list(treeops.collect(
            tree,
            lambda n: n.is_image and n.id != tagged_source.id and tag not in n.tags,
        ))
        total = len(candidates)
        logger.info("Smart tag %r from %s: %d candidate(s)", tag, source.id, total)

        if not candidates:
            self._report(PropagationStatus(PropagationPhase.FINALIZING, NO_CANDIDATES_MESSAGE))
            return PropagationResult(tree=tree, tag=tag, source_id=source.id)

        matched: list[str] = []
        for i, candidate in enumerate(candidates, start=1):
            self._report(PropagationStatus(
                PropagationPhase.COMPARING,
                f"Comparing image {i} of {total}...",
                current=i,
                total=total,
            ))
            try:
                is_match = await self._comparator.compare(tagged_source, candidate)
            except Exception as e:
                logger.warning("Error comparing image %s: %s", candidate.name, e)
                is_match = False
            if is_match is True:
                matched.append(candidate.id)

        tree = treeops.add_tag_to_many(tree, matched, tag)
        result = PropagationResult(
            tree=tree,
            tag=tag,
            source_id=source.id,
            matched_ids=tuple(matched),
            compared=total,
        )
        self._report(PropagationStatus(PropagationPhase.FINALIZING, result.message))
        logger.info("Smart tag %r applied to %d of %d image(s)", tag, result.matched, total)
        return result
