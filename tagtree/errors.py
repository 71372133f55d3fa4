"""
Exceptions and error logging for tagtree.

Per-item failures (image comparison) are absorbed where they happen.
Everything else is raised to the caller with a message fit for display;
the CLI logs full tracebacks to a file and shows only the message.
"""

import enum
import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class TagTreeError(Exception):
    """Base class for all tagtree errors."""


class ValidationError(TagTreeError, ValueError):
    """Rejected user input (empty tag, empty name, wrong node kind)."""


class NodeNotFoundError(TagTreeError, KeyError):
    """No node with the given id exists in the tree."""

    def __init__(self, node_id: str):
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self) -> str:
        return f"Node not found: {self.node_id}"


class AnalysisFailure(enum.Enum):
    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK = "network"
    MALFORMED = "malformed"


_ANALYSIS_MESSAGES = {
    AnalysisFailure.QUOTA_EXCEEDED: (
        "API quota exceeded. Please check your plan and billing details. "
        "For continued use, you may need to enable billing on your project."
    ),
    AnalysisFailure.NETWORK: (
        "Failed to get analysis from the analyzer service. "
        "Please check your API key and network connection."
    ),
    AnalysisFailure.MALFORMED: (
        "The analyzer service returned a response that could not be parsed."
    ),
}


class AnalysisError(TagTreeError):
    """
    Document analysis failed. The tree is left unchanged; retrying is safe.

    Attributes:
        reason: Which kind of failure occurred
    """

    def __init__(self, reason: AnalysisFailure, message: str | None = None):
        super().__init__(message or _ANALYSIS_MESSAGES[reason])
        self.reason = reason

    @property
    def retryable(self) -> bool:
        return self.reason is not AnalysisFailure.MALFORMED


class ComparisonError(TagTreeError):
    """Image comparison failed. Never escapes a comparator's compare()."""


class PersistenceError(TagTreeError):
    """Writing the workspace snapshot failed. Reported through save status only."""


class PropagationInProgressError(TagTreeError):
    """A smart-tag run is already active."""

    def __init__(self, message: str = "A smart tag propagation is already running"):
        super().__init__(message)


def _error_log_path(store_path: Optional[Path] = None) -> Path:
    """Resolve error log path: explicit store, then TAGTREE_STORE_PATH, then ~/.tagtree."""
    if store_path is not None:
        return Path(store_path) / "tagtree-errors.log"
    store = os.environ.get("TAGTREE_STORE_PATH")
    if store:
        return Path(store) / "tagtree-errors.log"
    return Path.home() / ".tagtree" / "tagtree-errors.log"


def log_exception(exc: Exception, context: str = "", store_path: Optional[Path] = None) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        store_path: Store directory in use, if known

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(store_path)
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Error log is best-effort
    return log_path
