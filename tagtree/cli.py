"""
CLI interface for the tagtree workspace.

Usage:
    tagtree ls
    tagtree upload photos/cat.png notes.txt
    tagtree analyze <id>
    tagtree smart-tag <id> cat
"""

import asyncio
import atexit
import json
import os
from pathlib import Path
from typing import Any, Coroutine, Optional

import typer
from typing_extensions import Annotated

from .errors import AnalysisError, AnalysisFailure, TagTreeError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .propagation import PropagationPhase, PropagationStatus
from .tree import iter_nodes
from .types import FileNode, FolderNode, Tree, TreeNode
from .workspace import Workspace

# Characters of text content shown by `show`
PREVIEW_CHARS = 500

BILLING_HINT = (
    "This indicates you've hit the API usage limit. "
    "See https://ai.google.dev/gemini-api/docs/billing to increase limits."
)


# Configure quiet mode by default (suppress verbose library output)
# Set TAGTREE_VERBOSE=1 to enable debug mode via environment
if os.environ.get("TAGTREE_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"tagtree {version('tagtree')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None
# Store of the workspace opened by the running command
_active_store: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="tagtree",
    help="Document workspace with AI analysis and smart tags.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

StoreOption = Annotated[Optional[Path], typer.Option(
    "--store", "-s",
    envvar="TAGTREE_STORE_PATH",
    help="Workspace directory (default: ~/.tagtree)",
)]


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        help="Workspace directory (default: ~/.tagtree)",
        callback=_store_callback,
    )] = None,
):
    """Document workspace with AI analysis and smart tags."""


# -----------------------------------------------------------------------------
# Output Formatting
# -----------------------------------------------------------------------------

def _tags_suffix(node: TreeNode) -> str:
    if isinstance(node, FileNode) and node.tags:
        return "  " + " ".join(f"#{t}" for t in node.tags)
    return ""


def _format_tree(tree: Tree) -> str:
    """Indented listing: one node per line with its id and tags."""
    if not tree:
        return "(empty workspace)"
    lines = []
    for depth, node in iter_nodes(tree):
        indent = "  " * depth
        if isinstance(node, FolderNode):
            lines.append(f"{indent}{node.name}/  [{node.id}]")
        else:
            lines.append(f"{indent}{node.name}  [{node.id}]{_tags_suffix(node)}")
    return "\n".join(lines)


def _node_to_display_dict(node: TreeNode) -> dict[str, Any]:
    """JSON-ready node without file content."""
    if isinstance(node, FolderNode):
        return {
            "id": node.id,
            "name": node.name,
            "type": "folder",
            "path": node.path,
            "children": [_node_to_display_dict(c) for c in node.children],
        }
    return {
        "id": node.id,
        "name": node.name,
        "type": "file",
        "path": node.path,
        "mimeType": node.mime_type,
        "analysis": node.analysis.to_dict() if node.analysis is not None else None,
    }


def _format_node(node: TreeNode) -> str:
    if _get_json_output():
        return json.dumps(_node_to_display_dict(node), indent=2, ensure_ascii=False)
    if isinstance(node, FolderNode):
        return _format_tree((node,))
    lines = [
        f"id: {node.id}",
        f"name: {node.name}",
        f"path: {node.path}",
        f"type: {node.mime_type}",
    ]
    if node.analysis is not None:
        a = node.analysis
        lines.append(f"document_type: {a.document_type}")
        lines.append(f"suggested_name: {a.suggested_name}")
        lines.append(f"tags: {', '.join(a.tags) if a.tags else '(none)'}")
        if a.summary:
            lines.append("")
            lines.append(a.summary)
    if not node.is_image and isinstance(node.content, str):
        preview = node.content[:PREVIEW_CHARS]
        if len(node.content) > PREVIEW_CHARS:
            preview += "..."
        lines.append("")
        lines.append(preview)
    return "\n".join(lines)


def _echo_status(status: PropagationStatus) -> None:
    if status.phase is not PropagationPhase.IDLE and status.message:
        typer.echo(status.message, err=True)


def _echo_error(e: Exception) -> None:
    typer.echo(f"Error: {e}", err=True)
    if isinstance(e, AnalysisError) and e.reason is AnalysisFailure.QUOTA_EXCEEDED:
        typer.echo(BILLING_HINT, err=True)


# -----------------------------------------------------------------------------
# Workspace access
# -----------------------------------------------------------------------------

def _get_workspace(store: Optional[Path], **kwargs) -> Workspace:
    """Open the workspace, honouring --store on the command or the main callback."""
    actual_store = store if store is not None else _get_store_override()
    try:
        ws = Workspace(actual_store, **kwargs)
    except (ValueError, OSError, RuntimeError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    global _active_store
    _active_store = ws.store_path
    # Ensure the pending snapshot is written before interpreter shutdown
    atexit.register(ws.close)
    return ws


def _run(ws: Workspace, coro: Coroutine):
    """Run an async workspace call, flushing the snapshot before the loop closes."""
    async def _with_flush():
        try:
            return await coro
        finally:
            ws.flush()
    return asyncio.run(_with_flush())


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("ls")
def list_cmd(
    store: StoreOption = None,
):
    """List the workspace tree with node ids and tags."""
    ws = _get_workspace(store)
    if _get_json_output():
        typer.echo(json.dumps([_node_to_display_dict(n) for n in ws.tree], indent=2, ensure_ascii=False))
    else:
        typer.echo(_format_tree(ws.tree))


@app.command()
def upload(
    paths: Annotated[list[Path], typer.Argument(help="Files to add to the workspace")],
    store: StoreOption = None,
):
    """
    Upload files to the top level of the workspace.

    \b
    Examples:
        tagtree upload report.pdf
        tagtree upload photos/*.jpg
    """
    ws = _get_workspace(store)
    had_errors = False
    for path in paths:
        try:
            node = ws.upload_file(path)
        except (TagTreeError, OSError) as e:
            typer.echo(f"Error: {path}: {e}", err=True)
            had_errors = True
            continue
        typer.echo(f"{node.name}  [{node.id}]")
    ws.flush()
    if had_errors:
        raise typer.Exit(1)


@app.command()
def show(
    id: Annotated[str, typer.Argument(help="Node id")],
    store: StoreOption = None,
):
    """Show a node and its analysis."""
    ws = _get_workspace(store)
    node = ws.find(id)
    if node is None:
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    typer.echo(_format_node(node))


@app.command()
def analyze(
    id: Annotated[str, typer.Argument(help="File id")],
    store: StoreOption = None,
):
    """
    Analyze a file: summary, suggested name, tags, document type.

    The analysis is cached; analyzing the same file again costs nothing.
    """
    ws = _get_workspace(store)
    try:
        _run(ws, ws.select(id))
    except TagTreeError as e:
        _echo_error(e)
        raise typer.Exit(1)
    typer.echo(_format_node(ws.find(id)))


@app.command()
def rename(
    id: Annotated[str, typer.Argument(help="Node id")],
    name: Annotated[Optional[str], typer.Argument(help="New name")] = None,
    suggested: Annotated[bool, typer.Option(
        "--suggested",
        help="Use the name suggested by the analysis",
    )] = False,
    store: StoreOption = None,
):
    """
    Rename a file or folder.

    \b
    Examples:
        tagtree rename abc123 "meeting-notes.txt"
        tagtree rename abc123 --suggested
    """
    ws = _get_workspace(store)
    if name is None and not suggested:
        typer.echo("Error: Specify a NAME or --suggested", err=True)
        raise typer.Exit(1)
    try:
        node = ws.apply_suggested_name(id) if suggested else ws.rename(id, name)
    except TagTreeError as e:
        _echo_error(e)
        raise typer.Exit(1)
    ws.flush()
    typer.echo(f"{node.name}  [{node.id}]")


@app.command()
def tag(
    id: Annotated[str, typer.Argument(help="File id")],
    tags: Annotated[list[str], typer.Argument(help="Tags to add")],
    store: StoreOption = None,
):
    """Add tags to a file."""
    ws = _get_workspace(store)
    try:
        for t in tags:
            node = ws.add_tag(id, t)
    except TagTreeError as e:
        _echo_error(e)
        raise typer.Exit(1)
    ws.flush()
    typer.echo(f"{node.name}  [{node.id}]{_tags_suffix(node)}")


@app.command()
def untag(
    id: Annotated[str, typer.Argument(help="File id")],
    tags: Annotated[list[str], typer.Argument(help="Tags to remove")],
    store: StoreOption = None,
):
    """Remove tags from a file."""
    ws = _get_workspace(store)
    try:
        for t in tags:
            node = ws.remove_tag(id, t)
    except TagTreeError as e:
        _echo_error(e)
        raise typer.Exit(1)
    ws.flush()
    typer.echo(f"{node.name}  [{node.id}]{_tags_suffix(node)}")


@app.command("smart-tag")
def smart_tag(
    id: Annotated[str, typer.Argument(help="Source image id")],
    tag: Annotated[str, typer.Argument(help="Tag for the subject of the image")],
    store: StoreOption = None,
):
    """
    Tag an image and every other image showing the same subject.

    Each other image that lacks the tag is compared with the source, one
    at a time. Images that fail to compare are left untagged.
    """
    ws = _get_workspace(store, on_propagation_status=_echo_status)
    try:
        result = _run(ws, ws.propagate_tag(id, tag))
    except TagTreeError as e:
        _echo_error(e)
        raise typer.Exit(1)
    if _get_json_output():
        typer.echo(json.dumps({
            "source": result.source_id,
            "tag": result.tag,
            "compared": result.compared,
            "matched": list(result.matched_ids),
        }))
    else:
        typer.echo(result.message)


@app.command("rm")
def remove_cmd(
    ids: Annotated[list[str], typer.Argument(help="Node ids to remove")],
    store: StoreOption = None,
):
    """Remove files or folders (folders with everything in them)."""
    ws = _get_workspace(store)
    had_errors = False
    for one_id in ids:
        node = ws.find(one_id)
        if node is None or not ws.remove(one_id):
            typer.echo(f"Not found: {one_id}", err=True)
            had_errors = True
            continue
        typer.echo(f"Removed {node.name}  [{one_id}]")
    ws.flush()
    if had_errors:
        raise typer.Exit(1)


@app.command()
def reset(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
    store: StoreOption = None,
):
    """Reset the workspace. All uploaded files and changes will be lost."""
    if not yes:
        typer.confirm(
            "Are you sure you want to reset your workspace? "
            "All uploaded files and changes will be lost.",
            abort=True,
        )
    ws = _get_workspace(store)
    ws.reset()
    typer.echo("Workspace reset")


@app.command()
def config(
    store: StoreOption = None,
):
    """Show the workspace configuration."""
    ws = _get_workspace(store)
    cfg = ws.config
    data = {
        "path": str(cfg.path),
        "config_file": str(cfg.config_path),
        "storage": str(cfg.storage_path),
        "analyzer": {"name": cfg.analyzer.name, **cfg.analyzer.params},
        "comparator": {"name": cfg.comparator.name, **cfg.comparator.params},
        "save_delay": cfg.save_delay,
    }
    if _get_json_output():
        typer.echo(json.dumps(data, indent=2))
        return
    typer.echo(f"store: {data['path']}")
    typer.echo(f"config: {data['config_file']}")
    typer.echo(f"storage: {data['storage']}")
    typer.echo(f"analyzer: {cfg.analyzer.name}")
    typer.echo(f"comparator: {cfg.comparator.name}")
    typer.echo(f"save_delay: {cfg.save_delay}s")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="tagtree CLI", store_path=_active_store or _get_store_override())
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
