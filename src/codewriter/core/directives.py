"""Tagged action stream parsing and virtual file tree materialization.

The builder flow asks the model to answer with one ``<boltArtifact>`` wrapping
``<boltAction>`` elements::

    <boltArtifact id="todo" title="Todo App">
      <boltAction type="file" filePath="src/App.js">...</boltAction>
      <boltAction type="shell">npm run dev</boltAction>
    </boltArtifact>

``parse_directives`` turns that text into ordered :class:`Directive` steps and
``materialize`` folds the pending file steps into a :class:`FileTreeNode` tree.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from ..domain.directives import (
    Directive,
    DirectiveKind,
    FileTreeNode,
    file_node,
    folder_node,
)


LOG = logging.getLogger("codewriter.directives")

DEFAULT_ARTIFACT_TITLE = "Project Files"

_ARTIFACT = re.compile(r"<boltArtifact\b([^>]*)>(.*?)(?:</boltArtifact\s*>|\Z)", re.DOTALL)
_ACTION = re.compile(r"<boltAction\b([^>]*)>(.*?)</boltAction\s*>", re.DOTALL)
_ATTRIBUTE = re.compile(r"([A-Za-z_][\w:-]*)\s*=\s*(?:\"([^\"]*)\"|'([^']*)')")


def _attributes(raw: str) -> Dict[str, str]:
    attrs: Dict[str, str] = {}
    for name, double_quoted, single_quoted in _ATTRIBUTE.findall(raw or ""):
        attrs[name] = double_quoted if double_quoted or not single_quoted else single_quoted
    return attrs


def parse_directives(text: Optional[str], start_id: int = 1) -> List[Directive]:
    """Return the directives described by ``text`` in document order.

    Missing outer artifact yields ``[]``. File actions without a path are
    dropped; unknown action types are ignored.
    """

    if not isinstance(text, str):
        return []
    artifact = _ARTIFACT.search(text)
    if not artifact:
        return []

    next_id = start_id
    title = _attributes(artifact.group(1)).get("title") or DEFAULT_ARTIFACT_TITLE
    steps: List[Directive] = [
        Directive(id=next_id, kind=DirectiveKind.CREATE_FOLDER, title=title),
    ]
    next_id += 1

    for match in _ACTION.finditer(artifact.group(2)):
        attrs = _attributes(match.group(1))
        action_type = (attrs.get("type") or "").strip().lower()
        body = match.group(2).strip()
        if action_type == "file":
            path = (attrs.get("filePath") or attrs.get("path") or "").strip()
            if not path:
                LOG.warning("directive_file_without_path", extra={"artifact": title})
                continue
            if not is_contained_path(path):
                LOG.warning("directive_file_outside_project", extra={"artifact": title, "path": path})
                continue
            steps.append(
                Directive(
                    id=next_id,
                    kind=DirectiveKind.CREATE_FILE,
                    title=f"Create {path}",
                    path=path,
                    content=body,
                )
            )
        elif action_type == "shell":
            steps.append(
                Directive(id=next_id, kind=DirectiveKind.RUN_SCRIPT, title="Run command", content=body)
            )
        else:
            LOG.debug("directive_unknown_type", extra={"type": action_type})
            continue
        next_id += 1
    return steps


_PATH_SEPARATORS = re.compile(r"[\\/]")
_DOT_SEGMENTS = frozenset({".", ".."})


def split_path(path: Optional[str]) -> List[str]:
    return [segment for segment in _PATH_SEPARATORS.split(path or "") if segment]


def is_contained_path(path: Optional[str]) -> bool:
    """True when ``path`` names something strictly inside the project root."""
    segments = split_path(path)
    return bool(segments) and not any(segment in _DOT_SEGMENTS for segment in segments)


def _index_tree(nodes: Sequence[FileTreeNode], index: Dict[str, FileTreeNode]) -> None:
    for node in nodes:
        index[node.path] = node
        if node.children:
            _index_tree(node.children, index)


def _conflict(index: Dict[str, FileTreeNode], segments: List[str]) -> Optional[str]:
    prefix = ""
    for name in segments[:-1]:
        prefix = f"{prefix}/{name}" if prefix else name
        node = index.get(prefix)
        if node is not None and node.type != "folder":
            return prefix
    target = index.get("/".join(segments))
    if target is not None and target.type != "file":
        return target.path
    return None


def _apply_file(roots: List[FileTreeNode], index: Dict[str, FileTreeNode], step: Directive) -> None:
    segments = split_path(step.path)
    if not segments:
        LOG.warning("materialize_empty_path", extra={"directive": step.id})
        return
    if not is_contained_path(step.path):
        LOG.warning("materialize_path_outside_project", extra={"directive": step.id, "path": step.path})
        return
    clash = _conflict(index, segments)
    if clash is not None:
        LOG.warning("materialize_path_conflict", extra={"directive": step.id, "path": step.path, "clash": clash})
        return

    siblings = roots
    prefix = ""
    for name in segments[:-1]:
        prefix = f"{prefix}/{name}" if prefix else name
        folder = index.get(prefix)
        if folder is None:
            folder = folder_node(name, prefix)
            siblings.append(folder)
            index[prefix] = folder
        siblings = folder.children  # type: ignore[assignment]

    path = "/".join(segments)
    existing = index.get(path)
    if existing is None:
        created = file_node(segments[-1], path, step.content or "")
        siblings.append(created)
        index[path] = created
    else:
        existing.content = step.content or ""


def materialize(
    tree: Sequence[FileTreeNode],
    directives: Sequence[Directive],
) -> Tuple[List[FileTreeNode], List[Directive]]:
    """Fold pending file directives into a copy of ``tree``.

    Returns the new root list and the directives with every pending entry
    marked completed. Completed directives are left untouched, so calling this
    again without new pending directives reproduces the same tree.
    """

    roots = [node.model_copy(deep=True) for node in tree]
    index: Dict[str, FileTreeNode] = {}
    _index_tree(roots, index)

    updated: List[Directive] = []
    for step in directives:
        if step.status != "pending":
            updated.append(step)
            continue
        if step.kind == DirectiveKind.CREATE_FILE:
            _apply_file(roots, index, step)
        updated.append(step.model_copy(update={"status": "completed"}))
    return roots, updated


def find_node(tree: Sequence[FileTreeNode], path: str) -> Optional[FileTreeNode]:
    index: Dict[str, FileTreeNode] = {}
    _index_tree(tree, index)
    return index.get("/".join(split_path(path)))


def iter_files(tree: Sequence[FileTreeNode]) -> List[FileTreeNode]:
    """Return every file node, depth first, in tree order."""

    files: List[FileTreeNode] = []
    for node in tree:
        if node.type == "file":
            files.append(node)
        elif node.children:
            files.extend(iter_files(node.children))
    return files
