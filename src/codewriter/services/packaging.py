"""Zip packaging for downloads."""

from __future__ import annotations

import io
import logging
import zipfile
from datetime import UTC, datetime
from typing import Dict, Optional, Sequence

from ..core.directives import is_contained_path, iter_files, split_path
from ..core.extractor import ARTIFACT_ORDER, CSS_FILE, HTML_FILE, JS_FILE, combine
from ..domain.directives import FileTreeNode


LOG = logging.getLogger("codewriter.packaging")

COMBINED_FILE = "combined.html"
README_FILE = "README.md"

_DESCRIPTIONS = {
    HTML_FILE: "HTML structure",
    CSS_FILE: "Styles",
    JS_FILE: "JavaScript functionality",
    COMBINED_FILE: "All-in-one file with HTML, CSS, and JavaScript combined",
}


def _readme(names: Sequence[str], generated_at: datetime) -> str:
    lines = [
        "# Generated Web Application",
        "",
        "This package contains:",
    ]
    for name in names:
        lines.append(f"- {name}: {_DESCRIPTIONS.get(name, 'Source file')}")
    lines += [
        "",
        "Open index.html (or combined.html) in a browser to run the application.",
        "",
        f"Generated on: {generated_at.isoformat().replace('+00:00', 'Z')}",
        "",
    ]
    return "\n".join(lines)


def archive_artifacts(files: Dict[str, str], now: Optional[datetime] = None) -> bytes:
    """Zip an artifact set with a combined preview document and a README.

    Empty artifacts are skipped; ``combined.html`` is only added when there is
    HTML plus at least one of CSS or JavaScript.
    """

    present = [name for name in ARTIFACT_ORDER if (files.get(name) or "").strip()]
    extra = sorted(name for name, body in files.items() if name not in ARTIFACT_ORDER and (body or "").strip())
    names = present + extra
    if not names:
        raise ValueError("No files to package")

    listed = list(names)
    has_combined = HTML_FILE in present and (CSS_FILE in present or JS_FILE in present)
    if has_combined:
        listed.append(COMBINED_FILE)

    mem = io.BytesIO()
    with zipfile.ZipFile(mem, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name in names:
            zf.writestr(name, files[name])
        if has_combined:
            zf.writestr(COMBINED_FILE, combine({name: files[name] for name in present}))
        zf.writestr(README_FILE, _readme(listed, now or datetime.now(UTC)))
    return mem.getvalue()


def archive_tree(nodes: Sequence[FileTreeNode]) -> bytes:
    """Zip every file node of a tree at its path."""

    files = []
    for node in iter_files(nodes):
        if is_contained_path(node.path):
            files.append(node)
        else:
            LOG.warning("archive_path_outside_project", extra={"path": node.path})
    if not files:
        raise ValueError("No files to package")
    mem = io.BytesIO()
    with zipfile.ZipFile(mem, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for node in files:
            zf.writestr("/".join(split_path(node.path)), node.content or "")
    return mem.getvalue()
