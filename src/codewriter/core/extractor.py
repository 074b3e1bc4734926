"""Recover HTML/CSS/JS artifacts from free-form model output.

Model replies rarely follow the requested layout exactly, so extraction runs
an ordered cascade of strategies. Each strategy fills the artifact kinds the
previous ones left empty; unwrapping a document also lifts its inline regions:

1. marked blocks (``<!-- HTML -->``, ``/* CSS */ <style>``, ``/* JavaScript */ <script>``)
2. bare ``<style>`` / ``<script>`` pairs (and an unmarked full document) anywhere in the text
3. unwrapping a full HTML document into its body plus every inline style and script
4. fenced code blocks, classified by language tag or content

Every function here is pure and total: any input (including a half-received
stream prefix) yields a dict, possibly empty, and never raises.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple


HTML_FILE = "index.html"
CSS_FILE = "styles.css"
JS_FILE = "app.js"

ARTIFACT_ORDER: Tuple[str, ...] = (HTML_FILE, CSS_FILE, JS_FILE)

_FLAGS = re.IGNORECASE | re.DOTALL

_CSS_MARKER = r"(?:/\*\s*CSS\s*\*/|<!--\s*CSS\s*-->)"
_JS_MARKER = r"(?:/\*\s*JavaScript\s*\*/|<!--\s*JavaScript\s*-->)"
_HTML_MARKER = r"<!--\s*HTML\s*-->"

_MARKED_HTML = re.compile(
    _HTML_MARKER + r"(.*?)(?=" + _CSS_MARKER + "|" + _JS_MARKER + "|" + _HTML_MARKER + r"|\Z)",
    _FLAGS,
)
_MARKED_CSS = re.compile(_CSS_MARKER + r"\s*<style[^>]*>(.*?)</style\s*>", _FLAGS)
_MARKED_JS = re.compile(_JS_MARKER + r"\s*<script[^>]*>(.*?)</script\s*>", _FLAGS)

_STYLE_PAIR = re.compile(r"<style[^>]*>(.*?)</style\s*>", _FLAGS)
_SCRIPT_PAIR = re.compile(r"<script[^>]*>(.*?)</script\s*>", _FLAGS)

_FULL_DOCUMENT = re.compile(r"<!doctype\s+html|<html[\s>]", re.IGNORECASE)
_BODY = re.compile(r"<body(?:\s[^>]*)?>(.*?)(?:</body\s*>|\Z)", _FLAGS)
_HEAD = re.compile(r"<head(?:\s[^>]*)?>(.*?)(?:</head\s*>|\Z)", _FLAGS)
_HTML_CLOSE = re.compile(r"</html\s*>", re.IGNORECASE)

_FENCED_BLOCK = re.compile(r"```([^\n`]*)\n?(.*?)```", re.DOTALL)
_JS_KEYWORD = re.compile(r"\b(?:function|const|let|var)\b")
_TAG_SYNTAX = re.compile(r"<[A-Za-z!/][^>]*>")

_FENCE_LANGUAGES = {
    "html": HTML_FILE,
    "htm": HTML_FILE,
    "css": CSS_FILE,
    "js": JS_FILE,
    "javascript": JS_FILE,
}


def _first_group(pattern: "re.Pattern[str]", text: str) -> str:
    match = pattern.search(text)
    return match.group(1).strip() if match else ""


def _nonempty_groups(pattern: "re.Pattern[str]", text: str) -> List[str]:
    return [m.group(1).strip() for m in pattern.finditer(text) if m.group(1).strip()]


def _first_nonempty(pattern: "re.Pattern[str]", text: str) -> str:
    # <script src=...></script> and other empty pairs never shadow inline code.
    groups = _nonempty_groups(pattern, text)
    return groups[0] if groups else ""


def _drop_nonempty(pattern: "re.Pattern[str]", text: str) -> str:
    return pattern.sub(lambda m: "" if m.group(1).strip() else m.group(0), text)


def _merge(existing: str, parts: List[str]) -> str:
    merged = [existing] if existing else []
    for part in parts:
        if part not in merged:
            merged.append(part)
    return "\n\n".join(merged)


# ----------------------------------------------------------------------
# Strategies
# ----------------------------------------------------------------------
def _marked_blocks(text: str) -> Dict[str, str]:
    return {
        HTML_FILE: _first_group(_MARKED_HTML, text),
        CSS_FILE: _first_group(_MARKED_CSS, text),
        JS_FILE: _first_group(_MARKED_JS, text),
    }


def _bare_document(text: str) -> str:
    start = _FULL_DOCUMENT.search(text)
    if not start:
        return ""
    end = _HTML_CLOSE.search(text, start.start())
    stop = end.end() if end else len(text)
    return text[start.start():stop].strip()


def _bare_tags(text: str, found: Dict[str, str]) -> None:
    if not found[HTML_FILE]:
        found[HTML_FILE] = _bare_document(text)
    if not found[CSS_FILE]:
        found[CSS_FILE] = _first_nonempty(_STYLE_PAIR, text)
    if not found[JS_FILE]:
        found[JS_FILE] = _first_nonempty(_SCRIPT_PAIR, text)


def _unwrap_document(found: Dict[str, str], had_css: bool, had_js: bool) -> None:
    """Reduce a full document to its body, lifting every inline style and script.

    Marked CSS/JS blocks take precedence over the head; inline regions in the
    body are always lifted so the HTML artifact carries none of its own.
    """
    document = found[HTML_FILE]
    if not document or not _FULL_DOCUMENT.search(document):
        return
    body_match = _BODY.search(document)
    if not body_match:
        return
    head_match = _HEAD.search(document)
    head = head_match.group(1) if head_match else ""
    body = body_match.group(1)

    css_parts = ([] if had_css else _nonempty_groups(_STYLE_PAIR, head)) + _nonempty_groups(_STYLE_PAIR, body)
    found[CSS_FILE] = _merge(found[CSS_FILE] if had_css else "", css_parts) or found[CSS_FILE]

    js_parts = ([] if had_js else _nonempty_groups(_SCRIPT_PAIR, head)) + _nonempty_groups(_SCRIPT_PAIR, body)
    found[JS_FILE] = _merge(found[JS_FILE] if had_js else "", js_parts) or found[JS_FILE]

    body = _drop_nonempty(_STYLE_PAIR, body)
    body = _drop_nonempty(_SCRIPT_PAIR, body)
    found[HTML_FILE] = body.strip()


def _classify_block(language: str, content: str) -> Optional[str]:
    hinted = _FENCE_LANGUAGES.get(language.strip().lower())
    if hinted:
        return hinted
    if _TAG_SYNTAX.search(content):
        return HTML_FILE
    if "{" in content and "}" in content and "function" not in content:
        return CSS_FILE
    if _JS_KEYWORD.search(content):
        return JS_FILE
    return None


def _fenced_blocks(text: str) -> Dict[str, str]:
    found: Dict[str, str] = {}
    for language, body in _FENCED_BLOCK.findall(text):
        content = body.strip()
        if not content:
            continue
        kind = _classify_block(language, content)
        if kind:
            found[kind] = content
    return found


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------
def extract(text: Optional[str]) -> Dict[str, str]:
    """Return the code artifacts recoverable from ``text``.

    Keys are drawn from ``index.html``, ``styles.css`` and ``app.js`` and are
    present only when the artifact has non-empty content.
    """

    if not isinstance(text, str) or not text.strip():
        return {}

    found = _marked_blocks(text)
    had_css = bool(found[CSS_FILE])
    had_js = bool(found[JS_FILE])
    _bare_tags(text, found)
    _unwrap_document(found, had_css=had_css, had_js=had_js)

    if not any(found.values()):
        found.update(_fenced_blocks(text))

    return {name: found[name] for name in ARTIFACT_ORDER if found.get(name)}


_DOCUMENT_SHELL = (
    "<!DOCTYPE html>\n"
    "<html>\n"
    "<head>\n"
    '<meta charset="UTF-8">\n'
    '<meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
    "<title>Generated App</title>\n"
    "</head>\n"
    "<body>\n"
    "{body}\n"
    "</body>\n"
    "</html>"
)

_HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)
_HTML_OPEN = re.compile(r"<html[^>]*>", re.IGNORECASE)
_BODY_CLOSE = re.compile(r"</body\s*>", re.IGNORECASE)


def _inject_style(html: str, css: str) -> str:
    style = f"<style>\n{css}\n</style>\n"
    head_close = _HEAD_CLOSE.search(html)
    if head_close:
        return html[: head_close.start()] + style + html[head_close.start():]
    html_open = _HTML_OPEN.search(html)
    if html_open:
        return html[: html_open.end()] + f"\n<head>\n{style}</head>" + html[html_open.end():]
    return f"<head>\n{style}</head>\n" + html


def _inject_script(html: str, js: str) -> str:
    script = f"<script>\n{js}\n</script>\n"
    closes: List["re.Match[str]"] = list(_BODY_CLOSE.finditer(html))
    if closes:
        last = closes[-1]
        return html[: last.start()] + script + html[last.start():]
    return f"{html}\n{script}"


def combine(files: Dict[str, str]) -> str:
    """Merge an artifact set into one renderable HTML document."""

    files = files or {}
    html = files.get(HTML_FILE) or ""
    if not _FULL_DOCUMENT.search(html):
        html = _DOCUMENT_SHELL.format(body=html)
    css = files.get(CSS_FILE)
    if css:
        html = _inject_style(html, css)
    js = files.get(JS_FILE)
    if js:
        html = _inject_script(html, js)
    return html
