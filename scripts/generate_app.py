"""
Headless client for a running CodeWriter Studio server.

Describe an app in natural language and write the generated files to disk:

  python scripts/generate_app.py web "a todo list with dark mode" --out out/todo
  python scripts/generate_app.py builder "a pomodoro timer" --out out/pomodoro

Pass --blocking to use the non-streaming endpoints.
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Ensure repository root is on sys.path so 'src' package can be imported when
# executing this script from the scripts/ directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.codewriter.client.builder import ProjectBuilder
from src.codewriter.client.preview import PreviewSession
from src.codewriter.core.directives import is_contained_path, iter_files, split_path


def _write(out_dir: Path, rel_path: str, content: str) -> Path:
    if not is_contained_path(rel_path):
        raise ValueError(f"refusing to write outside {out_dir}: {rel_path!r}")
    target = out_dir.joinpath(*split_path(rel_path))
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    return target


def run_web(args: argparse.Namespace) -> int:
    session = PreviewSession(args.server)
    if args.blocking:
        session.run_blocking(args.prompt)
    else:
        chunks = 0
        for event in session.start(args.prompt):
            if event.get("type") == "chunk":
                chunks += 1
                print(f"\rreceived {len(session.content)} chars, files: {sorted(session.files)}", end="", file=sys.stderr)
        if chunks:
            print(file=sys.stderr)
    if session.error and not session.files:
        print(session.error, file=sys.stderr)
        return 1

    out_dir = Path(args.out)
    written = [str(_write(out_dir, name, body)) for name, body in session.files.items()]
    written.append(str(_write(out_dir, "combined.html", session.combined_html())))
    print(json.dumps({"sessionId": session.session_id, "written": written}, indent=2))
    return 0


def run_builder(args: argparse.Namespace) -> int:
    builder = ProjectBuilder(args.server)
    builder.load_template(args.prompt)
    if builder.error:
        print(builder.error, file=sys.stderr)
        return 1
    if args.blocking:
        builder.run_blocking(args.prompt)
    else:
        for event in builder.start(args.prompt):
            if event.get("type") == "chunk":
                print(f"\rsteps so far: {len(builder.preview_steps)}", end="", file=sys.stderr)
        print(file=sys.stderr)
    if builder.error:
        print(builder.error, file=sys.stderr)
        return 1

    out_dir = Path(args.out)
    written = []
    for node in iter_files(builder.tree):
        if not is_contained_path(node.path):
            print(f"skipped {node.path!r}: outside the output folder", file=sys.stderr)
            continue
        written.append(str(_write(out_dir, node.path, node.content or "")))
    commands = [step.content for step in builder.steps if step.kind.value == "run_script"]
    print(json.dumps({"sessionId": builder.session_id, "written": written, "commands": commands}, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a web app with a CodeWriter Studio server")
    parser.add_argument("--server", default="http://127.0.0.1:8000", help="Base URL of the API server")
    sub = parser.add_subparsers(dest="flow", required=True)

    web = sub.add_parser("web", help="Single page HTML/CSS/JS app")
    web.add_argument("prompt")
    web.add_argument("--out", default="generated_app")
    web.add_argument("--blocking", action="store_true")
    web.set_defaults(func=run_web)

    builder = sub.add_parser("builder", help="Multi-file React project")
    builder.add_argument("prompt")
    builder.add_argument("--out", default="generated_project")
    builder.add_argument("--blocking", action="store_true")
    builder.set_defaults(func=run_builder)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
