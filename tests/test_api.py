import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from src.codewriter.api.main import app
from src.codewriter.api.routers import builder as builder_router
from src.codewriter.api.routers import codewriter as codewriter_router
from src.codewriter.infrastructure.session_store import get_session_store
from src.codewriter.services.generation import GenerationError
from tests.utils import FakeGenerator, factory_for, read_events


client = TestClient(app)

WEB_REPLY = "<!-- HTML -->\n<div>Hi</div>\n/* CSS */\n<style>div{color:red}</style>"
BUILDER_REPLY = (
    '<boltArtifact id="todo" title="Todo App">'
    '<boltAction type="file" filePath="src/App.jsx">export default function App() {}</boltAction>'
    '<boltAction type="shell">npm run dev</boltAction>'
    "</boltArtifact>"
)


@pytest.fixture
def use_generator(monkeypatch):
    def _install(generator: FakeGenerator) -> FakeGenerator:
        monkeypatch.setattr(codewriter_router, "resolve_generator", factory_for(generator))
        monkeypatch.setattr(builder_router, "resolve_generator", factory_for(generator))
        return generator

    return _install


def test_root_and_health():
    assert client.get("/").json()["name"] == "CodeWriter Studio API"
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["components"]["active_sessions"] == 0


def test_generate_returns_files_and_session(use_generator):
    use_generator(FakeGenerator(reply=WEB_REPLY))
    r = client.post("/codewriter/generate", json={"instruction": "a greeting"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["message"] == "Code generated successfully"
    assert body["files"] == {"index.html": "<div>Hi</div>", "styles.css": "div{color:red}"}
    assert body["content"] == WEB_REPLY
    assert [t["role"] for t in body["conversation"]] == ["user", "assistant"]
    assert get_session_store().get(body["sessionId"]) is not None


def test_generate_ignores_existing_session(use_generator):
    use_generator(FakeGenerator(reply=WEB_REPLY))
    first = client.post("/codewriter/generate", json={"instruction": "one"}).json()
    second = client.post(
        "/codewriter/generate", json={"instruction": "two", "sessionId": first["sessionId"]}
    ).json()
    assert second["sessionId"] != first["sessionId"]
    assert len(second["conversation"]) == 2


def test_continue_builds_on_stored_session(use_generator):
    generator = use_generator(FakeGenerator(reply=WEB_REPLY))
    first = client.post("/codewriter/generate", json={"instruction": "one"}).json()
    r = client.post(
        "/api/codewriter/continue",
        json={"instruction": "add a button", "sessionId": first["sessionId"], "history": []},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Code updated successfully"
    assert body["sessionId"] == first["sessionId"]
    assert [t["content"] for t in body["conversation"]][::2] == ["one", "add a button"]
    assert len(generator.calls[-1]) == 4


def test_blank_or_missing_instruction_is_rejected():
    assert client.post("/codewriter/generate", json={"instruction": "   "}).status_code == 400
    assert client.post("/codewriter/generate", json={}).status_code == 422
    assert client.post("/codewriter/stream", json={"instruction": ""}).status_code == 422


def test_upstream_failure_is_bad_gateway_without_session(use_generator):
    use_generator(FakeGenerator(error=GenerationError("AI API key is not configured")))
    r = client.post("/codewriter/generate", json={"instruction": "x"})
    assert r.status_code == 502
    assert r.json()["detail"] == "AI API key is not configured"
    assert get_session_store().count() == 0


def test_stream_endpoint_emits_sse_frames(use_generator):
    use_generator(FakeGenerator(chunks=["<!-- HTML -->\n<div>", "Hi</div>"]))
    r = client.post("/codewriter/stream", json={"instruction": "hello"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["x-accel-buffering"] == "no"
    events = read_events(r.text)
    assert [e["type"] for e in events] == ["chunk", "chunk", "complete"]
    assert events[1]["accumulated"] == "<!-- HTML -->\n<div>Hi</div>"
    assert events[-1]["sessionId"] == events[0]["sessionId"]
    assert get_session_store().get(events[-1]["sessionId"]) is not None


def test_stream_error_frame(use_generator):
    use_generator(FakeGenerator(chunks=["a"], error=GenerationError("Stream error occurred: reset"), fail_after=1))
    events = read_events(client.post("/codewriter/stream", json={"instruction": "x"}).text)
    assert events[-1] == {"type": "error", "message": "Stream error occurred: reset"}
    assert get_session_store().count() == 0


def test_session_conversation_lookup(use_generator):
    use_generator(FakeGenerator(reply=WEB_REPLY))
    sid = client.post("/codewriter/generate", json={"instruction": "one"}).json()["sessionId"]
    r = client.get(f"/codewriter/sessions/{sid}")
    assert r.status_code == 200
    assert [t["role"] for t in r.json()] == ["user", "assistant"]
    assert client.get("/codewriter/sessions/missing").status_code == 404


def test_download_artifacts_zip():
    r = client.post(
        "/codewriter/download",
        json={"files": {"index.html": "<p>x</p>", "styles.css": "p{}", "app.js": ""}},
    )
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/zip"
    with zipfile.ZipFile(io.BytesIO(r.content)) as zf:
        assert sorted(zf.namelist()) == ["README.md", "combined.html", "index.html", "styles.css"]


def test_download_without_files_is_rejected():
    assert client.post("/codewriter/download", json={"files": {"index.html": ""}}).status_code == 400


def test_builder_template_returns_prompts_and_steps():
    r = client.post("/builder/template", json={"prompt": "a todo app"})
    assert r.status_code == 200
    body = r.json()
    assert len(body["prompts"]) == 2
    assert body["uiPrompts"][0].startswith("<boltArtifact")
    paths = [s["path"] for s in body["steps"] if s["kind"] == "create_file"]
    assert "src/App.jsx" in paths and "package.json" in paths


def test_builder_chat_returns_steps(use_generator):
    use_generator(FakeGenerator(reply=BUILDER_REPLY))
    r = client.post("/builder/chat", json={"instruction": "todo app"})
    assert r.status_code == 200
    steps = r.json()["steps"]
    assert [s["kind"] for s in steps] == ["create_folder", "create_file", "run_script"]
    assert steps[0]["title"] == "Todo App"
    assert r.json()["files"] is None


def test_builder_continue_sends_continue_prompt(use_generator):
    generator = use_generator(FakeGenerator(reply=BUILDER_REPLY))
    r = client.post(
        "/builder/continue",
        json={"history": [{"role": "user", "content": "todo"}, {"role": "assistant", "content": "<boltArtifact>"}]},
    )
    assert r.status_code == 200
    assert generator.calls[-1][-1]["content"].startswith("Continue your prior response.")


def test_builder_continue_requires_history():
    assert client.post("/builder/continue", json={"history": []}).status_code == 400


def test_builder_stream(use_generator):
    use_generator(FakeGenerator(chunks=[BUILDER_REPLY[:60], BUILDER_REPLY[60:]]))
    events = read_events(client.post("/api/builder/stream", json={"instruction": "todo"}).text)
    assert events[-1]["type"] == "complete"
    assert events[-1]["content"] == BUILDER_REPLY


def test_builder_download_zip():
    tree = [
        {
            "name": "src",
            "path": "src",
            "type": "folder",
            "children": [{"name": "App.jsx", "path": "src/App.jsx", "type": "file", "content": "x"}],
        },
        {"name": "package.json", "path": "package.json", "type": "file", "content": "{}"},
    ]
    r = client.post("/builder/download", json={"tree": tree})
    assert r.status_code == 200
    with zipfile.ZipFile(io.BytesIO(r.content)) as zf:
        assert zf.namelist() == ["src/App.jsx", "package.json"]
        assert zf.read("src/App.jsx") == b"x"


def test_metrics_exposes_request_and_turn_counters(use_generator):
    use_generator(FakeGenerator(reply=WEB_REPLY))
    client.post("/codewriter/generate", json={"instruction": "x"})
    body = client.get("/metrics").text
    assert "# TYPE codewriter_request_latency_seconds histogram" in body
    assert 'codewriter_turns_total{flow="codewriter",mode="blocking",outcome="completed"}' in body
    assert "codewriter_extractions_total" in body


def test_lifespan_starts_and_stops_sweeper():
    with TestClient(app) as scoped:
        assert scoped.get("/health").status_code == 200
