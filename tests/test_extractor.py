from src.codewriter.core.extractor import combine, extract


MARKED_REPLY = """Here you go.

<!-- HTML -->
<div id="app"><button id="go">Go</button></div>

/* CSS */
<style>
#app { display: flex; }
</style>

/* JavaScript */
<script>
document.getElementById('go').addEventListener('click', () => alert('hi'));
</script>
"""


def test_marked_blocks_yield_all_three_artifacts():
    files = extract(MARKED_REPLY)
    assert list(files) == ["index.html", "styles.css", "app.js"]
    assert files["index.html"] == '<div id="app"><button id="go">Go</button></div>'
    assert files["styles.css"] == "#app { display: flex; }"
    assert "addEventListener" in files["app.js"]


def test_stream_prefix_example_has_no_script_key():
    text = "<!-- HTML -->\n<div>Hi</div>\n/* CSS */\n<style>div{color:red}</style>"
    assert extract(text) == {"index.html": "<div>Hi</div>", "styles.css": "div{color:red}"}


def test_markers_are_case_insensitive_and_html_comment_markers_work():
    text = "<!-- html -->\n<p>x</p>\n<!-- CSS -->\n<style>p{}</style>\n<!-- JavaScript --><script>let a = 1;</script>"
    files = extract(text)
    assert files["index.html"] == "<p>x</p>"
    assert files["styles.css"] == "p{}"
    assert files["app.js"] == "let a = 1;"


def test_bare_style_and_script_pairs_fill_missing_kinds():
    text = "<!-- HTML -->\n<main></main>\n<style>main{margin:0}</style>\n<script>console.log('x')</script>"
    files = extract(text)
    assert files["styles.css"] == "main{margin:0}"
    assert files["app.js"] == "console.log('x')"


def test_full_document_is_unwrapped_into_body_styles_and_script():
    text = (
        "<!-- HTML -->\n"
        "<!DOCTYPE html>\n<html>\n<head>\n<title>T</title>\n"
        "<style>body{margin:0}</style>\n</head>\n"
        "<body>\n<h1>Hello</h1>\n<script>console.log(1)</script>\n</body>\n</html>"
    )
    files = extract(text)
    assert files["index.html"] == "<h1>Hello</h1>"
    assert files["styles.css"] == "body{margin:0}"
    assert files["app.js"] == "console.log(1)"


def test_unmarked_full_document_is_recovered():
    text = "Sure!\n<!doctype html><html><body><p>plain</p></body></html>\nEnjoy."
    assert extract(text) == {"index.html": "<p>plain</p>"}


def test_marked_css_is_kept_over_document_head_style():
    text = (
        "<!-- HTML -->\n<html><head><style>a{}</style></head><body><p>x</p></body></html>\n"
        "/* CSS */\n<style>p{color:blue}</style>"
    )
    files = extract(text)
    assert files["styles.css"] == "p{color:blue}"
    assert files["index.html"] == "<p>x</p>"


def test_unclosed_body_on_a_stream_prefix_runs_to_end():
    text = "<!-- HTML -->\n<!DOCTYPE html><html><head></head><body><section>partial"
    assert extract(text) == {"index.html": "<section>partial"}


def test_fenced_blocks_are_a_last_resort():
    text = (
        "```html\n<p>x</p>\n```\n"
        "```css\np { color: blue; }\n```\n"
        "```\nfunction go() { return 1; }\n```\n"
    )
    assert extract(text) == {
        "index.html": "<p>x</p>",
        "styles.css": "p { color: blue; }",
        "app.js": "function go() { return 1; }",
    }


def test_fenced_blocks_without_tags_are_classified_by_content():
    text = "```\n.card { padding: 4px; }\n```\n```\nconst total = 2;\n```"
    assert extract(text) == {"styles.css": ".card { padding: 4px; }", "app.js": "const total = 2;"}


def test_later_fenced_block_of_same_kind_wins():
    text = "```css\na{}\n```\n```css\nb{}\n```"
    assert extract(text) == {"styles.css": "b{}"}


def test_fenced_blocks_ignored_when_earlier_strategy_found_something():
    text = "<style>a{}</style>\n```js\nlet x = 1;\n```"
    assert extract(text) == {"styles.css": "a{}"}


def test_extract_is_total_and_idempotent():
    for text in ["", "   ", None, 42, "no code at all", "<!-- HTML -->", "```", "<style>"]:
        assert extract(text) == extract(text)
    assert extract("") == {}
    assert extract(None) == {}
    assert extract("just words") == {}


def test_every_prefix_of_a_reply_extracts_without_error():
    for end in range(len(MARKED_REPLY) + 1):
        files = extract(MARKED_REPLY[:end])
        assert all(files.values())


def test_combine_wraps_fragment_and_injects_one_style_and_script():
    html = combine({"index.html": "<div>Hi</div>", "styles.css": "div{color:red}", "app.js": "go()"})
    assert html.startswith("<!DOCTYPE html>")
    assert html.count("<style>") == 1
    assert html.count("<script>") == 1
    assert html.index("div{color:red}") < html.index("</head>")
    assert html.index("go()") < html.index("</body>")
    assert "<div>Hi</div>" in html


def test_combine_creates_head_when_document_has_none():
    html = combine({"index.html": "<html><body><p>x</p></body></html>", "styles.css": "p{}"})
    assert "<html>\n<head>\n<style>\np{}\n</style>\n</head>" in html


def test_combine_appends_script_without_closing_body():
    html = combine({"index.html": "<!DOCTYPE html><html><p>x</p>", "app.js": "run()"})
    assert html.endswith("<script>\nrun()\n</script>\n")


def test_combine_without_html_still_yields_document():
    html = combine({"styles.css": "body{}"})
    assert "<body>" in html and "</html>" in html
    assert combine({}).startswith("<!DOCTYPE html>")


def test_combine_of_extracted_reply_does_not_duplicate_regions():
    files = extract(
        "<!DOCTYPE html><html><head><style>h1{}</style></head>"
        "<body><h1>T</h1><script>start()</script></body></html>"
    )
    html = combine(files)
    assert html.count("h1{}") == 1
    assert html.count("start()") == 1
    assert html.count("<style") == 1


def test_combine_lifts_body_styles_out_of_the_html_artifact():
    files = extract(
        "<!DOCTYPE html><html><head><style>h1{color:red}</style></head>"
        "<body><style>p{margin:0}</style><p>x</p><script>go()</script></body></html>"
    )
    assert files["index.html"] == "<p>x</p>"
    assert files["styles.css"] == "h1{color:red}\n\np{margin:0}"
    html = combine(files)
    assert html.count("<style") == 1
    assert html.count("<script") == 1


def test_cdn_script_does_not_shadow_inline_script():
    text = (
        "<!-- HTML -->\n<div id='c'></div>\n"
        '<script src="https://cdn.example.com/chart.js"></script>\n'
        "<script>const c = new Chart(ctx);</script>"
    )
    assert extract(text)["app.js"] == "const c = new Chart(ctx);"


def test_cdn_script_in_full_document_stays_in_body():
    files = extract(
        "<!DOCTYPE html><html><head><link rel='stylesheet' href='x.css'></head><body>"
        '<canvas></canvas><script src="https://cdn.example.com/chart.js"></script>'
        "<script>draw()</script></body></html>"
    )
    assert files["app.js"] == "draw()"
    assert files["index.html"] == '<canvas></canvas><script src="https://cdn.example.com/chart.js"></script>'
