import pytest

from streamflow.utils.html_utils import GUARD_MARKER, UPSTREAM_MARKER, build_guard_script, sanitize_embed_html

ORIGIN = "https://vidsrc.xyz"
BASE = '<base href="https://vidsrc.xyz/">'


@pytest.mark.parametrize(
    "markup,expected_prefix",
    [
        ("<html><head><title>x</title></head></html>", "<html><head>" + BASE),
        ('<HTML><HEAD lang="en"><title>x</title></HEAD></HTML>', '<HTML><HEAD lang="en">' + BASE),
        ('<html lang="en"><body>x</body></html>', '<html lang="en">' + BASE),
        ("<div>bare fragment</div>", BASE),
    ],
)
def test_snippet_goes_after_the_first_head_html_or_at_the_start(markup, expected_prefix):
    sanitized = sanitize_embed_html(markup, ORIGIN)

    assert sanitized.startswith(expected_prefix + build_guard_script())
    assert sanitized.count("<base ") == 1
    assert sanitized.count(GUARD_MARKER) == 1


def test_header_element_is_not_taken_for_head():
    sanitized = sanitize_embed_html("<html><header>menu</header></html>", ORIGIN)

    assert sanitized.startswith("<html>" + BASE)
    assert "<header>menu</header>" in sanitized


def test_existing_base_tag_is_kept():
    markup = '<html><head><base href="https://cdn.example/"></head></html>'

    sanitized = sanitize_embed_html(markup, ORIGIN)

    assert sanitized.count("<base ") == 1
    assert '<base href="https://cdn.example/">' in sanitized
    assert sanitized.startswith("<html><head>" + build_guard_script())


def test_guard_script_disables_popups():
    script = build_guard_script()

    assert "window.open = function() { return null; };" in script
    assert "MutationObserver" in script
    assert '"ads"' in script


@pytest.mark.parametrize(
    "markup",
    [
        "<html><head></head><body>x</body></html>",
        '<html><head><base href="https://cdn.example/"></head></html>',
        "<p>no head</p>",
    ],
)
def test_sanitizing_twice_changes_nothing(markup):
    once = sanitize_embed_html(markup, ORIGIN)

    assert sanitize_embed_html(once, ORIGIN) == once


def test_upstream_guard_marker_does_not_skip_sanitizing():
    markup = (
        "<html><head><title>x</title></head><body>"
        f"<div {GUARD_MARKER}></div>"
        '<script src="https://ads.example/pop.js"></script>'
        "</body></html>"
    )

    sanitized = sanitize_embed_html(markup, ORIGIN)

    assert sanitized.startswith("<html><head>" + BASE + build_guard_script())
    assert sanitized.count(GUARD_MARKER) == 1
    assert f"<div {UPSTREAM_MARKER}></div>" in sanitized


def test_upstream_copy_of_the_guard_without_base_still_gets_a_base():
    markup = "<html><head>" + build_guard_script() + "</head></html>"

    sanitized = sanitize_embed_html(markup, ORIGIN)

    assert sanitized.count("<base ") == 1
    assert sanitized.startswith("<html><head>" + BASE + build_guard_script())
