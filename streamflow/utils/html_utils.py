import json
import re

from streamflow.const import AD_SOURCE_PATTERNS

GUARD_MARKER = "data-streamflow-guard"
UPSTREAM_MARKER = "data-upstream-guard"

_HEAD_TAG = re.compile(r"<head\b[^>]*>", re.IGNORECASE)
_HTML_TAG = re.compile(r"<html\b[^>]*>", re.IGNORECASE)
_BASE_TAG = re.compile(r"<base\b", re.IGNORECASE)
_GUARD_MARKER_TEXT = re.compile(re.escape(GUARD_MARKER), re.IGNORECASE)

_GUARD_SCRIPT_TEMPLATE = """<script %(marker)s>
(function() {
    var adPatterns = %(patterns)s;
    window.open = function() { return null; };
    window.alert = function() {};
    window.confirm = function() { return true; };
    window.onbeforeunload = null;
    var isAd = function(node) {
        if (!node.src) return false;
        for (var i = 0; i < adPatterns.length; i++) {
            if (node.src.indexOf(adPatterns[i]) !== -1) return true;
        }
        return false;
    };
    var observer = new MutationObserver(function(mutations) {
        mutations.forEach(function(mutation) {
            mutation.addedNodes.forEach(function(node) {
                if ((node.tagName === 'SCRIPT' || node.tagName === 'IFRAME') && isAd(node)) {
                    node.remove();
                }
            });
        });
    });
    observer.observe(document.documentElement, { childList: true, subtree: true });
})();
</script>"""


def build_guard_script(ad_patterns=AD_SOURCE_PATTERNS) -> str:
    """Script that disables popups and dialogs and removes injected ad scripts and frames."""
    return _GUARD_SCRIPT_TEMPLATE % {"marker": GUARD_MARKER, "patterns": json.dumps(list(ad_patterns))}


def _insertion_point(markup: str) -> int:
    for pattern in (_HEAD_TAG, _HTML_TAG):
        match = pattern.search(markup)
        if match:
            return match.end()
    return 0


def _base_tag(origin: str) -> str:
    return f'<base href="{origin.rstrip("/")}/">'


def _is_sanitized(markup: str, origin: str, script: str) -> bool:
    injected = markup[_insertion_point(markup) :]
    if injected.startswith(_base_tag(origin) + script):
        return True
    return injected.startswith(script) and bool(_BASE_TAG.search(markup))


def sanitize_embed_html(markup: str, origin: str) -> str:
    """
    Neutralise popup behaviour of a provider page and anchor its relative URLs.

    Injects one anti-popup script and, unless the page already declares one, one
    `<base>` tag right after the first `<head>` tag. Pages without a head get them
    after `<html>`, or at the very start. Running it again on its own output
    changes nothing; any other occurrence of the guard marker in upstream markup
    is renamed so the page cannot pass itself off as already sanitized.

    Args:
        markup (str): The upstream HTML document.
        origin (str): scheme://host of the upstream page.

    Returns:
        str: The sanitized document.
    """
    script = build_guard_script()
    if _is_sanitized(markup, origin, script):
        return markup

    markup = _GUARD_MARKER_TEXT.sub(UPSTREAM_MARKER, markup)
    snippet = script
    if not _BASE_TAG.search(markup):
        snippet = _base_tag(origin) + snippet

    position = _insertion_point(markup)
    return markup[:position] + snippet + markup[position:]
