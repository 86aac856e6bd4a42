"""
Final HTML whitespace/comment compression.

Regions whose whitespace matters are lifted out first and put back verbatim:
pre/code/script/style/textarea elements, IE conditional comments, and inline
style/on* attributes.
"""

import re

from .utils import replace_once

PRESERVATIONS_PATTERN = re.compile(
    r'(?P<preservation>'
    r'<(pre|code|script|style|textarea)(?:\s+[^>]*?)?>.*?</\2>'
    r'|<![^\[>]*?\[if\W[^\]]*?\][^>]*?>.*?<![^\[>]*?\[endif\][^>]*?>'
    r'|\s(?:style|on[a-z]+)\s*=\s*(["\']).*?\3'
    r')',
    re.IGNORECASE | re.DOTALL
)

COMPRESSIONS = [
    (re.compile(r'<!--.*?-->', re.DOTALL), ""),     # Comments
    (re.compile(r'\s+'), " "),                       # Runs of whitespace
    (re.compile(r'\s+/>'), "/>"),                    # Space before />
]

SELF_CLOSING_TAG_LINES_PATTERN = re.compile(r'>\s*?[\r\n]+\s*<')


def compress_html(html: str) -> str:
    """Strip comments and collapse whitespace outside preserved regions."""
    if not html:
        return html

    preservations = [m.group("preservation") for m in PRESERVATIONS_PATTERN.finditer(html)]
    placeholders = [f"%%minify-html-{i}%%" for i in range(len(preservations))]
    if preservations:
        html = replace_once(preservations, placeholders, html)

    for pattern, replacement in COMPRESSIONS:
        html = pattern.sub(replacement, html)

    if preservations:
        html = replace_once(placeholders, preservations, html)
    return html.strip()


def cleanup_self_closing_html_tag_lines(html: str) -> str:
    """One tag per line: blank lines and indentation between tags are dropped."""
    if not html:
        return html
    return SELF_CLOSING_TAG_LINES_PATTERN.sub(">\n<", html).strip()
