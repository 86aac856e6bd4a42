"""
Regex-based extraction of document regions and CSS/JS tag fragments.

No HTML parser is involved: each extraction point is one compiled pattern
applied once, and markup it does not recognize is left untouched. IE
conditional comments around a tag are captured with it but never interpreted.
"""

import re
from typing import Optional

from .schemas import HtmlFragment, CssTagFragment, JsTagFragment
from .exclusions import ExclusionFilter
from .urls import UrlResolver, normalize_amps
from .logger import get_module_logger

logger = get_module_logger("fragments")


# --- Patterns ---

IF_OPEN_TAG = r'(?P<if_open_tag><![^\[>]*?\[if\W[^\]]*?\][^>]*?>\s*)?'
IF_CLOSING_TAG = r'(?P<if_closing_tag>\s*<![^\[>]*?\[endif\][^>]*?>)?'

HTML_FRAG_PATTERN = re.compile(
    r'(?P<all>(?P<open_tag><html(?:\s+[^>]*?)?>)(?P<contents>.*?)(?P<closing_tag></html>))',
    re.IGNORECASE | re.DOTALL
)

HEAD_FRAG_PATTERN = re.compile(
    r'(?P<all>(?P<open_tag><head(?:\s+[^>]*?)?>)(?P<contents>.*?)(?P<closing_tag></head>))',
    re.IGNORECASE | re.DOTALL
)

FOOTER_SCRIPTS_FRAG_PATTERN = re.compile(
    r'(?P<all>(?P<open_tag><!--\s*footer[\s_\-]+scripts\s*-->)'
    r'(?P<contents>.*?)(?P<closing_tag>(?P=open_tag)))',
    re.IGNORECASE | re.DOTALL
)

CSS_TAG_FRAG_PATTERN = re.compile(
    r'(?P<all>' + IF_OPEN_TAG +
    r'(?:(?P<link_self_closing_tag><link(?:\s+[^>]*?)?>)'
    r'|(?P<style_open_tag><style(?:\s+[^>]*?)?>)(?P<style_css>.*?)(?P<style_closing_tag></style>))'
    + IF_CLOSING_TAG + r')',
    re.IGNORECASE | re.DOTALL
)

JS_TAG_FRAG_PATTERN = re.compile(
    r'(?P<all>' + IF_OPEN_TAG +
    r'(?P<script_open_tag><script(?:\s+[^>]*?)?>)(?P<script_js>.*?)(?P<script_closing_tag></script>)'
    + IF_CLOSING_TAG + r')',
    re.IGNORECASE | re.DOTALL
)

ASYNC_ATTRIBUTE_PATTERN = re.compile(
    r'\s(?:async|defer)(?:>|\s+[^=]|\s*=\s*(["\'])(?:1|on|yes|true|async|defer)\1)',
    re.IGNORECASE
)

_attribute_patterns: dict = {}


def get_attribute(tag: str, name: str) -> Optional[str]:
    """Value of a quoted attribute in an opening tag, or None when absent."""
    pattern = _attribute_patterns.get(name)
    if pattern is None:
        pattern = re.compile(
            r'\s' + re.escape(name) + r'\s*=\s*(["\'])(?P<value>.+?)\1', re.IGNORECASE
        )
        _attribute_patterns[name] = pattern
    match = pattern.search(tag)
    return match.group("value") if match else None


# --- Content-type discrimination ---

def is_link_tag_css(link_tag: str) -> bool:
    """A `<link>` is CSS unless its type or rel says otherwise."""
    type_ = get_attribute(link_tag, "type")
    if type_ is not None and "css" not in type_.lower():
        return False
    rel = get_attribute(link_tag, "rel")
    if rel is not None and "stylesheet" not in rel.lower():
        return False
    return True


def is_style_tag_css(style_open_tag: str) -> bool:
    type_ = get_attribute(style_open_tag, "type")
    return type_ is None or "css" in type_.lower()


def _script_types(script_open_tag: str) -> list[str]:
    return [
        value.lower()
        for value in (
            get_attribute(script_open_tag, "type"),
            get_attribute(script_open_tag, "language"),
        )
        if value is not None
    ]


def is_script_tag_js(script_open_tag: str) -> bool:
    """JavaScript unless type/language mentions json or names another language."""
    for value in _script_types(script_open_tag):
        if "json" in value or "javascript" not in value:
            return False
    return True


def is_script_tag_json(script_open_tag: str) -> bool:
    """JSON when some type/language is not JavaScript and one of them mentions json."""
    values = _script_types(script_open_tag)
    if not any("javascript" not in value for value in values):
        return False
    return any("json" in value for value in values)


def is_script_tag_async(script_open_tag: str) -> bool:
    return bool(ASYNC_ATTRIBUTE_PATTERN.search(script_open_tag))


class FragmentExtractor:
    """
    Finds document regions and the CSS/JS tags inside them.

    Every fragment passes through the ExclusionFilter before it is returned,
    so callers only ever see final, immutable fragments.
    """

    def __init__(self, urls: UrlResolver, exclusions: ExclusionFilter):
        self.urls = urls
        self.exclusions = exclusions

    # --- Regions ---

    @staticmethod
    def _region(pattern: re.Pattern, html: str) -> Optional[HtmlFragment]:
        if not html:
            return None
        match = pattern.search(html)
        if not match:
            return None
        return HtmlFragment(
            all=match.group("all"),
            open_tag=match.group("open_tag"),
            contents=match.group("contents"),
            closing_tag=match.group("closing_tag"),
        )

    def html_frag(self, html: str) -> Optional[HtmlFragment]:
        return self._region(HTML_FRAG_PATTERN, html)

    def head_frag(self, html: str) -> Optional[HtmlFragment]:
        return self._region(HEAD_FRAG_PATTERN, html)

    def footer_scripts_frag(self, html: str) -> Optional[HtmlFragment]:
        return self._region(FOOTER_SCRIPTS_FRAG_PATTERN, html)

    # --- Tags ---

    def css_tag_frags(
        self,
        region: Optional[HtmlFragment],
        combine_remote: Optional[bool] = None
    ) -> list[CssTagFragment]:
        """
        All CSS `<link>`/`<style>` tags inside a region, in document order.

        Args:
            region: Region whose contents are scanned (usually the `<html>` region)
            combine_remote: Per-call override of remote combination

        Returns:
            Fragments with their exclusion flag already decided
        """
        if region is None or not region.contents:
            return []

        frags = []
        for match in CSS_TAG_FRAG_PATTERN.finditer(region.contents):
            groups = {k: v or "" for k, v in match.groupdict().items()}
            link_tag = groups["link_self_closing_tag"]
            style_open_tag = groups["style_open_tag"]

            if link_tag:
                href = get_attribute(link_tag, "href")
                href = normalize_amps(href).strip() if href else ""
                if not href or not is_link_tag_css(link_tag):
                    continue
                frag = CssTagFragment(
                    all=groups["all"],
                    if_open_tag=groups["if_open_tag"],
                    if_closing_tag=groups["if_closing_tag"],
                    link_self_closing_tag=link_tag,
                    link_href=href,
                    link_href_external=bool(href) and self.urls.is_url_external(href),
                    media=self._media(link_tag),
                )
            elif style_open_tag:
                css = groups["style_css"].strip()
                if not css or not is_style_tag_css(style_open_tag):
                    continue
                frag = CssTagFragment(
                    all=groups["all"],
                    if_open_tag=groups["if_open_tag"],
                    if_closing_tag=groups["if_closing_tag"],
                    style_open_tag=style_open_tag,
                    style_css=css,
                    style_closing_tag=groups["style_closing_tag"],
                    media=self._media(style_open_tag),
                )
            else:
                continue

            frags.append(self.exclusions.apply_css(frag, combine_remote))

        logger.debug(f"Found {len(frags)} CSS tag fragments")
        return frags

    def js_tag_frags(
        self,
        region: Optional[HtmlFragment],
        combine_remote: Optional[bool] = None
    ) -> list[JsTagFragment]:
        """All JavaScript and JSON `<script>` tags inside a region, in document order."""
        if region is None or not region.contents:
            return []

        frags = []
        for match in JS_TAG_FRAG_PATTERN.finditer(region.contents):
            groups = {k: v or "" for k, v in match.groupdict().items()}
            open_tag = groups["script_open_tag"]

            is_js = is_script_tag_js(open_tag)
            is_json = not is_js and is_script_tag_json(open_tag)
            if not is_js and not is_json:
                continue

            src = js = json = ""
            if is_js:
                src = get_attribute(open_tag, "src")
                src = normalize_amps(src).strip() if src else ""
                if not src:
                    js = groups["script_js"].strip()
            else:
                json = groups["script_js"].strip()

            if not (src or js or json):
                continue

            frag = JsTagFragment(
                all=groups["all"],
                if_open_tag=groups["if_open_tag"],
                if_closing_tag=groups["if_closing_tag"],
                script_open_tag=open_tag,
                script_src=src,
                script_src_external=bool(src) and self.urls.is_url_external(src),
                script_js=js,
                script_json=json,
                script_async=is_js and is_script_tag_async(open_tag),
                script_closing_tag=groups["script_closing_tag"],
            )
            frags.append(self.exclusions.apply_js(frag, combine_remote))

        logger.debug(f"Found {len(frags)} JS tag fragments")
        return frags

    @staticmethod
    def _media(tag: str) -> str:
        media = get_attribute(tag, "media")
        media = media.strip().lower() if media else ""
        return media or "all"
