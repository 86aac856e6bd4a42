"""
Pydantic schemas passed between the compressor stages.

Data flow through the pipeline:
  Extractor → HtmlFragment, CssTagFragment / JsTagFragment (immutable)
  Fragments → PartCompiler → AssetPart list (persisted as the parts manifest)
  UrlParts   ← urls.parse_url / → urls.unparse_url
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


# --- Document regions ---

class HtmlFragment(BaseModel):
    """A matched region: `<html>`, `<head>` or the footer-scripts comments."""
    model_config = ConfigDict(frozen=True)

    all: str
    open_tag: str
    contents: str
    closing_tag: str


# --- Tag fragments ---
# Built once per extraction call and never mutated; the exclusion filter
# produces a copy with exclude=True instead.

class TagFragment(BaseModel):
    """Fields shared by CSS and JS tag fragments."""
    model_config = ConfigDict(frozen=True)

    all: str                     # Full matched markup, conditional wrapper included
    if_open_tag: str = ""        # <!--[if ...]> when wrapped
    if_closing_tag: str = ""     # <![endif]--> when wrapped
    exclude: bool = False


class CssTagFragment(TagFragment):
    """One `<link>` or `<style>` occurrence."""
    link_self_closing_tag: str = ""
    link_href_external: bool = False
    link_href: str = ""
    style_open_tag: str = ""
    style_css: str = ""
    style_closing_tag: str = ""
    media: str = "all"

    def has_content(self) -> bool:
        return bool(self.link_href or self.style_css)


class JsTagFragment(TagFragment):
    """One `<script>` occurrence holding JavaScript or JSON."""
    script_open_tag: str = ""
    script_src_external: bool = False
    script_src: str = ""
    script_js: str = ""
    script_json: str = ""
    script_async: bool = False
    script_closing_tag: str = ""

    def has_content(self) -> bool:
        return bool(self.script_src or self.script_js or self.script_json)


# --- Part compiler output ---

class AssetPart(BaseModel):
    """
    A group of same-context fragments, or a placeholder for one excluded fragment.

    `code` only lives during one compile pass; it is dropped once the part is
    minified and cached, so a manifest holds tags and positions only.
    """
    position: int
    tag: str = ""
    media: Optional[str] = None                 # CSS only
    code: Optional[str] = Field(default=None, exclude=True)
    exclude_frag: Optional[int] = None          # Index into the fragment list

    def is_placeholder(self) -> bool:
        return self.exclude_frag is not None


# --- URLs ---

class UrlParts(BaseModel):
    """Components of a parsed URL; empty string / 0 when absent."""
    scheme: str = ""
    user: str = ""
    password: str = Field(default="", alias="pass")
    host: str = ""
    port: int = 0
    path: str = ""
    query: str = ""
    fragment: str = ""

    model_config = ConfigDict(populate_by_name=True)
