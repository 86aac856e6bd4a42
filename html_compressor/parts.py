"""
Part compiler: groups CSS/JS tag fragments into cacheable combined files.

For one insertion point (head CSS, head JS or footer JS) the fragment list is
reduced to an ordered list of AssetParts:
  - consecutive non-excluded fragments accumulate into one part
  - an excluded fragment becomes a placeholder part at its own position
  - CSS starts a new part when the media changes, or when the part so far
    contains an @import (nothing may follow an @import in a stylesheet)
  - JSON scripts become passthrough parts carrying their original markup

The resulting list is cached as a manifest keyed by the fragment list, so a
repeat request replays it without fetching or minifying anything.
"""

import json
from html import escape
from typing import Optional, Union

from .schemas import AssetPart, CssTagFragment, JsTagFragment
from .urls import UrlResolver
from .css import CssResolver
from .cache import CacheStore
from .hooks import HookApi
from .minifiers import CodeMinifier
from .benchmark import Benchmark
from .exceptions import FetchError, UrlError
from .utils import md5_hex, strip_utf8_bom
from .logger import get_module_logger

logger = get_module_logger("parts")

PART_URL_FILTER = "part_url"


def tag_frags_checksum(frags: list[Union[CssTagFragment, JsTagFragment]]) -> str:
    """
    Manifest key for a fragment list.

    Excluded fragments count only by position, so editing an excluded tag
    does not invalidate the manifest.
    """
    data = [{"exclude": True} if frag.exclude else frag.model_dump() for frag in frags]
    return md5_hex(json.dumps(data, sort_keys=True))


class _PartAccumulator:
    """Ordinal-indexed parts under construction."""

    def __init__(self):
        self.parts: dict[int, AssetPart] = {}
        self.index = 0

    def current_code(self) -> str:
        part = self.parts.get(self.index)
        return (part.code or "") if part else ""

    def new_part(self) -> None:
        self.index += 1

    def add_standalone(self, tag: str = "", exclude_frag: Optional[int] = None) -> None:
        """Placeholder or passthrough part; the next fragment always starts a new part."""
        if self.parts:
            self.index += 1
        self.parts[self.index] = AssetPart(position=self.index, tag=tag, exclude_frag=exclude_frag)
        self.index += 1

    def append(self, code: str, media: Optional[str] = None) -> None:
        part = self.parts.setdefault(self.index, AssetPart(position=self.index))
        if media is not None:
            part.media = media
        part.code = f"{part.code}\n\n{code}" if part.code else code

    def finish(self) -> list[AssetPart]:
        parts = [self.parts[index] for index in sorted(self.parts)]
        for position, part in enumerate(parts):
            part.position = position
        return parts


class PartCompiler:
    """Builds, caches and replays AssetPart lists for CSS and JS."""

    def __init__(
        self,
        urls: UrlResolver,
        css: CssResolver,
        fetcher,
        cache: CacheStore,
        hooks: HookApi,
        css_minifier: CodeMinifier,
        js_minifier: CodeMinifier,
        benchmark: Optional[Benchmark] = None,
        benchmark_details: bool = False
    ):
        self.urls = urls
        self.css = css
        self.fetcher = fetcher
        self.cache = cache
        self.hooks = hooks
        self.css_minifier = css_minifier
        self.js_minifier = js_minifier
        self.benchmark = benchmark or Benchmark()
        self.benchmark_details = benchmark_details

    # --- Shared helpers ---

    def _fetch(self, url: str) -> str:
        try:
            return strip_utf8_bom(self.fetcher.get(url))
        except FetchError as e:
            logger.warning(f"Skipping fragment: {e.message}")
            return ""

    def _resolve(self, url: str) -> str:
        try:
            return self.urls.resolve(url)
        except UrlError as e:
            logger.warning(f"Skipping fragment with unparseable URL: {e.url}")
            return ""

    def _part_url(self, kind: str, code_hash: str, for_: str) -> str:
        url = self.cache.artifact_url(kind, code_hash)
        return self.hooks.apply_filters(PART_URL_FILTER, url, for_)

    # --- CSS ---

    def compile_css_parts(self, frags: list[CssTagFragment], for_: str) -> list[AssetPart]:
        """
        Group CSS fragments into parts, cached as a manifest.

        Args:
            frags: CSS fragments of one insertion point, in document order
            for_: Insertion point name passed to the `part_url` filter

        Returns:
            Finalized parts (tags only); empty when there is nothing to combine

        Raises:
            CacheWriteError: When an artifact or the manifest cannot be written
        """
        if not frags:
            return []
        checksum = tag_frags_checksum(frags)

        with self.benchmark.timer("compile_css_parts", self.benchmark_details) as timing:
            timing.task = f"building parts based on CSS tag frags in checksum: `{checksum}`"

            cached = self.cache.read_manifest("css", checksum)
            if cached is not None:
                return cached

            acc = _PartAccumulator()
            last_media = "all"
            for pos, frag in enumerate(frags):
                if frag.exclude:
                    if frag.has_content():
                        acc.add_standalone(exclude_frag=pos)
                else:
                    code = self._css_frag_code(frag)
                    if code:
                        if frag.media != last_media:
                            acc.new_part()
                        elif "@import" in acc.current_code().lower():
                            acc.new_part()
                        acc.append(code, media=frag.media)
                last_media = frag.media

            parts = acc.finish()
            for part in parts:
                if not part.is_placeholder() and part.code:
                    self._finalize_css_part(part, for_)

            self.cache.write_manifest("css", checksum, parts)
            logger.info(f"Compiled {len(frags)} CSS fragments into {len(parts)} parts")
            return parts

    def _css_frag_code(self, frag: CssTagFragment) -> str:
        if frag.link_href:
            href = self._resolve(frag.link_href)
            if not href:
                return ""
            code = self._fetch(href)
            if not code:
                return ""
            code = self.css.resolve_relatives(code, href)
        else:
            code = strip_utf8_bom(frag.style_css)
            code = self.css.resolve_relatives(code)
        return self.css.resolve_imports(code, frag.media)

    def _finalize_css_part(self, part: AssetPart, for_: str) -> None:
        code = self.css.move_special_at_rules_to_top(part.code)
        code = self.css.strip_prepend_charset_utf8(code)
        code = self.css.force_abs_relative_paths(code)
        code = self.css.maybe_filter_urls(code)
        code_hash = md5_hex(code)
        code = self.css_minifier.maybe_compress(code)

        url = self._part_url("css", code_hash, for_)
        self.cache.write_artifact("css", code_hash, code)

        media = part.media or "all"
        part.tag = (
            f'<link type="text/css" rel="stylesheet" href="{escape(url)}" '
            f'media="{escape(media)}" />'
        )
        part.code = None

    # --- JS ---

    def compile_js_parts(self, frags: list[JsTagFragment], for_: str) -> list[AssetPart]:
        """Group JS fragments into parts; same contract as compile_css_parts."""
        if not frags:
            return []
        checksum = tag_frags_checksum(frags)

        with self.benchmark.timer("compile_js_parts", self.benchmark_details) as timing:
            timing.task = f"building parts based on JS tag frags in checksum: `{checksum}`"

            cached = self.cache.read_manifest("js", checksum)
            if cached is not None:
                return cached

            acc = _PartAccumulator()
            for pos, frag in enumerate(frags):
                if frag.exclude:
                    if frag.has_content():
                        acc.add_standalone(exclude_frag=pos)
                elif frag.script_src or frag.script_js:
                    code = self._js_frag_code(frag)
                    if code:
                        acc.append(code)
                elif frag.script_json:
                    acc.add_standalone(tag=frag.all)

            parts = acc.finish()
            for part in parts:
                if not part.is_placeholder() and part.code:
                    self._finalize_js_part(part, for_)

            self.cache.write_manifest("js", checksum, parts)
            logger.info(f"Compiled {len(frags)} JS fragments into {len(parts)} parts")
            return parts

    def _js_frag_code(self, frag: JsTagFragment) -> str:
        if frag.script_src:
            src = self._resolve(frag.script_src)
            code = self._fetch(src) if src else ""
        else:
            code = strip_utf8_bom(frag.script_js)
        if not code:
            return ""
        return code.rstrip(";") + ";"

    def _finalize_js_part(self, part: AssetPart, for_: str) -> None:
        code_hash = md5_hex(part.code)
        code = self.js_minifier.maybe_compress(part.code)

        url = self._part_url("js", code_hash, for_)
        self.cache.write_artifact("js", code_hash, code)

        part.tag = f'<script type="text/javascript" src="{escape(url)}"></script>'
        part.code = None
