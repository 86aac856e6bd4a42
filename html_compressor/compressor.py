"""
Main orchestrator for the HTML compressor.

Runs the fixed stage sequence over one rendered HTML document:
  global exclusions → head/body CSS → head JS → footer JS → inline JS →
  inline JSON → restore exclusions → HTML compression → cache sweep →
  benchmark annotations

Every stage is a no-op when disabled or when it finds nothing to act on.
Fatal errors (ConfigurationError, CacheWriteError) propagate to the caller,
who is expected to serve the original document.
"""

import random
import re
import time
from html import escape
from typing import Callable, Optional

from . import __version__
from .options import CompressorOptions
from .schemas import AssetPart, HtmlFragment, TagFragment
from .urls import UrlContext, UrlResolver
from .exclusions import ExclusionFilter
from .fragments import FragmentExtractor
from .css import CssResolver
from .fetcher import RemoteFetcher
from .minifiers import CssMinifier, JsMinifier, CodeMinifier
from .cache import CacheStore
from .hooks import HookApi
from .benchmark import Benchmark
from .parts import PartCompiler
from .html_minify import compress_html, cleanup_self_closing_html_tag_lines
from .utils import md5_hex, replace_once
from .logger import get_module_logger, setup_logger

logger = get_module_logger("compressor")

# The sweep runs on roughly one call in CLEANUP_CHANCE.
CLEANUP_CHANCE = 20

GLOBAL_EXCLUSION_PATTERNS = [
    re.compile(r'<noscript(?:\s[^>]*)?>.*?</noscript>', re.IGNORECASE | re.DOTALL),
]
GLOBAL_EXCLUSION_TOKEN = "<htmlc-gxt-{} />"

AMP_URI_PATTERN = re.compile(r'/amp/(?:$|[?&#])', re.IGNORECASE)
AMP_HTML_PATTERN = re.compile(r'<html(?:\s[^>]+?\s|\s)(?:⚡|amp)[\s=>]', re.IGNORECASE)


class HTMLCompressor:
    """
    Combines, minifies and caches the CSS/JS of an HTML document.

    Args:
        options: Compressor options; defaults to CompressorOptions()
        context: Current request; built from the current_url_* options when omitted
        fetcher: Object with `get(url) -> str`; defaults to a RemoteFetcher
        css_minifier: Object with `compress(code) -> str`; defaults to rcssmin
        js_minifier: Object with `compress(code) -> str`; defaults to rjsmin
        hooks: Filter registry for `part_url` and `css_url()`
        log_level: Reconfigure the package logger at this level

    Raises:
        ConfigurationError: When no current host/URI context is available
    """

    def __init__(
        self,
        options: Optional[CompressorOptions] = None,
        context: Optional[UrlContext] = None,
        fetcher=None,
        css_minifier=None,
        js_minifier=None,
        hooks: Optional[HookApi] = None,
        log_level: int = None
    ):
        if log_level is not None:
            setup_logger(level=log_level)

        self._options = options or CompressorOptions()
        self._context = context or UrlContext.from_options(self._options)
        self._hooks = hooks or HookApi()
        self._benchmark = Benchmark()
        self._global_exclusion_tokens: list[str] = []

        self.urls = UrlResolver(self._context)
        self.exclusions = ExclusionFilter(self._options)
        self.extractor = FragmentExtractor(self.urls, self.exclusions)
        self.fetcher = fetcher or RemoteFetcher.from_options(self._context, self._options)
        self.cache = CacheStore(self._options, self.urls)
        self.css = CssResolver(
            self.urls, self.fetcher, self._hooks, self._options.vendor_css_prefixes
        )
        self.css_minifier = CodeMinifier(
            css_minifier or CssMinifier(), enabled=self._options.compress_css_code
        )
        self.js_minifier = CodeMinifier(
            js_minifier or JsMinifier(), enabled=self._options.compress_js_code
        )
        self.compiler = PartCompiler(
            self.urls,
            self.css,
            self.fetcher,
            self.cache,
            self._hooks,
            self.css_minifier,
            self.js_minifier,
            benchmark=self._benchmark,
            benchmark_details=self._options.benchmark_details,
        )

        logger.info(f"HTMLCompressor initialized for {self._context.url}")

    # --- Read-only accessors ---

    @property
    def options(self) -> CompressorOptions:
        return self._options

    @property
    def context(self) -> UrlContext:
        return self._context

    @property
    def hooks(self) -> HookApi:
        return self._hooks

    @property
    def benchmark(self) -> Benchmark:
        return self._benchmark

    @property
    def version(self) -> str:
        return __version__

    # --- Pipeline ---

    def compress(self, html: str) -> str:
        """
        Compress one HTML document.

        Args:
            html: Full rendered document

        Returns:
            The transformed document; the input unchanged when it has no
            closing `</html>` tag or the current URI is excluded
        """
        if not html or not html.strip():
            return html
        if "</html>" not in html.lower():
            logger.debug("No closing </html> tag; passing through")
            return html
        if self.exclusions.is_uri_excluded(self._context.uri):
            logger.info(f"URI excluded: {self._context.uri}")
            return html

        start_time = time.time()
        self._benchmark.clear()
        options = self._options_for(html)
        output = html.strip()

        try:
            output = self._tokenize_global_exclusions(output)
            output = self._maybe_combine_head_body_css(output, options)
            output = self._maybe_combine_head_js(output, options)
            output = self._maybe_combine_footer_js(output, options)
            output = self._maybe_compress_inline_js(output, options)
            output = self._maybe_compress_inline_json(output, options)
            output = self._restore_global_exclusions(output)
        finally:
            self._global_exclusion_tokens.clear()

        output = self._maybe_compress_html(output, options)

        if options.cleanup_cache_dirs and random.randint(1, CLEANUP_CHANCE) == 1:
            self._cleanup_cache_dirs(options)

        if options.benchmark:
            output = self._append_benchmark_annotations(output, start_time)
        return output

    def is_doc_amp(self, html: str) -> bool:
        if AMP_URI_PATTERN.search(self._context.uri):
            return True
        return bool(html and AMP_HTML_PATTERN.search(html))

    def _options_for(self, html: str) -> CompressorOptions:
        """Per-call options; AMP documents get every combination stage switched off."""
        if self._options.amp_exclusions_enable and self.is_doc_amp(html):
            logger.info("AMP document; combination disabled")
            return self._options.model_copy(update={
                "compress_combine_head_body_css": False,
                "compress_combine_head_js": False,
                "compress_combine_footer_js": False,
                "compress_combine_remote_css_js": False,
            })
        return self._options

    # --- Global exclusions ---

    def _tokenize_global_exclusions(self, html: str) -> str:
        def tokenize(match: re.Match) -> str:
            self._global_exclusion_tokens.append(match.group(0))
            return GLOBAL_EXCLUSION_TOKEN.format(len(self._global_exclusion_tokens) - 1)

        for pattern in GLOBAL_EXCLUSION_PATTERNS:
            html = pattern.sub(tokenize, html)
        return html

    def _restore_global_exclusions(self, html: str) -> str:
        if not self._global_exclusion_tokens or "<htmlc-gxt-" not in html.lower():
            return html

        # Reverse order so a token captured inside another one unfolds last.
        for index in reversed(range(len(self._global_exclusion_tokens))):
            token = re.escape(GLOBAL_EXCLUSION_TOKEN.format(index))
            value = self._global_exclusion_tokens[index]
            html = re.sub(token, lambda _: value, html, flags=re.IGNORECASE)
        return html

    # --- Combination stages ---

    @staticmethod
    def _splice(
        html: str,
        region: HtmlFragment,
        frags: list[TagFragment],
        parts: list[AssetPart],
        token: str,
        remove_from_document: bool = False,
        cleanup_contents: bool = False
    ) -> str:
        """Pull the fragments out of the document and append the part tags to `region`."""
        frag_markup = [frag.all for frag in frags]

        html = replace_once(region.all, token, html)
        if remove_from_document:
            html = replace_once(frag_markup, "", html)

        contents = replace_once(frag_markup, "", region.contents)
        if cleanup_contents:
            contents = cleanup_self_closing_html_tag_lines(contents)

        tags = []
        for part in parts:
            if part.is_placeholder() and part.exclude_frag < len(frags):
                tags.append(frags[part.exclude_frag].all)
            else:
                tags.append(part.tag)

        new_region = "\n".join([region.open_tag, contents, "\n".join(tags), region.closing_tag])
        return replace_once(token, new_region, html)

    def _maybe_combine_head_body_css(self, html: str, options: CompressorOptions) -> str:
        if not html or not options.compress_combine_head_body_css:
            return html

        with self._benchmark.timer("combine_head_body_css", options.benchmark_details) as timing:
            html_frag = self.extractor.html_frag(html)
            head_frag = self.extractor.head_frag(html)
            if html_frag and head_frag:
                frags = self.extractor.css_tag_frags(html_frag, options.compress_combine_remote_css_js)
                parts = self.compiler.compile_css_parts(frags, "head")
                if parts:
                    html = self._splice(
                        html, head_frag, frags, parts, "%%htmlc-head%%",
                        remove_from_document=True, cleanup_contents=True,
                    )
                if options.benchmark_details:
                    self._benchmark.add_data("combine_head_body_css", {
                        "head_frag": head_frag.model_dump(),
                        "css_tag_frags": [frag.model_dump() for frag in frags],
                        "css_parts": [part.model_dump() for part in parts],
                    })
            html = html.strip()
            timing.task = f"compressing/combining head/body CSS in checksum: `{md5_hex(html)}`"
        return html

    def _maybe_combine_head_js(self, html: str, options: CompressorOptions) -> str:
        if not html or not options.compress_combine_head_js:
            return html

        with self._benchmark.timer("combine_head_js", options.benchmark_details) as timing:
            head_frag = self.extractor.head_frag(html)
            if head_frag:
                frags = self.extractor.js_tag_frags(head_frag, options.compress_combine_remote_css_js)
                parts = self.compiler.compile_js_parts(frags, "head")
                if parts:
                    html = self._splice(
                        html, head_frag, frags, parts, "%%htmlc-head%%", cleanup_contents=True
                    )
                if options.benchmark_details:
                    self._benchmark.add_data("combine_head_js", {
                        "head_frag": head_frag.model_dump(),
                        "js_tag_frags": [frag.model_dump() for frag in frags],
                        "js_parts": [part.model_dump() for part in parts],
                    })
            html = html.strip()
            timing.task = f"compressing/combining head JS in checksum: `{md5_hex(html)}`"
        return html

    def _maybe_combine_footer_js(self, html: str, options: CompressorOptions) -> str:
        if not html or not options.compress_combine_footer_js:
            return html

        with self._benchmark.timer("combine_footer_js", options.benchmark_details) as timing:
            footer_frag = self.extractor.footer_scripts_frag(html)
            if footer_frag:
                frags = self.extractor.js_tag_frags(footer_frag, options.compress_combine_remote_css_js)
                parts = self.compiler.compile_js_parts(frags, "foot")
                if parts:
                    html = self._splice(html, footer_frag, frags, parts, "%%htmlc-footer-scripts%%")
                if options.benchmark_details:
                    self._benchmark.add_data("combine_footer_js", {
                        "footer_scripts_frag": footer_frag.model_dump(),
                        "js_tag_frags": [frag.model_dump() for frag in frags],
                        "js_parts": [part.model_dump() for part in parts],
                    })
            html = html.strip()
            timing.task = f"compressing/combining footer JS in checksum: `{md5_hex(html)}`"
        return html

    # --- In-place compression ---

    def _compress_inline_code(self, code: str) -> str:
        """Minified code in a CDATA-safe comment wrapper, or the original on failure."""
        if not code:
            return code
        compressed = self.js_minifier.try_compress(code)
        if compressed:
            return f"/*<![CDATA[*/{compressed}/*]]>*/"
        return code

    def _compress_inline_scripts(
        self,
        html: str,
        options: CompressorOptions,
        body: Callable[[TagFragment], str],
        label: str
    ) -> str:
        """Replace the body of every non-excluded inline script that `body` selects."""
        html_frag = self.extractor.html_frag(html)
        frags = self.extractor.js_tag_frags(html_frag, options.compress_combine_remote_css_js)
        if not any(not frag.exclude and body(frag) for frag in frags):
            return html

        # Every fragment takes a placeholder in document order, so an excluded
        # tag claims its own occurrence before an identical compressible one.
        placeholders = [f"%%htmlc-{i}%%" for i in range(len(frags))]
        html = replace_once([frag.all for frag in frags], placeholders, html)
        replacements = []
        for frag in frags:
            if frag.exclude or not body(frag):
                replacements.append(frag.all)
                continue
            replacements.append(
                frag.if_open_tag + frag.script_open_tag
                + self._compress_inline_code(body(frag))
                + frag.script_closing_tag + frag.if_closing_tag
            )
        html = replace_once(placeholders, replacements, html)

        if options.benchmark_details:
            self._benchmark.add_data(label, {
                "js_tag_frags": [frag.model_dump() for frag in frags],
                "placeholders": placeholders,
                "replacements": replacements,
            })
        return html

    def _maybe_compress_inline_js(self, html: str, options: CompressorOptions) -> str:
        if not html or not options.compress_js_code or not options.compress_inline_js_code:
            return html

        with self._benchmark.timer("compress_inline_js", options.benchmark_details) as timing:
            html = self._compress_inline_scripts(
                html, options, lambda frag: frag.script_js, "compress_inline_js"
            ).strip()
            timing.task = f"compressing inline JS in checksum: `{md5_hex(html)}`"
        return html

    def _maybe_compress_inline_json(self, html: str, options: CompressorOptions) -> str:
        if not html or not options.compress_js_code or not options.compress_inline_js_code:
            return html

        with self._benchmark.timer("compress_inline_json", options.benchmark_details) as timing:
            html = self._compress_inline_scripts(
                html, options, lambda frag: frag.script_json, "compress_inline_json"
            ).strip()
            timing.task = f"compressing inline JSON in checksum: `{md5_hex(html)}`"
        return html

    def _maybe_compress_html(self, html: str, options: CompressorOptions) -> str:
        if not html or not options.compress_html_code:
            return html

        with self._benchmark.timer("compress_html", options.benchmark_details) as timing:
            html = compress_html(html)
            timing.task = f"compressing HTML w/ checksum: `{md5_hex(html)}`"
        return html

    # --- Housekeeping ---

    def _cleanup_cache_dirs(self, options: CompressorOptions) -> None:
        if not options.cache_dir_public or not options.cache_dir_private:
            logger.debug("Cache directories not configured; skipping the sweep")
            return
        with self._benchmark.timer("cleanup_cache_dirs", options.benchmark_details) as timing:
            self.cache.cleanup()
            timing.task = "cleaning up the public/private cache directories"

    def _append_benchmark_annotations(self, html: str, start_time: float) -> str:
        title = escape(self._options.product_title, quote=False)
        times = list(self._benchmark.times.values())

        if times:
            html += "\n"
        for entry in times:
            html += (
                f"\n<!-- {title} took {escape(entry['time'], quote=False)} seconds "
                f"{escape(entry['task'], quote=False)}. -->"
            )
        overall = f"{time.time() - start_time:.5f}"
        html += f"\n\n<!-- {title} took {overall} seconds (overall). -->"
        return html


def compress(html: str, options: Optional[CompressorOptions] = None, **kwargs) -> str:
    """
    Convenience function to compress one document.

    Args:
        html: Full rendered document
        options: Compressor options (must carry the current URL and cache settings)
        **kwargs: Passed through to HTMLCompressor

    Returns:
        Compressed document
    """
    return HTMLCompressor(options=options, **kwargs).compress(html)
