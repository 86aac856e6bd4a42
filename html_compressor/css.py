"""
CSS rewriting: relative URL resolution, @import inlining and at-rule hoisting.
"""

import re

from .urls import UrlResolver
from .hooks import HookApi
from .exceptions import FetchError, UrlError
from .utils import strip_utf8_bom
from .logger import get_module_logger

logger = get_module_logger("css")

# Import inlining re-scans until nothing inlinable is left; a stylesheet that
# imports itself would never settle, so the passes are capped.
MAX_IMPORT_PASSES = 10

CSS_URL_FILTER = "css_url()"


class CssResolver:
    """
    Rewrites CSS so it can be moved into a combined file under another URL.

    Args:
        urls: Resolver bound to the current request
        fetcher: Anything with a `get(url) -> str` raising FetchError
        hooks: Hook dispatcher for the `css_url()` filter
        vendor_prefixes: Prefixes allowed on at-rules (`@-moz-import`, ...)
    """

    def __init__(self, urls: UrlResolver, fetcher, hooks: HookApi, vendor_prefixes: list[str]):
        self.urls = urls
        self.fetcher = fetcher
        self.hooks = hooks

        prefixes = "|".join(re.escape(p) for p in vendor_prefixes if p)
        at = rf'@(?:\-(?:{prefixes})\-)?' if prefixes else '@'

        self._charset_rule_pattern = re.compile(at + r'charset(?:\s+[^;]*?)?;', re.IGNORECASE)
        self._import_rule_pattern = re.compile(at + r'import(?:\s+[^;]*?)?;', re.IGNORECASE)

        # @import "x.css" media; and @import url(x.css) media;
        self._import_pattern = re.compile(
            at + r'import\s*(["\'])(?P<url>.+?)\1(?P<media>[^;]*?);', re.IGNORECASE
        )
        self._import_url_pattern = re.compile(
            at + r'import\s+url\s*\(\s*(["\']?)(?P<url>.+?)\1\s*\)(?P<media>[^;]*?);', re.IGNORECASE
        )

        # URL targets, for rewriting in place
        self._import_target_pattern = re.compile(
            r'(?P<import>' + at + r'import\s*)(?P<open_encap>["\'])(?P<url>.+?)(?P<close_encap>(?P=open_encap))',
            re.IGNORECASE
        )
        self._url_target_pattern = re.compile(
            r'(?P<url_>url\s*)(?P<open_bracket>\(\s*)(?P<open_encap>["\']?)(?P<url>.+?)'
            r'(?P<close_encap>(?P=open_encap))(?P<close_bracket>\s*\))',
            re.IGNORECASE
        )

        self._current_host_pattern = re.compile(
            r'(?:[a-z0-9]+:)?//' + re.escape(urls.context.host) + r'/', re.IGNORECASE
        )

    # --- @charset / @import placement ---

    def strip_existing_charsets(self, css: str) -> str:
        if not css:
            return css
        return self._charset_rule_pattern.sub("", css).strip()

    def strip_prepend_charset_utf8(self, css: str) -> str:
        """Replace any @charset rules with a single leading UTF-8 one."""
        css = self.strip_existing_charsets(css)
        if css:
            css = '@charset "UTF-8";\n' + css
        return css

    def move_special_at_rules_to_top(self, css: str, depth: int = 0) -> str:
        """
        Hoist @charset rules, then @import rules, to the top of the stylesheet.

        Each level handles one kind of rule (charset first, else import) and
        recurses once, so the result is charsets, imports, then everything else.
        """
        if not css or depth >= 2:
            return css
        lowered = css.lower()
        if "charset" not in lowered and "import" not in lowered:
            return css

        rules = [m.group(0) for m in self._charset_rule_pattern.finditer(css)]
        if not rules:
            rules = [m.group(0) for m in self._import_rule_pattern.finditer(css)]
        if not rules:
            return css

        for rule in rules:
            css = css.replace(rule, "", 1)
        css = self.move_special_at_rules_to_top(css, depth + 1)
        return "\n\n".join(rules) + "\n\n" + css

    # --- @import inlining ---

    def resolve_imports(self, css: str, media: str = "all") -> str:
        """
        Inline @import rules whose media is empty or equal to `media`.

        Imports for another media are kept verbatim. The imported CSS has its
        own relative URLs resolved against the imported file before inlining.
        """
        if not css:
            return css
        media = media or "all"

        for _ in range(MAX_IMPORT_PASSES):
            css = self._import_pattern.sub(lambda m: self._inline_import(m, media), css)
            css = self._import_url_pattern.sub(lambda m: self._inline_import(m, media), css)
            if not self._has_inlinable_import(css, media):
                break
        else:
            logger.warning(f"Gave up inlining @import rules after {MAX_IMPORT_PASSES} passes")
        return css

    def _has_inlinable_import(self, css: str, media: str) -> bool:
        for pattern in (self._import_pattern, self._import_url_pattern):
            for match in pattern.finditer(css):
                import_media = match.group("media").strip().lower()
                if not import_media or import_media == media:
                    return True
        return False

    def _inline_import(self, match: re.Match, media: str) -> str:
        url = match.group("url")
        if not url:
            return ""
        import_media = match.group("media").strip().lower()
        if import_media and import_media != media:
            return match.group(0)

        try:
            css = strip_utf8_bom(self.fetcher.get(url))
        except FetchError as e:
            logger.warning(f"Dropping @import of {url}: {e.message}")
            return ""
        if css:
            css = self.resolve_relatives(css, url)
        return css

    # --- URL rewriting ---

    def resolve_relatives(self, css: str, base: str = "") -> str:
        """Make every @import and url() target absolute; `data:` URIs are left alone."""
        if not css:
            return css

        def resolve(url: str, original: str) -> str:
            try:
                return self.urls.resolve(url, base)
            except UrlError as e:
                logger.warning(f"Leaving unparseable CSS URL as-is: {e.url}")
                return original

        css = self._import_target_pattern.sub(
            lambda m: m.group("import") + m.group("open_encap")
            + resolve(m.group("url"), m.group("url")) + m.group("close_encap"),
            css,
        )
        return self._rewrite_url_targets(css, lambda url: resolve(url, url))

    def force_abs_relative_paths(self, css: str) -> str:
        """`http://current-host/x` becomes `/x`."""
        if not css:
            return css
        return self._current_host_pattern.sub("/", css)

    def maybe_filter_urls(self, css: str) -> str:
        """Pass every URL target through the `css_url()` filter, if one is registered."""
        if not css or not self.hooks.has_filter(CSS_URL_FILTER):
            return css

        css = self._import_target_pattern.sub(
            lambda m: m.group("import") + m.group("open_encap")
            + self.hooks.apply_filters(CSS_URL_FILTER, m.group("url")) + m.group("close_encap"),
            css,
        )
        return self._rewrite_url_targets(
            css, lambda url: self.hooks.apply_filters(CSS_URL_FILTER, url)
        )

    def _rewrite_url_targets(self, css: str, rewrite) -> str:
        def replace(m: re.Match) -> str:
            if m.group("url").lower().startswith("data:"):
                return m.group(0)
            return (
                m.group("url_") + m.group("open_bracket") + m.group("open_encap")
                + rewrite(m.group("url")) + m.group("close_encap") + m.group("close_bracket")
            )

        return self._url_target_pattern.sub(replace, css)
