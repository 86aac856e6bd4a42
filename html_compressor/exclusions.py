"""
Exclusion decisions for CSS/JS tag fragments and request URIs.

Precedence for a fragment (first match wins):
  1. wrapped in a conditional comment
  2. JS only: async/defer
  3. external reference while remote combination is disabled
  4. caller-supplied pattern (regex option, or literal substrings)
  5. built-in pattern, unless disabled
"""

import re
from typing import Optional

from .options import CompressorOptions
from .exceptions import ConfigurationError
from .schemas import CssTagFragment, JsTagFragment
from .logger import get_module_logger

logger = get_module_logger("exclusions")

BUILT_IN_CSS_EXCLUSIONS = [
    r'\W#post\-[0-9]+\W',               # Post-specific anchors
]

BUILT_IN_JS_EXCLUSIONS = [
    r'\.js#.',                          # Explicit opt-out via a URL hash
    r'\.google\-analytics\.com/',
    r'\Wga\s*\(',
    r'\W_gaq\.push\s*\(',
]


def _compile_user_pattern(
    regex: Optional[str],
    literals: list[str],
    option: str
) -> Optional[re.Pattern]:
    """
    The raw regex wins over the literal list; literals are matched verbatim.

    Raises:
        ConfigurationError: When `regex` does not compile
    """
    if regex:
        try:
            return re.compile(regex, re.IGNORECASE)
        except re.error as e:
            raise ConfigurationError(
                f"Invalid {option}: {e}",
                {"option": option, "regex": regex},
            ) from e
    literals = [literal for literal in literals if literal]
    if literals:
        return re.compile("|".join(re.escape(literal) for literal in literals), re.IGNORECASE)
    return None


def _compile_built_in(patterns: list[str], disabled: bool) -> Optional[re.Pattern]:
    if disabled or not patterns:
        return None
    return re.compile("|".join(patterns), re.IGNORECASE)


class ExclusionFilter:
    """Decides which fragments and URIs are left alone."""

    def __init__(self, options: CompressorOptions):
        self.combine_remote = options.compress_combine_remote_css_js

        self.css_pattern = _compile_user_pattern(
            options.regex_css_exclusions, options.css_exclusions, "regex_css_exclusions"
        )
        self.js_pattern = _compile_user_pattern(
            options.regex_js_exclusions, options.js_exclusions, "regex_js_exclusions"
        )
        self.uri_pattern = _compile_user_pattern(
            options.regex_uri_exclusions, options.uri_exclusions, "regex_uri_exclusions"
        )

        self.built_in_css_pattern = _compile_built_in(
            BUILT_IN_CSS_EXCLUSIONS, options.disable_built_in_css_exclusions
        )
        self.built_in_js_pattern = _compile_built_in(
            BUILT_IN_JS_EXCLUSIONS, options.disable_built_in_js_exclusions
        )

    # --- Reasons ---

    def css_exclusion_reason(
        self,
        frag: CssTagFragment,
        combine_remote: Optional[bool] = None
    ) -> Optional[str]:
        if combine_remote is None:
            combine_remote = self.combine_remote

        if frag.if_open_tag or frag.if_closing_tag:
            return "conditional comment"
        if frag.link_href and frag.link_href_external and not combine_remote:
            return "remote"

        subject = f"{frag.link_self_closing_tag} {frag.style_open_tag} {frag.style_css}"
        if self.css_pattern and self.css_pattern.search(subject):
            return "user pattern"
        if self.built_in_css_pattern and self.built_in_css_pattern.search(subject):
            return "built-in pattern"
        return None

    def js_exclusion_reason(
        self,
        frag: JsTagFragment,
        combine_remote: Optional[bool] = None
    ) -> Optional[str]:
        if combine_remote is None:
            combine_remote = self.combine_remote

        if frag.if_open_tag or frag.if_closing_tag:
            return "conditional comment"
        if frag.script_async:
            return "async/defer"
        if frag.script_src and frag.script_src_external and not combine_remote:
            return "remote"

        subject = f"{frag.script_open_tag} {frag.script_js}{frag.script_json}"
        if self.js_pattern and self.js_pattern.search(subject):
            return "user pattern"
        if self.built_in_js_pattern and self.built_in_js_pattern.search(subject):
            return "built-in pattern"
        return None

    # --- Application ---

    def apply_css(self, frag: CssTagFragment, combine_remote: Optional[bool] = None) -> CssTagFragment:
        """Return the fragment, flagged as excluded when a rule matches."""
        reason = self.css_exclusion_reason(frag, combine_remote)
        if reason is None:
            return frag
        logger.debug(f"Excluding CSS fragment ({reason}): {frag.all[:80]!r}")
        return frag.model_copy(update={"exclude": True})

    def apply_js(self, frag: JsTagFragment, combine_remote: Optional[bool] = None) -> JsTagFragment:
        """Return the fragment, flagged as excluded when a rule matches."""
        reason = self.js_exclusion_reason(frag, combine_remote)
        if reason is None:
            return frag
        logger.debug(f"Excluding JS fragment ({reason}): {frag.all[:80]!r}")
        return frag.model_copy(update={"exclude": True})

    def is_uri_excluded(self, uri: str) -> bool:
        return bool(self.uri_pattern and self.uri_pattern.search(uri))
