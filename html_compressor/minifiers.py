"""
Minifier wrappers around rcssmin / rjsmin.

CssMinifier and JsMinifier expose `compress(code) -> str` and raise
MinifyError on failure. CodeMinifier adds the guard rails used by the
pipeline: oversized input is skipped and any failure falls back to the
original code.
"""

from typing import Optional

import rcssmin
import rjsmin

from .exceptions import MinifyError
from .utils import strip_utf8_bom
from .logger import get_module_logger

logger = get_module_logger("minifiers")

MAX_MINIFY_LENGTH = 1000000


class CssMinifier:
    language = "css"

    def compress(self, code: str) -> str:
        try:
            return rcssmin.cssmin(code, keep_bang_comments=False)
        except Exception as e:
            raise MinifyError(f"CSS minification failed: {e}", self.language) from e


class JsMinifier:
    language = "js"

    def compress(self, code: str) -> str:
        try:
            return rjsmin.jsmin(code, keep_bang_comments=False)
        except Exception as e:
            raise MinifyError(f"JS minification failed: {e}", self.language) from e


class CodeMinifier:
    """
    Applies a minifier with fallbacks.

    Args:
        minifier: Object with `compress(code) -> str`
        enabled: When False, code passes through untouched
    """

    def __init__(self, minifier, enabled: bool = True):
        self.minifier = minifier
        self.enabled = enabled

    def maybe_compress(self, code: str) -> str:
        """Minified code, or the original when disabled, oversized or failing."""
        if not self.enabled or not code:
            return code
        if len(code) > MAX_MINIFY_LENGTH:
            logger.info(f"Skipping minification of {len(code)} characters")
            return code

        compressed = self.try_compress(code)
        return strip_utf8_bom(compressed).strip() if compressed else code.strip()

    def try_compress(self, code: str) -> Optional[str]:
        """Minified code, or None on failure or an empty result."""
        try:
            compressed = self.minifier.compress(code)
        except MinifyError as e:
            logger.warning(f"{e.message}; using original code")
            return None
        if not compressed:
            logger.warning("Minifier returned nothing; using original code")
            return None
        return compressed
