"""
Exceptions raised by the HTML compressor.

Error philosophy:
  - ConfigurationError → FAIL HARD: no usable cache directory or no host/URI
    context. Raised immediately, the caller serves the original document.
  - CacheWriteError    → FAIL HARD: a temp-file write or rename failed. The
    whole compress() call is aborted so no half-combined page escapes.
  - UrlError           → NON-FATAL inside a stage: the offending URL is skipped.
  - FetchError         → NON-FATAL: the fragment contributes no content.
  - MinifyError        → NON-FATAL: the unminified code is used instead.

Stages that find nothing to act on simply return their input; that is not an
error and has no exception type.
"""

from typing import Optional


class HTMLCompressorError(Exception):
    """Base exception for all HTML compressor errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- FAIL HARD: unwinds compress() ---

class ConfigurationError(HTMLCompressorError):
    """Raised when the cache directories or the current URL context are unusable."""
    pass


class CacheWriteError(HTMLCompressorError):
    """Raised when a cache artifact or manifest could not be written."""

    def __init__(self, message: str, path: str, details: Optional[dict] = None):
        super().__init__(message, details)
        self.path = path


# --- NON-FATAL: handled by the stage that hit them ---

class UrlError(HTMLCompressorError):
    """Raised when a URL cannot be parsed or unparsed."""

    def __init__(self, message: str, url: str, details: Optional[dict] = None):
        super().__init__(message, details)
        self.url = url


class FetchError(HTMLCompressorError):
    """Raised when a remote resource could not be retrieved."""

    def __init__(
        self,
        message: str,
        url: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None
    ):
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code  # None on transport failures


class MinifyError(HTMLCompressorError):
    """Raised when a minifier fails on a block of code."""

    def __init__(self, message: str, language: str, details: Optional[dict] = None):
        super().__init__(message, details)
        self.language = language  # "css" or "js"
