"""
HTML Compressor

Combines, minifies and caches the CSS and JavaScript of rendered HTML pages,
then compresses the HTML itself.
- Extractor: Regex-based CSS/JS tag fragment detection
- PartCompiler: Groups fragments into content-addressed cache files
- HTMLCompressor: Runs the whole pipeline over one document

Public API surface:
  Pipeline      : HTMLCompressor, compress
  Configuration : CompressorOptions, UrlContext
  Extension     : HookApi, Benchmark
  Error types   : ConfigurationError, CacheWriteError (fatal),
                  FetchError, MinifyError, UrlError (handled internally)
"""

__version__ = "0.1.0"

# --- Pipeline ---
from .compressor import HTMLCompressor, compress

# --- Configuration ---
from .options import CompressorOptions
from .urls import UrlContext, UrlResolver

# --- Data models ---
from .schemas import AssetPart, CssTagFragment, JsTagFragment, HtmlFragment, UrlParts

# --- Extension points ---
from .hooks import HookApi
from .benchmark import Benchmark

# --- Exceptions (callers should catch the fatal ones and serve the original page) ---
from .exceptions import (
    HTMLCompressorError,
    ConfigurationError,
    CacheWriteError,
    FetchError,
    MinifyError,
    UrlError,
)

__all__ = [
    "HTMLCompressor",
    "compress",
    "CompressorOptions",
    "UrlContext",
    "UrlResolver",
    "AssetPart",
    "CssTagFragment",
    "JsTagFragment",
    "HtmlFragment",
    "UrlParts",
    "HookApi",
    "Benchmark",
    "HTMLCompressorError",
    "ConfigurationError",
    "CacheWriteError",
    "FetchError",
    "MinifyError",
    "UrlError",
]
