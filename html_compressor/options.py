"""
Compressor configuration.

Every stage flag defaults to enabled, so an empty CompressorOptions() runs the
full pipeline. Values can also come from HTMLC_* environment variables
(see CompressorOptions.from_env), which is what the CLI uses.
"""

import os
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

DEFAULT_VENDOR_CSS_PREFIXES = ["moz", "webkit", "khtml", "ms", "o"]
DEFAULT_JS_EXCLUSIONS = [".php?"]

ENV_PREFIX = "HTMLC_"


class CompressorOptions(BaseModel):
    """All options understood by HTMLCompressor."""

    # --- Stages ---
    compress_combine_head_body_css: bool = True
    compress_combine_head_js: bool = True
    compress_combine_footer_js: bool = True
    compress_combine_remote_css_js: bool = True
    compress_inline_js_code: bool = True
    compress_css_code: bool = True
    compress_js_code: bool = True
    compress_html_code: bool = True

    # --- Exclusions ---
    css_exclusions: list[str] = Field(default_factory=list)
    js_exclusions: list[str] = Field(default_factory=lambda: list(DEFAULT_JS_EXCLUSIONS))
    uri_exclusions: list[str] = Field(default_factory=list)
    regex_css_exclusions: Optional[str] = None     # Overrides css_exclusions
    regex_js_exclusions: Optional[str] = None      # Overrides js_exclusions
    regex_uri_exclusions: Optional[str] = None     # Overrides uri_exclusions
    disable_built_in_css_exclusions: bool = False
    disable_built_in_js_exclusions: bool = False
    vendor_css_prefixes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_VENDOR_CSS_PREFIXES)
    )

    # --- Cache ---
    cache_expiration_time: str = "14 days"
    cache_dir_public: Optional[str] = None
    cache_dir_private: Optional[str] = None
    cache_dir_url_public: Optional[str] = None
    cleanup_cache_dirs: bool = True

    # --- Current request ---
    current_url_scheme: Optional[str] = None
    current_url_host: Optional[str] = None
    current_url_uri: Optional[str] = None

    # --- Remote fetching ---
    fetch_connect_timeout: float = 5
    fetch_read_timeout: float = 15
    fetch_max_redirects: int = 5
    fetch_verify_ssl: bool = True

    # --- Misc ---
    product_title: str = "HTML Compressor"
    benchmark: Union[bool, Literal["details"]] = False
    amp_exclusions_enable: bool = True

    @field_validator(
        "css_exclusions", "js_exclusions", "uri_exclusions", "vendor_css_prefixes",
        mode="before"
    )
    @classmethod
    def _split_comma_list(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("benchmark", mode="before")
    @classmethod
    def _parse_benchmark(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered == "details":
                return "details"
            return lowered in ("1", "true", "yes", "on")
        return value

    @property
    def benchmark_details(self) -> bool:
        return self.benchmark == "details"

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, **overrides) -> "CompressorOptions":
        """
        Build options from environment variables.

        HTMLC_CACHE_DIR_PUBLIC sets cache_dir_public, HTMLC_JS_EXCLUSIONS
        takes a comma-separated list, and so on. Keyword overrides win over
        the environment; None overrides are ignored.
        """
        values = {}
        for name in cls.model_fields:
            env_value = os.getenv(f"{prefix}{name.upper()}")
            if env_value is not None:
                values[name] = env_value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
