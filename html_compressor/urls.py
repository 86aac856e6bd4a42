"""
URL parsing, normalization and browser-style relative resolution.

Everything that needs "the current URL" goes through a UrlContext, built once
per compressor from explicit configuration (or from a WSGI environ) and never
looked up from process globals.
"""

import re
from enum import IntFlag
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict

from .schemas import UrlParts
from .exceptions import ConfigurationError, UrlError


class UrlComponent(IntFlag):
    """Bitmask selecting which components get normalized."""
    NONE = 0
    SCHEME = 1
    USER = 2
    PASS = 4
    HOST = 8
    PORT = 16
    PATH = 32
    QUERY = 64
    FRAGMENT = 128


DEFAULT_NORMALIZE = UrlComponent.SCHEME | UrlComponent.HOST | UrlComponent.PATH

AMP_ENTITY_PATTERN = re.compile(r'&amp;|&#0*38;|&#[xX]0*26;')
SCHEME_PREFIX_PATTERN = re.compile(r'^(?:[a-z0-9]+:)?//', re.IGNORECASE)
REPEATED_SLASHES_PATTERN = re.compile(r'/+')
DOT_SEGMENT_PATTERN = re.compile(r'/\./')
PARENT_SEGMENT_PATTERN = re.compile(r'/(?!\.\.)[^/]+/\.\./')


def normalize_amps(value: str) -> str:
    """Turn `&amp;` and its numeric forms back into a literal `&`."""
    return AMP_ENTITY_PATTERN.sub("&", value)


def normalize_path_separators(path: str) -> str:
    """Backslashes become slashes and runs of slashes collapse to one."""
    if not path:
        return ""
    return REPEATED_SLASHES_PATTERN.sub("/", path.replace("\\", "/"))


def _split_netloc(netloc: str) -> tuple:
    """Split `user:pass@host:port`; raises ValueError on a bad port or IPv6 literal."""
    user = password = ""
    host_port = netloc
    if "@" in netloc:
        userinfo, _, host_port = netloc.rpartition("@")
        user, _, password = userinfo.partition(":")

    if host_port.startswith("["):
        end = host_port.find("]")
        if end == -1:
            raise ValueError(f"Unterminated IPv6 literal: {host_port}")
        host, rest = host_port[:end + 1], host_port[end + 1:]
        if rest and not rest.startswith(":"):
            raise ValueError(f"Garbage after IPv6 literal: {host_port}")
        port_str = rest[1:]
    else:
        host, _, port_str = host_port.partition(":")

    if port_str and not port_str.isdigit():
        raise ValueError(f"Invalid port: {port_str}")
    port = int(port_str) if port_str else 0
    if port > 65535:
        raise ValueError(f"Port out of range: {port}")
    return user, password, host, port


def _normalize(parts: UrlParts, normalize: int) -> UrlParts:
    if normalize & UrlComponent.SCHEME:
        parts.scheme = parts.scheme.lower()
    if normalize & UrlComponent.HOST:
        parts.host = parts.host.lower()
    if normalize & UrlComponent.PATH:
        parts.path = "/" + normalize_path_separators(parts.path).lstrip("/")
    return parts


def parse_url(url: str, normalize: Optional[int] = None) -> Optional[UrlParts]:
    """
    Parse a URL into UrlParts.

    A protocol-relative URL (`//host/path`) parses with an empty scheme.
    With PATH normalization a missing path becomes `/`.

    Args:
        url: URL to parse
        normalize: UrlComponent mask; defaults to scheme, host and path

    Returns:
        UrlParts, or None when the URL is malformed
    """
    if normalize is None:
        normalize = DEFAULT_NORMALIZE

    protocol_relative = url.startswith("//")
    candidate = f"http:{url}" if protocol_relative else url
    try:
        split = urlsplit(candidate)
        user, password, host, port = _split_netloc(split.netloc)
    except ValueError:
        return None

    parts = UrlParts(
        scheme="" if protocol_relative else split.scheme,
        user=user,
        password=password,
        host=host,
        port=port,
        path=split.path,
        query=split.query,
        fragment=split.fragment,
    )
    return _normalize(parts, normalize)


def must_parse_url(url: str, normalize: Optional[int] = None) -> UrlParts:
    parts = parse_url(url, normalize)
    if parts is None:
        raise UrlError(f"Unable to parse URL: {url}", url)
    return parts


def unparse_url(parts: UrlParts, normalize: Optional[int] = None) -> str:
    """Rebuild a URL string; an empty scheme with a host yields `//host`."""
    if normalize is None:
        normalize = DEFAULT_NORMALIZE
    parts = _normalize(parts.model_copy(), normalize)

    url = ""
    if parts.scheme:
        url += f"{parts.scheme}://"
    elif parts.host:
        url += "//"

    if parts.user:
        url += parts.user
        if parts.password:
            url += f":{parts.password}"
        url += "@"

    url += parts.host
    if parts.port:
        url += f":{parts.port}"
    url += parts.path
    if parts.query:
        url += f"?{parts.query}"
    if parts.fragment:
        url += f"#{parts.fragment}"
    return url


def must_unparse_url(parts: UrlParts, normalize: Optional[int] = None) -> str:
    url = unparse_url(parts, normalize)
    if not url:
        raise UrlError("Unable to unparse URL", "", {"parts": parts.model_dump()})
    return url


def must_parse_uri(url: str, normalize: Optional[int] = None, include_fragment: bool = True) -> str:
    """Reduce a URL to its path, query and (optionally) fragment."""
    parts = must_parse_url(url, normalize)
    uri_parts = UrlParts(
        path=parts.path,
        query=parts.query,
        fragment=parts.fragment if include_fragment else "",
    )
    return must_unparse_url(uri_parts, normalize)


def resolve_url(relative: str, base: str) -> str:
    """
    Resolve a relative URL against a base, the way a browser does.

    Raises:
        ConfigurationError: When neither URL carries a host
        UrlError: When either URL is malformed
    """
    relative_parts = must_parse_url(relative, UrlComponent.NONE)
    relative_parts.path = normalize_path_separators(relative_parts.path)

    if relative_parts.host:
        if not relative_parts.scheme:
            relative_parts.scheme = must_parse_url(base).scheme if base else ""
        return must_unparse_url(relative_parts)

    base_parts = must_parse_url(base) if base else UrlParts()
    if not base_parts.host:
        raise ConfigurationError(
            f"Cannot resolve {relative!r}: no base URL host",
            {"relative": relative, "base": base},
        )

    if relative_parts.path:
        if relative_parts.path.startswith("/"):
            base_parts.path = ""
        else:
            base_parts.path = re.sub(r'/[^/]*$', "", base_parts.path) + "/"

        path = base_parts.path + relative_parts.path
        collapsed = 1
        while collapsed > 0:
            path, dots = DOT_SEGMENT_PATTERN.subn("/", path)
            path, parents = PARENT_SEGMENT_PATTERN.subn("/", path)
            collapsed = dots + parents
        base_parts.path = path.replace("../", "")
        base_parts.query = relative_parts.query

    elif relative_parts.query:
        base_parts.query = relative_parts.query

    base_parts.fragment = relative_parts.fragment
    return must_unparse_url(base_parts)


# --- Current request context ---

class UrlContext(BaseModel):
    """Scheme, host and URI of the page being compressed."""
    model_config = ConfigDict(frozen=True)

    scheme: str = "http"
    host: str
    uri: str = "/"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}{self.uri}"

    @classmethod
    def build(
        cls,
        host: Optional[str],
        uri: Optional[str],
        scheme: Optional[str] = None
    ) -> "UrlContext":
        """
        Validate and normalize an explicit context.

        Raises:
            ConfigurationError: When host or URI is missing or unusable
        """
        if not host or not host.strip():
            raise ConfigurationError("No current URL host; set current_url_host")
        if not uri or not uri.strip():
            raise ConfigurationError("No current URL URI; set current_url_uri")
        try:
            uri = must_parse_uri(uri.strip())
        except UrlError as e:
            raise ConfigurationError(f"Invalid current URL URI: {uri}", {"uri": uri}) from e

        return cls(
            scheme=(scheme or "http").strip().lower(),
            host=host.strip().lower(),
            uri=uri,
        )

    @classmethod
    def from_options(cls, options) -> "UrlContext":
        return cls.build(
            options.current_url_host,
            options.current_url_uri,
            options.current_url_scheme,
        )

    @classmethod
    def from_wsgi_environ(cls, environ: dict, scheme: Optional[str] = None) -> "UrlContext":
        """Build the context from a WSGI environ of the current request."""
        host = environ.get("HTTP_HOST") or environ.get("SERVER_NAME")

        uri = environ.get("REQUEST_URI")
        if not uri:
            uri = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "") or "/"
            if environ.get("QUERY_STRING"):
                uri += "?" + environ["QUERY_STRING"]

        if not scheme:
            forwarded = environ.get("HTTP_X_FORWARDED_PROTO", "")
            if forwarded:
                scheme = forwarded.split(",")[0].strip()
            elif str(environ.get("HTTPS", "")).lower() in ("on", "1") \
                    or str(environ.get("SERVER_PORT", "")) == "443":
                scheme = "https"
            else:
                scheme = environ.get("wsgi.url_scheme", "http")

        return cls.build(host, uri, scheme)


class UrlResolver:
    """URL operations bound to one UrlContext."""

    def __init__(self, context: UrlContext):
        self.context = context

    @property
    def current_url(self) -> str:
        return self.context.url

    def is_url_external(self, url: str) -> bool:
        """True when the URL names a host other than the current one."""
        if "//" not in url:
            return False
        return f"//{self.context.host}" not in url.lower()

    def set_url_scheme(self, url: str, scheme: Optional[str] = None) -> str:
        """Force a URL onto `scheme` (the current one by default)."""
        if scheme is None:
            scheme = self.context.scheme
        prefix = f"{scheme}://" if scheme else "//"
        if SCHEME_PREFIX_PATTERN.match(url):
            return SCHEME_PREFIX_PATTERN.sub(prefix, url, count=1)
        return url

    def resolve(self, relative: str, base: str = "") -> str:
        """Resolve against `base`, or against the current URL when it is empty."""
        return resolve_url(relative, base or self.current_url)
