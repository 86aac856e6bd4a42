"""
Blocking HTTP transport for remote CSS/JS and @import targets.

One request at a time, bounded by separate connect and read timeouts. Any
error status or transport failure surfaces as FetchError, which callers treat
as "no content for this fragment".
"""

from typing import Optional

import requests

from .urls import UrlContext
from .exceptions import FetchError
from .logger import get_module_logger

logger = get_module_logger("fetcher")


class RemoteFetcher:
    """requests-based fetcher that identifies itself as the compressor."""

    def __init__(
        self,
        context: UrlContext,
        user_agent: str = "HTML Compressor",
        connect_timeout: float = 5,
        read_timeout: float = 15,
        max_redirects: int = 5,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None
    ):
        self.context = context
        self.timeout = (connect_timeout, read_timeout)
        self.verify_ssl = verify_ssl

        self.session = session or requests.Session()
        self.session.max_redirects = max_redirects
        self.session.headers.update({
            "User-Agent": user_agent,
            "Referer": context.url,
        })

    @classmethod
    def from_options(cls, context: UrlContext, options) -> "RemoteFetcher":
        return cls(
            context,
            user_agent=options.product_title,
            connect_timeout=options.fetch_connect_timeout,
            read_timeout=options.fetch_read_timeout,
            max_redirects=options.fetch_max_redirects,
            verify_ssl=options.fetch_verify_ssl,
        )

    def get(self, url: str) -> str:
        """
        GET `url` and return the stripped response body.

        Raises:
            FetchError: On status >= 400 or any transport failure
        """
        try:
            resp = self.session.request(
                "GET",
                url,
                timeout=self.timeout,
                verify=self.verify_ssl,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            raise FetchError(f"Request failed: {exc}", url) from exc

        if resp.status_code >= 400:
            raise FetchError(
                f"HTTP {resp.status_code} for {url}", url, status_code=resp.status_code
            )

        # Without a declared charset requests falls back to ISO-8859-1 for text/*.
        if "charset" not in resp.headers.get("Content-Type", "").lower():
            resp.encoding = "utf-8"
        logger.debug(f"Fetched {url} ({len(resp.content)} bytes)")
        return resp.text.strip()
