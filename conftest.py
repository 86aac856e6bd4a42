"""Shared fixtures: temp cache dirs, an offline fetcher and a ready compressor."""

import pytest

from html_compressor import CompressorOptions, HTMLCompressor, FetchError


class FakeFetcher:
    """Serves canned bodies; unknown URLs fail like a 404."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.requests: list[str] = []

    def get(self, url: str) -> str:
        self.requests.append(url)
        if url not in self.responses:
            raise FetchError(f"HTTP 404 for {url}", url, status_code=404)
        return self.responses[url]


@pytest.fixture
def options(tmp_path) -> CompressorOptions:
    return CompressorOptions(
        cache_dir_public=str(tmp_path / "public"),
        cache_dir_private=str(tmp_path / "private"),
        cache_dir_url_public="http://www.example.com/htmlc/cache/public",
        current_url_scheme="http",
        current_url_host="www.example.com",
        current_url_uri="/test.php?one=1&two=2",
        cleanup_cache_dirs=False,
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def make_compressor(options, fetcher):
    """Factory for compressors with option overrides."""
    def factory(**overrides) -> HTMLCompressor:
        kwargs = {}
        for name in ("hooks", "css_minifier", "js_minifier"):
            if name in overrides:
                kwargs[name] = overrides.pop(name)
        return HTMLCompressor(
            options=options.model_copy(update=overrides), fetcher=fetcher, **kwargs
        )
    return factory


@pytest.fixture
def compressor(make_compressor) -> HTMLCompressor:
    return make_compressor()
