"""End-to-end tests for HTMLCompressor.compress()."""

import pytest
from bs4 import BeautifulSoup

import html_compressor
from html_compressor import (
    CacheWriteError,
    CompressorOptions,
    ConfigurationError,
    HTMLCompressor,
    compress,
)

STAGES_OFF = {
    "compress_combine_head_body_css": False,
    "compress_combine_head_js": False,
    "compress_combine_footer_js": False,
    "compress_inline_js_code": False,
    "compress_css_code": False,
    "compress_js_code": False,
    "compress_html_code": False,
}


def soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html5lib")


class TestPassthrough:

    def test_missing_closing_html_tag(self, compressor) -> None:
        fragment = "  <div>\n  <style>a{x:y}</style>\n</div>  "
        assert compressor.compress(fragment) == fragment

    def test_empty_input(self, compressor) -> None:
        assert compressor.compress("") == ""

    def test_excluded_uri(self, make_compressor) -> None:
        compressor = make_compressor(uri_exclusions=["/test.php"])
        html = "  <html><head><style>a{x:y}</style></head></html>  "
        assert compressor.compress(html) == html

    def test_everything_disabled_only_trims(self, make_compressor) -> None:
        compressor = make_compressor(**STAGES_OFF)
        html = "\n <html><head><style>a{ x : y }</style></head><body> <!-- c --> </body></html>\n"
        assert compressor.compress(html) == html.strip()


class TestCssCombination:

    def test_two_styles_two_media(self, compressor) -> None:
        html = (
            "<html><head><style>a{color:#fff}</style>"
            '<style media="print">b{color:#000}</style></head><body>x</body></html>'
        )
        head = soup(compressor.compress(html)).head
        links = head.find_all("link")
        assert [link["media"] for link in links] == ["all", "print"]
        assert all("-compressor-part.css" in link["href"] for link in links)
        assert head.find_all("style") == []

    def test_body_styles_move_to_head(self, compressor) -> None:
        html = "<html><head></head><body><style>a{x:y}</style><p>x</p></body></html>"
        doc = soup(compressor.compress(html))
        assert len(doc.head.find_all("link")) == 1
        assert doc.body.find_all("style") == []
        assert doc.body.p.text == "x"

    def test_conditional_comment_is_preserved(self, compressor, fetcher) -> None:
        conditional = '<!--[if lt IE 9]><link rel="stylesheet" href="/ie.css"><![endif]-->'
        html = (
            f"<html><head><style>a{{x:y}}</style>{conditional}<style>b{{x:y}}</style></head>"
            "<body></body></html>"
        )
        output = compressor.compress(html)
        assert conditional in output
        assert fetcher.requests == []

        first, last = output.index("compressor-part.css"), output.rindex("compressor-part.css")
        assert first < output.index(conditional) < last

    def test_noscript_is_untouched(self, compressor) -> None:
        html = (
            "<html><head><style>a{x:y}</style></head>"
            "<body><noscript><style>b{ x : y }</style></noscript></body></html>"
        )
        output = compressor.compress(html)
        assert "<noscript><style>b{ x : y }</style></noscript>" in output
        assert "htmlc-gxt" not in output


class TestJsCombination:

    def test_head_scripts_combined(self, compressor, fetcher) -> None:
        fetcher.responses["http://www.example.com/a.js"] = "var a = 1"
        html = (
            '<html><head><script src="/a.js"></script><script>var b = 2</script></head>'
            "<body></body></html>"
        )
        scripts = soup(compressor.compress(html)).head.find_all("script")
        assert len(scripts) == 1
        assert "-compressor-part.js" in scripts[0]["src"]

    def test_footer_scripts(self, compressor, fetcher) -> None:
        fetcher.responses["http://www.example.com/a.js"] = "var a = 1"
        html = (
            "<html><head></head><body><p>x</p>"
            '<!-- footer-scripts --><script src="/a.js"></script>'
            "<script>var b = 2</script><!-- footer-scripts --></body></html>"
        )
        scripts = soup(compressor.compress(html)).body.find_all("script")
        assert len(scripts) == 1
        assert "-compressor-part.js" in scripts[0]["src"]

    def test_ld_json_stays_in_place_minified(self, compressor) -> None:
        html = (
            '<html><head><script type="application/ld+json">{ "a": 1 }</script></head>'
            "<body></body></html>"
        )
        output = compressor.compress(html)
        assert '<script type="application/ld+json">/*<![CDATA[*/{"a":1}/*]]>*/</script>' in output
        assert "compressor-part.js" not in output

    def test_inline_body_script_minified(self, compressor) -> None:
        html = "<html><head></head><body><script>var  a  =  1;</script></body></html>"
        output = compressor.compress(html)
        assert "<script>/*<![CDATA[*/var a=1;/*]]>*/</script>" in output

    def test_excluded_script_untouched(self, compressor) -> None:
        html = "<html><head></head><body><script>ga( 'send' );</script></body></html>"
        assert "<script>ga( 'send' );</script>" in compressor.compress(html)

    def test_identical_script_after_conditional_copy(self, make_compressor) -> None:
        compressor = make_compressor(compress_html_code=False)
        conditional = "<!--[if lt IE 9]><script>var  a  =  1;</script><![endif]-->"
        html = (
            f"<html><head></head><body>{conditional}<p>x</p>"
            "<script>var  a  =  1;</script></body></html>"
        )
        output = compressor.compress(html)
        assert conditional in output
        assert "<p>x</p><script>/*<![CDATA[*/var a=1;/*]]>*/</script>" in output


class TestAmp:

    def test_amp_document_keeps_styles(self, compressor, options, tmp_path) -> None:
        html = (
            "<html amp><head><style amp-custom>a{x:y}</style></head>"
            "<body><script>var  a  =  1;</script></body></html>"
        )
        output = compressor.compress(html)
        assert "<style amp-custom>a{x:y}</style>" in output
        assert "/*<![CDATA[*/var a=1;/*]]>*/" in output
        assert not (tmp_path / "public").exists()

    def test_amp_detection_can_be_disabled(self, make_compressor) -> None:
        compressor = make_compressor(amp_exclusions_enable=False)
        html = "<html amp><head><style amp-custom>a{x:y}</style></head><body></body></html>"
        assert "<style" not in compressor.compress(html)

    def test_amp_uri(self, make_compressor) -> None:
        compressor = make_compressor(current_url_uri="/post/amp/")
        assert compressor.is_doc_amp("<html></html>")


class TestHtmlCompression:

    def test_whitespace_and_comments(self, make_compressor) -> None:
        compressor = make_compressor(compress_combine_head_body_css=False)
        html = "<html>\n<head>\n</head>\n<body>\n  <!-- gone -->\n  <p>x</p>\n  <pre> a\n  b </pre></body></html>"
        assert compressor.compress(html) == "<html> <head> </head> <body> <p>x</p> <pre> a\n  b </pre></body></html>"


class TestBenchmark:

    def test_overall_annotation(self, make_compressor) -> None:
        compressor = make_compressor(benchmark=True)
        output = compressor.compress("<html><head></head><body></body></html>")
        assert output.endswith("(overall). -->")
        assert output.count("HTML Compressor took") == 1

    def test_detailed_annotations(self, make_compressor) -> None:
        compressor = make_compressor(benchmark="details")
        output = compressor.compress("<html><head><style>a{x:y}</style></head><body></body></html>")
        assert "compressing/combining head/body CSS" in output
        assert "compressing HTML w/ checksum" in output
        assert output.count("HTML Compressor took") == len(compressor.benchmark.times) + 1

    def test_times_reset_per_call(self, make_compressor) -> None:
        compressor = make_compressor(benchmark="details")
        compressor.compress("<html><head></head><body></body></html>")
        first = set(compressor.benchmark.times)
        compressor.compress("<html><head></head><body></body></html>")
        assert set(compressor.benchmark.times) == first

    def test_stage_data_recorded_with_details(self, make_compressor, fetcher) -> None:
        fetcher.responses["http://www.example.com/a.js"] = "var a = 1"
        compressor = make_compressor(benchmark="details")
        compressor.compress(
            '<html><head><style>a{x:y}</style><script src="/a.js"></script></head>'
            "<body><script>var  b  =  2;</script></body></html>"
        )
        data = compressor.benchmark.data

        css = data["combine_head_body_css"]["data"]
        assert len(css["css_tag_frags"]) == 1
        assert css["css_parts"][0]["tag"].startswith("<link")
        assert len(data["combine_head_js"]["data"]["js_parts"]) == 1

        inline = data["compress_inline_js"]["data"]
        assert len(inline["js_tag_frags"]) == 2
        assert inline["replacements"][-1] == "<script>/*<![CDATA[*/var b=2;/*]]>*/</script>"

    def test_no_stage_data_without_details(self, make_compressor) -> None:
        compressor = make_compressor(benchmark=True)
        compressor.compress("<html><head><style>a{x:y}</style></head><body></body></html>")
        assert dict(compressor.benchmark.data) == {}


class TestFatalErrors:

    def test_missing_host(self, options) -> None:
        with pytest.raises(ConfigurationError):
            HTMLCompressor(options=options.model_copy(update={"current_url_host": None}))

    def test_missing_cache_dir(self, make_compressor) -> None:
        compressor = make_compressor(cache_dir_public=None)
        with pytest.raises(ConfigurationError):
            compressor.compress("<html><head><style>a{x:y}</style></head></html>")

    def test_cache_write_failure_aborts(self, compressor, monkeypatch) -> None:
        def fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("html_compressor.cache.tempfile.mkstemp", fail)
        with pytest.raises(CacheWriteError):
            compressor.compress("<html><head><style>a{x:y}</style></head></html>")

    def test_tokens_cleared_after_failure(self, compressor, monkeypatch) -> None:
        def fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("html_compressor.cache.tempfile.mkstemp", fail)
        with pytest.raises(CacheWriteError):
            compressor.compress(
                "<html><head><style>a{x:y}</style></head><body><noscript>x</noscript></body></html>"
            )
        assert compressor._global_exclusion_tokens == []


class TestCleanup:

    def test_sweep_runs_when_drawn(self, make_compressor, monkeypatch) -> None:
        compressor = make_compressor(cleanup_cache_dirs=True)
        calls = []
        monkeypatch.setattr("html_compressor.compressor.random.randint", lambda a, b: 1)
        monkeypatch.setattr(compressor.cache, "cleanup", lambda: calls.append(1) or 0)
        compressor.compress("<html><head></head><body></body></html>")
        assert calls == [1]

    def test_sweep_skipped_without_cache_dirs(self, make_compressor, monkeypatch) -> None:
        compressor = make_compressor(
            cleanup_cache_dirs=True, cache_dir_public=None, cache_dir_private=None, **STAGES_OFF
        )
        calls = []
        monkeypatch.setattr("html_compressor.compressor.random.randint", lambda a, b: 1)
        monkeypatch.setattr(compressor.cache, "cleanup", lambda: calls.append(1) or 0)
        html = "<html><head></head><body></body></html>"
        assert compressor.compress(html) == html
        assert calls == []

    def test_sweep_disabled(self, compressor, monkeypatch) -> None:
        calls = []
        monkeypatch.setattr("html_compressor.compressor.random.randint", lambda a, b: 1)
        monkeypatch.setattr(compressor.cache, "cleanup", lambda: calls.append(1) or 0)
        compressor.compress("<html><head></head><body></body></html>")
        assert calls == []


class TestConvenienceFunction:

    def test_compress(self, options, fetcher) -> None:
        output = compress(
            "<html><head><style>a{x:y}</style></head><body></body></html>",
            options=options,
            fetcher=fetcher,
        )
        assert "-compressor-part.css" in output

    def test_version(self, compressor) -> None:
        assert compressor.version == html_compressor.__version__

    def test_options_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("HTMLC_CURRENT_URL_HOST", "env.example.com")
        monkeypatch.setenv("HTMLC_JS_EXCLUSIONS", "a.js, b.js")
        monkeypatch.setenv("HTMLC_BENCHMARK", "details")
        options = CompressorOptions.from_env(current_url_uri="/x", current_url_scheme=None)
        assert options.current_url_host == "env.example.com"
        assert options.current_url_uri == "/x"
        assert options.js_exclusions == ["a.js", "b.js"]
        assert options.benchmark_details
