#!/usr/bin/env python3
"""
CLI script to compress rendered HTML files.

Reads HTML files, combines/minifies their CSS and JS into the cache
directories and writes `<name>.min.html` next to each input (or into
--output-dir). Options come from HTMLC_* environment variables (a .env file is
loaded first) and are overridden by the flags below.
"""

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()

from html_compressor import HTMLCompressor, CompressorOptions, HTMLCompressorError


def main():
    parser = argparse.ArgumentParser(description="Compress CSS/JS/HTML of rendered HTML files")
    parser.add_argument("files", nargs="+", help="HTML files to process")
    parser.add_argument("--output-dir", "-o", help="Directory for compressed files")
    parser.add_argument("--host", help="Current URL host (current_url_host)")
    parser.add_argument("--uri", help="Current URL URI (current_url_uri)")
    parser.add_argument("--scheme", help="Current URL scheme (current_url_scheme)")
    parser.add_argument("--cache-dir-public", help="Public cache directory")
    parser.add_argument("--cache-dir-private", help="Private cache directory")
    parser.add_argument("--cache-url", help="Public URL of the public cache directory")
    parser.add_argument("--benchmark", action="store_true", help="Append detailed timing comments")
    parser.add_argument("--no-html", action="store_true", help="Skip final HTML compression")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    overrides = {
        "current_url_host": args.host,
        "current_url_uri": args.uri,
        "current_url_scheme": args.scheme,
        "cache_dir_public": args.cache_dir_public,
        "cache_dir_private": args.cache_dir_private,
        "cache_dir_url_public": args.cache_url,
    }
    if args.benchmark:
        overrides["benchmark"] = "details"
    if args.no_html:
        overrides["compress_html_code"] = False

    options = CompressorOptions.from_env(**overrides)
    compressor = HTMLCompressor(
        options=options,
        log_level=logging.DEBUG if args.verbose else None,
    )

    results = []

    for filepath in args.files:
        path = Path(filepath)
        print(f"Compressing: {path.name}")

        try:
            html = path.read_text(encoding="utf-8", errors="replace")
            compressed = compressor.compress(html)

            out_dir = Path(args.output_dir) if args.output_dir else path.parent
            out_dir.mkdir(parents=True, exist_ok=True)
            out_path = out_dir / f"{path.stem}.min{path.suffix}"
            out_path.write_text(compressed, encoding="utf-8")

            results.append({
                "file": path.name,
                "status": "success",
                "output": str(out_path),
                "original_size": len(html),
                "compressed_size": len(compressed),
            })
            print(f"  ✓ {len(html)} → {len(compressed)} chars")

        except (HTMLCompressorError, OSError) as e:
            results.append({
                "file": path.name,
                "status": "error",
                "error": str(e),
            })
            print(f"  ✗ Error: {e}")

    print("\n" + json.dumps(results, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
