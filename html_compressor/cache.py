"""
Content-addressed disk cache for combined CSS/JS.

Two trees, both keyed by host:
  public/<host>/c/h/e/c/k/<md5>-compressor-part.css   served over HTTP
  private/<host>/c/h/e/c/k/<key>-compressor-parts.css-cache   parts manifests

Artifacts are named by the hash of their own pre-minification code, so the
same code always lands at the same path. Manifests are valid while their
mtime is inside the expiration window. Every write goes to a uniquely named
temp file in the target directory followed by an atomic rename, so concurrent
writers never expose a partial file and no lock is needed.
"""

import contextlib
import json
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .options import CompressorOptions
from .schemas import AssetPart
from .urls import UrlResolver
from .exceptions import ConfigurationError, CacheWriteError
from .utils import parse_duration
from .logger import get_module_logger

logger = get_module_logger("cache")

PUBLIC = "public"
PRIVATE = "private"

HTACCESS_DENY = (
    "<IfModule authz_core_module>\n\tRequire all denied\n</IfModule>\n"
    "<IfModule !authz_core_module>\n\tdeny from all\n</IfModule>"
)
HTACCESS_ALLOW = (
    "<IfModule authz_core_module>\n\tRequire all granted\n</IfModule>\n"
    "<IfModule !authz_core_module>\n\tallow from all\n</IfModule>\n\n"
    "<IfModule headers_module>\n\t<FilesMatch \"\\.(html|js|css)$\">\n"
    "\t\tHeader append Vary: Accept-Encoding\n\t</FilesMatch>\n</IfModule>"
)

# Artifacts may still be referenced by pages cached elsewhere for a while
# after their manifest expired.
ARTIFACT_GRACE_SECONDS = 3600


class CacheStore:
    """
    Cache directories, atomic writes, manifests and the expiry sweep.

    Args:
        options: Compressor options (cache dirs, URL base, expiration)
        urls: Resolver bound to the current request (host and scheme)
    """

    def __init__(self, options: CompressorOptions, urls: UrlResolver):
        self.options = options
        self.urls = urls
        self.expiration = parse_duration(options.cache_expiration_time)
        self._dirs: dict[tuple, Path] = {}
        self._dir_urls: dict[tuple, str] = {}

    @property
    def host_slug(self) -> str:
        return re.sub(r'[^a-z0-9]', "-", self.urls.context.host, flags=re.IGNORECASE).strip("-")

    @staticmethod
    def _checksum_prefix(checksum: str) -> str:
        return checksum[:5] if len(checksum) >= 5 else ""

    def _relative_parts(self, checksum: str) -> list[str]:
        return [self.host_slug] + list(self._checksum_prefix(checksum))

    # --- Directories ---

    def cache_dir(self, type_: str, checksum: str = "", base_only: bool = False) -> Path:
        """
        Directory for a cache type, created on first use.

        Raises:
            ConfigurationError: When no directory is configured or it is not read/writable
        """
        if type_ not in (PUBLIC, PRIVATE):
            raise ValueError(f"Invalid cache type: {type_}")
        key = (type_, self._checksum_prefix(checksum), base_only)
        if key in self._dirs:
            return self._dirs[key]

        configured = getattr(self.options, f"cache_dir_{type_}")
        if not configured:
            raise ConfigurationError(
                f"No {type_} cache directory; set cache_dir_{type_}"
            )
        basedir = Path(configured)
        directory = basedir if base_only else basedir.joinpath(*self._relative_parts(checksum))

        try:
            directory.mkdir(mode=0o755, parents=True, exist_ok=True)
            htaccess = basedir / ".htaccess"
            if not htaccess.exists():
                htaccess.write_text(HTACCESS_ALLOW if type_ == PUBLIC else HTACCESS_DENY)
        except OSError as e:
            raise ConfigurationError(
                f"Unable to create {type_} cache directory: {directory}", {"error": str(e)}
            ) from e

        if not os.access(directory, os.R_OK | os.W_OK):
            raise ConfigurationError(f"Cache directory not readable/writable: {directory}")

        self._dirs[key] = directory
        return directory

    def cache_dir_url(self, type_: str, checksum: str = "", base_only: bool = False) -> str:
        """Public URL of a cache directory, on the current request's scheme."""
        key = (type_, self._checksum_prefix(checksum), base_only)
        if key in self._dir_urls:
            return self._dir_urls[key]

        configured = getattr(self.options, f"cache_dir_url_{type_}", None)
        if not configured:
            raise ConfigurationError(
                f"Unable to determine the {type_} cache URL; set cache_dir_url_{type_}"
            )
        url = self.urls.set_url_scheme(configured.rstrip("/"))
        if not base_only:
            url += "/" + "/".join(self._relative_parts(checksum))

        self._dir_urls[key] = url
        return url

    # --- Paths ---

    def manifest_path(self, kind: str, checksum: str) -> Path:
        return self.cache_dir(PRIVATE, checksum) / f"{checksum}-compressor-parts.{kind}-cache"

    def artifact_path(self, kind: str, code_hash: str) -> Path:
        return self.cache_dir(PUBLIC, code_hash) / f"{code_hash}-compressor-part.{kind}"

    def artifact_url(self, kind: str, code_hash: str) -> str:
        return f"{self.cache_dir_url(PUBLIC, code_hash)}/{code_hash}-compressor-part.{kind}"

    # --- Reads / writes ---

    def write_atomic(self, path: Path, data: str) -> None:
        """
        Write `data` to `path` via a temp file and an atomic rename.

        Raises:
            CacheWriteError: When the temp write or the rename fails
        """
        path = Path(path)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f"{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(data)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise CacheWriteError(
                f"Unable to write cache file: {path}", str(path), {"error": str(e)}
            ) from e
        finally:
            if tmp_name:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_name)

    def is_fresh(self, path: Path) -> bool:
        """True when the file exists and was modified inside the expiration window."""
        try:
            mtime = Path(path).stat().st_mtime
        except FileNotFoundError:
            return False
        return mtime > time.time() - self.expiration.total_seconds()

    def read_manifest(self, kind: str, checksum: str) -> Optional[list[AssetPart]]:
        """Cached parts for a fragment checksum, or None on a miss or expired entry."""
        path = self.manifest_path(kind, checksum)
        if not self.is_fresh(path):
            logger.debug(f"Manifest miss: {path.name}")
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            parts = [AssetPart.model_validate(item) for item in data["parts"]]
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable manifest {path}: {e}")
            return None

        logger.debug(f"Manifest hit: {path.name}")
        return parts

    def write_manifest(self, kind: str, checksum: str, parts: list[AssetPart]) -> Path:
        path = self.manifest_path(kind, checksum)
        payload = {
            "checksum": checksum,
            "kind": kind,
            "parts": [part.model_dump() for part in parts],
        }
        self.write_atomic(path, json.dumps(payload, indent=2))
        logger.info(f"Cached {len(parts)} {kind} parts -> {path.name}")
        return path

    def write_artifact(self, kind: str, code_hash: str, code: str) -> Path:
        path = self.artifact_path(kind, code_hash)
        self.write_atomic(path, code)
        return path

    # --- Sweep ---

    def cleanup(self) -> int:
        """
        Delete expired files for the current host. Returns count of deleted files.

        Artifacts get an extra hour of grace past expiration; manifests and
        orphaned temp files expire on time.
        """
        min_mtime = time.time() - self.expiration.total_seconds()
        targets = [
            (self.cache_dir(PUBLIC), "*-compressor-part.*", min_mtime - ARTIFACT_GRACE_SECONDS),
            (self.cache_dir(PRIVATE), "*-compressor-parts.*", min_mtime),
            (self.cache_dir(PUBLIC), "*.tmp", min_mtime),
            (self.cache_dir(PRIVATE), "*.tmp", min_mtime),
        ]

        count = 0
        for directory, pattern, threshold in targets:
            for cache_file in directory.rglob(pattern):
                try:
                    if cache_file.is_file() and cache_file.stat().st_mtime < threshold:
                        cache_file.unlink()
                        count += 1
                except FileNotFoundError:
                    continue  # Removed by a concurrent sweep
                except OSError as e:
                    logger.warning(f"Unable to delete {cache_file}: {e}")

        logger.info(f"Cache cleanup removed {count} files")
        return count
