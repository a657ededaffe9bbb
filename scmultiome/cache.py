"""Download cache for released dataset files.

Every file is keyed by the SHA-256 of its URL. A file is downloaded once
and then served from disk; an ``index.json`` beside the files records where
each one came from and what its content hash was at download time.
"""

import hashlib
import json
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse, unquote

import pandas as pd
import requests

from .preprocessing.manifest import file_sha256
from .settings import get_settings

INDEX_FILE = "index.json"
CHUNK_SIZE = 1024 * 1024


def _basename(url: str) -> str:
    name = Path(unquote(urlparse(url).path)).name
    return name or "index"


class DataCache:
    """Content cache for remote files, keyed by URL."""

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        offline: Optional[bool] = None,
        timeout: Optional[float] = None,
        verbose: Optional[bool] = None,
    ):
        settings = get_settings()
        self.cache_dir = Path(cache_dir if cache_dir is not None else settings.cache_dir)
        self.offline = settings.offline if offline is None else offline
        self.timeout = settings.timeout if timeout is None else timeout
        self.verbose = settings.verbose if verbose is None else verbose

    def __repr__(self):
        return f"DataCache(cache_dir={str(self.cache_dir)!r}, offline={self.offline})"

    @property
    def index_path(self) -> Path:
        return self.cache_dir / INDEX_FILE

    def _log(self, message: str):
        if self.verbose:
            print(message)

    def _read_index(self) -> Dict[str, dict]:
        if not self.index_path.exists():
            return {}
        with open(self.index_path) as f:
            return json.load(f)

    def _write_index(self, index: Dict[str, dict]):
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.index_path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(index, f, indent=2, sort_keys=True)
        tmp_path.replace(self.index_path)

    def _record(self, url: str, path: Path, sha256: str):
        index = self._read_index()
        index[self.key_for(url)] = {
            "url": url,
            "path": str(path.relative_to(self.cache_dir)),
            "size": path.stat().st_size,
            "sha256": sha256,
            "fetched_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }
        self._write_index(index)

    @staticmethod
    def key_for(url: str) -> str:
        """Cache key of a URL."""
        return hashlib.sha256(url.encode("utf-8")).hexdigest()

    def path_for(self, url: str) -> Path:
        """Location of the cached copy of ``url`` (whether or not it exists)."""
        key = self.key_for(url)
        return self.cache_dir / key[:2] / key / _basename(url)

    def is_cached(self, url: str) -> bool:
        return self.path_for(url).exists()

    def _is_stale(self, url: str, path: Path, sha256: Optional[str]) -> bool:
        if sha256 is None:
            return False
        entry = self._read_index().get(self.key_for(url))
        if entry is not None:
            return entry.get("sha256") != sha256

        # No record of this file: hash it and remember the result
        actual = file_sha256(path)
        if actual != sha256:
            return True
        self._record(url, path, actual)
        return False

    def fetch(self, url: str, sha256: Optional[str] = None, force: bool = False) -> Path:
        """Return a local path for ``url``, downloading it if needed.

        Args:
            url: Remote file URL
            sha256: Expected content hash; verified after download
            force: Download again even if a cached copy exists

        Returns:
            Path to the cached file
        """
        path = self.path_for(url)

        if path.exists() and not force:
            if not self._is_stale(url, path, sha256):
                return path
            if self.offline:
                raise ValueError(
                    f"Cached copy of {url} does not match the expected checksum "
                    f"and the cache is offline"
                )
            self._log(f"Cached copy of {url} is out of date, downloading again")

        if self.offline:
            raise FileNotFoundError(
                f"{url} is not cached at {self.cache_dir} and the cache is offline"
            )

        path.parent.mkdir(parents=True, exist_ok=True)
        part_path = path.with_name(path.name + ".part")

        self._log(f"Downloading {url}")
        digest = hashlib.sha256()
        try:
            response = requests.get(url, stream=True, timeout=self.timeout)
            response.raise_for_status()
            with open(part_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        digest.update(chunk)
        except BaseException:
            part_path.unlink(missing_ok=True)
            raise

        actual = digest.hexdigest()
        if sha256 is not None and actual != sha256:
            part_path.unlink()
            raise ValueError(
                f"Checksum mismatch for {url}: expected {sha256}, got {actual}"
            )

        part_path.replace(path)
        self._record(url, path, actual)
        self._log(f"  Saved {path.stat().st_size / 1024 / 1024:.1f} MB to {path}")
        return path

    def store(self, url: str, source_path: Path, sha256: Optional[str] = None) -> Path:
        """Copy a local file into the cache as the content of ``url``."""
        source_path = Path(source_path)
        if not source_path.exists():
            raise FileNotFoundError(f"Source file not found: {source_path}")

        actual = file_sha256(source_path)
        if sha256 is not None and actual != sha256:
            raise ValueError(
                f"Checksum mismatch for {source_path}: expected {sha256}, got {actual}"
            )

        path = self.path_for(url)
        path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source_path, path)
        self._record(url, path, actual)
        return path

    def remove(self, url: str) -> bool:
        """Delete the cached copy of ``url``. Returns whether one existed."""
        key = self.key_for(url)
        entry_dir = self.cache_dir / key[:2] / key
        existed = entry_dir.exists()
        if existed:
            shutil.rmtree(entry_dir)

        index = self._read_index()
        if index.pop(key, None) is not None:
            self._write_index(index)
        return existed

    def clear(self) -> int:
        """Delete every cached file. Returns the number of entries removed."""
        index = self._read_index()
        removed = 0
        for entry in index.values():
            if self.remove(entry["url"]):
                removed += 1
        if self.index_path.exists():
            self.index_path.unlink()
        return removed

    def list_cached(self) -> pd.DataFrame:
        """Table of cached files (url, path, size, sha256, fetched_at)."""
        rows = []
        for entry in self._read_index().values():
            path = self.cache_dir / entry["path"]
            if not path.exists():
                continue
            rows.append({
                "url": entry["url"],
                "path": str(path),
                "size": entry["size"],
                "sha256": entry["sha256"],
                "fetched_at": entry["fetched_at"],
            })
        return pd.DataFrame(rows, columns=["url", "path", "size", "sha256", "fetched_at"])

    def total_size(self) -> int:
        """Total size in bytes of all cached files."""
        return int(self.list_cached()["size"].sum())
