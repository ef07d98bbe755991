"""
Discover upstream Go release tarballs and stream them from the network.

Listings come from one or more sources, fetched concurrently:
- JSON sources (URLs with mode=json), e.g. https://go.dev/dl/?mode=json&include=all
- HTML download pages, scraped for <a class="download" href="..."> links

Only linux tarballs for the requested architecture are kept. The merged
listing is sorted newest first.
"""

import hashlib
import http.client
import json
import os
import sys
import urllib.error
import urllib.request
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import suppress
from dataclasses import dataclass
from html.parser import HTMLParser
from pathlib import Path
from typing import BinaryIO
from urllib.parse import urljoin, urlparse

from .errors import ChecksumMismatchError, DownloadError, NoReleasesError, WriteStageError
from .version_sort import sort_tarballs

# ============================================================================
# Configuration
# ============================================================================

DEFAULT_SOURCES = [
    "https://go.dev/dl/?mode=json&include=all",
]

# JSON listings carry bare file names; tarballs are served from here
DOWNLOAD_BASE_URL = "https://dl.google.com/go/"

HTTP_TIMEOUT = 60
CHUNK_SIZE = 1024 * 1024


@dataclass
class Tarball:
    version: str
    url: str
    sha256: str | None = None


# ============================================================================
# Parsing
# ============================================================================


def parse_file_name(filename: str, arch: str) -> str | None:
    """
    Extract the version from a release file name.

    Args:
        filename: e.g. "go1.1beta2.linux-amd64.tar.gz"
        arch: Go architecture name, e.g. "amd64"

    Returns:
        The version ("1.1beta2"), or None when the file is not a linux
        tarball for arch
    """
    if len(filename) < 3 or not filename.startswith("go") or not "1" <= filename[2] <= "9":
        return None
    suffix = f".linux-{arch}.tar.gz"
    if not filename.endswith(suffix):
        return None
    return filename[2 : -len(suffix)]


def parse_url(url: str, arch: str) -> Tarball | None:
    filename = urlparse(url).path.rsplit("/", 1)[-1]
    version = parse_file_name(filename, arch)
    if version is None:
        return None
    return Tarball(version=version, url=url)


def parse_json_listing(data: bytes | str, arch: str) -> list[Tarball]:
    """Parse the go.dev JSON release listing."""
    try:
        releases = json.loads(data)
    except ValueError as e:
        raise DownloadError(f"cannot parse release listing: {e}") from e

    tarballs = []
    seen = set()
    for release in releases:
        for f in release.get("files", []):
            filename = f.get("filename", "")
            version = parse_file_name(filename, arch)
            if version is None or version in seen:
                continue
            seen.add(version)
            tarballs.append(Tarball(version=version, url=DOWNLOAD_BASE_URL + filename, sha256=f.get("sha256") or None))
    return tarballs


class _DownloadLinkParser(HTMLParser):
    """Collect the href of every <a> with class "download"."""

    def __init__(self):
        super().__init__()
        self.links: list[str] = []

    def handle_starttag(self, tag, attrs):
        if tag.lower() != "a":
            return
        attrs = dict(attrs)
        if "download" not in (attrs.get("class") or "").split():
            return
        href = attrs.get("href")
        if href:
            self.links.append(href)


def parse_html_listing(html: str, source_url: str, arch: str) -> list[Tarball]:
    """Scrape download links from an HTML download page."""
    parser = _DownloadLinkParser()
    parser.feed(html)
    parser.close()

    tarballs = []
    seen = set()
    for href in parser.links:
        tb = parse_url(urljoin(source_url, href), arch)
        if tb is not None and tb.version not in seen:
            seen.add(tb.version)
            tarballs.append(tb)
    return tarballs


# ============================================================================
# Fetching
# ============================================================================


def _http_get(url: str) -> bytes:
    try:
        with urllib.request.urlopen(url, timeout=HTTP_TIMEOUT) as response:
            return response.read()
    except urllib.error.HTTPError as e:
        raise DownloadError(f"got status code {e.code} from {url}") from e
    except (urllib.error.URLError, OSError) as e:
        raise DownloadError(f"failed to fetch {url}: {e}") from e


def tarballs_from(source: str, arch: str) -> list[Tarball]:
    """Fetch and parse a single listing source."""
    data = _http_get(source)
    if "mode=json" in source:
        tarballs = parse_json_listing(data, arch)
    else:
        tarballs = parse_html_listing(data.decode("utf-8", errors="replace"), source, arch)
    if not tarballs:
        raise NoReleasesError(f"no downloads available at {source}")
    return tarballs


def fetch_tarballs(sources: list[str], arch: str) -> list[Tarball]:
    """
    Fetch all listing sources concurrently and merge them, newest first.

    Every source must succeed: the first failure among them fails the
    whole listing, after all requests have finished.
    """
    tarballs: list[Tarball] = []
    error: Exception | None = None
    with ThreadPoolExecutor(max_workers=max(1, len(sources))) as executor:
        futures = [executor.submit(tarballs_from, source, arch) for source in sources]
        for future in as_completed(futures):
            try:
                tarballs.extend(future.result())
            except Exception as e:
                if error is None:
                    error = e
    if error is not None:
        raise error
    return sort_tarballs(tarballs)


def find_tarball(tarballs: list[Tarball], version: str | None) -> Tarball | None:
    """Return the tarball for version, or the newest one when version is None."""
    if not version:
        return tarballs[0] if tarballs else None
    for tb in tarballs:
        if tb.version == version:
            return tb
    return None


# ============================================================================
# Streaming download
# ============================================================================


class HashingReader:
    """
    Read-through wrapper over a download that tracks SHA256 and progress.

    verify() drains whatever the consumer left unread (e.g. the gzip
    trailer) and compares the digest with the published one.
    """

    def __init__(
        self,
        fileobj: BinaryIO,
        name: str,
        expected_sha256: str | None = None,
        total_size: int = 0,
        show_progress: bool = True,
    ):
        self._fileobj = fileobj
        self.name = name
        self.expected_sha256 = expected_sha256
        self.total_size = total_size
        self.show_progress = show_progress
        self.bytes_read = 0
        self._sha256 = hashlib.sha256()
        self._last_percent = -1

    def read(self, size: int = -1) -> bytes:
        try:
            data = self._fileobj.read(size)
        except (OSError, http.client.HTTPException) as e:
            raise DownloadError(f"failed to download {self.name}: {e}") from e
        self._sha256.update(data)
        self.bytes_read += len(data)
        self._report_progress()
        return data

    def _report_progress(self) -> None:
        if not self.show_progress or self.total_size <= 0:
            return
        percent = min(100, int(self.bytes_read * 100 / self.total_size))
        if percent == self._last_percent:
            return
        self._last_percent = percent
        mb_downloaded = self.bytes_read / (1024 * 1024)
        mb_total = self.total_size / (1024 * 1024)
        print(f"\rProgress: {percent:5.1f}% ({mb_downloaded:6.1f} MB / {mb_total:6.1f} MB)", end="", flush=True)
        if percent == 100:
            print()

    def hexdigest(self) -> str:
        return self._sha256.hexdigest()

    def verify(self) -> None:
        while self.read(CHUNK_SIZE):
            pass
        if self.expected_sha256 is None:
            print(f"Note: No checksum published for {self.name}, skipping verification")
            return
        actual = self.hexdigest()
        if actual.lower() != self.expected_sha256.lower():
            raise ChecksumMismatchError(
                f"checksum mismatch for {self.name}: expected {self.expected_sha256}, got {actual}"
            )
        print(f"✓ Checksum verified: {actual[:16]}...")


def file_sha256(path: Path | str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def download_tarball(tarball: Tarball, destination: Path | str, show_progress: bool = True) -> Path:
    """
    Download a tarball to a local file, verifying its SHA256 when known.

    The body is written to <destination>.downloading and renamed into place
    once it is complete and verified. A leftover .downloading file from an
    interrupted run is discarded, and an existing destination that matches
    the published checksum is reused.

    Returns:
        Path of the downloaded tarball
    """
    destination = Path(destination)
    breadcrumb_path = Path(str(destination) + ".downloading")

    try:
        if breadcrumb_path.exists():
            print(f"⚠️  Found incomplete download marker: {breadcrumb_path.name}")
            breadcrumb_path.unlink()
        existing = destination.exists()
        if existing and tarball.sha256 is not None:
            existing = file_sha256(destination).lower() == tarball.sha256.lower()
            if not existing:
                print(f"⚠️  Existing {destination.name} does not match the published checksum, downloading again")
    except OSError as e:
        raise WriteStageError(str(destination), e) from e

    if existing:
        print(f"File already exists: {destination}")
        print("Skipping download...")
        return destination

    print(f"Downloading from: {tarball.url}")
    print(f"Saving to: {destination}")
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteStageError(f"output directory {destination.parent}", e) from e
    try:
        response, reader = open_tarball(tarball, show_progress)
        with response:
            try:
                f = open(breadcrumb_path, "wb")
            except OSError as e:
                raise WriteStageError(str(breadcrumb_path), e) from e
            with f:
                while True:
                    chunk = reader.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    try:
                        f.write(chunk)
                    except OSError as e:
                        raise WriteStageError(str(breadcrumb_path), e) from e
            reader.verify()
        try:
            os.replace(breadcrumb_path, destination)
        except OSError as e:
            raise WriteStageError(str(destination), e) from e
    except (KeyboardInterrupt, Exception):
        with suppress(OSError):
            breadcrumb_path.unlink(missing_ok=True)
        raise

    print(f"Downloaded: {destination}")
    print(f"Size: {destination.stat().st_size / (1024*1024):.2f} MB")
    return destination


def tarball_file_name(tarball: Tarball) -> str:
    return urlparse(tarball.url).path.rsplit("/", 1)[-1]


def open_tarball(tarball: Tarball, show_progress: bool = True) -> tuple[BinaryIO, HashingReader]:
    """
    Start downloading a tarball.

    Returns:
        The HTTP response (to be closed by the caller) and a HashingReader
        over its body
    """
    try:
        response = urllib.request.urlopen(tarball.url, timeout=HTTP_TIMEOUT)
    except urllib.error.HTTPError as e:
        raise DownloadError(f"got status code {e.code} from {tarball.url}") from e
    except (urllib.error.URLError, OSError) as e:
        raise DownloadError(f"failed to download {tarball.url}: {e}") from e

    total_size = int(response.headers.get("Content-Length") or 0)
    name = tarball_file_name(tarball)
    reader = HashingReader(response, name, tarball.sha256, total_size, show_progress and sys.stdout.isatty())
    return response, reader
