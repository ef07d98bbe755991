"""
Translate an upstream Go release tarball into the data tarball of a deb.

This module:
1. Decompresses the upstream gzip stream and walks its tar entries in order
2. Moves every entry from go/ to ./usr/local/go/
3. Streams file bodies into the output tarball while computing their MD5
4. Accumulates the installed size of all regular files
5. Adds the ./usr/bin/{go,gofmt,godoc} symlinks
6. Returns the md5sums manifest and the installed size

Both streams are consumed strictly sequentially: the input is read once and
never seeked, and the output is any writable binary stream.
"""

import gzip
import hashlib
import tarfile
import zlib
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import BinaryIO, Iterator

import zstandard as zstd

from .errors import (
    ReadSourceError,
    UncompressError,
    UnexpectedLayoutError,
    UnsupportedEntryError,
    WriteStageError,
)

# ============================================================================
# Configuration
# ============================================================================

UPSTREAM_ROOT = "go/"
INSTALL_PREFIX = "./usr/local/"
INSTALL_ROOT = INSTALL_PREFIX + UPSTREAM_ROOT

# Build artifacts shipped next to go/ in some upstream tarballs (go 1.11.5)
SKIPPED_PREFIXES = ("gocache/", "tmp/")

BIN_SYMLINKS = [
    ("./usr/bin/go", "/usr/local/go/bin/go"),
    ("./usr/bin/gofmt", "/usr/local/go/bin/gofmt"),
    ("./usr/bin/godoc", "/usr/local/go/bin/godoc"),
]

COMPRESSION_SUFFIXES = {
    "gzip": "gz",
    "zstd": "zst",
}

ZSTD_LEVEL = 19

# Errors the decompression and tar layers raise for corrupt or short input
SOURCE_READ_ERRORS = (tarfile.TarError, EOFError, OSError, zlib.error)


# ============================================================================
# Header policy
# ============================================================================


@dataclass(frozen=True)
class HeaderPolicy:
    """
    Tar dialect of the output and what happens to PAX records of the input.

    dpkg cannot process every PAX record that upstream tarballs carry, so the
    default drops them all and writes GNU headers.
    """

    name: str
    tar_format: int
    keep_pax_records: bool

    def apply(self, info: tarfile.TarInfo) -> tarfile.TarInfo:
        if self.keep_pax_records:
            # "path" would override the rewritten name when the header is written
            info.pax_headers = {k: v for k, v in info.pax_headers.items() if k != "path"}
        else:
            info.pax_headers = {}
        return info


GNU_HEADERS = HeaderPolicy("gnu", tarfile.GNU_FORMAT, keep_pax_records=False)
PAX_HEADERS = HeaderPolicy("pax", tarfile.PAX_FORMAT, keep_pax_records=True)

HEADER_POLICIES = {policy.name: policy for policy in (GNU_HEADERS, PAX_HEADERS)}


# ============================================================================
# Entry kinds
# ============================================================================


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


def classify_entry(info: tarfile.TarInfo) -> EntryKind:
    """Map a tar header onto the entry kinds a Go release may contain."""
    if info.isdir():
        return EntryKind.DIRECTORY
    if info.issym():
        return EntryKind.SYMLINK
    if info.isfile():
        return EntryKind.FILE
    raise UnsupportedEntryError(f"upstream tarball has unsupported entry type {info.type!r}: {info.name}")


# ============================================================================
# Streams
# ============================================================================


@dataclass
class TranslateResult:
    md5sums: bytes
    installed_size: int


def compressed_tar_name(base: str, compression: str) -> str:
    """Return the ar member name for a compressed tarball, e.g. data.tar.gz."""
    if compression not in COMPRESSION_SUFFIXES:
        raise ValueError(f"Unknown compression: {compression}")
    return f"{base}.tar.{COMPRESSION_SUFFIXES[compression]}"


def open_compressed_writer(out: BinaryIO, compression: str, now: datetime) -> BinaryIO:
    """Wrap out in a compressing writer; closing it does not close out."""
    if compression == "gzip":
        # Empty file name and fixed mtime keep the gzip header reproducible
        return gzip.GzipFile(filename="", mode="wb", fileobj=out, mtime=int(now.timestamp()))
    if compression == "zstd":
        cctx = zstd.ZstdCompressor(level=ZSTD_LEVEL)
        return cctx.stream_writer(out, closefd=False)
    raise ValueError(f"Unknown compression: {compression}")


@contextmanager
def compressed_writer(out: BinaryIO, compression: str, now: datetime, member_name: str) -> Iterator[BinaryIO]:
    """
    Scope a compressing writer over out.

    On success the writer is closed, flushing the compressed trailer. When
    the body raises, the writer is still released, but errors from closing
    it are dropped so that the original failure propagates.
    """
    try:
        compress = open_compressed_writer(out, compression, now)
    except OSError as e:
        raise WriteStageError(member_name, e) from e
    try:
        yield compress
    except BaseException:
        with suppress(OSError, zstd.ZstdError):
            compress.close()
        raise
    try:
        compress.close()
    except OSError as e:
        raise WriteStageError(f"closing {member_name}", e) from e


def close_tar(tar: tarfile.TarFile, member_name: str) -> None:
    """Write the end-of-archive blocks of an output tarball."""
    try:
        tar.close()
    except OSError as e:
        raise WriteStageError(f"closing {member_name}", e) from e


class _DigestReader:
    """File-like wrapper that hashes every byte read through it."""

    def __init__(self, fileobj: BinaryIO, name: str):
        self._fileobj = fileobj
        self.name = name
        self.digest = hashlib.md5()

    def read(self, size: int = -1) -> bytes:
        try:
            data = self._fileobj.read(size)
        except SOURCE_READ_ERRORS as e:
            raise ReadSourceError(f"cannot read {self.name} from upstream tarball: {e}") from e
        self.digest.update(data)
        return data


def _write_header(out: tarfile.TarFile, info: tarfile.TarInfo, member_name: str) -> None:
    try:
        out.addfile(info)
    except OSError as e:
        raise WriteStageError(f"header of {info.name} to {member_name}", e) from e


def add_tar_symlink(out: tarfile.TarFile, now: datetime, name: str, target: str, member_name: str) -> None:
    """Add a synthesized symlink entry."""
    info = tarfile.TarInfo(name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    info.mode = 0o777
    info.mtime = int(now.timestamp())
    try:
        out.addfile(info)
    except OSError as e:
        raise WriteStageError(f"symlink {name} to {member_name}", e) from e


def _copy_file(out: tarfile.TarFile, info: tarfile.TarInfo, body: _DigestReader, member_name: str) -> None:
    try:
        out.addfile(info, body)
    except ReadSourceError:
        raise
    except tarfile.ReadError as e:
        # tarfile reports a body shorter than its header as a ReadError
        raise ReadSourceError(f"cannot read {info.name} from upstream tarball: {e}") from e
    except OSError as e:
        raise WriteStageError(f"body of {info.name} to {member_name}", e) from e


# ============================================================================
# Translation
# ============================================================================


@contextmanager
def open_upstream(tarball: BinaryIO) -> Iterator[tarfile.TarFile]:
    """Open the upstream gzip tar stream for sequential reading; tarball itself stays open."""
    with gzip.GzipFile(fileobj=tarball, mode="rb") as uncompress:
        try:
            if not uncompress.peek(1):
                raise UncompressError("cannot uncompress upstream tarball: empty stream")
        except (OSError, EOFError, zlib.error) as e:
            raise UncompressError(f"cannot uncompress upstream tarball: {e}") from e

        try:
            upstream = tarfile.open(fileobj=uncompress, mode="r|")
        except SOURCE_READ_ERRORS as e:
            raise ReadSourceError(f"cannot read upstream tarball: {e}") from e
        with upstream:
            yield upstream


def _next_entry(upstream: tarfile.TarFile) -> tarfile.TarInfo | None:
    try:
        return upstream.next()
    except SOURCE_READ_ERRORS as e:
        raise ReadSourceError(f"cannot read upstream tarball: {e}") from e


def translate_tarball(
    now: datetime,
    tarball: BinaryIO,
    out: BinaryIO,
    header_policy: HeaderPolicy = GNU_HEADERS,
    compression: str = "gzip",
) -> TranslateResult:
    """
    Translate an upstream Go tarball into a compressed data tarball.

    Args:
        now: Timestamp for synthesized entries and the compression header
        tarball: Readable gzip-compressed tar stream of a Go release
        out: Writable binary stream receiving the compressed data tarball
        header_policy: Output tar dialect (GNU_HEADERS or PAX_HEADERS)
        compression: "gzip" or "zstd"

    Returns:
        TranslateResult with the md5sums manifest and the installed size in bytes

    Raises:
        UncompressError: tarball is not gzip data
        ReadSourceError: tarball is corrupt or truncated
        UnexpectedLayoutError: an entry lives outside go/
        UnsupportedEntryError: an entry is not a file, directory or symlink
        WriteStageError: writing to out failed
    """
    member_name = compressed_tar_name("data", compression)
    md5sums: list[str] = []
    installed_size = 0

    # A failed translation leaves the data tarball unterminated
    with compressed_writer(out, compression, now, member_name) as compress, tarfile.TarFile(
        fileobj=compress, mode="w", format=header_policy.tar_format
    ) as data_tar:
        with open_upstream(tarball) as upstream:
            first = True
            while True:
                info = _next_entry(upstream)
                if info is None:
                    break

                header_policy.apply(info)
                name = info.name.lstrip("./")
                if info.isdir() and not name.endswith("/"):
                    name += "/"

                if first:
                    first = False
                    if name != UPSTREAM_ROOT:
                        root = tarfile.TarInfo(INSTALL_ROOT)
                        root.type = tarfile.DIRTYPE
                        root.mode = 0o755
                        root.mtime = info.mtime
                        _write_header(data_tar, root, member_name)

                if name.startswith(SKIPPED_PREFIXES):
                    continue
                if not name.startswith(UPSTREAM_ROOT):
                    raise UnexpectedLayoutError(f"upstream tarball has file in unexpected path: {name}")

                kind = classify_entry(info)
                info.name = INSTALL_PREFIX + name

                if kind is EntryKind.FILE:
                    installed_size += info.size
                    body = _DigestReader(upstream.extractfile(info), info.name)
                    _copy_file(data_tar, info, body, member_name)
                    md5sums.append(f"{body.digest.hexdigest()}  {info.name[2:]}\n")
                else:
                    _write_header(data_tar, info, member_name)

        for name, target in BIN_SYMLINKS:
            add_tar_symlink(data_tar, now, name, target, member_name)
        close_tar(data_tar, member_name)

    return TranslateResult(md5sums="".join(md5sums).encode(), installed_size=installed_size)
