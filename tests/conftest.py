"""Shared pytest fixtures for godeb tests."""

from __future__ import annotations

import gzip
import io
import tarfile
from datetime import datetime, timezone

import pytest

UPSTREAM_MTIME = 1_600_000_000

# ============================================================================
# Tarball builders
# ============================================================================


def build_tar(entries: list[tuple], tar_format: int = tarfile.PAX_FORMAT) -> bytes:
    """
    Build an uncompressed tar archive.

    Each entry is (name, kind) or (name, kind, payload) where kind is one of
    "dir", "file" (payload: bytes), "symlink" / "hardlink" (payload: target)
    or "fifo".
    """
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tar_format) as tar:
        for entry in entries:
            name, kind = entry[0], entry[1]
            info = tarfile.TarInfo(name)
            info.mtime = UPSTREAM_MTIME
            if kind == "dir":
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            elif kind == "file":
                data = entry[2]
                info.size = len(data)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(data))
            elif kind == "symlink":
                info.type = tarfile.SYMTYPE
                info.linkname = entry[2]
                tar.addfile(info)
            elif kind == "hardlink":
                info.type = tarfile.LNKTYPE
                info.linkname = entry[2]
                tar.addfile(info)
            elif kind == "fifo":
                info.type = tarfile.FIFOTYPE
                tar.addfile(info)
            else:
                raise ValueError(f"unknown entry kind: {kind}")
    return buf.getvalue()


def build_tarball(entries: list[tuple], tar_format: int = tarfile.PAX_FORMAT) -> bytes:
    """Build a gzip-compressed tar archive, like an upstream Go release."""
    return gzip.compress(build_tar(entries, tar_format), mtime=0)


def read_tar(data: bytes, mode: str = "r:gz") -> list[tuple[tarfile.TarInfo, bytes | None]]:
    """Return (member, body) pairs of a tar archive held in memory."""
    members = []
    with tarfile.open(fileobj=io.BytesIO(data), mode=mode) as tar:
        for member in tar.getmembers():
            body = tar.extractfile(member).read() if member.isfile() else None
            members.append((member, body))
    return members


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def now() -> datetime:
    """Fixed timestamp for synthesized entries."""
    return datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def go_entries() -> list[tuple]:
    """A small release tree with a top-level go/ directory."""
    return [
        ("go/", "dir"),
        ("go/VERSION", "file", b"go1.2"),
        ("go/bin/", "dir"),
        ("go/bin/go", "file", b"\x7fELF go binary"),
        ("go/bin/gofmt", "file", b"\x7fELF gofmt binary"),
        ("go/misc/", "dir"),
        ("go/misc/go", "symlink", "../bin/go"),
    ]


@pytest.fixture
def go_tarball(go_entries) -> bytes:
    return build_tarball(go_entries)
