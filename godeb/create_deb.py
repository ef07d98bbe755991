"""
Assemble a deb package from an upstream Go release tarball.

The package is an ar archive with three members, in this order:
- debian-binary: the format version "2.0"
- control.tar.gz: the control record and the md5sums manifest
- data.tar.gz: the translated /usr/local/go tree plus /usr/bin symlinks

The data tarball is spooled to a temporary file while it is translated,
because the installed size it yields is needed for the control record and
the ar header needs the member size up front.
"""

import io
import os
import platform
import tarfile
import tempfile
from contextlib import suppress
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Callable

from .ar_archive import ArWriter, read_members
from .errors import InvalidPackageError, WriteStageError
from .translate_tarball import (
    GNU_HEADERS,
    HeaderPolicy,
    TranslateResult,
    close_tar,
    compressed_tar_name,
    compressed_writer,
    translate_tarball,
)
from .version_sort import PRERELEASE_TAGS

# ============================================================================
# Configuration
# ============================================================================

DEBIAN_BINARY = b"2.0\n"
DEB_VERSION_SUFFIX = "-godeb1"

# Spool the data tarball in memory up to this size before using a temp file
SPOOL_MAX_SIZE = 64 * 1024 * 1024

CONTROL = """\
Package: go
Version: {version}
Architecture: {arch}
Maintainer: Gustavo Niemeyer <niemeyer@canonical.com>
Installed-Size: {installed_kib}
Conflicts: golang-go, golang, golang-stable, golang-tip, golang-weekly
Replaces: golang-go
Provides: golang-go
Section: devel
Priority: extra
Homepage: http://golang.org
Description: Go language compiler and tools (gc)
 The Go programming language is an open source project to make programmers
 more productive. Go is expressive, concise, clean, and efficient.
 Its concurrency mechanisms make it easy to write programs that get the
 most out of multicore and networked machines, while its novel type system
 enables flexible and modular program construction. Go compiles quickly to
 machine code yet has the convenience of garbage collection and the power
 of run-time reflection. It's a fast, statically typed, compiled language
 that feels like a dynamically typed, interpreted language.
"""

# platform.machine() -> Go architecture name used in release file names
GO_ARCHES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i486": "386",
    "i586": "386",
    "i686": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "armv6l",
    "armv7l": "armv6l",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}

# Go architecture -> Debian architecture, where they differ
DEB_ARCHES = {
    "386": "i386",
}


# ============================================================================
# Names and versions
# ============================================================================


def go_arch(machine: str | None = None) -> str:
    """Return the Go architecture name of this machine."""
    if machine is None:
        machine = platform.machine()
    machine = machine.lower()
    return GO_ARCHES.get(machine, machine)


def deb_arch(arch: str | None = None) -> str:
    """Map a Go architecture name onto the Debian one."""
    if arch is None:
        arch = go_arch()
    return DEB_ARCHES.get(arch, arch)


def _is_digit_at(version: str, i: int) -> bool:
    return 0 <= i < len(version) and "0" <= version[i] <= "9"


def deb_version(version: str) -> str:
    """
    Convert a Go version into a Debian version.

    A pre-release tag between digits gets a "~" so that dpkg sorts it before
    the final release: "1.2rc3" -> "1.2~rc3-godeb1", "1.2" -> "1.2-godeb1".
    """
    for tag in PRERELEASE_TAGS:
        i = version.find(tag)
        if _is_digit_at(version, i - 1) and _is_digit_at(version, i + len(tag)):
            version = version[:i] + "~" + version[i:]
            break
    return version + DEB_VERSION_SUFFIX


def deb_file_name(version: str, arch: str | None = None) -> str:
    return f"go_{deb_version(version)}_{deb_arch(arch)}.deb"


def control_record(version: str, arch: str | None, installed_size: int) -> bytes:
    """Render the control file; installed_size is in bytes."""
    return CONTROL.format(
        version=deb_version(version),
        arch=deb_arch(arch),
        installed_kib=installed_size // 1024,
    ).encode()


# ============================================================================
# Control tarball
# ============================================================================


def _add_control_file(tar: tarfile.TarFile, now: datetime, name: str, body: bytes, member_name: str) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(body)
    info.mode = 0o644
    info.mtime = int(now.timestamp())
    try:
        tar.addfile(info, io.BytesIO(body))
    except OSError as e:
        raise WriteStageError(f"{name} file to {member_name}", e) from e


def create_control(
    now: datetime,
    version: str,
    arch: str | None,
    installed_size: int,
    md5sums: bytes,
    compression: str = "gzip",
) -> bytes:
    """Build the compressed control tarball (control + md5sums) in memory."""
    member_name = compressed_tar_name("control", compression)
    buf = io.BytesIO()
    with compressed_writer(buf, compression, now, member_name) as compress, tarfile.TarFile(
        fileobj=compress, mode="w", format=tarfile.GNU_FORMAT
    ) as tar:
        _add_control_file(tar, now, "control", control_record(version, arch, installed_size), member_name)
        _add_control_file(tar, now, "md5sums", md5sums, member_name)
        close_tar(tar, member_name)
    return buf.getvalue()


# ============================================================================
# Deb assembly
# ============================================================================


def create_deb(
    version: str,
    tarball: BinaryIO,
    deb: BinaryIO,
    arch: str | None = None,
    header_policy: HeaderPolicy = GNU_HEADERS,
    compression: str = "gzip",
    now: datetime | None = None,
) -> TranslateResult:
    """
    Translate an upstream tarball and write the complete deb to a stream.

    Args:
        version: Go version of the tarball (e.g. "1.2rc3")
        tarball: Readable gzip tar stream of the upstream release
        deb: Writable binary stream for the package
        arch: Go architecture (default: this machine)
        header_policy: Tar dialect of data.tar
        compression: "gzip" or "zstd" for control.tar and data.tar
        now: Timestamp for synthesized entries (default: current time)

    Returns:
        The TranslateResult of the data tarball
    """
    if now is None:
        now = datetime.now(timezone.utc)
    mtime = int(now.timestamp())
    data_name = compressed_tar_name("data", compression)
    control_name = compressed_tar_name("control", compression)

    with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as data_tar:
        result = translate_tarball(now, tarball, data_tar, header_policy, compression)
        control_tar = create_control(now, version, arch, result.installed_size, result.md5sums, compression)

        data_size = data_tar.tell()
        data_tar.seek(0)

        w = ArWriter(deb)
        try:
            w.write_global_header()
        except OSError as e:
            raise WriteStageError("ar header to deb file", e) from e
        try:
            w.add_member("debian-binary", DEBIAN_BINARY, mtime)
        except OSError as e:
            raise WriteStageError("debian-binary to deb file", e) from e
        try:
            w.add_member(control_name, control_tar, mtime)
        except OSError as e:
            raise WriteStageError(f"{control_name} to deb file", e) from e
        try:
            w.add_member_from_file(data_name, data_tar, data_size, mtime)
        except OSError as e:
            raise WriteStageError(f"{data_name} to deb file", e) from e

    return result


def build_deb_file(
    version: str,
    tarball: BinaryIO,
    output_dir: Path | str,
    arch: str | None = None,
    header_policy: HeaderPolicy = GNU_HEADERS,
    compression: str = "gzip",
    before_publish: Callable[[], None] | None = None,
) -> Path:
    """
    Create go_<debversion>_<debarch>.deb in output_dir.

    The package is written to a .inprogress file first and renamed into
    place only once it is complete and before_publish (e.g. a checksum
    check of the source) has passed.
    """
    output_dir = Path(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteStageError(f"output directory {output_dir}", e) from e
    deb_path = output_dir / deb_file_name(version, arch)
    tmp_path = Path(str(deb_path) + ".inprogress")

    try:
        try:
            with open(tmp_path, "wb") as deb:
                result = create_deb(version, tarball, deb, arch, header_policy, compression)
        except OSError as e:
            raise WriteStageError(str(tmp_path), e) from e
        if before_publish is not None:
            before_publish()
        try:
            os.replace(tmp_path, deb_path)
        except OSError as e:
            raise WriteStageError(str(deb_path), e) from e
    except (KeyboardInterrupt, Exception):
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)
        raise

    file_count = result.md5sums.count(b"\n")
    print(f"  Installed size: {result.installed_size / (1024*1024):.2f} MB")
    print(f"  Files:          {file_count}")
    print(f"  Package size:   {deb_path.stat().st_size / (1024*1024):.2f} MB")
    return deb_path


def verify_deb(deb_path: Path | str) -> None:
    """Check the ar layout of a written package."""
    deb_path = Path(deb_path)
    try:
        f = open(deb_path, "rb")
    except OSError as e:
        raise InvalidPackageError(f"cannot open {deb_path}: {e}") from e
    with f:
        try:
            members = read_members(f, load_bodies=False)
        except ValueError as e:
            raise InvalidPackageError(f"{deb_path.name} is not a valid deb: {e}") from e

    names = [m.name for m in members]
    if len(names) != 3 or names[0] != "debian-binary" or not names[1].startswith("control.tar."):
        raise InvalidPackageError(f"{deb_path.name} has unexpected members: {', '.join(names)}")
    if not names[2].startswith("data.tar."):
        raise InvalidPackageError(f"{deb_path.name} has unexpected members: {', '.join(names)}")
    for m in members:
        print(f"  ✓ {m.name:<16} {m.size:>12,} bytes")
