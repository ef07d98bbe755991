"""Tests for control records and deb assembly."""

import hashlib
import io
import tarfile

import pytest
import zstandard as zstd

from godeb.ar_archive import read_members
from godeb.create_deb import (
    build_deb_file,
    control_record,
    create_deb,
    deb_arch,
    deb_file_name,
    deb_version,
    go_arch,
    verify_deb,
)
from godeb.errors import ChecksumMismatchError, InvalidPackageError, UnexpectedLayoutError, WriteStageError

from .conftest import build_tarball, read_tar


def control_members(body: bytes, mode: str = "r:gz") -> dict[str, bytes]:
    return {m.name: content for m, content in read_tar(body, mode)}


@pytest.mark.parametrize(
    "version, expected",
    [
        ("1.2", "1.2-godeb1"),
        ("1.2rc3", "1.2~rc3-godeb1"),
        ("1.1beta2", "1.1~beta2-godeb1"),
        ("1.21.0", "1.21.0-godeb1"),
        ("1.21rc2", "1.21~rc2-godeb1"),
        ("rc1", "rc1-godeb1"),
        ("1.2rc", "1.2rc-godeb1"),
    ],
)
def test_deb_version(version, expected):
    assert deb_version(version) == expected


def test_deb_arch_maps_386_to_i386():
    assert deb_arch("386") == "i386"
    assert deb_arch("amd64") == "amd64"
    assert deb_arch("arm64") == "arm64"


@pytest.mark.parametrize(
    "machine, expected",
    [("x86_64", "amd64"), ("i686", "386"), ("aarch64", "arm64"), ("armv7l", "armv6l"), ("riscv64", "riscv64")],
)
def test_go_arch(machine, expected):
    assert go_arch(machine) == expected


def test_deb_file_name():
    assert deb_file_name("1.2rc3", "386") == "go_1.2~rc3-godeb1_i386.deb"


def test_control_record_fields():
    control = control_record("1.2rc3", "amd64", 100 + 250 + 4096).decode()

    assert control.startswith("Package: go\n")
    assert "Version: 1.2~rc3-godeb1\n" in control
    assert "Architecture: amd64\n" in control
    assert "Installed-Size: 4\n" in control
    assert "Replaces: golang-go\n" in control
    assert "Provides: golang-go\n" in control
    assert control.endswith("interpreted language.\n")


def test_deb_has_three_members_in_order(go_tarball, now):
    deb = io.BytesIO()
    create_deb("1.2", io.BytesIO(go_tarball), deb, arch="amd64", now=now)
    deb.seek(0)
    members = read_members(deb)

    assert [m.name for m in members] == ["debian-binary", "control.tar.gz", "data.tar.gz"]
    assert members[0].body == b"2.0\n"
    assert all(m.mtime == int(now.timestamp()) for m in members)
    assert all(m.mode == 0o644 for m in members)


def test_control_tarball_contents(go_tarball, now):
    deb = io.BytesIO()
    result = create_deb("1.2", io.BytesIO(go_tarball), deb, arch="386", now=now)
    deb.seek(0)
    control = control_members(read_members(deb)[1].body)

    assert sorted(control) == ["control", "md5sums"]
    assert b"Architecture: i386\n" in control["control"]
    assert control["md5sums"] == result.md5sums
    expected_line = f"{hashlib.md5(b'go1.2').hexdigest()}  usr/local/go/VERSION\n".encode()
    assert control["md5sums"].startswith(expected_line)


def test_installed_size_in_control(now):
    tarball = build_tarball(
        [
            ("go/", "dir"),
            ("go/a", "file", b"a" * 100),
            ("go/b", "file", b"b" * 250),
            ("go/sub/", "dir"),
            ("go/sub/c", "file", b"c" * 4096),
        ]
    )
    deb = io.BytesIO()
    create_deb("1.2", io.BytesIO(tarball), deb, arch="amd64", now=now)
    deb.seek(0)
    control = control_members(read_members(deb)[1].body)

    assert b"Installed-Size: 4\n" in control["control"]


def test_data_tarball_is_the_translated_tree(go_tarball, now):
    deb = io.BytesIO()
    create_deb("1.2", io.BytesIO(go_tarball), deb, arch="amd64", now=now)
    deb.seek(0)
    data = read_members(deb)[2].body
    names = [m.name for m, _ in read_tar(data)]

    assert "./usr/local/go/bin/go" in names
    assert names[-3:] == ["./usr/bin/go", "./usr/bin/gofmt", "./usr/bin/godoc"]


def test_zstd_members(go_tarball, now):
    deb = io.BytesIO()
    create_deb("1.2", io.BytesIO(go_tarball), deb, arch="amd64", compression="zstd", now=now)
    deb.seek(0)
    members = read_members(deb)

    assert [m.name for m in members] == ["debian-binary", "control.tar.zst", "data.tar.zst"]
    reader = zstd.ZstdDecompressor().stream_reader(io.BytesIO(members[1].body))
    with tarfile.open(fileobj=reader, mode="r|") as tar:
        assert [m.name for m in tar] == ["control", "md5sums"]


def test_deb_is_reproducible(go_tarball, now):
    first, second = io.BytesIO(), io.BytesIO()
    create_deb("1.2", io.BytesIO(go_tarball), first, arch="amd64", now=now)
    create_deb("1.2", io.BytesIO(go_tarball), second, arch="amd64", now=now)

    assert first.getvalue() == second.getvalue()


# ============================================================================
# Package files
# ============================================================================


def test_build_deb_file_publishes_package(go_tarball, tmp_path):
    deb_path = build_deb_file("1.2rc3", io.BytesIO(go_tarball), tmp_path, arch="amd64")

    assert deb_path == tmp_path / "go_1.2~rc3-godeb1_amd64.deb"
    assert deb_path.exists()
    assert [p.name for p in tmp_path.iterdir()] == [deb_path.name]
    verify_deb(deb_path)


def test_rejected_tarball_leaves_no_package(tmp_path):
    tarball = build_tarball([("other/file", "file", b"data")])

    with pytest.raises(UnexpectedLayoutError):
        build_deb_file("1.2", io.BytesIO(tarball), tmp_path, arch="amd64")

    assert list(tmp_path.iterdir()) == []


def test_failed_source_check_leaves_no_package(go_tarball, tmp_path):
    def fail():
        raise ChecksumMismatchError("checksum mismatch")

    with pytest.raises(ChecksumMismatchError):
        build_deb_file("1.2", io.BytesIO(go_tarball), tmp_path, arch="amd64", before_publish=fail)

    assert list(tmp_path.iterdir()) == []


def test_verify_deb_rejects_garbage(tmp_path):
    bogus = tmp_path / "go_1.2-godeb1_amd64.deb"
    bogus.write_bytes(b"not an ar archive")

    with pytest.raises(InvalidPackageError):
        verify_deb(bogus)


def test_output_dir_failure_is_a_write_error(go_tarball, tmp_path):
    blocker = tmp_path / "afile"
    blocker.write_text("not a directory")

    with pytest.raises(WriteStageError) as excinfo:
        build_deb_file("1.2", io.BytesIO(go_tarball), blocker / "sub", arch="amd64")

    assert excinfo.value.stage.startswith("output directory")
    assert isinstance(excinfo.value.cause, OSError)


def test_unwritable_package_file_is_a_write_error(go_tarball, tmp_path):
    # A directory squatting on the temporary name makes open() fail
    (tmp_path / "go_1.2-godeb1_amd64.deb.inprogress").mkdir()

    with pytest.raises(WriteStageError) as excinfo:
        build_deb_file("1.2", io.BytesIO(go_tarball), tmp_path, arch="amd64")

    assert excinfo.value.stage.endswith(".deb.inprogress")
    assert not (tmp_path / "go_1.2-godeb1_amd64.deb").exists()
