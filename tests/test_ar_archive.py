"""Tests for the ar container writer."""

import io

import pytest

from godeb.ar_archive import AR_MAGIC, ArWriter, format_member_header, read_members


def test_member_header_layout():
    header = format_member_header("debian-binary", 4, 0)

    assert header == b"debian-binary   0           0     0     644     4         `\n"
    assert len(header) == 60


def test_member_name_length_is_limited():
    with pytest.raises(ValueError):
        format_member_header("a-very-long-member-name", 1, 0)


def test_odd_sized_members_are_padded():
    buf = io.BytesIO()
    w = ArWriter(buf)
    w.write_global_header()
    w.add_member("odd", b"abc", 1700000000)
    w.add_member_from_file("even", io.BytesIO(b"wxyz"), 4, 1700000000, mode=0o755)
    data = buf.getvalue()

    assert data.startswith(AR_MAGIC)
    assert len(data) == 8 + 60 + 4 + 60 + 4
    assert data[8 + 60 : 8 + 64] == b"abc\n"

    buf.seek(0)
    members = read_members(buf)
    assert [(m.name, m.size, m.body) for m in members] == [("odd", 3, b"abc"), ("even", 4, b"wxyz")]
    assert members[1].mode == 0o755
    assert members[0].mtime == 1700000000


def test_read_members_can_skip_bodies():
    buf = io.BytesIO()
    w = ArWriter(buf)
    w.write_global_header()
    w.add_member("debian-binary", b"2.0\n", 0)
    buf.seek(0)

    members = read_members(buf, load_bodies=False)
    assert members[0].name == "debian-binary"
    assert members[0].body is None


def test_read_members_rejects_truncated_archive():
    buf = io.BytesIO()
    w = ArWriter(buf)
    w.write_global_header()
    w.add_member("data.tar.gz", b"x" * 100, 0)

    with pytest.raises(ValueError):
        read_members(io.BytesIO(buf.getvalue()[:-10]))


def test_oversized_fields_are_rejected():
    with pytest.raises(ValueError):
        format_member_header("data.tar.gz", 10**10, 0)
    with pytest.raises(ValueError):
        format_member_header("data.tar.gz", 1, 10**12)
