"""
Minimal writer for the Unix ar format used as the outer container of a deb.

Only the common (System V / GNU compatible) subset dpkg understands is
produced: short member names, decimal fields, even-byte member alignment.
"""

import shutil
from dataclasses import dataclass
from typing import BinaryIO

AR_MAGIC = b"!<arch>\n"
AR_HEADER_SIZE = 60
AR_FILE_MAGIC = b"`\n"
AR_MAX_NAME = 16


def format_member_header(name: str, size: int, mtime: int, mode: int = 0o644, uid: int = 0, gid: int = 0) -> bytes:
    """
    Build the 60-byte header of an ar member.

    Args:
        name: Member name (at most 16 ASCII characters)
        size: Size of the member body in bytes
        mtime: Modification time in seconds since the epoch
        mode: Permission bits
        uid: Owner id
        gid: Group id

    Returns:
        The encoded header
    """
    if len(name) > AR_MAX_NAME:
        raise ValueError(f"ar member name too long: {name}")
    header = (
        f"{name:<16}"
        f"{mtime:<12d}"
        f"{uid:<6d}"
        f"{gid:<6d}"
        f"{mode:<8o}"
        f"{size:<10d}"
    ).encode("ascii") + AR_FILE_MAGIC
    if len(header) != AR_HEADER_SIZE:
        raise ValueError(f"ar member {name} does not fit a {AR_HEADER_SIZE}-byte header (size {size}, mtime {mtime})")
    return header


class ArWriter:
    """Write ar members sequentially to a binary stream."""

    def __init__(self, fileobj: BinaryIO):
        self.fileobj = fileobj

    def write_global_header(self) -> None:
        self.fileobj.write(AR_MAGIC)

    def add_member(self, name: str, body: bytes, mtime: int, mode: int = 0o644) -> None:
        """Add a member whose body is already in memory."""
        self.fileobj.write(format_member_header(name, len(body), mtime, mode))
        self.fileobj.write(body)
        self._pad(len(body))

    def add_member_from_file(self, name: str, body: BinaryIO, size: int, mtime: int, mode: int = 0o644) -> None:
        """Add a member by streaming size bytes from body."""
        self.fileobj.write(format_member_header(name, size, mtime, mode))
        shutil.copyfileobj(body, self.fileobj)
        self._pad(size)

    def _pad(self, size: int) -> None:
        if size % 2:
            self.fileobj.write(b"\n")


@dataclass
class ArMember:
    name: str
    size: int
    mtime: int
    mode: int
    body: bytes | None = None


def read_members(fileobj: BinaryIO, load_bodies: bool = True) -> list[ArMember]:
    """
    Read the member table of an ar archive.

    Args:
        fileobj: Binary stream positioned at the start of the archive
        load_bodies: Keep member bodies in memory (otherwise they are skipped)

    Returns:
        Members in archive order
    """
    if fileobj.read(len(AR_MAGIC)) != AR_MAGIC:
        raise ValueError("not an ar archive")

    members = []
    while True:
        header = fileobj.read(AR_HEADER_SIZE)
        if not header:
            break
        if len(header) < AR_HEADER_SIZE or header[58:60] != AR_FILE_MAGIC:
            raise ValueError(f"bad ar member header: {header!r}")
        fields = header.decode("ascii")
        member = ArMember(
            name=fields[0:16].rstrip(" ").rstrip("/"),
            mtime=int(fields[16:28]),
            mode=int(fields[40:48], 8),
            size=int(fields[48:58]),
        )
        body = fileobj.read(member.size)
        if len(body) != member.size:
            raise ValueError(f"truncated ar member: {member.name}")
        if load_bodies:
            member.body = body
        if member.size % 2:
            fileobj.read(1)
        members.append(member)
    return members
