"""
godeb command line interface.

Usage:
    godeb list
    godeb download [<version>]
    godeb install [<version>]
    godeb remove
    godeb fromtarball <tarball> <version>
"""

import argparse
import sys
from pathlib import Path

from .create_deb import build_deb_file, deb_version, go_arch, verify_deb
from .dpkg import install_deb, installed_deb_version, remove_package
from .errors import (
    AlreadyInstalledError,
    GodebError,
    NotInstalledError,
    TarballVersionMismatchError,
    VersionNotFoundError,
)
from .fetch_tarballs import (
    DEFAULT_SOURCES,
    download_tarball,
    fetch_tarballs,
    find_tarball,
    open_tarball,
    tarball_file_name,
)
from .translate_tarball import COMPRESSION_SUFFIXES, HEADER_POLICIES


def print_section(title: str) -> None:
    """Print a formatted section header."""
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="godeb",
        description="Translate upstream Go release tarballs into deb packages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  godeb list
  godeb install
  godeb download 1.21.0
  godeb fromtarball go1.21.0.linux-amd64.tar.gz 1.21.0
  godeb remove
        """,
    )
    parser.add_argument("--arch", default=None, help="Go architecture (default: this machine)")
    parser.add_argument(
        "--output-dir", type=Path, default=Path("."), help="Directory for built packages (default: .)"
    )
    parser.add_argument(
        "--compression",
        choices=sorted(COMPRESSION_SUFFIXES),
        default="gzip",
        help="Compression of control.tar and data.tar (default: gzip)",
    )
    parser.add_argument(
        "--tar-format",
        choices=sorted(HEADER_POLICIES),
        default="gnu",
        help="Tar dialect of data.tar (default: gnu)",
    )
    parser.add_argument(
        "--source",
        action="append",
        dest="sources",
        metavar="URL",
        help="Release listing to query, may be repeated (default: go.dev JSON listing)",
    )
    parser.add_argument(
        "--keep-tarball",
        action="store_true",
        help="Save the upstream tarball in the output directory and build from it",
    )

    commands = parser.add_subparsers(dest="command", metavar="<command>")
    commands.add_parser("list", help="List available Go versions, newest first")
    for name, help_text in (("download", "Build the deb for a version"), ("install", "Build and install a version")):
        p = commands.add_parser(name, help=help_text)
        p.add_argument("version", nargs="?", help="Go version (default: newest)")
    commands.add_parser("remove", help="Remove the installed go package")
    p = commands.add_parser("fromtarball", help="Build and install from a local tarball")
    p.add_argument("tarball", type=Path, help="Path to go<version>.linux-<arch>.tar.gz")
    p.add_argument("version", help="Go version of the tarball")
    return parser


# ============================================================================
# Commands
# ============================================================================


def list_command(args: argparse.Namespace) -> None:
    for tb in fetch_tarballs(args.sources, args.arch):
        print(tb.version)


def action_command(args: argparse.Namespace, install: bool) -> None:
    tarballs = fetch_tarballs(args.sources, args.arch)
    tb = find_tarball(tarballs, args.version)
    if tb is None:
        raise VersionNotFoundError(f"version {args.version} not available at {' or '.join(args.sources)}")

    try:
        installed = installed_deb_version()
    except NotInstalledError:
        installed = None
    if install and installed == deb_version(tb.version):
        raise AlreadyInstalledError(f"go version {tb.version} is already installed")

    if args.keep_tarball:
        print_section(f"DOWNLOADING {tb.url}")
        local = download_tarball(tb, args.output_dir / tarball_file_name(tb))
        print_section(f"PROCESSING {local}")
        deb_path = build_from_file(args, tb.version, local)
    else:
        # Translate straight from the network stream
        print_section(f"PROCESSING {tb.url}")
        response, reader = open_tarball(tb)
        with response:
            deb_path = build_deb_file(
                tb.version,
                reader,
                args.output_dir,
                args.arch,
                HEADER_POLICIES[args.tar_format],
                args.compression,
                before_publish=reader.verify,
            )
    finish_package(deb_path, install)


def fromtarball_command(args: argparse.Namespace) -> None:
    if f"{args.version}." not in args.tarball.name:
        raise TarballVersionMismatchError(
            f"tarball {args.tarball.name} does not appear to correspond to version {args.version}"
        )

    print_section(f"PROCESSING {args.tarball}")
    deb_path = build_from_file(args, args.version, args.tarball)
    finish_package(deb_path, install=True)


def build_from_file(args: argparse.Namespace, version: str, path: Path) -> Path:
    try:
        tarball = open(path, "rb")
    except OSError as e:
        raise GodebError(f"unable to open tarball: {e}") from e
    with tarball:
        return build_deb_file(
            version,
            tarball,
            args.output_dir,
            args.arch,
            HEADER_POLICIES[args.tar_format],
            args.compression,
        )


def finish_package(deb_path: Path, install: bool) -> None:
    verify_deb(deb_path)
    print(f"package {deb_path.name} ready")
    if install:
        print_section(f"INSTALLING {deb_path.name}")
        install_deb(deb_path)


# ============================================================================
# Main
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0
    if args.arch is None:
        args.arch = go_arch()
    if not args.sources:
        args.sources = list(DEFAULT_SOURCES)

    try:
        if args.command == "list":
            list_command(args)
        elif args.command in ("download", "install"):
            action_command(args, install=args.command == "install")
        elif args.command == "remove":
            remove_package()
        elif args.command == "fromtarball":
            fromtarball_command(args)
    except KeyboardInterrupt:
        print("\n❌ OPERATION CANCELLED BY USER", file=sys.stderr)
        return 130
    except GodebError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0
