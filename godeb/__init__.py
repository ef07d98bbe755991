"""
godeb: build deb packages from upstream Go release tarballs.

This package provides:
- Discovery of the Go releases published for this architecture
- In-flight translation of a release tarball into a deb package
- Installation and removal of the package through dpkg

Main modules:
- version_sort: newest-first ordering of Go versions
- translate_tarball: upstream tarball -> data.tar with md5sums
- create_deb: control record and ar assembly of the package
- fetch_tarballs: release listings and streaming downloads
- dpkg: installed version query, install and remove
- cli: the godeb command
"""

from .cli import main
from .create_deb import create_deb, deb_version
from .translate_tarball import translate_tarball
from .version_sort import sort_versions

__all__ = ["create_deb", "deb_version", "main", "sort_versions", "translate_tarball"]
