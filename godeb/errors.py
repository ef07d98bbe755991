"""
Exception hierarchy for godeb.

Every failure raised by the package derives from GodebError, so the CLI can
report it as a one-line message without a traceback.
"""


class GodebError(Exception):
    """Base class for all godeb failures."""


# ============================================================================
# Upstream format errors
# ============================================================================


class TranslateError(GodebError):
    """The upstream tarball could not be translated."""


class UncompressError(TranslateError):
    """The upstream tarball is not valid gzip data."""


class ReadSourceError(TranslateError):
    """The upstream tarball is corrupt or truncated."""


class UnexpectedLayoutError(TranslateError):
    """An upstream entry lives outside the expected top-level directory."""


class UnsupportedEntryError(TranslateError):
    """An upstream entry is neither a regular file, a directory nor a symlink."""


# ============================================================================
# I/O errors
# ============================================================================


class WriteStageError(GodebError):
    """Writing to an output stream failed at a named stage."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"cannot write {stage}: {cause}")


class InvalidPackageError(GodebError):
    """A freshly written deb failed its structural check."""


class DownloadError(GodebError):
    """An HTTP request for a listing or a tarball failed."""


class ChecksumMismatchError(DownloadError):
    """A downloaded tarball does not match its published SHA256."""


# ============================================================================
# Environment errors
# ============================================================================


class NotInstalledError(GodebError):
    """The go package is not installed, or dpkg is not available."""

    def __init__(self, message: str = "package go is not installed"):
        super().__init__(message)


class PackageManagerError(GodebError):
    """A dpkg invocation failed."""


# ============================================================================
# Policy errors
# ============================================================================


class VersionNotFoundError(GodebError):
    """The requested version is not among the discovered releases."""


class AlreadyInstalledError(GodebError):
    """The requested version is already installed."""


class NoReleasesError(GodebError):
    """A listing source yielded no usable releases."""


class TarballVersionMismatchError(GodebError):
    """A local tarball name does not correspond to the given version."""
