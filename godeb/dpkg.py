"""
Thin wrappers around dpkg for querying, installing and removing the package.
"""

import os
import shutil
import subprocess
from pathlib import Path

from .errors import NotInstalledError, PackageManagerError

PACKAGE_NAME = "go"
QUERY_FORMAT = "${db:Status-Abbrev}${source:Version}"


def _c_locale_env() -> dict[str, str]:
    """Environment forcing untranslated dpkg output."""
    return {**os.environ, "LC_ALL": "C", "LANG": "C", "LANGUAGE": "C"}


def _privileged(cmd: list[str]) -> list[str]:
    if os.getuid() != 0:
        return ["sudo", *cmd]
    return cmd


def installed_deb_version() -> str:
    """
    Return the Debian version of the installed go package.

    Raises:
        NotInstalledError: go is not installed, or dpkg-query is missing
        PackageManagerError: dpkg-query failed for another reason
    """
    if shutil.which("dpkg-query") is None:
        # Packages can still be built without dpkg, just not installed
        raise NotInstalledError()

    cmd = ["dpkg-query", "-f", QUERY_FORMAT, "-W", PACKAGE_NAME]
    result = subprocess.run(cmd, capture_output=True, text=True, env=_c_locale_env())
    output = (result.stdout + result.stderr).strip()
    if result.returncode != 0:
        if "no packages found" in output.lower():
            raise NotInstalledError()
        msg = f"dpkg-query exited with status {result.returncode}"
        if output:
            msg += f": {output}"
        raise PackageManagerError(f"while querying for installed go package version: {msg}")

    if not result.stdout.startswith("ii "):
        raise NotInstalledError()
    return result.stdout[3:].strip()


def install_deb(deb_path: Path | str) -> None:
    """Install a package file with dpkg -i, using sudo when not root."""
    cmd = _privileged(["dpkg", "-i", str(deb_path)])
    print(f"  Running: {' '.join(cmd)}")
    try:
        subprocess.run(cmd, check=True)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise PackageManagerError(f"while installing go package: {e}") from e


def remove_package() -> None:
    """Purge the go package with dpkg --purge, using sudo when not root."""
    cmd = _privileged(["dpkg", "--purge", PACKAGE_NAME])
    print(f"  Running: {' '.join(cmd)}")
    try:
        subprocess.run(cmd, check=True)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise PackageManagerError(f"while removing go package: {e}") from e
