"""
Ordering of Go release versions, newest first.

Versions are compared by scanning both strings left to right: digit runs are
compared numerically, dots separate components, and pre-release tags rank
"rc" above "beta" and both below the final release ("1.2" > "1.2rc1" >
"1.2beta1" > "1.1.2").
"""

from functools import cmp_to_key
from typing import Any

PRERELEASE_TAGS = ("rc", "beta")


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def version_less(a: str, b: str) -> bool:
    """
    Return True when version a ranks before version b (a is newer).

    Args:
        a: Version string such as "1.2rc3"
        b: Version string to compare against

    Returns:
        True if a sorts before b in newest-first order
    """
    ai, bi = 0, 0
    while ai < len(a) and bi < len(b):
        a_is_digit = _is_digit(a[ai])
        b_is_digit = _is_digit(b[bi])
        if a_is_digit != b_is_digit:
            return a_is_digit

        if a_is_digit:
            a_mark, b_mark = ai, bi
            while ai < len(a) and _is_digit(a[ai]):
                ai += 1
            while bi < len(b) and _is_digit(b[bi]):
                bi += 1
            av, bv = int(a[a_mark:ai]), int(b[b_mark:bi])
            if av != bv:
                return av > bv
        elif a[ai] == "." and b[bi] == ".":
            ai += 1
            bi += 1
        elif a[ai] == "." or b[bi] == ".":
            # The side that keeps the dotted chain going wins ("1.1.2" vs "1.1rc2")
            return a[ai] == "."
        else:
            a_mark, b_mark = ai, bi
            while ai < len(a) and a[ai] != "." and not _is_digit(a[ai]):
                ai += 1
            while bi < len(b) and b[bi] != "." and not _is_digit(b[bi]):
                bi += 1
            a_tag, b_tag = a[a_mark:ai], b[b_mark:bi]
            for tag in PRERELEASE_TAGS:
                if (a_tag == tag) != (b_tag == tag):
                    return a_tag == tag
            if not a_tag or not b_tag:
                return len(a_tag) > len(b_tag)
            if a_tag != b_tag:
                return a_tag > b_tag

    # NOTE: asymmetric on purpose, both branches favour the left operand.
    if ai < len(a) and (a[ai] == "." or _is_digit(a[ai])):
        return True
    if bi < len(b) and b[bi] != "." and not _is_digit(b[bi]):
        return True
    return False


def compare_versions(a: str, b: str) -> int:
    """Three-way comparison for functools.cmp_to_key (newest first)."""
    if version_less(a, b):
        return -1
    if version_less(b, a):
        return 1
    return 0


def sort_versions(versions: list[str]) -> list[str]:
    """Return versions sorted newest first."""
    return sorted(versions, key=cmp_to_key(compare_versions))


def sort_tarballs(tarballs: list[Any]) -> list[Any]:
    """Return release descriptors (anything with a .version) sorted newest first."""
    version_key = cmp_to_key(compare_versions)
    return sorted(tarballs, key=lambda tb: version_key(tb.version))
