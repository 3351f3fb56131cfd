"""Package version comparison and architecture helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

__all__ = ["Upgrade", "SyncUpgrade", "ver_cmp", "arch_is_supported"]


@dataclass
class Upgrade:
    """A pending upgrade of a package from one version to another."""

    name: str
    base: str = ""
    repository: str = ""
    local_version: str = ""
    remote_version: str = ""
    reason: int = 0
    extra: str = ""  # extra information to be displayed


@dataclass
class SyncUpgrade:
    """An upgrade offered by a sync repository."""

    package: Any
    local_version: str = "-"
    reason: int = 0


def _is_digit(c: str) -> bool:
    return "0" <= c <= "9"


def _is_alpha(c: str) -> bool:
    return "a" <= c <= "z" or "A" <= c <= "Z"


def _is_alnum(c: str) -> bool:
    return _is_digit(c) or _is_alpha(c)


def _segment_cmp(a: str, b: str) -> int:
    """Compare two version fragments segment by segment."""
    if a == b:
        return 0

    n1, n2 = len(a), len(b)
    i = j = 0

    while i < n1 and j < n2:
        start1, start2 = i, j
        while i < n1 and not _is_alnum(a[i]):
            i += 1
        while j < n2 and not _is_alnum(b[j]):
            j += 1

        if i >= n1 or j >= n2:
            break

        # separator runs of different length decide the comparison
        if i - start1 != j - start2:
            return -1 if i - start1 < j - start2 else 1

        end1, end2 = i, j
        if _is_digit(a[end1]):
            while end1 < n1 and _is_digit(a[end1]):
                end1 += 1
            while end2 < n2 and _is_digit(b[end2]):
                end2 += 1
            is_num = True
        else:
            while end1 < n1 and _is_alpha(a[end1]):
                end1 += 1
            while end2 < n2 and _is_alpha(b[end2]):
                end2 += 1
            is_num = False

        seg1, seg2 = a[i:end1], b[j:end2]

        if not seg2:
            # numeric segments are always newer than alpha segments
            return 1 if is_num else -1

        if is_num:
            seg1 = seg1.lstrip("0")
            seg2 = seg2.lstrip("0")
            if len(seg1) != len(seg2):
                return 1 if len(seg1) > len(seg2) else -1

        if seg1 != seg2:
            return -1 if seg1 < seg2 else 1

        i, j = end1, end2

    one_done = i >= n1
    two_done = j >= n2
    if one_done and two_done:
        return 0

    if (one_done and not _is_alpha(b[j])) or (not one_done and _is_alpha(a[i])):
        return -1

    return 1


def _parse_evr(evr: str) -> Tuple[str, str, Optional[str]]:
    """Split ``[epoch:]version[-release]`` into its parts."""
    k = 0
    while k < len(evr) and _is_digit(evr[k]):
        k += 1

    rest = evr[k:]
    dash = rest.rfind("-")

    if rest.startswith(":"):
        epoch = evr[:k] or "0"
        start = k + 1
    else:
        epoch = "0"
        start = 0

    if dash >= 0:
        pos = k + dash
        return epoch, evr[start:pos], evr[pos + 1 :]

    return epoch, evr[start:], None


def ver_cmp(v1: str, v2: str) -> int:
    """Compare versions the way pacman does.

    The result is negative if and only if ``v1`` is older than ``v2``,
    zero when they are equal and positive when ``v1`` is newer.
    """
    if v1 == v2:
        return 0

    epoch1, ver1, rel1 = _parse_evr(v1)
    epoch2, ver2, rel2 = _parse_evr(v2)

    ret = _segment_cmp(epoch1, epoch2)
    if ret == 0:
        ret = _segment_cmp(ver1, ver2)
        if ret == 0 and rel1 is not None and rel2 is not None:
            ret = _segment_cmp(rel1, rel2)

    return ret


def arch_is_supported(alpm_arch: Iterable[str], arch: str) -> bool:
    """Return True if ``arch`` is "any" or one of the configured architectures."""
    if arch == "any":
        return True

    return arch in alpm_arch