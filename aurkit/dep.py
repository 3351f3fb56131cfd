"""Dependency strings, satisfaction checks and install targets."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Tuple

from aurkit.version import ver_cmp

__all__ = [
    "AURPackage",
    "Target",
    "split_dep",
    "pkg_satisfies",
    "provide_satisfies",
    "ver_satisfies",
    "satisfies_aur",
    "split_db_from_name",
    "to_target",
]

_MOD_CHARS = "<>="
_MOD_SPLIT = re.compile(r"[<>=]")


@dataclass
class AURPackage:
    """Metadata of a package from the AUR."""

    name: str = ""
    package_base: str = ""
    version: str = ""
    description: str = ""
    url: str = ""
    depends: List[str] = field(default_factory=list)
    make_depends: List[str] = field(default_factory=list)
    check_depends: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    provides: List[str] = field(default_factory=list)
    replaces: List[str] = field(default_factory=list)
    opt_depends: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    license: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    id: int = 0
    package_base_id: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AURPackage":
        """Build a package from an AUR RPC result object."""

        def strings(key: str) -> List[str]:
            return list(data.get(key) or [])

        return cls(
            name=data.get("Name", "") or "",
            package_base=data.get("PackageBase", "") or "",
            version=data.get("Version", "") or "",
            description=data.get("Description", "") or "",
            url=data.get("URL", "") or "",
            depends=strings("Depends"),
            make_depends=strings("MakeDepends"),
            check_depends=strings("CheckDepends"),
            conflicts=strings("Conflicts"),
            provides=strings("Provides"),
            replaces=strings("Replaces"),
            opt_depends=strings("OptDepends"),
            groups=strings("Groups"),
            license=strings("License"),
            keywords=strings("Keywords"),
            id=int(data.get("ID", 0) or 0),
            package_base_id=int(data.get("PackageBaseID", 0) or 0),
        )


def split_dep(dep: str) -> Tuple[str, str, str]:
    """Split ``name<mod>version`` into its name, modifier and version."""
    fields = [part for part in _MOD_SPLIT.split(dep) if part]

    if not fields:
        return "", "", ""
    if len(fields) == 1:
        return fields[0], "", ""

    mod = "".join(c for c in dep if c in _MOD_CHARS)
    return fields[0], mod, fields[1]


def ver_satisfies(ver1: str, mod: str, ver2: str) -> bool:
    """Check ``ver1 <mod> ver2``; an unknown or empty modifier always holds."""
    if mod == "=":
        return ver_cmp(ver1, ver2) == 0
    if mod == "<":
        return ver_cmp(ver1, ver2) < 0
    if mod == "<=":
        return ver_cmp(ver1, ver2) <= 0
    if mod == ">":
        return ver_cmp(ver1, ver2) > 0
    if mod == ">=":
        return ver_cmp(ver1, ver2) >= 0
    return True


def pkg_satisfies(name: str, version: str, dep: str) -> bool:
    """Return True if the package ``name`` at ``version`` satisfies ``dep``."""
    dep_name, dep_mod, dep_version = split_dep(dep)
    if dep_name != name:
        return False
    return ver_satisfies(version, dep_mod, dep_version)


def provide_satisfies(provide: str, dep: str, pkg_version: str) -> bool:
    """Return True if a provide entry satisfies ``dep``.

    An unversioned provide facing a versioned dependency is judged by the
    version of the providing package.
    """
    dep_name, dep_mod, dep_version = split_dep(dep)
    provide_name, provide_mod, provide_version = split_dep(provide)

    if provide_name != dep_name:
        return False

    if provide_mod == "" and dep_mod != "":
        provide_version = pkg_version

    return ver_satisfies(provide_version, dep_mod, dep_version)


def satisfies_aur(dep: str, pkg: AURPackage) -> bool:
    """Return True if the AUR package or one of its provides satisfies ``dep``."""
    if pkg_satisfies(pkg.name, pkg.version, dep):
        return True
    return any(provide_satisfies(p, dep, pkg.version) for p in pkg.provides)


def split_db_from_name(pkg: str) -> Tuple[str, str]:
    """Split ``db/name`` into its database and name; the database may be empty."""
    db_name, sep, name = pkg.partition("/")
    if sep:
        return db_name, name
    return "", pkg


@dataclass(frozen=True)
class Target:
    """An install target such as ``core/foo>=1.0``."""

    db: str = ""
    name: str = ""
    mod: str = ""
    version: str = ""

    def dep_string(self) -> str:
        """The target as a dependency string, without database."""
        return self.name + self.mod + self.version

    def __str__(self) -> str:
        if self.db:
            return f"{self.db}/{self.dep_string()}"
        return self.dep_string()


def to_target(pkg: str) -> Target:
    """Parse a target string into a :class:`Target`."""
    db_name, dep_string = split_db_from_name(pkg)
    name, mod, version = split_dep(dep_string)
    return Target(db=db_name, name=name, mod=mod, version=version)