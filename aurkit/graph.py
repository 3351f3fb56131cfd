"""Dependency graph construction for repository and AUR install targets."""

from __future__ import annotations

import enum
import logging
import sys
from collections import deque
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    TextIO,
)

from aurkit.dep import AURPackage, provide_satisfies, satisfies_aur, split_dep, to_target
from aurkit.version import ver_cmp

__all__ = [
    "Reason",
    "Source",
    "DepMod",
    "Depend",
    "InstallInfo",
    "NodeInfo",
    "ProviderNode",
    "DependencyGraph",
    "Grapher",
]

_log = logging.getLogger(__name__)

_BOLD = "\x1b[1m"
_BLUE = "\x1b[34m"
_RESET = "\x1b[0m"


class Reason(enum.IntEnum):
    """Why a package is part of the graph; lower values are stronger."""

    EXPLICIT = 0
    DEP = 1
    MAKE_DEP = 2
    CHECK_DEP = 3

    def __str__(self) -> str:
        return _REASON_NAMES[self]


class Source(enum.IntEnum):
    """Where a package comes from."""

    AUR = 0
    SYNC = 1
    LOCAL = 2
    SRCINFO = 3
    MISSING = 4

    def __str__(self) -> str:
        return _SOURCE_NAMES[self]


_REASON_NAMES = {
    Reason.EXPLICIT: "Explicit",
    Reason.DEP: "Dependency",
    Reason.MAKE_DEP: "Make Dependency",
    Reason.CHECK_DEP: "Check Dependency",
}

_SOURCE_NAMES = {
    Source.AUR: "AUR",
    Source.SYNC: "Sync",
    Source.LOCAL: "Local",
    Source.SRCINFO: "SRCINFO",
    Source.MISSING: "Missing",
}

_BG_COLORS = {
    Source.AUR: "lightblue",
    Source.SYNC: "lemonchiffon",
    Source.LOCAL: "darkolivegreen1",
    Source.MISSING: "tomato",
}

_COLORS = {
    Reason.EXPLICIT: "black",
    Reason.DEP: "deeppink",
    Reason.MAKE_DEP: "navyblue",
    Reason.CHECK_DEP: "forestgreen",
}


class DepMod(enum.Enum):
    """Version comparison operator of a dependency."""

    ANY = ""
    EQ = "="
    GE = ">="
    LE = "<="
    GT = ">"
    LT = "<"

    @classmethod
    def from_string(cls, mod: str) -> "DepMod":
        """Map an operator string to a modifier; unknown operators mean ANY."""
        try:
            return cls(mod)
        except ValueError:
            return cls.ANY


@dataclass(frozen=True)
class Depend:
    """A dependency or provide: name, operator and version."""

    name: str
    version: str = ""
    mod: DepMod = DepMod.ANY

    def __str__(self) -> str:
        return self.name + self.mod.value + self.version


@dataclass
class InstallInfo:
    """What is known about how a package in the graph is to be installed."""

    source: Source
    reason: Reason
    version: str = ""
    local_version: str = ""
    srcinfo_path: Optional[str] = None
    aur_base: Optional[str] = None
    sync_db_name: Optional[str] = None
    is_group: bool = False
    upgrade: bool = False
    devel: bool = False


@dataclass
class NodeInfo:
    """Display attributes and install information of a graph node."""

    color: str = ""
    background: str = ""
    value: Optional[InstallInfo] = None


@dataclass(frozen=True)
class ProviderNode:
    """A node providing a name, together with the provide entry."""

    provider: str
    depend: Depend

    @property
    def version(self) -> str:
        return self.depend.version

    def __str__(self) -> str:
        return str(self.depend)


class DependencyGraph:
    """A directed acyclic graph of packages and what they depend on."""

    def __init__(self) -> None:
        self._nodes: Dict[str, None] = {}
        self._dependencies: Dict[str, Dict[str, None]] = {}
        self._dependents: Dict[str, Dict[str, None]] = {}
        self._info: Dict[str, NodeInfo] = {}
        self._provided_by: Dict[str, Dict[str, Depend]] = {}

    def add_node(self, node: str) -> None:
        """Add a node; adding an existing node changes nothing."""
        self._nodes.setdefault(node, None)

    def exists(self, node: str) -> bool:
        return node in self._nodes

    def set_node_info(self, node: str, info: NodeInfo) -> None:
        self._info[node] = info

    def get_node_info(self, node: str) -> Optional[NodeInfo]:
        return self._info.get(node)

    def _reaches(self, start: str, goal: str) -> bool:
        seen = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            if current == goal:
                return True
            for nxt in self._dependencies.get(current, ()):
                if nxt not in seen:
                    seen.add(nxt)
                    queue.append(nxt)
        return False

    def depend_on(self, child: str, parent: str) -> None:
        """Record that ``parent`` depends on ``child``.

        Raises ValueError for a self dependency or one that closes a cycle.
        """
        if child == parent:
            raise ValueError(f"self-referential dependency: {child}")
        if self._reaches(child, parent):
            raise ValueError(f"circular dependency: {parent} -> {child}")

        self.add_node(parent)
        self.add_node(child)
        self._dependencies.setdefault(parent, {})[child] = None
        self._dependents.setdefault(child, {})[parent] = None

    def provides(self, name: str, depend: Depend, provider: str) -> None:
        """Record that node ``provider`` provides ``name``."""
        self._provided_by.setdefault(name, {})[provider] = depend

    def provides_exists(self, name: str) -> bool:
        return bool(self._provided_by.get(name))

    def get_provider_node(self, name: str) -> Optional[ProviderNode]:
        """Return the first node recorded as providing ``name``."""
        for provider, depend in self._provided_by.get(name, {}).items():
            return ProviderNode(provider, depend)
        return None

    def topo_sorted_layer_map(self) -> List[Dict[str, Optional[InstallInfo]]]:
        """Group nodes in layers, starting with those nothing depends on.

        Each layer maps node names to their install information.
        """
        remaining = dict.fromkeys(self._nodes)
        layers: List[Dict[str, Optional[InstallInfo]]] = []

        while remaining:
            layer_nodes = [
                node
                for node in remaining
                if not any(p in remaining for p in self._dependents.get(node, ()))
            ]
            if not layer_nodes:
                break
            layer = {}
            for node in layer_nodes:
                info = self._info.get(node)
                layer[node] = info.value if info is not None else None
                del remaining[node]
            layers.append(layer)

        return layers


class _Package(Protocol):
    name: str
    version: str
    db_name: str
    provides: Sequence[Depend]
    depends: Sequence[Depend]


class _Executor(Protocol):
    def sync_satisfier(self, dep: str) -> Optional[_Package]: ...

    def packages_from_group(self, group: str) -> Optional[Sequence[_Package]]: ...

    def local_package(self, name: str) -> Optional[_Package]: ...

    def local_satisfier_exists(self, dep: str) -> bool: ...


class Grapher:
    """Builds dependency graphs from install targets."""

    def __init__(
        self,
        db_executor: _Executor,
        aur_client: Any,
        full_graph: bool = False,
        no_confirm: bool = False,
        no_deps: bool = False,
        no_check_deps: bool = False,
        needed: bool = False,
        out: Optional[TextIO] = None,
        read_input: Callable[[], str] = input,
    ) -> None:
        self.db_executor = db_executor
        self.aur_client = aur_client
        self.full_graph = full_graph  # include installed and repo dependencies too
        self.no_confirm = no_confirm
        self.no_deps = no_deps
        self.no_check_deps = no_check_deps
        self.needed = needed  # skip targets that are already up to date
        self.out = out
        self.read_input = read_input
        self.provider_cache: Dict[str, List[AURPackage]] = {}

    def _print(self, text: str = "") -> None:
        print(text, file=self.out or sys.stdout)

    def _depend_on(self, graph: DependencyGraph, child: str, parent: str) -> None:
        try:
            graph.depend_on(child, parent)
        except ValueError as exc:
            _log.warning("%s %s %s", child, parent, exc)

    def _query(self, by: str, needles: List[str], contains: bool) -> List[AURPackage]:
        try:
            return list(self.aur_client.get(by=by, needles=needles, contains=contains) or [])
        except Exception as exc:  # a failing AUR client only means nothing was found
            _log.error("failed to find AUR package for %s: %s", " ".join(needles), exc)
            return []

    def graph_from_targets(
        self, graph: Optional[DependencyGraph], targets: Iterable[str]
    ) -> DependencyGraph:
        """Add targets from the repositories, groups and the AUR to ``graph``."""
        if graph is None:
            graph = DependencyGraph()

        aur_targets: List[str] = []

        for target_string in targets:
            target = to_target(target_string)

            if target.db == "":
                pkg = self.db_executor.sync_satisfier(target.name)
                if pkg is not None:
                    self.graph_sync_pkg(
                        graph,
                        pkg,
                        InstallInfo(
                            source=Source.SYNC,
                            reason=Reason.EXPLICIT,
                            version=pkg.version,
                            sync_db_name=pkg.db_name,
                        ),
                    )
                    continue

                group = self.db_executor.packages_from_group(target.name) or []
                if group:
                    graph.add_node(target.name)
                    self.validate_and_set_node_info(
                        graph,
                        target.name,
                        NodeInfo(
                            color=_COLORS[Reason.EXPLICIT],
                            background=_BG_COLORS[Source.SYNC],
                            value=InstallInfo(
                                source=Source.SYNC,
                                reason=Reason.EXPLICIT,
                                version="",
                                sync_db_name=group[0].db_name,
                                is_group=True,
                            ),
                        ),
                    )
                    continue

                aur_targets.append(target.name)
            elif target.db == "aur":
                aur_targets.append(target.name)
            else:
                graph.add_node(target.name)
                self.validate_and_set_node_info(
                    graph,
                    target.name,
                    NodeInfo(
                        color=_COLORS[Reason.EXPLICIT],
                        background=_BG_COLORS[Source.SYNC],
                        value=InstallInfo(
                            source=Source.SYNC,
                            reason=Reason.EXPLICIT,
                            version=target.version,
                            sync_db_name=target.db,
                        ),
                    ),
                )

        return self.graph_from_aur(graph, aur_targets)

    def add_deps_for_pkgs(self, pkgs: Iterable[AURPackage], graph: DependencyGraph) -> None:
        """Add the dependencies of several AUR packages to ``graph``."""
        for pkg in pkgs:
            self._add_dep_nodes(pkg, graph)

    def _add_dep_nodes(self, pkg: AURPackage, graph: DependencyGraph) -> None:
        if pkg.make_depends:
            self._add_nodes(graph, pkg.name, pkg.make_depends, Reason.MAKE_DEP)

        if not self.no_deps and pkg.depends:
            self._add_nodes(graph, pkg.name, pkg.depends, Reason.DEP)

        if not self.no_check_deps and not self.no_deps and pkg.check_depends:
            self._add_nodes(graph, pkg.name, pkg.check_depends, Reason.CHECK_DEP)

    def graph_sync_pkg(
        self, graph: Optional[DependencyGraph], pkg: _Package, install_info: InstallInfo
    ) -> DependencyGraph:
        """Add a repository package and what it provides to ``graph``."""
        if graph is None:
            graph = DependencyGraph()

        graph.add_node(pkg.name)
        for provide in pkg.provides:
            _log.debug("%s provides: %s", pkg.name, provide)
            graph.provides(provide.name, provide, pkg.name)

        self.validate_and_set_node_info(
            graph,
            pkg.name,
            NodeInfo(
                color=_COLORS[Reason.EXPLICIT],
                background=_BG_COLORS[Source.SYNC],
                value=install_info,
            ),
        )
        return graph

    def graph_aur_target(
        self, graph: Optional[DependencyGraph], pkg: AURPackage, install_info: InstallInfo
    ) -> DependencyGraph:
        """Add an AUR package and what it provides to ``graph``."""
        if graph is None:
            graph = DependencyGraph()

        graph.add_node(pkg.name)
        for provide in pkg.provides:
            dep_name, mod, version = split_dep(provide)
            graph.provides(dep_name, Depend(dep_name, version, DepMod.from_string(mod)), pkg.name)

        self.validate_and_set_node_info(
            graph,
            pkg.name,
            NodeInfo(
                color=_COLORS[install_info.reason],
                background=_BG_COLORS[Source.AUR],
                value=install_info,
            ),
        )
        return graph

    def graph_from_aur(
        self, graph: Optional[DependencyGraph], targets: Sequence[str]
    ) -> DependencyGraph:
        """Add AUR targets and their dependencies to ``graph``."""
        if graph is None:
            graph = DependencyGraph()

        if not targets:
            return graph

        for pkg in self._query("name", list(targets), False):
            self.provider_cache.setdefault(pkg.name, [pkg])

        added: List[AURPackage] = []

        for target in targets:
            if target in self.provider_cache:
                candidates = self.provider_cache[target]
            else:
                candidates = self._query("provides", [target], True)

            if not candidates:
                _log.error("No AUR package found for %s", target)
                continue

            aur_pkg = candidates[0]
            if len(candidates) > 1:
                aur_pkg = self._provide_menu(target, candidates)
                self.provider_cache[target] = [aur_pkg]

            if self.needed:
                local = self.db_executor.local_package(aur_pkg.name)
                if local is not None and ver_cmp(local.version, aur_pkg.version) >= 0:
                    _log.warning("%s-%s is up to date -- skipping", local.name, local.version)
                    continue

            graph = self.graph_aur_target(
                graph,
                aur_pkg,
                InstallInfo(
                    source=Source.AUR,
                    reason=Reason.EXPLICIT,
                    version=aur_pkg.version,
                    aur_base=aur_pkg.package_base,
                ),
            )
            added.append(aur_pkg)

        self.add_deps_for_pkgs(added, graph)
        return graph

    def _find_deps_from_aur(self, deps: Dict[str, None]) -> List[AURPackage]:
        """Resolve deps from the AUR, removing the found ones from ``deps``."""
        if not deps:
            return []

        missing = [split_dep(d)[0] for d in deps if d not in self.provider_cache]
        if missing:
            _log.debug("deps to find %s", missing)
            # a name search is cheaper than a provider search, so try it first
            for pkg in self._query("name", missing, False):
                for val in pkg.provides:
                    if val in deps:
                        self.provider_cache.setdefault(val, []).append(pkg)
                if pkg.name in deps:
                    self.provider_cache.setdefault(pkg.name, []).append(pkg)

        to_add: List[AURPackage] = []
        for dep_string in list(deps):
            dep_name = split_dep(dep_string)[0]

            if dep_string in self.provider_cache:
                candidates = self.provider_cache[dep_string]
            else:
                candidates = self._query("provides", [dep_name], True)

            candidates = [p for p in candidates if satisfies_aur(dep_string, p)]
            if not candidates:
                _log.error("No AUR package found for %s", dep_string)
                continue

            pkg = candidates[0]
            if len(candidates) > 1:
                pkg = self._provide_menu(dep_string, candidates)

            self.provider_cache[dep_string] = [pkg]
            del deps[dep_string]
            to_add.append(pkg)

        return to_add

    def validate_and_set_node_info(
        self, graph: DependencyGraph, node: str, node_info: NodeInfo
    ) -> None:
        """Set node information unless it would weaken the reason or undo an upgrade."""
        info = graph.get_node_info(node)
        if info is not None and info.value is not None:
            if node_info.value is None:
                return
            if info.value.reason < node_info.value.reason:
                return
            if info.value.upgrade:
                return

        graph.set_node_info(node, node_info)

    def _add_nodes(
        self, graph: DependencyGraph, parent: str, deps: Iterable[str], dep_type: Reason
    ) -> None:
        to_find: Dict[str, None] = dict.fromkeys(deps)

        # already in the graph, directly or through a provide
        for dep_string in list(to_find):
            dep_name = split_dep(dep_string)[0]
            if not graph.exists(dep_name) and not graph.provides_exists(dep_name):
                continue

            if graph.exists(dep_name):
                self._depend_on(graph, dep_name, parent)
                to_find.pop(dep_string, None)

            provider = graph.get_provider_node(dep_name)
            if provider is not None and provide_satisfies(
                str(provider), dep_string, provider.version
            ):
                self._depend_on(graph, provider.provider, parent)
                to_find.pop(dep_string, None)

        # installed
        for dep_string in list(to_find):
            if not self.db_executor.local_satisfier_exists(dep_string):
                continue

            if self.full_graph:
                dep_name = split_dep(dep_string)[0]
                self.validate_and_set_node_info(
                    graph,
                    dep_name,
                    NodeInfo(color=_COLORS[dep_type], background=_BG_COLORS[Source.LOCAL]),
                )
                self._depend_on(graph, dep_name, parent)

            del to_find[dep_string]

        # repositories
        for dep_string in list(to_find):
            pkg = self.db_executor.sync_satisfier(dep_string)
            if pkg is None:
                continue

            self._depend_on(graph, pkg.name, parent)
            self.validate_and_set_node_info(
                graph,
                pkg.name,
                NodeInfo(
                    color=_COLORS[dep_type],
                    background=_BG_COLORS[Source.SYNC],
                    value=InstallInfo(
                        source=Source.SYNC,
                        reason=dep_type,
                        version=pkg.version,
                        sync_db_name=pkg.db_name,
                    ),
                ),
            )

            new_deps = [d.name for d in pkg.depends]
            if new_deps and self.full_graph:
                self._add_nodes(graph, pkg.name, new_deps, Reason.DEP)

            del to_find[dep_string]

        # AUR
        for aur_pkg in self._find_deps_from_aur(to_find):
            self._depend_on(graph, aur_pkg.name, parent)
            graph.set_node_info(
                aur_pkg.name,
                NodeInfo(
                    color=_COLORS[dep_type],
                    background=_BG_COLORS[Source.AUR],
                    value=InstallInfo(
                        source=Source.AUR,
                        reason=dep_type,
                        version=aur_pkg.version,
                        aur_base=aur_pkg.package_base,
                    ),
                ),
            )
            self._add_dep_nodes(aur_pkg, graph)

        # whatever is left could not be found anywhere
        for dep_string in to_find:
            dep_name, mod, ver = split_dep(dep_string)
            graph.add_node(dep_name)
            graph.set_node_info(
                dep_name,
                NodeInfo(
                    color=_COLORS[dep_type],
                    background=_BG_COLORS[Source.MISSING],
                    value=InstallInfo(source=Source.MISSING, reason=dep_type, version=mod + ver),
                ),
            )

    def _provide_menu(self, dep: str, options: Sequence[AURPackage]) -> AURPackage:
        """Let the user pick one of several providers of ``dep``."""
        if len(options) == 1:
            return options[0]

        listing = " ".join(f"{n}) {pkg.name}" for n, pkg in enumerate(options, 1))
        self._print(
            f"{_BOLD}{_BLUE}:: {_RESET}{_BOLD}"
            f"{_BOLD}There are {len(options)} providers available for {dep}:{_RESET}\n"
            f"{_BOLD}{_BLUE}:: {_RESET}{_BOLD}Repository AUR{_RESET}\n    {listing} {_RESET}"
        )

        while True:
            self._print("\nEnter a number (default=1): ")

            if self.no_confirm:
                self._print("1")
                return options[0]

            try:
                answer = self.read_input().strip()
            except EOFError as exc:
                _log.error("%s", exc or "no input")
                return options[0]

            if answer == "":
                return options[0]

            try:
                num = int(answer)
            except ValueError:
                _log.error("invalid number: %s", answer)
                continue

            if not 1 <= num <= len(options):
                _log.error("invalid value: %d is not between %d and %d", num, 1, len(options))
                continue

            return options[num - 1]