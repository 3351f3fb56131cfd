from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pytest

from aurkit.dep import AURPackage
from aurkit.graph import (
    Depend,
    DependencyGraph,
    DepMod,
    Grapher,
    InstallInfo,
    NodeInfo,
    Reason,
    Source,
)


@dataclass
class FakePackage:
    name: str
    version: str
    db_name: str
    base: str = ""
    provides: List[Depend] = field(default_factory=list)
    depends: List[Depend] = field(default_factory=list)


class FakeDB:
    def __init__(self, sync, local, groups=None, installed=None):
        self.sync = sync
        self.local = local
        self.groups = groups or {}
        self.installed = installed or {}

    def sync_satisfier(self, name):
        if name not in self.sync:
            raise AssertionError(f"unexpected sync lookup: {name}")
        return self.sync[name]

    def packages_from_group(self, name):
        return self.groups.get(name, [])

    def local_satisfier_exists(self, dep):
        if dep not in self.local:
            raise AssertionError(f"unexpected local lookup: {dep}")
        return self.local[dep]

    def local_package(self, name):
        return self.installed.get(name)


class FakeAUR:
    def __init__(self, by_name: Dict[str, Optional[AURPackage]], by_provides=None):
        self.by_name = by_name
        self.by_provides = by_provides or {}
        self.calls = []

    def get(self, by, needles, contains):
        self.calls.append((by, tuple(needles), contains))
        table = self.by_name if by == "name" else self.by_provides
        result = []
        for needle in needles:
            if needle not in table:
                raise AssertionError(f"unexpected needle: {needle}")
            found = table[needle]
            if isinstance(found, list):
                result.extend(found)
            elif found is not None:
                result.append(found)
        return result


def grapher(db, aur, **kwargs):
    kwargs.setdefault("no_confirm", True)
    return Grapher(db, aur, **kwargs)


CEPH_PKGS = {
    "ceph-bin": AURPackage(
        name="ceph-bin",
        package_base="ceph-bin",
        version="17.2.6-2",
        depends=["ceph-libs=17.2.6-2", "dep1"],
        provides=["ceph=17.2.6-2"],
    ),
    "ceph-libs-bin": AURPackage(
        name="ceph-libs-bin",
        package_base="ceph-bin",
        version="17.2.6-2",
        depends=["dep1", "dep2"],
        provides=["ceph-libs=17.2.6-2"],
    ),
    "ceph": AURPackage(
        name="ceph",
        package_base="ceph",
        version="17.2.6-2",
        depends=["ceph-libs=17.2.6-2", "dep1"],
        make_depends=["makedep1"],
        check_depends=["checkdep1"],
        provides=["ceph=17.2.6-2"],
    ),
    "ceph-libs": AURPackage(
        name="ceph-libs",
        package_base="ceph",
        version="17.2.6-2",
        depends=["dep1", "dep2", "dep3"],
        make_depends=["makedep1", "makedep2"],
        check_depends=["checkdep1"],
        provides=["ceph-libs=17.2.6-2"],
    ),
}


def ceph_db():
    sync = {name: None for name in ["ceph-bin", "ceph-libs-bin", "ceph", "ceph-libs", "ceph-libs=17.2.6-2"]}
    local = {"ceph-libs": False, "ceph-libs=17.2.6-2": False}
    local.update({d: True for d in ["dep1", "dep2", "dep3", "makedep1", "makedep2", "checkdep1"]})
    return FakeDB(sync, local)


CEPH_INFOS = {
    "ceph-bin exp": InstallInfo(Source.AUR, Reason.EXPLICIT, "17.2.6-2", aur_base="ceph-bin"),
    "ceph-libs-bin exp": InstallInfo(Source.AUR, Reason.EXPLICIT, "17.2.6-2", aur_base="ceph-bin"),
    "ceph exp": InstallInfo(Source.AUR, Reason.EXPLICIT, "17.2.6-2", aur_base="ceph"),
    "ceph-libs exp": InstallInfo(Source.AUR, Reason.EXPLICIT, "17.2.6-2", aur_base="ceph"),
    "ceph-libs dep": InstallInfo(Source.AUR, Reason.DEP, "17.2.6-2", aur_base="ceph"),
}


@pytest.mark.parametrize(
    "targets,expected",
    [
        (["ceph-bin", "ceph-libs-bin"], [{"ceph-bin": "ceph-bin exp"}, {"ceph-libs-bin": "ceph-libs-bin exp"}]),
        (["ceph-libs-bin", "ceph-bin"], [{"ceph-bin": "ceph-bin exp"}, {"ceph-libs-bin": "ceph-libs-bin exp"}]),
        (["ceph"], [{"ceph": "ceph exp"}, {"ceph-libs": "ceph-libs dep"}]),
        (["ceph-bin"], [{"ceph-bin": "ceph-bin exp"}, {"ceph-libs": "ceph-libs dep"}]),
        (["ceph-bin", "ceph-libs"], [{"ceph-bin": "ceph-bin exp"}, {"ceph-libs": "ceph-libs exp"}]),
        (["ceph-libs", "ceph-bin"], [{"ceph-bin": "ceph-bin exp"}, {"ceph-libs": "ceph-libs exp"}]),
        (["ceph", "ceph-libs-bin"], [{"ceph": "ceph exp"}, {"ceph-libs-bin": "ceph-libs-bin exp"}]),
        (["ceph-libs-bin", "ceph"], [{"ceph": "ceph exp"}, {"ceph-libs-bin": "ceph-libs-bin exp"}]),
    ],
)
def test_graph_from_targets_ceph(targets, expected):
    g = grapher(ceph_db(), FakeAUR(dict(CEPH_PKGS)))
    layers = g.graph_from_targets(None, targets).topo_sorted_layer_map()
    want = [{name: CEPH_INFOS[key] for name, key in layer.items()} for layer in expected]
    assert layers == want


GOUROU_PKGS = {
    "gourou": AURPackage(name="gourou", package_base="gourou", version="0.8.1", depends=["libzip"]),
    "libzip-git": AURPackage(
        name="libzip-git",
        package_base="libzip-git",
        version="1.9.2.r159.gb3ac716c-1",
        depends=["dep1", "dep2"],
        provides=["libzip=1.9.2.r159.gb3ac716c"],
    ),
}


def gourou_db(installed=None):
    sync = {
        "gourou": None,
        "libzip-git": None,
        "libzip": FakePackage(name="libzip", version="1.9.2-1", db_name="extra"),
    }
    local = {"gourou": False, "libzip": False, "libzip-git": False, "dep1": True, "dep2": True}
    return FakeDB(sync, local, installed=installed)


GOUROU_INFOS = {
    "gourou exp": InstallInfo(Source.AUR, Reason.EXPLICIT, "0.8.1", aur_base="gourou"),
    "libzip dep": InstallInfo(Source.SYNC, Reason.DEP, "1.9.2-1", sync_db_name="extra"),
    "libzip exp": InstallInfo(Source.SYNC, Reason.EXPLICIT, "1.9.2-1", sync_db_name="extra"),
    "libzip-git exp": InstallInfo(
        Source.AUR, Reason.EXPLICIT, "1.9.2.r159.gb3ac716c-1", aur_base="libzip-git"
    ),
}


@pytest.mark.parametrize(
    "targets,expected",
    [
        (["gourou"], [{"gourou": "gourou exp"}, {"libzip": "libzip dep"}]),
        (["gourou", "libzip"], [{"gourou": "gourou exp"}, {"libzip": "libzip exp"}]),
        (["gourou", "libzip-git"], [{"gourou": "gourou exp"}, {"libzip-git": "libzip-git exp"}]),
        (["libzip-git", "gourou"], [{"gourou": "gourou exp"}, {"libzip-git": "libzip-git exp"}]),
    ],
)
def test_graph_from_targets_gourou(targets, expected):
    g = grapher(gourou_db(), FakeAUR(dict(GOUROU_PKGS)))
    layers = g.graph_from_targets(None, targets).topo_sorted_layer_map()
    want = [{name: GOUROU_INFOS[key] for name, key in layer.items()} for layer in expected]
    assert layers == want


def test_no_deps_keeps_only_make_deps():
    g = grapher(ceph_db(), FakeAUR(dict(CEPH_PKGS)), no_deps=True)
    layers = g.graph_from_targets(None, ["ceph"]).topo_sorted_layer_map()
    assert layers == [{"ceph": CEPH_INFOS["ceph exp"]}]


def test_needed_skips_up_to_date_target():
    installed = {"gourou": FakePackage(name="gourou", version="0.9", db_name="local")}
    g = grapher(gourou_db(installed), FakeAUR(dict(GOUROU_PKGS)), needed=True)
    assert g.graph_from_targets(None, ["gourou"]).topo_sorted_layer_map() == []


def test_target_with_explicit_database():
    g = grapher(FakeDB({}, {}), FakeAUR({}))
    layers = g.graph_from_targets(None, ["extra/foo>=1"]).topo_sorted_layer_map()
    assert layers == [
        {"foo": InstallInfo(Source.SYNC, Reason.EXPLICIT, "1", sync_db_name="extra")}
    ]


def test_group_target():
    db = FakeDB(
        {"gnome": None},
        {},
        groups={"gnome": [FakePackage(name="gdm", version="1", db_name="extra")]},
    )
    g = grapher(db, FakeAUR({}))
    layers = g.graph_from_targets(None, ["gnome"]).topo_sorted_layer_map()
    assert layers == [
        {"gnome": InstallInfo(Source.SYNC, Reason.EXPLICIT, "", sync_db_name="extra", is_group=True)}
    ]


def test_unresolvable_dependency_is_missing():
    app = AURPackage(name="app", package_base="app", version="1-1", depends=["ghost>=2"])
    db = FakeDB({"app": None, "ghost>=2": None}, {"ghost>=2": False})
    aur = FakeAUR({"app": app, "ghost": None}, {"ghost": []})
    layers = grapher(db, aur).graph_from_targets(None, ["app"]).topo_sorted_layer_map()
    assert layers == [
        {"app": InstallInfo(Source.AUR, Reason.EXPLICIT, "1-1", aur_base="app")},
        {"ghost": InstallInfo(Source.MISSING, Reason.DEP, ">=2")},
    ]


def _provider_setup():
    app = AURPackage(name="app", package_base="app", version="1-1", depends=["foo"])
    foo_a = AURPackage(name="foo-a", package_base="foo-a", version="1-1", provides=["foo"])
    foo_b = AURPackage(name="foo-b", package_base="foo-b", version="2-1", provides=["foo"])
    db = FakeDB({"app": None, "foo": None}, {"foo": False})
    aur = FakeAUR({"app": app, "foo": None}, {"foo": [foo_a, foo_b]})
    return db, aur


def test_provider_menu_no_confirm_picks_first():
    db, aur = _provider_setup()
    layers = grapher(db, aur).graph_from_targets(None, ["app"]).topo_sorted_layer_map()
    assert layers[1] == {"foo-a": InstallInfo(Source.AUR, Reason.DEP, "1-1", aur_base="foo-a")}


def test_provider_menu_reads_choice(capsys):
    db, aur = _provider_setup()
    answers = iter(["x", "5", "2"])
    g = Grapher(db, aur, no_confirm=False, read_input=lambda: next(answers))
    layers = g.graph_from_targets(None, ["app"]).topo_sorted_layer_map()
    assert layers[1] == {"foo-b": InstallInfo(Source.AUR, Reason.DEP, "2-1", aur_base="foo-b")}
    assert "There are 2 providers available for foo" in capsys.readouterr().out


def test_graph_sync_pkg_registers_provides():
    pkg = FakePackage(
        name="jdk11-openjdk",
        version="11.0.12.u7-1",
        db_name="community",
        provides=[Depend("java-environment", "11", DepMod.EQ)],
    )
    g = grapher(FakeDB({}, {}), FakeAUR({}))
    info = InstallInfo(Source.SYNC, Reason.EXPLICIT, pkg.version, sync_db_name="community")
    graph = g.graph_sync_pkg(None, pkg, info)
    provider = graph.get_provider_node("java-environment")
    assert provider.provider == "jdk11-openjdk"
    assert str(provider) == "java-environment=11"
    assert graph.get_node_info("jdk11-openjdk").value == info


def test_graph_aur_target_parses_provides():
    g = grapher(FakeDB({}, {}), FakeAUR({}))
    info = InstallInfo(Source.AUR, Reason.EXPLICIT, "17.2.6-2", aur_base="ceph")
    graph = g.graph_aur_target(None, CEPH_PKGS["ceph"], info)
    assert graph.get_provider_node("ceph").depend == Depend("ceph", "17.2.6-2", DepMod.EQ)
    assert graph.get_node_info("ceph").color == "black"


def test_validate_refuses_weaker_reason_and_upgrades():
    g = grapher(FakeDB({}, {}), FakeAUR({}))
    graph = DependencyGraph()
    graph.add_node("x")
    g.validate_and_set_node_info(graph, "x", NodeInfo(value=InstallInfo(Source.AUR, Reason.DEP)))
    g.validate_and_set_node_info(graph, "x", NodeInfo(value=InstallInfo(Source.AUR, Reason.EXPLICIT)))
    assert graph.get_node_info("x").value.reason == Reason.EXPLICIT
    g.validate_and_set_node_info(graph, "x", NodeInfo(value=InstallInfo(Source.AUR, Reason.MAKE_DEP)))
    assert graph.get_node_info("x").value.reason == Reason.EXPLICIT

    graph.set_node_info("y", NodeInfo(value=InstallInfo(Source.SYNC, Reason.DEP, upgrade=True)))
    g.validate_and_set_node_info(graph, "y", NodeInfo(value=InstallInfo(Source.AUR, Reason.EXPLICIT)))
    assert graph.get_node_info("y").value.source == Source.SYNC


def test_depend_on_rejects_cycles():
    graph = DependencyGraph()
    graph.depend_on("b", "a")
    graph.depend_on("c", "b")
    with pytest.raises(ValueError):
        graph.depend_on("a", "c")
    with pytest.raises(ValueError):
        graph.depend_on("a", "a")
    assert graph.exists("c")


def test_topo_layers_put_dependents_first():
    graph = DependencyGraph()
    graph.depend_on("lib", "app")
    graph.depend_on("lib", "tool")
    graph.depend_on("base", "lib")
    graph.add_node("lonely")
    layers = graph.topo_sorted_layer_map()
    assert [set(layer) for layer in layers] == [{"app", "tool", "lonely"}, {"lib"}, {"base"}]
    assert layers[0]["app"] is None


def test_provides_exists():
    graph = DependencyGraph()
    assert not graph.provides_exists("libzip")
    assert graph.get_provider_node("libzip") is None
    graph.provides("libzip", Depend("libzip", "1.0", DepMod.EQ), "libzip-git")
    assert graph.provides_exists("libzip")
    assert graph.get_provider_node("libzip").version == "1.0"


def test_reason_and_source_names():
    assert str(Reason.MAKE_DEP) == "Make Dependency"
    assert str(Source.SRCINFO) == "SRCINFO"
    assert DepMod.from_string("=<") is DepMod.ANY
    assert DepMod.from_string(">=") is DepMod.GE