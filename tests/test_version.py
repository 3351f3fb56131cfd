import pytest

from aurkit.version import SyncUpgrade, arch_is_supported, ver_cmp


def test_equal_versions_compare_equal():
    assert ver_cmp("1.2.3-1", "1.2.3-1") == 0


@pytest.mark.parametrize(
    "older,newer",
    [
        ("1.0", "1.1"),
        ("1.0-1", "1.0-2"),
        ("2.0", "1:1.0"),
        ("1.9", "1.10"),
        ("6.0.100-1", "6.0.101-1"),
    ],
)
def test_ordering_is_antisymmetric(older, newer):
    assert ver_cmp(older, newer) < 0
    assert ver_cmp(newer, older) > 0


@pytest.mark.parametrize(
    "older,newer",
    [
        ("1.0a", "1.0alpha"),
        ("1.0alpha", "1.0b"),
        ("1.0b", "1.0beta"),
        ("1.0beta", "1.0p"),
        ("1.0p", "1.0pre"),
        ("1.0pre", "1.0rc"),
        ("1.0rc", "1.0"),
        ("1.0", "1.0.a"),
        ("1.0.a", "1.0.1"),
    ],
)
def test_documented_pacman_ordering(older, newer):
    assert ver_cmp(older, newer) < 0
    assert ver_cmp(newer, older) > 0


def test_leading_zeros_are_ignored():
    assert ver_cmp("1.01", "1.1") == 0


def test_release_only_compared_when_both_present():
    assert ver_cmp("1.0", "1.0-5") == 0
    assert ver_cmp("1.0-5", "1.0") == 0


def test_missing_epoch_is_zero():
    assert ver_cmp("0:1.0", "1.0") == 0


def test_arch_any_is_always_supported():
    assert arch_is_supported([], "any") is True


def test_arch_membership():
    assert arch_is_supported(["x86_64", ""], "x86_64") is True
    assert arch_is_supported(["x86_64", ""], "") is True
    assert arch_is_supported(["x86_64"], "aarch64") is False


def test_sync_upgrade_default_local_version():
    up = SyncUpgrade(package=object())
    assert up.local_version == "-"
    assert up.reason == 0