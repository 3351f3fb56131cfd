"""Retrieval of PKGBUILD files and PKGBUILD git repositories."""

from __future__ import annotations

import enum
import os
import shutil
import subprocess
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlencode

import requests

from aurkit.dep import split_db_from_name
from aurkit.multierror import MultiError

__all__ = [
    "MAX_CONCURRENT_FETCH",
    "ABS_PACKAGE_URL",
    "TargetMode",
    "ABSPackageNotFoundError",
    "AURPackageNotFoundError",
    "PKGBUILDRepoError",
    "GitCommandBuilder",
    "package_pkgbuild_url",
    "package_repo_url",
    "abs_pkgbuild",
    "abs_pkgbuild_repo",
    "aur_pkgbuild",
    "aur_pkgbuild_repo",
    "aur_pkgbuild_repos",
    "pkgbuilds",
    "pkgbuild_repos",
]

MAX_CONCURRENT_FETCH = 20
ABS_PACKAGE_URL = "https://gitlab.archlinux.org/archlinux/packaging/packages"

_CYAN = "\x1b[36m"
_BOLD = "\x1b[1m"
_BLUE = "\x1b[34m"
_RESET = "\x1b[0m"

_print_lock = threading.Lock()


class TargetMode(enum.Enum):
    """Where targets are looked up: anywhere, only in the AUR or only in repos."""

    ANY = "any"
    AUR = "aur"
    REPO = "repo"

    def at_least_repo(self) -> bool:
        """True when repositories are searched."""
        return self in (TargetMode.ANY, TargetMode.REPO)

    def at_least_aur(self) -> bool:
        """True when the AUR is searched."""
        return self in (TargetMode.ANY, TargetMode.AUR)


class ABSPackageNotFoundError(Exception):
    """The package was not found in the repositories."""

    def __init__(self, pkg_name: str = "") -> None:
        super().__init__("package not found in repos")
        self.pkg_name = pkg_name


class AURPackageNotFoundError(Exception):
    """The package was not found in the AUR."""

    def __init__(self, pkg_name: str) -> None:
        super().__init__(pkg_name)
        self.pkg_name = pkg_name

    def __str__(self) -> str:
        return f"package not found in AUR : {self.pkg_name}\n"


class PKGBUILDRepoError(Exception):
    """Fetching a PKGBUILD repository failed."""

    def __init__(self, inner: BaseException, pkg_name: str, err_out: str = "") -> None:
        super().__init__(pkg_name)
        self.inner = inner
        self.pkg_name = pkg_name
        self.err_out = err_out

    def __str__(self) -> str:
        return f"error fetching {self.pkg_name}: {self.err_out} \n\t context: {self.inner}\n"


@dataclass
class GitCommandBuilder:
    """Builds and runs git commands."""

    git_bin: str = "git"
    git_flags: Sequence[str] = field(default_factory=list)

    def build_git_cmd(self, directory: str, *args: str) -> List[str]:
        """Return the argument list of a git command run inside ``directory``."""
        cmd = [self.git_bin, *self.git_flags]
        if directory:
            cmd += ["-C", directory]
        cmd += args
        return cmd

    def capture(self, cmd: Sequence[str]) -> Tuple[str, str]:
        """Run ``cmd`` and return its stdout and stderr.

        Raises ``subprocess.CalledProcessError`` when it exits unsuccessfully.
        """
        proc = subprocess.run(list(cmd), capture_output=True, text=True, check=False)
        if proc.returncode != 0:
            raise subprocess.CalledProcessError(proc.returncode, list(cmd), proc.stdout, proc.stderr)
        return proc.stdout, proc.stderr

    def show(self, cmd: Sequence[str]) -> None:
        """Run ``cmd`` attached to the terminal."""
        subprocess.run(list(cmd), check=True)


class _Package(Protocol):
    name: str
    base: str
    db_name: str


class _DBSearcher(Protocol):
    def sync_package(self, name: str) -> Optional[_Package]: ...

    def satisfier_from_db(self, name: str, db_name: str) -> Optional[_Package]: ...


def _operation_info(message: str) -> None:
    with _print_lock:
        print(f"{_BOLD}{_BLUE}:: {_RESET}{_BOLD}{message}{_RESET}")


def _cyan(text: str) -> str:
    return _CYAN + text + _RESET


def package_pkgbuild_url(pkg_name: str) -> str:
    """URL of the raw PKGBUILD of a repository package."""
    return f"{ABS_PACKAGE_URL}/{pkg_name}/-/raw/main/PKGBUILD"


def package_repo_url(pkg_name: str) -> str:
    """URL of the git repository of a repository package."""
    return f"{ABS_PACKAGE_URL}/{pkg_name}.git"


def _http_get(http_client: Any, url: str) -> Any:
    if http_client is None:
        return requests.get(url, timeout=30)
    return http_client.get(url)


def abs_pkgbuild(http_client: Any, db_name: str, pkg_name: str) -> bytes:
    """Download the PKGBUILD of a repository package."""
    resp = _http_get(http_client, package_pkgbuild_url(pkg_name))
    if resp.status_code != 200:
        raise ABSPackageNotFoundError(pkg_name)
    return resp.content


def aur_pkgbuild(http_client: Any, pkg_name: str, aur_url: str) -> bytes:
    """Download the PKGBUILD of an AUR package."""
    pkg_url = aur_url + "/cgit/aur.git/plain/PKGBUILD?" + urlencode({"h": pkg_name})
    resp = _http_get(http_client, pkg_url)
    if resp.status_code != 200:
        raise AURPackageNotFoundError(pkg_name)
    return resp.content


def _run_git(cmd_builder: Any, cmd: Sequence[str], pkg_name: str) -> None:
    try:
        cmd_builder.capture(cmd)
    except (subprocess.SubprocessError, OSError) as exc:
        stderr = getattr(exc, "stderr", "") or ""
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", "replace")
        raise PKGBUILDRepoError(exc, pkg_name, stderr) from exc


def _download_git_repo(
    cmd_builder: Any,
    pkg_url: str,
    pkg_name: str,
    dest: str,
    force: bool,
    *git_args: str,
) -> bool:
    """Clone or update a repository; return True when it was newly cloned."""
    dest = os.fspath(dest)
    final_dir = os.path.join(dest, pkg_name)
    git_dir = os.path.join(final_dir, ".git")

    try:
        os.stat(git_dir)
        exists = True
    except FileNotFoundError:
        exists = False
    except OSError as exc:
        raise PKGBUILDRepoError(exc, pkg_name, f"error reading {git_dir}") from exc

    if exists and not force:
        cmd = cmd_builder.build_git_cmd(final_dir, "pull", "--rebase", "--autostash")
        _run_git(cmd_builder, cmd, pkg_name)
        return False

    if force and os.path.lexists(final_dir):
        try:
            if os.path.isdir(final_dir) and not os.path.islink(final_dir):
                shutil.rmtree(final_dir)
            else:
                os.remove(final_dir)
        except OSError as exc:
            raise PKGBUILDRepoError(exc, pkg_name, "") from exc

    cmd = cmd_builder.build_git_cmd(dest, "clone", "--no-progress", *git_args, pkg_url, pkg_name)
    _run_git(cmd_builder, cmd, pkg_name)
    return True


def abs_pkgbuild_repo(cmd_builder: Any, db_name: str, pkg_name: str, dest: str, force: bool) -> bool:
    """Clone or update the PKGBUILD repository of a repository package."""
    return _download_git_repo(
        cmd_builder, package_repo_url(pkg_name), pkg_name, dest, force, "--single-branch"
    )


def aur_pkgbuild_repo(cmd_builder: Any, aur_url: str, pkg_name: str, dest: str, force: bool) -> bool:
    """Clone or update the PKGBUILD repository of an AUR package."""
    return _download_git_repo(cmd_builder, f"{aur_url}/{pkg_name}.git", pkg_name, dest, force)


_FETCH_ERRORS = (
    ABSPackageNotFoundError,
    AURPackageNotFoundError,
    PKGBUILDRepoError,
    requests.RequestException,
    OSError,
)


def _finish(errs: MultiError, results: Dict[str, Any]) -> None:
    if errs.errors:
        errs.results = results  # partial results stay reachable from the error
        errs.raise_for_errors()


def aur_pkgbuild_repos(
    cmd_builder: Any, targets: Sequence[str], aur_url: str, dest: str, force: bool
) -> Dict[str, bool]:
    """Fetch several AUR repositories concurrently.

    Returns a mapping of target to whether it was newly cloned. If any fetch
    fails a ``MultiError`` is raised whose ``results`` holds the successes.
    """
    cloned: Dict[str, bool] = {}
    lock = threading.Lock()
    errs = MultiError()

    def fetch(target: str) -> None:
        progress = 0
        try:
            new_clone = aur_pkgbuild_repo(cmd_builder, aur_url, target, dest, force)
        except _FETCH_ERRORS as exc:
            errs.add(exc)
        else:
            with lock:
                cloned[target] = new_clone
                progress = len(cloned)
        _operation_info(f"({progress}/{len(targets)}) Downloaded PKGBUILD: {_cyan(target)}")

    with ThreadPoolExecutor(max_workers=MAX_CONCURRENT_FETCH) as pool:
        list(pool.map(fetch, targets))

    _finish(errs, cloned)
    return cloned


def _url_name(pkg: _Package) -> str:
    return pkg.base or pkg.name


def _package_usable_name(
    db_searcher: _DBSearcher, aur_client: Any, target: str, mode: TargetMode
) -> Tuple[str, str, bool, bool]:
    """Resolve a target to ``(db_name, pkg_name, is_aur, skip)``."""
    db_name, name = split_db_from_name(target)

    if db_name != "aur" and mode.at_least_repo():
        if db_name:
            pkg = db_searcher.satisfier_from_db(name, db_name)
        else:
            pkg = db_searcher.sync_package(name)

        if pkg is not None:
            return pkg.db_name, _url_name(pkg), False, False

        if db_name:
            return db_name, name, True, True

    if mode is TargetMode.REPO:
        return db_name, name, True, True

    try:
        found = aur_client.get(by="name", needles=[name], contains=False)
    except Exception as exc:  # any failure of the AUR client only skips the target
        with _print_lock:
            print(f"warning: {exc}", file=sys.stderr)
        return db_name, name, True, True

    if not found:
        return db_name, name, True, True

    return "aur", name, True, False


def _resolve(
    db_searcher: _DBSearcher, aur_client: Any, targets: Sequence[str], mode: TargetMode
) -> List[Tuple[str, str, str, bool]]:
    resolved = []
    for target in targets:
        db_name, name, is_aur, skip = _package_usable_name(db_searcher, aur_client, target, mode)
        if not skip:
            resolved.append((target, db_name, name, is_aur))
    return resolved


def pkgbuilds(
    db_searcher: _DBSearcher,
    aur_client: Any,
    http_client: Any,
    targets: Sequence[str],
    aur_url: str,
    mode: TargetMode,
) -> Dict[str, bytes]:
    """Download the PKGBUILDs of targets from the repositories or the AUR.

    Targets that cannot be found are left out. Download failures raise a
    ``MultiError`` whose ``results`` holds what was fetched.
    """
    fetched: Dict[str, bytes] = {}
    lock = threading.Lock()
    errs = MultiError()

    def fetch(job: Tuple[str, str, str, bool]) -> None:
        target, db_name, pkg_name, is_aur = job
        try:
            if is_aur:
                body = aur_pkgbuild(http_client, pkg_name, aur_url)
            else:
                body = abs_pkgbuild(http_client, db_name, pkg_name)
        except _FETCH_ERRORS as exc:
            errs.add(exc)
        else:
            with lock:
                fetched[target] = body

    jobs = _resolve(db_searcher, aur_client, targets, mode)
    with ThreadPoolExecutor(max_workers=MAX_CONCURRENT_FETCH) as pool:
        list(pool.map(fetch, jobs))

    _finish(errs, fetched)
    return fetched


def pkgbuild_repos(
    db_searcher: _DBSearcher,
    aur_client: Any,
    cmd_builder: Any,
    targets: Sequence[str],
    mode: TargetMode,
    aur_url: str,
    dest: str,
    force: bool,
) -> Dict[str, bool]:
    """Clone or update the PKGBUILD repositories of targets.

    Returns a mapping of target to whether it was newly cloned. Failures
    raise a ``MultiError`` whose ``results`` holds the successes.
    """
    cloned: Dict[str, bool] = {}
    lock = threading.Lock()
    errs = MultiError()

    def fetch(job: Tuple[str, str, str, bool]) -> None:
        target, db_name, pkg_name, is_aur = job
        progress = 0
        try:
            if is_aur:
                new_clone = aur_pkgbuild_repo(cmd_builder, aur_url, pkg_name, dest, force)
            else:
                new_clone = abs_pkgbuild_repo(cmd_builder, db_name, pkg_name, dest, force)
        except _FETCH_ERRORS as exc:
            errs.add(exc)
        else:
            with lock:
                cloned[target] = new_clone
                progress = len(cloned)

        source = "PKGBUILD" if is_aur else "PKGBUILD from ABS"
        _operation_info(f"({progress}/{len(targets)}) Downloaded {source}: {_cyan(pkg_name)}")

    jobs = _resolve(db_searcher, aur_client, targets, mode)
    with ThreadPoolExecutor(max_workers=MAX_CONCURRENT_FETCH) as pool:
        list(pool.map(fetch, jobs))

    _finish(errs, cloned)
    return cloned