"""Interactive menus for cleaning, diffing and editing PKGBUILD directories."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from typing import (
    Any,
    Callable,
    Collection,
    List,
    Mapping,
    Optional,
    Sequence,
    TextIO,
    Tuple,
)

from aurkit.intrange import parse_number_menu
from aurkit.multierror import MultiError

__all__ = [
    "GIT_EMPTY_TREE",
    "GIT_DIFF_REF_NAME",
    "UserAbort",
    "selection_menu",
    "clean_fn",
    "diff_fn",
    "edit_fn",
]

_log = logging.getLogger(__name__)

GIT_EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
GIT_DIFF_REF_NAME = "AUR_SEEN"

_BOLD = "\x1b[1m"
_GREEN = "\x1b[32m"
_BLUE = "\x1b[34m"
_MAGENTA = "\x1b[35m"
_CYAN = "\x1b[36m"
_RESET = "\x1b[0m"

_GIT_ERRORS = (subprocess.SubprocessError, OSError)

ReadInput = Callable[[], str]


class UserAbort(Exception):
    """The user chose to abort the operation."""

    def __init__(self) -> None:
        super().__init__("aborting due to user")


def _bold(text: str) -> str:
    return _BOLD + text + _RESET


def _cyan(text: str) -> str:
    return _CYAN + text + _RESET


def _green(text: str) -> str:
    return _GREEN + text + _RESET


def _magenta(text: str) -> str:
    return _MAGENTA + text + _RESET


def _info(out: TextIO, message: str) -> None:
    out.write(f"{_bold(_BLUE + '::' + _RESET)} {_bold(message)}\n")


def _get_input(out: TextIO, read_input: ReadInput, default: str, no_confirm: bool) -> str:
    """Return the default answer when one is set or confirmation is off, else read a line."""
    if default or no_confirm:
        out.write(default + "\n")
        return default
    return read_input().strip()


def _continue_task(out: TextIO, read_input: ReadInput, question: str, preset: bool) -> bool:
    """Ask a yes/no question; an empty or unreadable answer means ``preset``."""
    postfix = " [Y/n] " if preset else " [y/N] "
    _info(out, question + postfix)
    try:
        response = read_input().strip().lower()
    except EOFError:
        return preset
    if response in ("y", "yes"):
        return True
    if response in ("n", "no"):
        return False
    return preset


def _number_menu(
    out: TextIO,
    pkgbuild_dirs: Mapping[str, str],
    bases: Sequence[str],
    installed: Collection[str],
) -> None:
    lines = []
    for n, base in enumerate(bases):
        line = f"{_magenta(format(len(pkgbuild_dirs) - n, '3d'))} {_bold(base):<40}"
        if base in installed:
            line += _bold(_green(" (Installed)"))
        if os.path.exists(pkgbuild_dirs.get(base, "")):
            line += _bold(_green(" (Build Files Exist)"))
        lines.append(line + "\n")
    out.write("".join(lines))


def selection_menu(
    out: TextIO,
    pkgbuild_dirs: Mapping[str, str],
    bases: Sequence[str],
    installed: Collection[str],
    message: str,
    no_confirm: bool,
    default_answer: str,
    skip: Optional[Callable[[str], bool]] = None,
    read_input: ReadInput = input,
) -> List[str]:
    """Show the numbered bases and return those the user selects.

    The first base is numbered highest and the last ``1``. Raises
    :class:`UserAbort` when the answer is ``abort``.
    """
    _number_menu(out, pkgbuild_dirs, bases, installed)
    _info(out, message)
    _info(
        out,
        f"{_cyan('[N]one')} [A]ll [Ab]ort [I]nstalled [No]tInstalled or (1 2 3, 1-3, ^4)",
    )

    answer = _get_input(out, read_input, default_answer, no_confirm)
    include, exclude, other_include, other_exclude = parse_number_menu(answer)
    is_include = not exclude and not other_exclude

    if other_include & {"abort", "ab"}:
        raise UserAbort()
    if other_include & {"n", "none"}:
        return []

    selected: List[str] = []
    total = len(bases)
    for i, base in enumerate(bases):
        if skip is not None and skip(base):
            continue

        number = total - i
        is_installed = base in installed

        if not is_include and exclude.get(number):
            continue
        if is_installed and other_include & {"i", "installed"}:
            selected.append(base)
            continue
        if not is_installed and other_include & {"no", "notinstalled"}:
            selected.append(base)
            continue
        if other_include & {"a", "all"}:
            selected.append(base)
            continue
        if is_include and (include.get(number) or base in other_include):
            selected.append(base)
        if not is_include and not exclude.get(number) and base not in other_exclude:
            selected.append(base)

    return selected


def clean_fn(
    cmd_builder: Any,
    out: TextIO,
    pkgbuild_dirs_by_base: Mapping[str, str],
    answer: str,
    no_confirm: bool,
    read_input: ReadInput = input,
) -> None:
    """Offer to reset and clean the existing build directories."""
    if not pkgbuild_dirs_by_base:
        return
    if not any(os.path.exists(d) for d in pkgbuild_dirs_by_base.values()):
        return

    def skip(base: str) -> bool:
        return not os.path.exists(pkgbuild_dirs_by_base[base])

    to_clean = selection_menu(
        out,
        pkgbuild_dirs_by_base,
        list(pkgbuild_dirs_by_base),
        set(),
        "Packages to cleanBuild?",
        no_confirm,
        answer,
        skip,
        read_input,
    )

    for n, base in enumerate(to_clean, 1):
        directory = pkgbuild_dirs_by_base[base]
        _info(out, f"Deleting ({n}/{len(to_clean)}): {_cyan(directory)}")
        for args in (("reset", "--hard", "origin/HEAD"), ("clean", "-fdx")):
            try:
                cmd_builder.show(cmd_builder.build_git_cmd(directory, *args))
            except _GIT_ERRORS:
                _log.warning("Unable to clean: %s", directory)
                raise


def _has_last_seen_ref(cmd_builder: Any, directory: str) -> bool:
    try:
        cmd_builder.capture(
            cmd_builder.build_git_cmd(directory, "rev-parse", "--quiet", "--verify", GIT_DIFF_REF_NAME)
        )
    except _GIT_ERRORS:
        return False
    return True


def _capture(cmd_builder: Any, directory: str, *args: str) -> str:
    try:
        stdout, _ = cmd_builder.capture(cmd_builder.build_git_cmd(directory, *args))
    except _GIT_ERRORS as exc:
        stderr = getattr(exc, "stderr", "") or ""
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", "replace")
        raise RuntimeError(f"{stderr} {exc}") from exc
    return stdout


def _last_seen_hash(cmd_builder: Any, directory: str) -> str:
    """The last reviewed commit, or the empty tree if nothing was reviewed."""
    if not _has_last_seen_ref(cmd_builder, directory):
        return GIT_EMPTY_TREE
    return _capture(cmd_builder, directory, "rev-parse", GIT_DIFF_REF_NAME).split("\n")[0]


def _has_diff(cmd_builder: Any, directory: str) -> bool:
    """Whether the upstream head differs from the last reviewed commit."""
    if not _has_last_seen_ref(cmd_builder, directory):
        return True
    stdout = _capture(cmd_builder, directory, "rev-parse", GIT_DIFF_REF_NAME, "HEAD@{upstream}")
    lines: List[str] = stdout.split("\n") + [""]
    return lines[0] != lines[1]


def _show_diffs(
    cmd_builder: Any,
    out: TextIO,
    pkgbuild_dirs: Mapping[str, str],
    bases: Sequence[str],
    use_color: bool,
) -> None:
    errors = MultiError()
    for base in bases:
        directory = pkgbuild_dirs[base]
        try:
            start = _last_seen_hash(cmd_builder, directory)
            if start != GIT_EMPTY_TREE and not _has_diff(cmd_builder, directory):
                _log.warning("%s: No changes -- skipping", base)
                continue
        except RuntimeError as exc:
            errors.add(exc)
            continue

        args = [
            "diff",
            start + "..HEAD@{upstream}",
            "--src-prefix",
            directory + "/",
            "--dst-prefix",
            directory + "/",
            "--",
            ".",
            ":(exclude).SRCINFO",
            "--color=always" if use_color else "--color=never",
        ]
        try:
            cmd_builder.show(cmd_builder.build_git_cmd(directory, *args))
        except _GIT_ERRORS:
            pass
    errors.raise_for_errors()


def _update_seen_refs(
    cmd_builder: Any, pkgbuild_dirs: Mapping[str, str], bases: Sequence[str]
) -> None:
    errors = MultiError()
    for base in bases:
        try:
            _capture(cmd_builder, pkgbuild_dirs[base], "update-ref", GIT_DIFF_REF_NAME, "HEAD")
        except RuntimeError as exc:
            errors.add(exc)
    errors.raise_for_errors()


def diff_fn(
    cmd_builder: Any,
    out: TextIO,
    pkgbuild_dirs_by_base: Mapping[str, str],
    answer: str,
    no_confirm: bool,
    use_color: bool = False,
    read_input: ReadInput = input,
) -> None:
    """Show the unreviewed changes of the selected PKGBUILD repositories.

    After confirmation the shown state is marked as reviewed; declining
    raises :class:`UserAbort`.
    """
    if not pkgbuild_dirs_by_base:
        return

    to_diff = selection_menu(
        out,
        pkgbuild_dirs_by_base,
        list(pkgbuild_dirs_by_base),
        set(),
        "Diffs to show?",
        no_confirm,
        answer,
        None,
        read_input,
    )
    if not to_diff:
        return

    _show_diffs(cmd_builder, out, pkgbuild_dirs_by_base, to_diff, use_color)
    out.write("\n")

    if not _continue_task(out, read_input, "Proceed with install?", True):
        raise UserAbort()

    _update_seen_refs(cmd_builder, pkgbuild_dirs_by_base, to_diff)


def _lookup(words: Sequence[str], extra: Optional[Sequence[str]] = None) -> Optional[Tuple[str, List[str]]]:
    if not words:
        return None
    path = shutil.which(words[0])
    if path is None:
        _log.error("exec: %r: executable file not found in $PATH", words[0])
        return None
    return path, list(extra if extra is not None else words[1:])


def _editor(
    out: TextIO, editor_config: str, editor_flags: str, no_confirm: bool, read_input: ReadInput
) -> Tuple[str, List[str]]:
    """Resolve the editor: configuration, then $VISUAL, then $EDITOR, then ask."""
    if editor_config:
        found = _lookup([editor_config], editor_flags.split())
        if found:
            return found
    for variable in ("VISUAL", "EDITOR"):
        found = _lookup(os.environ.get(variable, "").split())
        if found:
            return found

    _log.error("$EDITOR is not set")
    _log.warning("Add $EDITOR or $VISUAL to your environment variables")

    while True:
        _info(out, "Edit PKGBUILD with?")
        try:
            answer = _get_input(out, read_input, "", no_confirm)
        except EOFError as exc:
            raise RuntimeError("no editor available") from exc
        if not answer and no_confirm:
            raise RuntimeError("no editor available")
        found = _lookup(shlex.split(answer) if answer else [])
        if found:
            return found


def edit_fn(
    out: TextIO,
    pkgbuild_dirs_by_base: Mapping[str, str],
    editor: str,
    editor_flags: str,
    answer: str,
    no_confirm: bool,
    read_input: ReadInput = input,
) -> None:
    """Open the PKGBUILDs of the selected bases in an editor.

    Raises RuntimeError when the editor fails and :class:`UserAbort` when
    the user declines to proceed.
    """
    if not pkgbuild_dirs_by_base:
        return

    to_edit = selection_menu(
        out,
        pkgbuild_dirs_by_base,
        list(pkgbuild_dirs_by_base),
        set(),
        "PKGBUILDs to edit?",
        no_confirm,
        answer,
        None,
        read_input,
    )
    if not to_edit:
        return

    files = [os.path.join(pkgbuild_dirs_by_base[base], "PKGBUILD") for base in to_edit]
    program, args = _editor(out, editor, editor_flags, no_confirm, read_input)
    try:
        result = subprocess.run([program, *args, *files], check=False)
    except OSError as exc:
        raise RuntimeError(f"editor did not exit successfully, aborting: {exc}") from exc
    if result.returncode != 0:
        raise RuntimeError(
            f"editor did not exit successfully, aborting: exit status {result.returncode}"
        )

    out.write("\n")
    if not _continue_task(out, read_input, "Proceed with install?", True):
        raise UserAbort()