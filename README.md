# aurkit

aurkit is a library of building blocks for tools that install packages from
pacman repositories and the AUR.

## Modules

- **`aurkit.version`**: `ver_cmp(v1, v2)` compares `[epoch:]version[-release]`
  strings the way pacman does (negative, zero or positive).
  `arch_is_supported(arches, arch)` accepts `"any"` or a configured
  architecture. `Upgrade` and `SyncUpgrade` are plain records.
- **`aurkit.dep`**: `split_dep("foo>=1.0")` gives `("foo", ">=", "1.0")`.
  `ver_satisfies`, `pkg_satisfies`, `provide_satisfies` and `satisfies_aur`
  check whether a version, package or provide fulfils a dependency.
  `AURPackage` holds AUR metadata (`AURPackage.from_dict` reads an AUR RPC
  result object). `to_target("core/linux>=6.0")` returns a `Target` with
  `db`, `name`, `mod` and `version`.
- **`aurkit.intrange`**: `parse_number_menu("1 2-4 ^5 all")` returns
  `(include, exclude, other_include, other_exclude)`: two `IntRanges` lists
  and two sets of lower-cased words. `IntRange.get(n)` and `IntRanges.get(n)`
  test membership.
- **`aurkit.multierror`**: `MultiError` collects errors from several threads;
  `add(error)` records one and `raise_for_errors()` raises the collection if
  it holds any.
- **`aurkit.news`**: `parse_feed` reads the news RSS feed into `NewsItem`s,
  `parse_news` turns the feed's small HTML subset into terminal text, and
  `render_news` renders a feed, optionally oldest first and leaving out items
  older than a cut-off date. `print_news_feed` fetches the feed (with
  `fetch_news` or a callable you pass) and prints it.
- **`aurkit.download`**: `aur_pkgbuild` and `abs_pkgbuild` download single
  PKGBUILD files; `pkgbuilds` resolves several targets and downloads them
  concurrently. `aur_pkgbuild_repo` and `abs_pkgbuild_repo` clone or update a
  PKGBUILD git repository and return whether it was newly cloned;
  `aur_pkgbuild_repos` does this for several AUR packages and
  `pkgbuild_repos` for targets from the AUR or the repositories. Git is run
  through a `GitCommandBuilder`. When some fetches fail, a `MultiError` is
  raised whose `results` attribute holds what succeeded. `TargetMode`
  chooses whether repositories, the AUR or both are searched.
- **`aurkit.graph`**: `Grapher.graph_from_targets` builds a
  `DependencyGraph` from repository packages, groups, AUR packages and their
  provides, asking the user to choose when several AUR packages provide a
  dependency. `DependencyGraph.topo_sorted_layer_map()` returns the install
  order as a list of layers mapping names to `InstallInfo`.
- **`aurkit.menus`**: `selection_menu` shows numbered package bases and
  returns the chosen ones. `clean_fn` resets and cleans selected build
  directories, `diff_fn` shows unreviewed git changes and marks them as seen
  (the `AUR_SEEN` ref), and `edit_fn` opens selected PKGBUILDs in an editor.
  Declining to proceed raises `UserAbort`.

## Example

```python
from aurkit.dep import to_target
from aurkit.intrange import parse_number_menu

target = to_target("extra/python>=3.10")
print(target.dep_string())      # python>=3.10

include, exclude, words, not_words = parse_number_menu("1-3 ^2")
print(exclude.get(2))           # True
```

## What aurkit does not do

- It has no command-line program.
- It does not read the pacman database. `Grapher` expects an object with
  `sync_satisfier`, `packages_from_group`, `local_package` and
  `local_satisfier_exists`; `pkgbuilds` and `pkgbuild_repos` expect one with
  `sync_package` and `satisfier_from_db`.
- It has no AUR RPC client. Pass an object whose
  `get(by=..., needles=..., contains=...)` returns `AURPackage`s.
- It does not parse `.SRCINFO` files, build packages or install them.

## Installation

```
pip install .
```

## Running the tests

```
pip install .[test]
pytest
```