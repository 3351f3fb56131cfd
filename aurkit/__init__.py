"""Version checks, dependency graphs, PKGBUILD fetching, review menus and news for AUR and repository packages."""

__version__ = "12.0.0"