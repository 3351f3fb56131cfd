"""Fetching and rendering of the distribution news feed."""

from __future__ import annotations

import html
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

import requests

__all__ = [
    "NEWS_URL",
    "NewsItem",
    "parse_news",
    "parse_feed",
    "fetch_news",
    "render_news",
    "print_news_feed",
]

NEWS_URL = "https://archlinux.org/feeds/news"

_BOLD = "\x1b[1m"
_MAGENTA = "\x1b[35m"
_CYAN = "\x1b[36m"
_RESET = "\x1b[0m"

_DATE_FORMAT = "%a, %d %b %Y %H:%M:%S %z"


def _bold(text: str) -> str:
    return _BOLD + text + _RESET


def _magenta(text: str) -> str:
    return _MAGENTA + text + _RESET


def _format_day(moment: datetime) -> str:
    return datetime.fromtimestamp(int(moment.timestamp())).strftime("%Y-%m-%d")


@dataclass
class NewsItem:
    """One entry of the news feed."""

    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""
    creator: str = ""

    def render(self, build_time: Optional[datetime], show_all: bool, quiet: bool) -> Optional[str]:
        """Render the item, or return None when it predates ``build_time``.

        Items are only filtered when ``show_all`` is false and a build time
        is given. An unparsable date is reported on stderr and the item is
        shown without one.
        """
        day = ""
        try:
            date = datetime.strptime(self.pub_date, _DATE_FORMAT)
        except ValueError as exc:
            print(exc, file=sys.stderr)
        else:
            day = _format_day(date)
            if not show_all and build_time is not None:
                if build_time.tzinfo is None:
                    build_time = build_time.replace(tzinfo=timezone.utc)
                if build_time > date:
                    return None

        lines = [f"{_bold(_magenta(day))} {_bold(self.title.strip())}"]
        if not quiet:
            lines.append(parse_news(self.description).strip())
        return "\n".join(lines) + "\n"


def parse_news(text: str) -> str:
    """Turn the small HTML subset used by the feed into terminal text."""
    out: List[str] = []
    tag: List[str] = []
    escape: List[str] = []
    in_tag = False
    in_escape = False

    for char in text:
        if in_tag:
            if char == ">":
                in_tag = False
                name = "".join(tag)
                if name == "code":
                    out.append(_CYAN)
                elif name == "/code":
                    out.append(_RESET)
                elif name == "/p":
                    out.append("\n")
            else:
                tag.append(char)
            continue

        if in_escape:
            escape.append(char)
            if char == ";":
                in_escape = False
                out.append(html.unescape("".join(escape)))
            continue

        if char == "<":
            in_tag = True
            tag = []
        elif char == "&":
            in_escape = True
            escape = [char]
        else:
            out.append(char)

    out.append(_RESET)
    return "".join(out)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].rsplit(":", 1)[-1]


def _child_text(elem: ET.Element, name: str) -> str:
    for child in elem:
        if _local(child.tag) == name:
            return "".join(child.itertext())
    return ""


def parse_feed(body: Union[bytes, str]) -> List[NewsItem]:
    """Parse an RSS document into its news items, in feed order."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    root = ET.fromstring(body.strip())

    items: List[NewsItem] = []
    for channel in (c for c in root if _local(c.tag) == "channel"):
        for entry in (e for e in channel if _local(e.tag) == "item"):
            items.append(
                NewsItem(
                    title=_child_text(entry, "title"),
                    link=_child_text(entry, "link"),
                    description=_child_text(entry, "description"),
                    pub_date=_child_text(entry, "pubDate"),
                    creator=_child_text(entry, "creator"),
                )
            )
        break
    return items


def fetch_news(url: str = NEWS_URL) -> bytes:
    """Download the raw news feed."""
    response = requests.get(url, timeout=30)
    return response.content


def render_news(
    body: Union[bytes, str],
    cut_off_date: Optional[datetime],
    bottom_up: bool,
    show_all: bool,
    quiet: bool,
) -> str:
    """Render a feed document; oldest first when ``bottom_up`` is set."""
    items = parse_feed(body)
    if bottom_up:
        items.reverse()
    rendered = (item.render(cut_off_date, show_all, quiet) for item in items)
    return "".join(r for r in rendered if r is not None)


def print_news_feed(
    cut_off_date: Optional[datetime],
    bottom_up: bool,
    show_all: bool,
    quiet: bool,
    fetch: Optional[Callable[[], Union[bytes, str]]] = None,
) -> None:
    """Fetch the news feed and print it to standard output."""
    body = (fetch or fetch_news)()
    sys.stdout.write(render_news(body, cut_off_date, bottom_up, show_all, quiet))