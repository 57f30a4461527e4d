# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_homepage

"""
Indentation-based markup for bookmark import/export.

The format is the YAML subset the homepage editor reads and writes:

    - name: Example Folder
      children:
        - name: Example Link
          url: https://example.com

Only `name`, `url` and `children` keys are understood. Values are taken verbatim up to the
end of the line, so URLs and names containing colons need no quoting.
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

NAME_LINE = re.compile(r"^(\s*)- name:\s*(.+)")
URL_LINE = re.compile(r"^url:\s*(.+)")
LINE_BREAKS = re.compile(r"[\r\n]+")


def _field(item: Any, key: str) -> Any:
    if isinstance(item, BaseModel):
        return getattr(item, key, None)
    if isinstance(item, Mapping):
        return item.get(key)
    return None


def _single_line(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return LINE_BREAKS.sub(" ", value).strip()


def clean_bookmarks(items: Iterable[Any]) -> list[dict[str, Any]]:
    """
    Drops nodes without a name and empty URL fields, and trims whitespace. Line breaks inside
    a name or URL become spaces. A folder whose children all disappeared is kept as a plain
    entry without a `children` key.
    """
    cleaned: list[dict[str, Any]] = []
    for item in items:
        name = _single_line(_field(item, "name"))
        if not name:
            continue
        node: dict[str, Any] = {"name": name}
        url = _single_line(_field(item, "url"))
        if url:
            node["url"] = url
        children = _field(item, "children")
        if isinstance(children, list) and children:
            kept = clean_bookmarks(children)
            if kept:
                node["children"] = kept
        cleaned.append(node)
    return cleaned


def _render(nodes: list[dict[str, Any]], indent: int, out: list[str]) -> None:
    pad = "  " * indent
    for node in nodes:
        out.append(f"{pad}- name: {node['name']}\n")
        if "url" in node:
            out.append(f"{pad}  url: {node['url']}\n")
        if "children" in node:
            out.append(f"{pad}  children:\n")
            _render(node["children"], indent + 2, out)


def serialize_bookmarks(items: Iterable[Any]) -> str:
    """Renders a bookmark tree as markup text. The tree is cleaned first, so every written line parses back."""
    out: list[str] = []
    _render(clean_bookmarks(items), 0, out)
    return "".join(out)


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip())


class _MarkupParser:
    def __init__(self, text: str) -> None:
        self.lines = [line for line in text.split("\n") if line.strip()]
        self.pos = 0

    def parse_list(self, base_indent: int) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if _indent_of(line) < base_indent:
                break
            match = NAME_LINE.match(line)
            if not match or len(match.group(1)) != base_indent:
                break

            item: dict[str, Any] = {"name": match.group(2).strip()}
            self.pos += 1

            prop_indent = base_indent + 2
            while self.pos < len(self.lines):
                prop_line = self.lines[self.pos]
                if _indent_of(prop_line) != prop_indent:
                    break
                trimmed = prop_line.strip()
                if trimmed.startswith("- "):
                    break

                url_match = URL_LINE.match(trimmed)
                if url_match:
                    item["url"] = url_match.group(1).strip()
                elif trimmed == "children:":
                    self.pos += 1
                    item["children"] = self.parse_list(prop_indent + 2)
                    continue
                # Unknown keys are skipped
                self.pos += 1

            items.append(item)
        return items


def parse_bookmarks(text: str) -> list[dict[str, Any]]:
    """
    Parses markup text into a bookmark tree.

    Parsing stops at the first line that does not fit the structure; callers treat an
    empty result as invalid input.
    """
    return _MarkupParser(text).parse_list(0)
