"""Documentation files: indexed as whole-file units, headings exported."""

from __future__ import annotations

import re

from coderecall.index._internal.parsing.base import LanguageParser, ParsedFile

_MD_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_RST_UNDERLINE = re.compile(r"^([=\-~^\"'`#*+])\1{2,}\s*$")


class DocumentParser(LanguageParser):
    language = "markdown"
    extensions = frozenset({".md", ".mdx", ".rst", ".txt"})

    def parse(self, path: str, text: str) -> ParsedFile:
        if path.endswith(".rst"):
            headings = _rst_headings(text)
            language = "restructuredtext"
        elif path.endswith(".txt"):
            headings = []
            language = "text"
        else:
            headings = _markdown_headings(text)
            language = self.language
        return ParsedFile(path=path, language=language, headings=headings, exports=list(headings))


def _markdown_headings(text: str) -> list[str]:
    headings: list[str] = []
    in_fence = False
    for line in text.splitlines():
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _MD_HEADING.match(line)
        if match:
            headings.append(match.group(2))
    return headings


def _rst_headings(text: str) -> list[str]:
    lines = text.splitlines()
    headings: list[str] = []
    for prev, line in zip(lines, lines[1:], strict=False):
        title = prev.strip()
        if title and _RST_UNDERLINE.match(line) and len(line.rstrip()) >= len(title):
            headings.append(title)
    return headings
