"""
Markdown parser for generated lesson text.

Splits lesson markdown into second-level sections. Text before the first
section is kept as a preamble so the path builder can turn it into an
overview step.
"""

import re
from dataclasses import dataclass, field

_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_FENCE = re.compile(r"^\s*(```|~~~)")
_LIST_ITEM = re.compile(r"^\s*[-*+]\s+(.+)$")


@dataclass
class ContentSection:
    """A second-level heading and everything under it."""

    title: str
    content: str
    line_number: int = 0

    @property
    def word_count(self) -> int:
        return len(self.content.split())

    @property
    def list_items(self) -> list[str]:
        """Bullet list entries of the section body."""
        items = []
        for line in self.content.split("\n"):
            match = _LIST_ITEM.match(line)
            if match:
                items.append(match.group(1).strip())
        return items


@dataclass
class ParsedContent:
    """Result of parsing one lesson document."""

    title: str
    preamble: str = ""
    sections: list[ContentSection] = field(default_factory=list)
    raw_text: str = ""

    @property
    def total_words(self) -> int:
        return len(self.preamble.split()) + sum(s.word_count for s in self.sections)

    def section(self, title: str) -> ContentSection | None:
        wanted = title.strip().lower()
        return next((s for s in self.sections if s.title.lower() == wanted), None)


class ContentParser:
    """Parser for lesson markdown returned by the content generator."""

    def parse(self, text: str | None, default_title: str = "") -> ParsedContent:
        """
        Parse markdown into a title, a preamble and level-2 sections.

        Never raises: ``None`` or non-markdown input yields a result with no
        sections and the whole text as preamble.
        """
        text = text or ""
        title = default_title
        preamble: list[str] = []
        sections: list[ContentSection] = []
        current: ContentSection | None = None
        current_lines: list[str] = []
        in_fence = False

        for line_number, line in enumerate(text.split("\n"), start=1):
            if _FENCE.match(line):
                in_fence = not in_fence

            heading = None if in_fence else _HEADING.match(line)
            if heading and len(heading.group(1)) == 1 and current is None and not sections:
                # First H1 is the document title
                if title == default_title:
                    title = heading.group(2).strip()
                    continue

            if heading and len(heading.group(1)) == 2:
                if current is not None:
                    current.content = "\n".join(current_lines).strip()
                    sections.append(current)
                current = ContentSection(
                    title=heading.group(2).strip(),
                    content="",
                    line_number=line_number,
                )
                current_lines = []
                continue

            if current is None:
                preamble.append(line)
            else:
                current_lines.append(line)

        if current is not None:
            current.content = "\n".join(current_lines).strip()
            sections.append(current)

        return ParsedContent(
            title=title,
            preamble="\n".join(preamble).strip(),
            sections=sections,
            raw_text=text,
        )
