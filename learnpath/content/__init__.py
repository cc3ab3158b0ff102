"""Lesson content: generator adapters and markdown parsing."""
from learnpath.content.parser import ContentParser, ContentSection, ParsedContent

__all__ = ["ContentParser", "ContentSection", "ParsedContent"]
