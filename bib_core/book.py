"""mdBook book model.

mdBook hands preprocessors a ``[context, book]`` JSON array on stdin and
expects the book back on stdout. Books from mdBook 0.4 keep their items
under ``sections``, newer releases under ``items``. Each item is either
``{"Chapter": {...}}``, ``"Separator"`` or ``{"PartTitle": "..."}``.
"""

import json
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Chapter:
    """A chapter, backed by the JSON object mdBook sent."""

    def __init__(self, raw: Dict[str, Any]):
        self.raw = raw

    @classmethod
    def new(cls, name: str, content: str, path: Optional[str],
            parent_names: Optional[List[str]] = None) -> 'Chapter':
        """Create a chapter that is not yet part of a book."""
        return cls({
            "name": name,
            "content": content,
            "number": None,
            "sub_items": [],
            "path": path,
            "source_path": path,
            "parent_names": list(parent_names or []),
        })

    @property
    def name(self) -> str:
        return self.raw.get("name", "")

    @property
    def path(self) -> Optional[str]:
        return self.raw.get("path")

    @property
    def content(self) -> str:
        return self.raw.get("content", "")

    @content.setter
    def content(self, value: str) -> None:
        self.raw["content"] = value

    @property
    def sub_items(self) -> List[Any]:
        return self.raw.setdefault("sub_items", [])

    def __repr__(self) -> str:
        return f"Chapter({self.name!r}, path={self.path!r})"


class Book:
    """The book tree, walked depth-first in table-of-contents order."""

    def __init__(self, data: Dict[str, Any]):
        self.data = data
        self.items_key = "items" if "items" in data else "sections"
        self.data.setdefault(self.items_key, [])

    @property
    def items(self) -> List[Any]:
        return self.data[self.items_key]

    def iter_chapters(self) -> Iterator[Chapter]:
        """Yield every chapter, parents before their sub-chapters."""
        def walk(items: List[Any]) -> Iterator[Chapter]:
            for item in items:
                if isinstance(item, dict) and "Chapter" in item:
                    chapter = Chapter(item["Chapter"])
                    yield chapter
                    yield from walk(chapter.sub_items)
        yield from walk(self.items)

    def chapters(self) -> List[Chapter]:
        """Chapters that have a source file; draft chapters are skipped."""
        return [chapter for chapter in self.iter_chapters() if chapter.path is not None]

    def push_chapter(self, chapter: Chapter) -> None:
        self.items.append({"Chapter": chapter.raw})

    def to_dict(self) -> Dict[str, Any]:
        return self.data


def parse_preprocessor_input(text: str) -> Tuple[Dict[str, Any], Book]:
    """
    Parse the ``[context, book]`` array mdBook writes to a preprocessor.

    Args:
        text: Raw JSON text

    Returns:
        Tuple of (context dict, Book)

    Raises:
        ValueError: If the input is not a two-element JSON array
    """
    data = json.loads(text)
    if not isinstance(data, list) or len(data) != 2:
        raise ValueError("Expected a JSON array of [context, book] on stdin")
    context, book = data
    logger.debug(f"Preprocessor input from mdBook {context.get('mdbook_version', '?')}")
    return context, Book(book)
