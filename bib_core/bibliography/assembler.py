"""
Bibliography assembly.

Builds the reference list for the bibliography chapter and, optionally, the
trailing reference section of each chapter. Both run after every chapter has
been processed so they see the final citation indices.
"""

import logging
from typing import Callable, Dict, List

from bib_core.backends.base import BibliographyBackend
from bib_core.backends.custom import compile_template, create_environment
from bib_core.book import Chapter
from bib_core.citation_index import CitationIndex
from bib_core.constants import BIB_OUT_FILE
from bib_core.models import BibliographyCollection, BibliographyEntry, ChapterCitationSet

logger = logging.getLogger(__name__)


def _author_key(entry: BibliographyEntry):
    if not entry.authors:
        return (False, "", "")
    surname, given = entry.authors[0]
    return (True, surname.lower(), given.lower())


def sort_entries(entries: List[BibliographyEntry], order: str, index: CitationIndex) -> List[BibliographyEntry]:
    """
    Sort entries for output. Sorting is stable, so ties keep source order.

    Args:
        entries: Entries in source order
        order: One of "none", "key", "author", "index"
        index: Citation index with the final numbering

    Returns:
        The sorted entries
    """
    sorters: Dict[str, Callable[[BibliographyEntry], object]] = {
        "key": lambda e: e.citation_key,
        "author": _author_key,
        "index": lambda e: (index.get(e.citation_key) is None, index.get(e.citation_key) or 0),
    }
    sorter = sorters.get(order)
    if sorter is None:
        return list(entries)
    return sorted(entries, key=sorter)


class BibliographyAssembler:
    """Renders reference lists with a backend."""

    def __init__(self, backend: BibliographyBackend, order: str = "none",
                 cited_only: bool = True, chapter_refs_tpl: str = "",
                 chapter_refs_name: str = "chapter_refs"):
        self.backend = backend
        self.order = order
        self.cited_only = cited_only
        self.chapter_header = ""
        if chapter_refs_tpl:
            env = create_environment(keep_trailing_newline=True)
            template = compile_template(env, chapter_refs_tpl, chapter_refs_name, frozenset())
            self.chapter_header = template.render()

    def select_entries(self, collection: BibliographyCollection, index: CitationIndex) -> List[BibliographyEntry]:
        """Entries to list: the cited ones, or all of them."""
        if self.cited_only:
            return [entry for key, entry in collection.items() if key in index]
        return list(collection.values())

    def render_entries(self, entries: List[BibliographyEntry], index: CitationIndex) -> str:
        rendered = [
            self.backend.format_reference(entry, index.get(entry.citation_key))
            for entry in sort_entries(entries, self.order, index)
        ]
        return "\n".join(rendered)

    def render_bibliography(self, collection: BibliographyCollection, index: CitationIndex) -> str:
        """
        Render the book's reference list.

        Args:
            collection: All bibliography entries
            index: Final citation index

        Returns:
            HTML for the bibliography chapter body
        """
        entries = self.select_entries(collection, index)
        logger.info(f"Rendering {len(entries)} bibliography entries")
        return self.render_entries(entries, index)

    def render_chapter_references(self, collection: BibliographyCollection,
                                  citations: ChapterCitationSet, index: CitationIndex) -> str:
        """
        Render the trailing reference section of one chapter.

        Args:
            collection: All bibliography entries
            citations: Keys cited in the chapter
            index: Final citation index

        Returns:
            The header followed by the chapter's entries, or "" if it cites nothing known
        """
        entries = [entry for key, entry in collection.items() if key in citations]
        if not entries:
            return ""
        return self.chapter_header + self.render_entries(entries, index)


def create_bibliography_chapter(title: str, js: str, css: str, entries_html: str) -> Chapter:
    """
    Create the chapter that holds the bibliography.

    Args:
        title: Chapter title
        js: Script text to embed
        css: Stylesheet text to embed
        entries_html: Rendered reference list

    Returns:
        A new chapter at ``bibliography.md``
    """
    js_part = f"<script type=\"text/javascript\">\n{js}\n</script>\n\n"
    css_part = f"<style>{css}</style>\n\n"
    content = f"# {title}\n{js_part}\n{css_part}\n{entries_html}"
    logger.debug(f"Creating bibliography chapter '{title}'")
    return Chapter.new(title, content, f"{BIB_OUT_FILE}.md")


def append_chapter_references(content: str, section: str, css: str) -> str:
    """
    Append a reference section to chapter content.

    The stylesheet goes first so the section's entries render styled, and a
    blank line keeps the section's rule from turning the last paragraph into
    a heading.

    Args:
        content: Chapter markdown
        section: Rendered reference section
        css: Stylesheet text to embed

    Returns:
        The chapter markdown with the stylesheet and section added
    """
    body = content.rstrip("\n")
    return f"<style>{css}</style>\n\n{body}\n\n{section}"
