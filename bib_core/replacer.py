"""
Citation placeholder replacement.

For every chapter in table-of-contents order the replacer scans the text,
assigns book-wide indices to the cited keys, renders each citation through
the backend and splices the results back into the text.

Books are processed in three phases so the expensive parts can run in
worker threads while numbering stays deterministic:

A. scan all chapters (parallel)
B. assign indices in traversal order (serial)
C. render and splice (parallel)
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from tqdm import tqdm

from bib_core.backends.base import BibliographyBackend, CitationContext
from bib_core.citation_index import CitationIndex
from bib_core.constants import BIB_OUT_FILE, FORMAT_ERROR_PLACEHOLDER, UNKNOWN_KEY_PLACEHOLDER
from bib_core.errors import ChapterScanError
from bib_core.markdown import path_to_root
from bib_core.models import (
    BibliographyCollection,
    BuildReport,
    ChapterCitationSet,
    CitationOccurrence,
    CitationSyntax,
)
from bib_core.scanner import scan

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def bibliography_page(chapter_path: Optional[str]) -> str:
    """Relative link from a chapter to the bibliography page."""
    return f"{path_to_root(chapter_path)}{BIB_OUT_FILE}.html"


@dataclass
class ChapterScan:
    """Result of scanning one chapter."""
    chapter: object
    occurrences: List[CitationOccurrence] = field(default_factory=list)
    citations: ChapterCitationSet = field(default_factory=ChapterCitationSet)
    failed: bool = False


class PlaceholderReplacer:
    """Replaces citations in chapter text with rendered output."""

    def __init__(self, collection: BibliographyCollection, backend: BibliographyBackend,
                 index: Optional[CitationIndex] = None,
                 syntax: CitationSyntax = CitationSyntax.DEFAULT,
                 report: Optional[BuildReport] = None,
                 jobs: int = 1, progress: bool = False):
        self.collection = collection
        self.backend = backend
        self.index = index if index is not None else CitationIndex()
        self.syntax = CitationSyntax(syntax)
        self.report = report if report is not None else BuildReport()
        self.jobs = max(1, jobs)
        self.progress = progress

    # --- single chapter -----------------------------------------------------

    def replace_all_placeholders(self, text: str, chapter_path: Optional[str] = None,
                                 chapter_name: str = "") -> Tuple[str, ChapterCitationSet]:
        """
        Replace every citation in one chapter's text.

        Args:
            text: Chapter markdown
            chapter_path: Chapter path relative to the book src, used for links
            chapter_name: Chapter name, used in warnings

        Returns:
            Tuple of (new text, keys cited in the chapter)
        """
        occurrences = scan(text, self.syntax)
        citations = ChapterCitationSet(chapter_name)
        self._assign(occurrences, citations, chapter_name)
        return self._splice(text, occurrences, chapter_path, chapter_name), citations

    def _assign(self, occurrences: Sequence[CitationOccurrence], citations: ChapterCitationSet,
                chapter_name: str) -> None:
        for occurrence in occurrences:
            key = occurrence.key
            first_in_chapter = key not in citations
            citations.add(key)
            if key in self.collection:
                self.index.assign_or_get(key)
            elif first_in_chapter:
                logger.warning(f"Unknown bibliography reference '{key}' in chapter '{chapter_name}'")
                self.report.record_unresolved(key, chapter_name)

    def _render(self, occurrence: CitationOccurrence, context: CitationContext) -> str:
        entry = self.collection.get(occurrence.key)
        index = self.index.get(occurrence.key)
        if entry is None or index is None:
            return UNKNOWN_KEY_PLACEHOLDER.format(key=occurrence.key)
        try:
            return self.backend.format_citation(entry, index, context)
        except Exception as e:
            logger.error(f"Error formatting citation '{occurrence.key}' in chapter '{context.chapter}': {e}")
            return FORMAT_ERROR_PLACEHOLDER.format(key=occurrence.key)

    def _splice(self, text: str, occurrences: Sequence[CitationOccurrence],
                chapter_path: Optional[str], chapter_name: str) -> str:
        if not occurrences:
            return text
        bib_page = bibliography_page(chapter_path)
        pieces: List[str] = []
        end = len(text)
        for occurrence in reversed(occurrences):
            context = CitationContext(variant=occurrence.variant, bib_page=bib_page, chapter=chapter_name)
            pieces.append(text[occurrence.end:end])
            pieces.append(self._render(occurrence, context))
            end = occurrence.start
        pieces.append(text[:end])
        return "".join(reversed(pieces))

    # --- whole book ---------------------------------------------------------

    def _map(self, func: Callable[[T], R], items: Sequence[T], desc: str) -> List[R]:
        bar = tqdm(total=len(items), desc=desc, disable=not self.progress, leave=False)
        try:
            if self.jobs == 1 or len(items) < 2:
                results = []
                for item in items:
                    results.append(func(item))
                    bar.update(1)
                return results
            with ThreadPoolExecutor(max_workers=self.jobs) as executor:
                results = []
                for result in executor.map(func, items):
                    results.append(result)
                    bar.update(1)
                return results
        finally:
            bar.close()

    def _fail(self, chapter, error: Exception) -> None:
        failure = ChapterScanError(chapter.name, error)
        logger.warning(f"{failure}. Leaving the chapter unchanged.")
        self.report.record_failure(chapter.name, failure)

    def _scan_chapter(self, chapter) -> ChapterScan:
        try:
            occurrences = scan(chapter.content, self.syntax)
        except Exception as e:
            self._fail(chapter, e)
            return ChapterScan(chapter, citations=ChapterCitationSet(chapter.name), failed=True)
        return ChapterScan(chapter, occurrences, ChapterCitationSet(chapter.name))

    def _splice_chapter(self, result: ChapterScan) -> None:
        chapter = result.chapter
        if result.failed or not result.occurrences:
            return
        try:
            chapter.content = self._splice(chapter.content, result.occurrences, chapter.path, chapter.name)
        except Exception as e:
            result.failed = True
            self._fail(chapter, e)

    def process_chapters(self, chapters: Iterable) -> List[ChapterCitationSet]:
        """
        Replace citations in every chapter, in the given (table-of-contents) order.

        Chapters are objects with ``name``, ``path`` and a writable
        ``content``. A chapter that fails is logged, recorded in the build
        report and left unchanged; indices already assigned are kept.

        Args:
            chapters: Chapters in traversal order

        Returns:
            The cited keys of each chapter, aligned with the input
        """
        chapters = list(chapters)
        scans = self._map(self._scan_chapter, chapters, "Scanning chapters")

        for result in scans:
            if not result.failed:
                self._assign(result.occurrences, result.citations, result.chapter.name)

        self._map(self._splice_chapter, scans, "Rendering citations")
        logger.info(f"{len(self.index)} distinct references cited in {len(chapters)} chapters")
        return [
            ChapterCitationSet(result.chapter.name) if result.failed else result.citations
            for result in scans
        ]
