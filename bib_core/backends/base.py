"""Backend contract shared by all rendering backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from bib_core.models import BibliographyEntry, CitationVariant


@dataclass(frozen=True)
class CitationContext:
    """Where and how a citation is being rendered."""
    variant: CitationVariant = CitationVariant.STANDARD
    # Relative link to the bibliography page, e.g. "../bibliography.html"
    bib_page: Optional[str] = None
    chapter: Optional[str] = None


class BibliographyBackend(ABC):
    """Renders in-text citations and reference list entries."""

    name: str = "base"

    @abstractmethod
    def format_citation(self, entry: BibliographyEntry, index: int, context: CitationContext) -> str:
        """
        Render one in-text citation.

        Args:
            entry: The cited bibliography entry
            index: The entry's book-wide citation index
            context: Rendering variant and link target

        Returns:
            Markdown/HTML text that replaces the citation
        """

    @abstractmethod
    def format_reference(self, entry: BibliographyEntry, index: Optional[int]) -> str:
        """
        Render one reference list entry.

        Args:
            entry: The bibliography entry
            index: The entry's citation index, or None if it was never cited

        Returns:
            HTML for the reference list
        """
