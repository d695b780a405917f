"""CSL rendering backend."""

import logging
import re
from typing import Optional

from markupsafe import escape

from bib_core.backends.base import BibliographyBackend, CitationContext
from bib_core.backends.engine import CiteprocEngine
from bib_core.models import BibliographyEntry, CitationFormat, CitationVariant
from bib_core.styles import ResolvedStyle

logger = logging.getLogger(__name__)

YEAR_RE = re.compile(r'\d{4}')
# Single-entry engine runs always number the entry 1
LEADING_NUMBER_RE = re.compile(r'^[\[(]?1[\])]?\.?\s*')


def make_label(entry: BibliographyEntry) -> str:
    """
    Build an alphanumeric label such as "Smi24", "SJ24" or "S+24".

    Args:
        entry: Bibliography entry

    Returns:
        The label text
    """
    match = YEAR_RE.search(entry.pub_year or "")
    year = match.group(0)[2:] if match else ""
    surnames = [s for s in entry.surnames if s]
    if not surnames:
        return f"Unknown{year}"
    if len(surnames) == 1:
        return f"{surnames[0][:3]}{year}"
    if len(surnames) == 2:
        return f"{surnames[0][0]}{surnames[1][0]}{year}"
    return f"{surnames[0][0]}+{year}"


def local_author_date(entry: BibliographyEntry) -> str:
    """Author-year phrase built without a style engine, e.g. "Smith et al., 2024"."""
    surnames = [s for s in entry.surnames if s]
    if not surnames:
        author = entry.title or entry.citation_key
    elif len(surnames) == 1:
        author = surnames[0]
    elif len(surnames) == 2:
        author = f"{surnames[0]} & {surnames[1]}"
    else:
        author = f"{surnames[0]} et al."
    return f"{author}, {entry.pub_year}" if entry.pub_year else author


def local_reference(entry: BibliographyEntry) -> str:
    """Plain reference text used when the style engine produces none."""
    parts = []
    if entry.authors:
        names = []
        for surname, given in entry.authors:
            names.append(f"{surname}, {given[0]}." if given else surname)
        parts.append(" and ".join(names))
    if entry.title:
        parts.append(f"\"{entry.title}.\"")
    if entry.pub_year:
        parts.append(f"{entry.pub_year}.")
    return " ".join(parts) if parts else entry.citation_key


def strip_outer_parens(text: str) -> str:
    text = text.strip()
    if text.startswith("(") and text.endswith(")"):
        return text[1:-1].strip()
    return text


class CslBackend(BibliographyBackend):
    """
    Renders citations and references following a CSL style.

    Numeric styles take their numbers from the book-wide citation index and
    label styles build labels locally. Author-date styles ask the style
    engine for the author-year phrase and re-wrap it per citation variant.
    """

    name = "csl"

    def __init__(self, style: ResolvedStyle, engine: Optional[CiteprocEngine] = None):
        self.style = style
        if engine is None and style.path is not None:
            engine = CiteprocEngine(style.path)
        self.engine = engine

    @property
    def format(self) -> CitationFormat:
        return self.style.format

    def format_citation(self, entry: BibliographyEntry, index: int, context: CitationContext) -> str:
        href = f"{context.bib_page}#{entry.citation_key}" if context.bib_page else None
        fmt = self.format

        if fmt.is_numeric:
            if fmt.is_superscript:
                return f"<sup>{_link(str(index), href)}</sup>"
            text = f"({index})" if fmt.is_parenthetical else f"[{index}]"
            return _link(text, href)

        if fmt.is_label:
            return _link(f"[{make_label(entry)}]", href)

        phrase = self._author_date_phrase(entry)
        return _wrap_author_date(phrase, context.variant, href)

    def _author_date_phrase(self, entry: BibliographyEntry) -> str:
        text = self.engine.cite(entry) if self.engine is not None else None
        if text:
            text = strip_outer_parens(text)
        return text or local_author_date(entry)

    def format_reference(self, entry: BibliographyEntry, index: Optional[int]) -> str:
        fmt = self.format
        html = self.engine.reference(entry) if self.engine is not None else None
        if html and fmt.is_numeric:
            html = LEADING_NUMBER_RE.sub("", html, count=1)
        body = html or str(escape(local_reference(entry)))

        if fmt.is_label:
            prefix = f"[{escape(make_label(entry))}] "
        elif fmt.is_numeric and index is not None:
            prefix = f"{index}. " if fmt.is_superscript else f"[{index}] "
        else:
            prefix = ""
        return f"<div class='csl-entry' id='{escape(entry.citation_key)}'>{prefix}{body}</div>"


def _link(text: str, href: Optional[str]) -> str:
    text = str(escape(text))
    if not href:
        return text
    return f"<a class=\"bib-cite\" href=\"{escape(href)}\">{text}</a>"


def _split_author_year(phrase: str):
    for separator in (", ", " "):
        if separator in phrase:
            author, year = phrase.rsplit(separator, 1)
            if any(c.isdigit() for c in year):
                return author, year
    return None, None


def _wrap_author_date(phrase: str, variant: CitationVariant, href: Optional[str]) -> str:
    if variant in (CitationVariant.AUTHOR_IN_TEXT, CitationVariant.SUPPRESS_AUTHOR):
        author, year = _split_author_year(phrase)
        if year:
            if variant == CitationVariant.AUTHOR_IN_TEXT:
                return f"{escape(author)} ({_link(year, href)})"
            return f"({_link(year, href)})"
    return f"({_link(phrase, href)})"
