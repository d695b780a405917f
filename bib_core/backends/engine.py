"""Thin wrapper around the citeproc-py style engine."""

import logging
import threading
from pathlib import Path
from typing import Optional, Tuple

from citeproc import (
    Citation,
    CitationItem,
    CitationStylesBibliography,
    CitationStylesStyle,
    formatter,
)
from citeproc.source.json import CiteProcJSON

from bib_core.constants import ANSI_ESCAPE_RE, BARE_ANSI_CODES, CONTROL_CHARS_RE
from bib_core.models import BibliographyEntry

logger = logging.getLogger(__name__)


def clean_engine_output(text: str) -> str:
    """Strip ANSI escapes and other control characters from engine output."""
    text = ANSI_ESCAPE_RE.sub("", text)
    for code in BARE_ANSI_CODES:
        text = text.replace(code, "")
    return CONTROL_CHARS_RE.sub("", text).strip()


class CiteprocEngine:
    """
    Renders single entries with a CSL style.

    The style file is parsed lazily on first use. Every call builds a fresh
    one-entry bibliography, so results never depend on what was rendered
    before. Failures are logged and reported as None so callers can fall
    back to local formatting.
    """

    def __init__(self, style_path: Path):
        self.style_path = Path(style_path)
        self._style: Optional[CitationStylesStyle] = None
        self._load_failed = False
        self._lock = threading.Lock()

    def _load_style(self) -> Optional[CitationStylesStyle]:
        if self._style is None and not self._load_failed:
            try:
                self._style = CitationStylesStyle(str(self.style_path), validate=False)
                logger.debug(f"Loaded CSL style from {self.style_path}")
            except Exception as e:
                logger.warning(f"Could not load CSL style {self.style_path}: {e}")
                self._load_failed = True
        return self._style

    def _prepare(self, entry: BibliographyEntry, output) -> Tuple[Optional[CitationStylesBibliography], Optional[Citation]]:
        style = self._load_style()
        if style is None:
            return None, None
        source = CiteProcJSON([entry.to_csl_json()])
        bibliography = CitationStylesBibliography(style, source, output)
        citation = Citation([CitationItem(entry.citation_key)])
        bibliography.register(citation)
        return bibliography, citation

    @staticmethod
    def _warn(citation_item) -> None:
        logger.warning(f"Style engine could not find reference '{citation_item.key}'")

    def cite(self, entry: BibliographyEntry) -> Optional[str]:
        """
        Render the in-text citation of an entry as plain text.

        Args:
            entry: Bibliography entry

        Returns:
            Citation text such as "(Smith, 2024)", or None on failure
        """
        with self._lock:
            try:
                bibliography, citation = self._prepare(entry, formatter.plain)
                if bibliography is None:
                    return None
                text = bibliography.cite(citation, self._warn)
            except Exception as e:
                logger.warning(f"Style engine failed to cite '{entry.citation_key}': {e}")
                return None
        text = clean_engine_output(str(text))
        return text or None

    def reference(self, entry: BibliographyEntry) -> Optional[str]:
        """
        Render the reference list entry of an entry as HTML.

        Args:
            entry: Bibliography entry

        Returns:
            HTML text, or None when the style has no bibliography or rendering fails
        """
        with self._lock:
            try:
                bibliography, _ = self._prepare(entry, formatter.html)
                if bibliography is None:
                    return None
                items = bibliography.bibliography()
            except Exception as e:
                logger.warning(f"Style engine failed to render reference '{entry.citation_key}': {e}")
                return None
        if not items:
            return None
        text = clean_engine_output(str(items[0]))
        return text or None
