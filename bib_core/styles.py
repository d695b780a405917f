"""
CSL style resolution.

A style name is looked up in a curated registry of well-known styles first.
Names outside the registry are searched for in the installed CSL style
archive, and their citation format is read from the style's metadata.
"""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import citeproc_styles
from citeproc import STYLES_PATH
from lxml import etree

from bib_core.errors import DependentStyleError, StyleResolutionError, UnknownStyleError
from bib_core.models import CitationFormat

logger = logging.getLogger(__name__)

CSL_NAMESPACE = "http://purl.org/net/xbiblio/csl"
NSMAP = {"cs": CSL_NAMESPACE}

NUMERIC = CitationFormat.numeric()
SUPERSCRIPT = CitationFormat.numeric(superscript=True)
LABEL = CitationFormat.label()
AUTHOR_DATE = CitationFormat.author_date()


@dataclass(frozen=True)
class StyleInfo:
    """A registered style: its aliases, CSL file name and citation format."""
    aliases: Tuple[str, ...]
    csl_name: Optional[str]
    format: CitationFormat

    @property
    def name(self) -> str:
        return self.aliases[0]


STYLE_REGISTRY: List[StyleInfo] = [
    StyleInfo(("ieee",), "ieee", NUMERIC),
    StyleInfo(("apa", "american-psychological-association"), "apa", AUTHOR_DATE),
    StyleInfo(("chicago-author-date",), "chicago-author-date", AUTHOR_DATE),
    StyleInfo(("chicago-notes",), "chicago-note-bibliography", AUTHOR_DATE),
    StyleInfo(("mla", "modern-language-association"), "modern-language-association", AUTHOR_DATE),
    StyleInfo(("mla8",), "modern-language-association-8th-edition", AUTHOR_DATE),
    StyleInfo(("nature",), "nature", SUPERSCRIPT),
    StyleInfo(("vancouver",), "vancouver", NUMERIC),
    StyleInfo(("vancouver-superscript",), "vancouver-superscript", SUPERSCRIPT),
    StyleInfo(("harvard", "harvard-cite-them-right"), "harvard-cite-them-right", AUTHOR_DATE),
    StyleInfo(("acm",), "association-for-computing-machinery", NUMERIC),
    StyleInfo(("acs",), "american-chemical-society", NUMERIC),
    StyleInfo(("ama",), "american-medical-association", NUMERIC),
    StyleInfo(("springer-basic",), "springer-basic-brackets", NUMERIC),
    StyleInfo(("springer-basic-author-date",), "springer-basic-author-date", AUTHOR_DATE),
    StyleInfo(("cell",), "cell", NUMERIC),
    StyleInfo(("elsevier-harvard",), "elsevier-harvard", AUTHOR_DATE),
    StyleInfo(("elsevier-vancouver",), "elsevier-vancouver", NUMERIC),
    StyleInfo(("alphanumeric",), None, LABEL),
    StyleInfo(("harvard1",), "harvard1", AUTHOR_DATE),
]

# Citation formats declared in <category citation-format="...">
CATEGORY_FORMATS = {
    "numeric": NUMERIC,
    "label": LABEL,
    "author-date": AUTHOR_DATE,
    "author": AUTHOR_DATE,
    "note": AUTHOR_DATE,
}


def find_style_info(name: str) -> Optional[StyleInfo]:
    """Find a registered style by alias (case-insensitive)."""
    name_lower = name.lower()
    for info in STYLE_REGISTRY:
        if name_lower in info.aliases:
            return info
    return None


def supported_style_aliases() -> List[str]:
    """Canonical alias of every registered style."""
    return [info.name for info in STYLE_REGISTRY]


def format_style_list() -> str:
    """
    Describe the registered styles grouped by citation format.

    Returns:
        Multi-line text suitable for printing
    """
    groups = [
        ("Numeric styles:", lambda f: f.is_numeric and not f.is_superscript),
        ("Superscript styles:", lambda f: f.is_numeric and f.is_superscript),
        ("Label styles:", lambda f: f.is_label),
        ("Author-date styles:", lambda f: f.is_author_date),
    ]
    lines: List[str] = []
    for header, predicate in groups:
        members = [info for info in STYLE_REGISTRY if predicate(info.format)]
        if not members:
            continue
        if lines:
            lines.append("")
        lines.append(header)
        for info in members:
            extra = f" (also: {', '.join(info.aliases[1:])})" if len(info.aliases) > 1 else ""
            lines.append(f"  {info.name}{extra}")
    return "\n".join(lines)


def default_style_dirs() -> List[Path]:
    """Directories holding installed CSL styles, most specific first."""
    return [
        Path(os.path.dirname(citeproc_styles.__file__)) / "styles",
        Path(STYLES_PATH),
    ]


class StyleArchive:
    """Locates CSL style files by name."""

    def __init__(self, search_dirs: Optional[Iterable[Path]] = None):
        self.search_dirs = [Path(d) for d in search_dirs] if search_dirs is not None else default_style_dirs()

    def find(self, name: str) -> Optional[Path]:
        """
        Find the CSL file for a style.

        Args:
            name: Style name, or a path to a .csl file

        Returns:
            Path to the style file, or None if not found
        """
        if name.endswith(".csl"):
            path = Path(os.path.expanduser(name))
            return path if path.is_file() else None
        for directory in self.search_dirs:
            candidate = directory / f"{name}.csl"
            if candidate.is_file():
                return candidate
        return None


def read_style_metadata(path: Path) -> Tuple[Optional[str], Optional[str]]:
    """
    Read the citation format and independent parent of a CSL style.

    Args:
        path: Path to the .csl file

    Returns:
        Tuple of (citation-format value or None, parent style name or None)
    """
    try:
        tree = etree.parse(str(path))
    except (OSError, etree.XMLSyntaxError) as e:
        raise StyleResolutionError(f"Cannot read CSL style '{path}': {e}") from e

    citation_format = None
    category = tree.find("cs:info/cs:category[@citation-format]", NSMAP)
    if category is not None:
        citation_format = category.get("citation-format")

    parent = None
    for link in tree.findall("cs:info/cs:link", NSMAP):
        if link.get("rel") == "independent-parent":
            href = link.get("href", "")
            parent = href.rstrip("/").rsplit("/", 1)[-1] or href
            break

    return citation_format, parent


@dataclass(frozen=True)
class ResolvedStyle:
    """A style ready for rendering."""
    name: str
    format: CitationFormat
    path: Optional[Path] = None
    registered: bool = False


class StyleResolver:
    """Resolves style names to formatting descriptors, memoized per name."""

    def __init__(self, archive: Optional[StyleArchive] = None):
        self.archive = archive or StyleArchive()
        self._cache: Dict[str, ResolvedStyle] = {}
        self._lock = threading.Lock()

    def resolve(self, name: str) -> ResolvedStyle:
        """
        Resolve a style name.

        Args:
            name: Registry alias, archive style name or .csl path

        Returns:
            The resolved style

        Raises:
            UnknownStyleError: If the style cannot be found
            DependentStyleError: If the style only points to a parent style
        """
        cache_key = name
        with self._lock:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached
            resolved = self._resolve_uncached(name)
            self._cache[cache_key] = resolved
            return resolved

    def _resolve_uncached(self, name: str) -> ResolvedStyle:
        info = find_style_info(name)
        if info is not None:
            path = self.archive.find(info.csl_name) if info.csl_name else None
            if info.csl_name and path is None:
                logger.warning(f"CSL file for style '{info.name}' not found. Falling back to local formatting.")
            logger.info(f"Using registered CSL style '{info.name}'")
            return ResolvedStyle(name=info.name, format=info.format, path=path, registered=True)

        path = self.archive.find(name)
        if path is None:
            raise UnknownStyleError(name, supported_style_aliases())

        citation_format, parent = read_style_metadata(path)
        if parent:
            raise DependentStyleError(name, parent)

        style_format = CATEGORY_FORMATS.get(citation_format or "")
        if style_format is None:
            logger.warning(f"Style '{name}' declares no known citation format. Using numeric citations.")
            style_format = NUMERIC
        logger.info(f"Loaded CSL style '{name}' from {path} ({citation_format})")
        return ResolvedStyle(name=name, format=style_format, path=path, registered=False)
