"""Data models for bib_core."""

import logging
import threading
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bib_core.constants import MISSING_VALUE
from bib_core.errors import UnresolvedCitationKey

logger = logging.getLogger(__name__)

# (surname, given)
Person = Tuple[str, str]

# BibTeX entry types mapped onto CSL item types
CSL_TYPES = {
    "article": "article-journal",
    "book": "book",
    "booklet": "pamphlet",
    "inbook": "chapter",
    "incollection": "chapter",
    "inproceedings": "paper-conference",
    "conference": "paper-conference",
    "manual": "book",
    "mastersthesis": "thesis",
    "phdthesis": "thesis",
    "thesis": "thesis",
    "proceedings": "book",
    "techreport": "report",
    "report": "report",
    "online": "webpage",
    "unpublished": "manuscript",
    "misc": "article",
}


class CitationVariant(str, Enum):
    """How a citation should be rendered."""
    STANDARD = "standard"
    AUTHOR_IN_TEXT = "author_in_text"
    PARENTHETICAL = "parenthetical"
    SUPPRESS_AUTHOR = "suppress_author"


class SyntaxVariant(str, Enum):
    """The textual form a citation was written in."""
    CITE_HELPER = "cite_helper"          # {{#cite key}}
    DOUBLE_AT = "double_at"              # @@key
    AUTHOR_IN_TEXT = "author_in_text"    # @key
    PARENTHETICAL = "parenthetical"      # [@key]
    SUPPRESS_AUTHOR = "suppress_author"  # [-@key]

    @property
    def intent(self) -> CitationVariant:
        """Rendering intent of this syntax."""
        if self in (SyntaxVariant.CITE_HELPER, SyntaxVariant.DOUBLE_AT):
            return CitationVariant.STANDARD
        return CitationVariant(self.value)


class CitationSyntax(str, Enum):
    """Which citation syntaxes are recognised in chapter text."""
    DEFAULT = "default"
    PANDOC = "pandoc"


@dataclass(frozen=True)
class BibliographyEntry:
    """A single bibliography reference. Immutable once loaded."""
    citation_key: str
    title: str = ""
    authors: Tuple[Person, ...] = ()
    pub_year: Optional[str] = None
    pub_month: Optional[str] = None
    entry_type: str = "misc"
    url: Optional[str] = None
    summary: Optional[str] = None
    doi: Optional[str] = None
    pages: Optional[str] = None
    volume: Optional[str] = None
    issue: Optional[str] = None
    publisher: Optional[str] = None
    address: Optional[str] = None
    editor: Tuple[Person, ...] = ()
    edition: Optional[str] = None
    note: Optional[str] = None
    isbn: Optional[str] = None
    issn: Optional[str] = None
    organization: Optional[str] = None
    # Raw CSL-JSON item when the source already provides one
    csl_data: Optional[Dict[str, Any]] = field(default=None, compare=False, repr=False)

    @property
    def surnames(self) -> List[str]:
        return [surname for surname, _ in self.authors]

    def template_fields(self, index: Optional[int] = None) -> Dict[str, Any]:
        """
        Build the field mapping exposed to custom templates.

        Args:
            index: The citation index assigned to this entry, if any

        Returns:
            Dictionary keyed by the template field names
        """
        return {
            "citation_key": self.citation_key,
            "title": self.title,
            "authors": [[surname, given] for surname, given in self.authors],
            "pub_year": self.pub_year or MISSING_VALUE,
            "pub_month": self.pub_month or MISSING_VALUE,
            "url": self.url,
            "summary": self.summary or MISSING_VALUE,
            "index": index,
            "entry_type": self.entry_type,
            "doi": self.doi,
            "pages": self.pages,
            "volume": self.volume,
            "issue": self.issue,
            "publisher": self.publisher,
            "address": self.address,
            "editor": [[surname, given] for surname, given in self.editor] or None,
            "edition": self.edition,
            "note": self.note,
            "isbn": self.isbn,
            "issn": self.issn,
            "organization": self.organization,
        }

    def to_csl_json(self) -> Dict[str, Any]:
        """Convert the entry into a CSL-JSON item for the style engine."""
        if self.csl_data:
            item = dict(self.csl_data)
            item["id"] = self.citation_key
            return item

        item: Dict[str, Any] = {
            "id": self.citation_key,
            "type": CSL_TYPES.get(self.entry_type.lower(), "article"),
            "title": self.title,
        }
        if self.authors:
            item["author"] = [_csl_name(person) for person in self.authors]
        if self.editor:
            item["editor"] = [_csl_name(person) for person in self.editor]

        date_parts = []
        if self.pub_year and self.pub_year.isdigit():
            date_parts.append(int(self.pub_year))
            if self.pub_month and self.pub_month.isdigit():
                date_parts.append(int(self.pub_month))
        if date_parts:
            item["issued"] = {"date-parts": [date_parts]}

        optional = {
            "URL": self.url,
            "DOI": self.doi,
            "page": self.pages,
            "volume": self.volume,
            "issue": self.issue,
            "publisher": self.publisher,
            "publisher-place": self.address,
            "edition": self.edition,
            "note": self.note,
            "ISBN": self.isbn,
            "ISSN": self.issn,
            "abstract": self.summary,
        }
        item.update({k: v for k, v in optional.items() if v})
        return item


def _csl_name(person: Person) -> Dict[str, str]:
    surname, given = person
    name = {"family": surname}
    if given:
        name["given"] = given
    return name


class BibliographyCollection(Mapping):
    """Read-only, source-ordered mapping of citation key to entry."""

    def __init__(self, entries: Iterable[BibliographyEntry] = ()):
        items: "OrderedDict[str, BibliographyEntry]" = OrderedDict()
        for entry in entries:
            if entry.citation_key in items:
                logger.warning(f"Duplicate bibliography key '{entry.citation_key}'. Keeping the first entry.")
                continue
            items[entry.citation_key] = entry
        self._entries = items

    def __getitem__(self, key: str) -> BibliographyEntry:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"BibliographyCollection({len(self)} entries)"


@dataclass(frozen=True)
class CitationOccurrence:
    """One textual mention of a citation key."""
    key: str
    start: int
    end: int
    syntax: SyntaxVariant

    @property
    def variant(self) -> CitationVariant:
        return self.syntax.intent


@dataclass(frozen=True)
class CitationFormat:
    """How a citation style renders in-text citations."""
    is_numeric: bool
    is_label: bool = False
    is_superscript: bool = False
    is_parenthetical: bool = False

    @property
    def is_author_date(self) -> bool:
        return not self.is_numeric and not self.is_label

    @classmethod
    def numeric(cls, superscript: bool = False, parenthetical: bool = False) -> 'CitationFormat':
        return cls(is_numeric=True, is_superscript=superscript, is_parenthetical=parenthetical)

    @classmethod
    def label(cls) -> 'CitationFormat':
        return cls(is_numeric=False, is_label=True)

    @classmethod
    def author_date(cls) -> 'CitationFormat':
        return cls(is_numeric=False, is_parenthetical=True)


class ChapterCitationSet:
    """Ordered set of keys cited in one chapter."""

    def __init__(self, chapter: str = "", keys: Iterable[str] = ()):
        self.chapter = chapter
        self._keys: Dict[str, None] = {}
        for key in keys:
            self.add(key)

    def add(self, key: str) -> None:
        self._keys.setdefault(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)

    def __repr__(self) -> str:
        return f"ChapterCitationSet({self.chapter!r}, {list(self._keys)!r})"


@dataclass
class BuildReport:
    """Warnings and failures collected while processing a book."""
    warnings: List[str] = field(default_factory=list)
    unresolved: List[UnresolvedCitationKey] = field(default_factory=list)
    failed_chapters: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_unresolved(self, key: str, chapter: Optional[str] = None) -> None:
        error = UnresolvedCitationKey(key, chapter)
        with self._lock:
            self.unresolved.append(error)
            self.warnings.append(str(error))

    def record_failure(self, chapter: str, error: Exception) -> None:
        with self._lock:
            self.failed_chapters.append(chapter)
            self.warnings.append(str(error))

    @property
    def unresolved_keys(self) -> List[str]:
        return [error.key for error in self.unresolved]


# Pydantic models for validation of loaded sources

class BibliographyEntryModel(BaseModel):
    """Pydantic model for an entry read from a structured source."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    citation_key: str
    title: str = Field(default="")
    authors: List[Tuple[str, str]] = Field(default_factory=list)
    pub_year: Optional[str] = None
    pub_month: Optional[str] = None
    entry_type: str = Field(default="misc")
    url: Optional[str] = None
    summary: Optional[str] = None
    doi: Optional[str] = None
    pages: Optional[str] = None
    volume: Optional[str] = None
    issue: Optional[str] = None
    publisher: Optional[str] = None
    address: Optional[str] = None
    editor: List[Tuple[str, str]] = Field(default_factory=list)
    edition: Optional[str] = None
    note: Optional[str] = None
    isbn: Optional[str] = None
    issn: Optional[str] = None
    organization: Optional[str] = None
    csl_data: Optional[Dict[str, Any]] = None

    @field_validator('pub_month')
    @classmethod
    def validate_month(cls, v: Optional[str]) -> Optional[str]:
        """Normalize month numbers and names to a two-digit string."""
        if v is None:
            return None
        return normalize_month(v)

    @field_validator('entry_type')
    @classmethod
    def lower_entry_type(cls, v: str) -> str:
        return v.lower() or "misc"

    def to_entry(self) -> BibliographyEntry:
        data = self.model_dump()
        data["authors"] = tuple(tuple(p) for p in data["authors"])
        data["editor"] = tuple(tuple(p) for p in data["editor"])
        return BibliographyEntry(**data)


MONTH_NAMES = {
    "jan": "01", "feb": "02", "mar": "03", "apr": "04", "may": "05", "jun": "06",
    "jul": "07", "aug": "08", "sep": "09", "oct": "10", "nov": "11", "dec": "12",
}


def normalize_month(value: str) -> Optional[str]:
    """Return a two-digit month for a month number or name, or None."""
    value = value.strip().lower()
    if value.isdigit() and 1 <= int(value) <= 12:
        return f"{int(value):02d}"
    return MONTH_NAMES.get(value[:3])
