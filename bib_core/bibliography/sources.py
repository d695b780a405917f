"""
Bibliography source loading.

Supported sources:
- BibTeX/BibLaTeX files (.bib), parsed with pybtex
- Hayagriva-style YAML files (.yaml, .yml)
- CSL-JSON files (.json)
"""

import datetime
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import yaml
from pybtex.database import parse_string
from pybtex.exceptions import PybtexError
from pybtex.richtext import Text
from pydantic import ValidationError

from bib_core.constants import BIBTEX_EXTENSIONS, JSON_EXTENSIONS, YAML_EXTENSIONS
from bib_core.errors import BibliographySourceError
from bib_core.models import (
    BibliographyCollection,
    BibliographyEntry,
    BibliographyEntryModel,
    normalize_month,
)

logger = logging.getLogger(__name__)

WHITESPACE_RE = re.compile(r'\s+')
DATE_RE = re.compile(r'^\s*(?P<year>\d{4})(?:-(?P<month>\d{1,2}))?')

# BibTeX field -> entry attribute
BIBTEX_FIELDS = {
    "title": "title",
    "abstract": "summary",
    "url": "url",
    "doi": "doi",
    "pages": "pages",
    "volume": "volume",
    "number": "issue",
    "issue": "issue",
    "publisher": "publisher",
    "address": "address",
    "location": "address",
    "edition": "edition",
    "note": "note",
    "isbn": "isbn",
    "issn": "issn",
    "organization": "organization",
}


def clean_latex(value: str) -> str:
    """
    Turn a LaTeX field value into plain text.

    Args:
        value: Raw field value, e.g. "{The} Rust \\& Go Book"

    Returns:
        Plain text with braces and escapes resolved
    """
    try:
        text = Text.from_latex(value).render_as('text')
    except PybtexError:
        text = value.replace("{", "").replace("}", "")
    return WHITESPACE_RE.sub(" ", text).strip()


def parse_date(value: Any) -> Tuple[Optional[str], Optional[str]]:
    """Split a date value such as "2024-03-15", 2024 or a date object into (year, month)."""
    if value is None:
        return None, None
    if isinstance(value, (datetime.date, datetime.datetime)):
        return f"{value.year:04d}", f"{value.month:02d}"
    match = DATE_RE.match(str(value))
    if not match:
        return None, None
    month = match.group('month')
    return match.group('year'), normalize_month(month) if month else None


def _build_collection(raw_entries: Iterable[Dict[str, Any]]) -> BibliographyCollection:
    entries: List[BibliographyEntry] = []
    for data in raw_entries:
        try:
            entries.append(BibliographyEntryModel(**data).to_entry())
        except ValidationError as e:
            logger.warning(f"Skipping invalid bibliography entry '{data.get('citation_key', '?')}': {e}")
    logger.info(f"{len(entries)} bibliography items read")
    return BibliographyCollection(entries)


# --- BibTeX -----------------------------------------------------------------

def _bibtex_person(person) -> Tuple[str, str]:
    surname = clean_latex(" ".join(person.prelast_names + person.last_names))
    given = clean_latex(" ".join(person.first_names + person.middle_names))
    return surname, given


def parse_bibtex(text: str) -> BibliographyCollection:
    """
    Parse BibTeX/BibLaTeX text.

    Args:
        text: Raw .bib content

    Returns:
        Entries in source order

    Raises:
        BibliographySourceError: If the content cannot be parsed
    """
    try:
        data = parse_string(text, "bibtex")
    except PybtexError as e:
        raise BibliographySourceError(f"BibTeX parsing failed: {e}") from e

    raw_entries = []
    for key, entry in data.entries.items():
        fields = {name.lower(): value for name, value in entry.fields.items()}
        item: Dict[str, Any] = {
            "citation_key": key,
            "entry_type": entry.type,
            "authors": [_bibtex_person(p) for p in entry.persons.get("author", [])],
            "editor": [_bibtex_person(p) for p in entry.persons.get("editor", [])],
        }
        for field_name, attribute in BIBTEX_FIELDS.items():
            if field_name in fields and attribute not in item:
                item[attribute] = clean_latex(fields[field_name])
        if "title" not in item:
            logger.warning(f"Entry {key}: missing title field")

        year, month = parse_date(fields.get("date"))
        if year is None:
            year = clean_latex(fields["year"]) if "year" in fields else None
        if month is None and "month" in fields:
            month = normalize_month(clean_latex(fields["month"]))
        item["pub_year"] = year
        item["pub_month"] = month
        raw_entries.append(item)

    return _build_collection(raw_entries)


# --- YAML (hayagriva) -------------------------------------------------------

def _yaml_value(value: Any) -> Optional[str]:
    """Unwrap hayagriva values that may be given as {value: ...} or {name: ...}."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("value") or value.get("name")
    return str(value) if value is not None else None


def _yaml_persons(value: Any) -> List[Tuple[str, str]]:
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    persons = []
    for person in value:
        if isinstance(person, dict):
            persons.append((str(person.get("name", "")), str(person.get("given-name", ""))))
        else:
            surname, _, given = str(person).partition(",")
            persons.append((surname.strip(), given.strip()))
    return persons


def parse_yaml(text: str) -> BibliographyCollection:
    """
    Parse a hayagriva-style YAML bibliography.

    Args:
        text: YAML content mapping citation keys to entries

    Returns:
        Entries in source order

    Raises:
        BibliographySourceError: If the content is not a valid mapping
    """
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise BibliographySourceError(f"YAML bibliography parsing failed: {e}") from e
    if not isinstance(data, dict):
        raise BibliographySourceError("YAML bibliography must map citation keys to entries")

    raw_entries = []
    for key, entry in data.items():
        if not isinstance(entry, dict):
            logger.warning(f"Skipping YAML entry '{key}': not a mapping")
            continue
        serial = entry.get("serial-number") if isinstance(entry.get("serial-number"), dict) else {}
        year, month = parse_date(entry.get("date"))
        raw_entries.append({
            "citation_key": str(key),
            "entry_type": str(entry.get("type", "misc")),
            "title": _yaml_value(entry.get("title")) or "",
            "authors": _yaml_persons(entry.get("author")),
            "editor": _yaml_persons(entry.get("editor")),
            "pub_year": year,
            "pub_month": month,
            "url": _yaml_value(entry.get("url")),
            "summary": _yaml_value(entry.get("abstract")),
            "doi": _yaml_value(entry.get("doi") or serial.get("doi")),
            "pages": _yaml_value(entry.get("page-range")),
            "volume": _yaml_value(entry.get("volume")),
            "issue": _yaml_value(entry.get("issue")),
            "publisher": _yaml_value(entry.get("publisher")),
            "address": _yaml_value(entry.get("location")),
            "edition": _yaml_value(entry.get("edition")),
            "note": _yaml_value(entry.get("note")),
            "isbn": _yaml_value(entry.get("isbn") or serial.get("isbn")),
            "issn": _yaml_value(entry.get("issn") or serial.get("issn")),
            "organization": _yaml_value(entry.get("organization")),
        })

    return _build_collection(raw_entries)


# --- CSL-JSON ---------------------------------------------------------------

def _csl_persons(value: Any) -> List[Tuple[str, str]]:
    persons = []
    for person in value or []:
        if "literal" in person:
            persons.append((str(person["literal"]), ""))
        else:
            persons.append((str(person.get("family", "")), str(person.get("given", ""))))
    return persons


def _csl_date(value: Any) -> Tuple[Optional[str], Optional[str]]:
    if not isinstance(value, dict):
        return None, None
    parts = value.get("date-parts")
    if parts and parts[0]:
        first = parts[0]
        year = str(first[0])
        month = f"{int(first[1]):02d}" if len(first) > 1 else None
        return year, month
    return parse_date(value.get("raw") or value.get("literal"))


def parse_csl_json(text: str) -> BibliographyCollection:
    """
    Parse a CSL-JSON bibliography.

    Args:
        text: JSON array of CSL items

    Returns:
        Entries in source order, each keeping its raw CSL item

    Raises:
        BibliographySourceError: If the content is not a JSON array of items
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise BibliographySourceError(f"CSL-JSON parsing failed: {e}") from e
    if not isinstance(data, list):
        raise BibliographySourceError("CSL-JSON bibliography must be an array of items")

    raw_entries = []
    for item in data:
        if not isinstance(item, dict) or "id" not in item:
            logger.warning("Skipping CSL-JSON item without an id")
            continue
        year, month = _csl_date(item.get("issued"))
        raw_entries.append({
            "citation_key": str(item["id"]),
            "entry_type": str(item.get("type", "article")),
            "title": str(item.get("title", "")),
            "authors": _csl_persons(item.get("author")),
            "editor": _csl_persons(item.get("editor")),
            "pub_year": year,
            "pub_month": month,
            "url": item.get("URL"),
            "summary": item.get("abstract"),
            "doi": item.get("DOI"),
            "pages": item.get("page"),
            "volume": item.get("volume"),
            "issue": item.get("issue"),
            "publisher": item.get("publisher"),
            "address": item.get("publisher-place"),
            "edition": item.get("edition"),
            "note": item.get("note"),
            "isbn": item.get("ISBN"),
            "issn": item.get("ISSN"),
            "csl_data": item,
        })

    return _build_collection(raw_entries)


PARSERS = {
    **{ext: parse_bibtex for ext in BIBTEX_EXTENSIONS},
    **{ext: parse_yaml for ext in YAML_EXTENSIONS},
    **{ext: parse_csl_json for ext in JSON_EXTENSIONS},
}


def load_bibliography(path: Union[str, Path]) -> BibliographyCollection:
    """
    Load a bibliography file, choosing the parser by extension.

    Args:
        path: Path to a .bib, .yaml/.yml or .json file

    Returns:
        The loaded collection

    Raises:
        BibliographySourceError: If the file is missing, unsupported or invalid
    """
    path = Path(path)
    parser = PARSERS.get(path.suffix.lower())
    if parser is None:
        raise BibliographySourceError(
            f"Unsupported bibliography format '{path.suffix}'. Use one of: {', '.join(sorted(PARSERS))}"
        )
    logger.info(f"Loading bibliography from {path}...")
    try:
        text = path.read_text(encoding='utf-8')
    except OSError as e:
        raise BibliographySourceError(f"Cannot read bibliography file '{path}': {e}") from e
    return parser(text)
