#!/usr/bin/env python3
"""
Tests for data models.
"""

import logging

import pytest
from pydantic import ValidationError

from bib_core.errors import UnresolvedCitationKey
from bib_core.models import (
    BibliographyCollection, BibliographyEntry, BibliographyEntryModel, BuildReport,
    ChapterCitationSet, CitationFormat, CitationOccurrence, CitationVariant, SyntaxVariant,
    normalize_month
)


@pytest.fixture
def entry():
    """Create a sample entry."""
    return BibliographyEntry(
        citation_key="smith2024",
        title="A Test Article",
        authors=(("Smith", "John"), ("Jones", "Ann")),
        pub_year="2024",
        pub_month="03",
        entry_type="article",
        doi="10.1000/xyz",
        pages="1-10",
    )


def test_template_fields(entry):
    """Test the fields exposed to templates."""
    fields = entry.template_fields(index=4)
    assert fields["citation_key"] == "smith2024"
    assert fields["authors"] == [["Smith", "John"], ["Jones", "Ann"]]
    assert fields["pub_year"] == "2024"
    assert fields["index"] == 4
    assert fields["summary"] == "N/A"
    assert fields["url"] is None
    assert fields["editor"] is None


def test_template_fields_missing_values():
    """Test that missing dates and summaries render as N/A."""
    fields = BibliographyEntry("bare").template_fields()
    assert fields["pub_year"] == "N/A"
    assert fields["pub_month"] == "N/A"
    assert fields["summary"] == "N/A"
    assert fields["index"] is None
    assert fields["title"] == ""


def test_to_csl_json(entry):
    """Test conversion to a CSL-JSON item."""
    item = entry.to_csl_json()
    assert item["id"] == "smith2024"
    assert item["type"] == "article-journal"
    assert item["author"] == [{"family": "Smith", "given": "John"}, {"family": "Jones", "given": "Ann"}]
    assert item["issued"] == {"date-parts": [[2024, 3]]}
    assert item["DOI"] == "10.1000/xyz"
    assert item["page"] == "1-10"
    assert "URL" not in item


def test_to_csl_json_prefers_raw_item():
    """Test that a raw CSL item is passed through."""
    raw = {"id": "old", "type": "book", "title": "Raw"}
    item = BibliographyEntry("key", csl_data=raw).to_csl_json()
    assert item == {"id": "key", "type": "book", "title": "Raw"}
    assert raw["id"] == "old"


def test_to_csl_json_unknown_type():
    """Test that unknown and misc types map to article."""
    assert BibliographyEntry("a", entry_type="misc").to_csl_json()["type"] == "article"
    assert BibliographyEntry("b", entry_type="weird").to_csl_json()["type"] == "article"


def test_entry_is_immutable(entry):
    """Test that entries cannot be modified."""
    with pytest.raises(AttributeError):
        entry.title = "Changed"


def test_collection_order_and_lookup(entry):
    """Test that collections keep source order."""
    other = BibliographyEntry("alpha", title="Alpha")
    collection = BibliographyCollection([entry, other])
    assert list(collection) == ["smith2024", "alpha"]
    assert collection["alpha"].title == "Alpha"
    assert "missing" not in collection
    assert collection.get("missing") is None
    assert len(collection) == 2


def test_collection_duplicates_keep_first(caplog):
    """Test that a duplicate key keeps the first entry."""
    caplog.set_level(logging.WARNING)
    collection = BibliographyCollection([
        BibliographyEntry("dup", title="First"),
        BibliographyEntry("dup", title="Second"),
    ])
    assert len(collection) == 1
    assert collection["dup"].title == "First"
    assert "Duplicate bibliography key 'dup'" in caplog.text


def test_collection_is_read_only(entry):
    """Test that collections have no item assignment."""
    collection = BibliographyCollection([entry])
    with pytest.raises(TypeError):
        collection["new"] = entry


def test_syntax_variant_intent():
    """Test the rendering intent of each syntax."""
    assert SyntaxVariant.CITE_HELPER.intent == CitationVariant.STANDARD
    assert SyntaxVariant.DOUBLE_AT.intent == CitationVariant.STANDARD
    assert SyntaxVariant.AUTHOR_IN_TEXT.intent == CitationVariant.AUTHOR_IN_TEXT
    assert SyntaxVariant.PARENTHETICAL.intent == CitationVariant.PARENTHETICAL
    assert SyntaxVariant.SUPPRESS_AUTHOR.intent == CitationVariant.SUPPRESS_AUTHOR
    occurrence = CitationOccurrence("k", 0, 4, SyntaxVariant.SUPPRESS_AUTHOR)
    assert occurrence.variant == CitationVariant.SUPPRESS_AUTHOR


def test_citation_formats():
    """Test citation format constructors."""
    assert CitationFormat.numeric().is_numeric
    assert not CitationFormat.numeric().is_author_date
    assert CitationFormat.numeric(superscript=True).is_superscript
    assert CitationFormat.numeric(parenthetical=True).is_parenthetical
    assert CitationFormat.label().is_label
    assert not CitationFormat.label().is_author_date
    assert CitationFormat.author_date().is_author_date


def test_chapter_citation_set():
    """Test the ordered per-chapter key set."""
    citations = ChapterCitationSet("Intro", ["b", "a", "b"])
    assert list(citations) == ["b", "a"]
    assert "a" in citations
    assert len(citations) == 2
    assert not ChapterCitationSet("Empty")


def test_build_report():
    """Test recording warnings in the build report."""
    report = BuildReport()
    assert report.warnings == []
    report.record_unresolved("nope", "Intro")
    report.record_failure("Broken", RuntimeError("boom"))
    assert report.unresolved_keys == ["nope"]
    assert isinstance(report.unresolved[0], UnresolvedCitationKey)
    assert report.failed_chapters == ["Broken"]
    assert "Unknown bibliography reference 'nope' in chapter 'Intro'" in report.warnings
    assert len(report.warnings) == 2


@pytest.mark.parametrize("value,expected", [
    ("3", "03"), ("12", "12"), ("March", "03"), ("mar", "03"), ("13", None), ("spring", None)
])
def test_normalize_month(value, expected):
    """Test month normalization."""
    assert normalize_month(value) == expected


def test_entry_model_validation():
    """Test the pydantic entry model."""
    model = BibliographyEntryModel(
        citation_key="k",
        pub_year=2020,
        pub_month="Feb",
        entry_type="ARTICLE",
        authors=[("Smith", "J")],
    )
    entry = model.to_entry()
    assert entry.pub_year == "2020"
    assert entry.pub_month == "02"
    assert entry.entry_type == "article"
    assert entry.authors == (("Smith", "J"),)


def test_entry_model_requires_key():
    """Test that the citation key is required."""
    with pytest.raises(ValidationError):
        BibliographyEntryModel(title="No key")
