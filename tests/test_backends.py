#!/usr/bin/env python3
"""
Tests for the rendering backends.
"""

from unittest.mock import MagicMock

import pytest

from bib_core.backends import CitationContext, CslBackend, CustomBackend, create_backend
from bib_core.backends.csl import local_author_date, make_label
from bib_core.backends.engine import clean_engine_output
from bib_core.config import build_config, load_templates
from bib_core.errors import TemplateLoadError, UnknownStyleError
from bib_core.models import BibliographyEntry, CitationFormat, CitationVariant
from bib_core.styles import ResolvedStyle, StyleArchive, StyleResolver

PAGE = "bibliography.html"


@pytest.fixture
def entry():
    """Create a sample entry."""
    return BibliographyEntry(
        citation_key="smith2024",
        title="A Test Article",
        authors=(("Smith", "John"),),
        pub_year="2024",
        entry_type="article",
    )


@pytest.fixture
def two_authors():
    """Create an entry with two authors."""
    return BibliographyEntry(
        citation_key="sj2024",
        title="Joint Work",
        authors=(("Smith", "John"), ("Jones", "Ann")),
        pub_year="2024",
    )


def context(variant=CitationVariant.STANDARD, bib_page=PAGE):
    return CitationContext(variant=variant, bib_page=bib_page, chapter="Intro")


def csl_backend(fmt, engine=None):
    return CslBackend(ResolvedStyle(name="test", format=fmt), engine=engine)


# --- custom backend ---------------------------------------------------------

@pytest.fixture
def default_templates():
    """Load the bundled templates."""
    return load_templates(build_config())


def test_custom_default_templates(entry, default_templates):
    """Test rendering with the bundled templates."""
    backend = CustomBackend(default_templates.references_tpl, default_templates.cite_tpl)
    citation = backend.format_citation(entry, 1, context(bib_page="../bibliography.html"))
    assert citation == '<a class="bib-cite" href="../bibliography.html#smith2024">smith2024</a>'

    reference = backend.format_reference(entry, 1)
    assert 'id="smith2024"' in reference
    assert "A Test Article" in reference
    assert "Smith, John" in reference


def test_custom_missing_values():
    """Test that missing values render as N/A or empty."""
    backend = CustomBackend("{{ pub_year }}/{{ pub_month }}/{{ summary }}|{{ doi }}", "{{ item.citation_key }}")
    assert backend.format_reference(BibliographyEntry("bare"), None) == "N/A/N/A/N/A|"


def test_custom_citation_variables(entry):
    """Test the variables available to citation templates."""
    backend = CustomBackend("{{ title }}", "{{ path }}|{{ item.index }}|{{ variant }}|{{ item.title }}")
    rendered = backend.format_citation(entry, 7, context(CitationVariant.AUTHOR_IN_TEXT))
    assert rendered == "bibliography.html|7|author_in_text|A Test Article"


def test_custom_escapes_values():
    """Test that entry values are HTML-escaped."""
    backend = CustomBackend("{{ title }}", "{{ item.title }}")
    entry = BibliographyEntry("k", title="<b>Bold</b> & more")
    assert backend.format_reference(entry, 1) == "&lt;b&gt;Bold&lt;/b&gt; &amp; more"


def test_custom_unknown_field():
    """Test that unknown template fields are rejected."""
    with pytest.raises(TemplateLoadError) as excinfo:
        CustomBackend("{{ title }}\n{{ bogus }}", "{{ item.title }}", references_name="refs.j2")
    assert excinfo.value.field == "bogus"
    assert excinfo.value.line == 2
    assert "refs.j2" in str(excinfo.value)


def test_custom_cite_template_scope():
    """Test that citation templates only see path, item and variant."""
    with pytest.raises(TemplateLoadError) as excinfo:
        CustomBackend("{{ title }}", "{{ title }}")
    assert excinfo.value.field == "title"


def test_custom_syntax_error():
    """Test that template syntax errors are reported with their line."""
    with pytest.raises(TemplateLoadError) as excinfo:
        CustomBackend("ok\n{% if %}", "{{ item.title }}")
    assert excinfo.value.line == 2


# --- CSL backend ------------------------------------------------------------

def test_numeric_citation(entry):
    """Test numeric citations link to the bibliography."""
    backend = csl_backend(CitationFormat.numeric())
    assert backend.format_citation(entry, 3, context()) == \
        '<a class="bib-cite" href="bibliography.html#smith2024">[3]</a>'
    assert backend.format_citation(entry, 3, context(bib_page=None)) == "[3]"


def test_parenthetical_numeric_citation(entry):
    """Test parenthetical numeric citations."""
    backend = csl_backend(CitationFormat.numeric(parenthetical=True))
    assert backend.format_citation(entry, 2, context(bib_page=None)) == "(2)"


def test_superscript_citation(entry):
    """Test superscript citations."""
    backend = csl_backend(CitationFormat.numeric(superscript=True))
    assert backend.format_citation(entry, 5, context()) == \
        '<sup><a class="bib-cite" href="bibliography.html#smith2024">5</a></sup>'


def test_label_citation(entry):
    """Test alphanumeric label citations."""
    backend = csl_backend(CitationFormat.label())
    assert backend.format_citation(entry, 1, context(bib_page=None)) == "[Smi24]"


def test_make_label(entry, two_authors):
    """Test label construction."""
    assert make_label(entry) == "Smi24"
    assert make_label(two_authors) == "SJ24"
    jones_lee = BibliographyEntry("jl", authors=(("Jones", "A"), ("Lee", "B")), pub_year="2023")
    assert make_label(jones_lee) == "JL23"
    three = BibliographyEntry("t", authors=(("Smith", ""), ("Jones", ""), ("Doe", "")), pub_year="2024")
    assert make_label(three) == "S+24"
    assert make_label(BibliographyEntry("n", pub_year="2024")) == "Unknown24"
    assert make_label(BibliographyEntry("y", authors=(("Smith", ""),))) == "Smi"


def test_author_date_variants(entry):
    """Test author-date citations for each variant."""
    engine = MagicMock()
    engine.cite.return_value = "(Smith, 2024)"
    backend = csl_backend(CitationFormat.author_date(), engine=engine)
    link = '<a class="bib-cite" href="bibliography.html#smith2024">{}</a>'

    assert backend.format_citation(entry, 1, context()) == "(" + link.format("Smith, 2024") + ")"
    assert backend.format_citation(entry, 1, context(CitationVariant.PARENTHETICAL)) == \
        "(" + link.format("Smith, 2024") + ")"
    assert backend.format_citation(entry, 1, context(CitationVariant.AUTHOR_IN_TEXT)) == \
        "Smith (" + link.format("2024") + ")"
    assert backend.format_citation(entry, 1, context(CitationVariant.SUPPRESS_AUTHOR)) == \
        "(" + link.format("2024") + ")"


def test_author_date_local_fallback(two_authors):
    """Test author-date citations without a style engine."""
    backend = csl_backend(CitationFormat.author_date())
    assert backend.format_citation(two_authors, 1, context(bib_page=None)) == "(Smith &amp; Jones, 2024)"
    assert backend.format_citation(two_authors, 1, context(CitationVariant.AUTHOR_IN_TEXT, bib_page=None)) == \
        "Smith &amp; Jones (2024)"


def test_author_date_engine_failure_falls_back(entry):
    """Test that an engine returning nothing falls back to local formatting."""
    engine = MagicMock()
    engine.cite.return_value = None
    backend = csl_backend(CitationFormat.author_date(), engine=engine)
    assert backend.format_citation(entry, 1, context(bib_page=None)) == "(Smith, 2024)"


def test_local_author_date():
    """Test the local author-year phrase."""
    many = BibliographyEntry("m", authors=(("Smith", ""), ("Jones", ""), ("Doe", "")), pub_year="2020")
    assert local_author_date(many) == "Smith et al., 2020"
    assert local_author_date(BibliographyEntry("k", title="Anonymous Work")) == "Anonymous Work"


def test_reference_prefixes(entry):
    """Test the prefix of reference entries per format."""
    numeric = csl_backend(CitationFormat.numeric()).format_reference(entry, 1)
    assert numeric.startswith("<div class='csl-entry' id='smith2024'>[1] Smith, J.")
    assert numeric.endswith("</div>")
    assert "A Test Article." in numeric

    superscript = csl_backend(CitationFormat.numeric(superscript=True)).format_reference(entry, 2)
    assert superscript.startswith("<div class='csl-entry' id='smith2024'>2. ")

    label = csl_backend(CitationFormat.label()).format_reference(entry, 1)
    assert label.startswith("<div class='csl-entry' id='smith2024'>[Smi24] ")

    author_date = csl_backend(CitationFormat.author_date()).format_reference(entry, 1)
    assert author_date.startswith("<div class='csl-entry' id='smith2024'>Smith, J.")

    uncited = csl_backend(CitationFormat.numeric()).format_reference(entry, None)
    assert uncited.startswith("<div class='csl-entry' id='smith2024'>Smith, J.")


def test_reference_engine_number_is_replaced(entry):
    """Test that the engine's own numbering is replaced by the book index."""
    engine = MagicMock()
    engine.reference.return_value = "[1]J. Smith, A Test Article, 2024."
    backend = csl_backend(CitationFormat.numeric(), engine=engine)
    assert backend.format_reference(entry, 4) == \
        "<div class='csl-entry' id='smith2024'>[4] J. Smith, A Test Article, 2024.</div>"


def test_clean_engine_output():
    """Test stripping terminal control sequences."""
    assert clean_engine_output("\x1b[1mSmith\x1b[0m, 2024\x07") == "Smith, 2024"
    assert clean_engine_output("[1mSmith[0m") == "Smith"


def test_real_style_engine(entry):
    """Test rendering through citeproc-py with a bundled style."""
    style = StyleResolver().resolve("harvard1")
    backend = CslBackend(style)
    citation = backend.format_citation(entry, 1, context(bib_page=None))
    assert "Smith" in citation
    assert "2024" in citation
    reference = backend.format_reference(entry, 1)
    assert "id='smith2024'" in reference
    assert "Smith" in reference


# --- backend selection ------------------------------------------------------

def test_create_custom_backend(default_templates):
    """Test the default backend."""
    backend = create_backend(build_config(), default_templates)
    assert isinstance(backend, CustomBackend)


def test_create_csl_backend(default_templates):
    """Test selecting the CSL backend."""
    config = build_config({"backend": "CSL", "csl-style": "alphanumeric"})
    backend = create_backend(config, default_templates, resolver=StyleResolver(StyleArchive([])))
    assert isinstance(backend, CslBackend)
    assert backend.format.is_label


def test_create_backend_unknown_style(default_templates):
    """Test that an unknown style stops backend creation."""
    config = build_config({"backend": "csl", "csl-style": "no-such-style"})
    with pytest.raises(UnknownStyleError):
        create_backend(config, default_templates, resolver=StyleResolver(StyleArchive([])))


def test_create_backend_reports_template_file(tmp_path):
    """Test that template errors name the template file."""
    (tmp_path / "refs.j2").write_text("{{ nope }}", encoding="utf-8")
    config = build_config({"references-tpl": "refs.j2"})
    templates = load_templates(config, tmp_path)
    with pytest.raises(TemplateLoadError) as excinfo:
        create_backend(config, templates)
    assert "refs.j2" in str(excinfo.value)
