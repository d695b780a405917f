#!/usr/bin/env python3
"""
Tests for CSL style resolution.
"""

import logging
from unittest.mock import patch

import pytest

from bib_core.errors import DependentStyleError, StyleResolutionError, UnknownStyleError
from bib_core.styles import (
    STYLE_REGISTRY, StyleArchive, StyleResolver, find_style_info, format_style_list,
    read_style_metadata, supported_style_aliases
)

CSL_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<style xmlns="http://purl.org/net/xbiblio/csl" class="in-text" version="1.0">
  <info>
    <title>{name}</title>
    <id>http://www.zotero.org/styles/{name}</id>
    {extra}
  </info>
</style>
"""


def write_style(directory, name, citation_format=None, parent=None):
    """Write a minimal CSL style file."""
    extra = []
    if parent:
        extra.append(f'<link href="http://www.zotero.org/styles/{parent}" rel="independent-parent"/>')
    if citation_format:
        extra.append(f'<category citation-format="{citation_format}"/>')
    path = directory / f"{name}.csl"
    path.write_text(CSL_TEMPLATE.format(name=name, extra="\n    ".join(extra)), encoding="utf-8")
    return path


@pytest.fixture
def archive(tmp_path):
    """Create a style archive in a temporary directory."""
    write_style(tmp_path, "ieee", "numeric")
    write_style(tmp_path, "my-author-date", "author-date")
    write_style(tmp_path, "my-label", "label")
    write_style(tmp_path, "my-journal", "author-date", parent="apa")
    write_style(tmp_path, "no-category")
    return StyleArchive([tmp_path])


def test_registry():
    """Test the registry holds unique aliases."""
    assert len(STYLE_REGISTRY) >= 19
    aliases = [alias for info in STYLE_REGISTRY for alias in info.aliases]
    assert len(aliases) == len(set(aliases))
    assert "ieee" in supported_style_aliases()


def test_find_style_info_case_insensitive():
    """Test registry lookup ignores case."""
    assert find_style_info("IEEE").name == "ieee"
    assert find_style_info("Modern-Language-Association").name == "mla"
    assert find_style_info("unknown-style") is None


def test_registry_formats():
    """Test the formats of some registered styles."""
    assert find_style_info("ieee").format.is_numeric
    assert find_style_info("nature").format.is_superscript
    assert find_style_info("apa").format.is_author_date
    assert find_style_info("alphanumeric").format.is_label
    assert find_style_info("alphanumeric").csl_name is None


def test_format_style_list():
    """Test the grouped style listing."""
    text = format_style_list()
    lines = text.splitlines()
    for header in ["Numeric styles:", "Superscript styles:", "Label styles:", "Author-date styles:"]:
        assert header in lines
    assert "  apa (also: american-psychological-association)" in lines
    assert lines.index("  nature") > lines.index("Superscript styles:")
    assert lines.index("  nature") < lines.index("Label styles:")


def test_resolve_registered_style(archive, tmp_path):
    """Test resolving a registered style with its file present."""
    resolved = StyleResolver(archive).resolve("IEEE")
    assert resolved.name == "ieee"
    assert resolved.registered
    assert resolved.format.is_numeric
    assert resolved.path == tmp_path / "ieee.csl"


def test_resolve_registered_style_without_file(archive, caplog):
    """Test that a registered style without a file falls back to local formatting."""
    caplog.set_level(logging.WARNING)
    resolved = StyleResolver(archive).resolve("apa")
    assert resolved.path is None
    assert resolved.format.is_author_date
    assert "CSL file for style 'apa' not found" in caplog.text


def test_resolve_label_style_needs_no_file():
    """Test the built-in alphanumeric style."""
    resolved = StyleResolver(StyleArchive([])).resolve("alphanumeric")
    assert resolved.format.is_label
    assert resolved.path is None


def test_resolve_archive_styles(archive):
    """Test reading the citation format of archive styles."""
    resolver = StyleResolver(archive)
    author_date = resolver.resolve("my-author-date")
    assert author_date.format.is_author_date
    assert not author_date.registered
    assert resolver.resolve("my-label").format.is_label


def test_style_without_category_is_numeric(archive, caplog):
    """Test that a style without a citation format is treated as numeric."""
    caplog.set_level(logging.WARNING)
    assert StyleResolver(archive).resolve("no-category").format.is_numeric
    assert "declares no known citation format" in caplog.text


def test_dependent_style(archive):
    """Test that dependent styles name their parent."""
    with pytest.raises(DependentStyleError) as excinfo:
        StyleResolver(archive).resolve("my-journal")
    assert excinfo.value.parent == "apa"
    assert "'apa'" in str(excinfo.value)


def test_unknown_style(archive):
    """Test that unknown styles list the supported ones."""
    with pytest.raises(UnknownStyleError) as excinfo:
        StyleResolver(archive).resolve("does-not-exist")
    message = str(excinfo.value)
    assert "does-not-exist" in message
    assert "ieee" in message and "apa" in message


def test_resolve_csl_path(tmp_path):
    """Test resolving a style given as a file path."""
    path = write_style(tmp_path, "custom", "author-date")
    resolved = StyleResolver(StyleArchive([])).resolve(str(path))
    assert resolved.path == path
    assert resolved.format.is_author_date


def test_resolution_is_memoized(archive):
    """Test that each name is resolved once."""
    resolver = StyleResolver(archive)
    with patch.object(archive, "find", wraps=archive.find) as find:
        first = resolver.resolve("my-author-date")
        second = resolver.resolve("my-author-date")
    assert first is second
    assert find.call_count == 1


def test_read_style_metadata(tmp_path):
    """Test reading style metadata."""
    assert read_style_metadata(write_style(tmp_path, "a", "numeric")) == ("numeric", None)
    assert read_style_metadata(write_style(tmp_path, "b", "author-date", parent="apa")) == ("author-date", "apa")


def test_read_invalid_style(tmp_path):
    """Test that unreadable styles raise a resolution error."""
    path = tmp_path / "broken.csl"
    path.write_text("<style><info>", encoding="utf-8")
    with pytest.raises(StyleResolutionError):
        read_style_metadata(path)
