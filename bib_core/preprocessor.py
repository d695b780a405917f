"""The mdBook bibliography preprocessor."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from bib_core.backends import create_backend
from bib_core.bibliography.assembler import (
    BibliographyAssembler,
    append_chapter_references,
    create_bibliography_chapter,
)
from bib_core.bibliography.sources import load_bibliography, parse_bibtex
from bib_core.bibliography.zotero import fetch_zotero_bibliography
from bib_core.book import Book
from bib_core.citation_index import CitationIndex
from bib_core.config import (
    BibConfig,
    TemplateSet,
    build_config,
    get_config_value,
    load_templates,
    resolve_style_name,
)
from bib_core.constants import PREPROCESSOR_NAME
from bib_core.errors import BibliographySourceError, ConfigError
from bib_core.models import BibliographyCollection, BuildReport
from bib_core.replacer import PlaceholderReplacer
from bib_core.styles import StyleResolver

logger = logging.getLogger(__name__)


def supports_renderer(renderer: str) -> bool:
    """Whether the preprocessor can run for the given mdBook renderer."""
    return renderer != "not-supported"


class BibPreprocessor:
    """
    Expands citations in a book and appends its bibliography.

    Configuration and bibliography problems are logged and the book is
    returned unchanged. Style and template errors are raised, since they
    need fixing before any output makes sense.
    """

    name = PREPROCESSOR_NAME

    def __init__(self, resolver: Optional[StyleResolver] = None,
                 session: Optional[requests.Session] = None,
                 overrides: Optional[Dict[str, Any]] = None,
                 progress: bool = False):
        self.resolver = resolver
        self.session = session
        self.overrides = dict(overrides or {})
        self.progress = progress
        self.report = BuildReport()
        self.index = CitationIndex()

    def load_collection(self, config: BibConfig, root: Path, src_dir: Path) -> BibliographyCollection:
        """
        Load the bibliography named in the configuration.

        Args:
            config: Validated configuration
            root: Book root directory
            src_dir: Book source directory

        Returns:
            The bibliography entries

        Raises:
            BibliographySourceError: If no source is configured or it cannot be loaded
        """
        if config.bibliography:
            return load_bibliography(src_dir / config.bibliography)
        if config.zotero_uid:
            logger.info("Bibliography file not specified. Trying to download it from Zotero...")
            text = fetch_zotero_bibliography(config.zotero_uid, root, session=self.session)
            return parse_bibtex(text)
        raise BibliographySourceError("No bibliography file or Zotero user id specified")

    def config_table(self, context: Dict[str, Any]) -> Dict[str, Any]:
        """The [preprocessor.bib] table of the book, with overrides applied."""
        table = dict(get_config_value(context, f"config.preprocessor.{PREPROCESSOR_NAME}", {}) or {})
        table.update(self.overrides)
        return table

    def run(self, context: Dict[str, Any], book: Book) -> Book:
        """
        Run the preprocessor over a book.

        Args:
            context: The mdBook preprocessor context
            book: The book to transform

        Returns:
            The transformed book
        """
        logger.info(f"Processor Name: {self.name}")
        root = Path(context.get("root") or ".")
        src_dir = root / get_config_value(context, "config.book.src", "src")

        try:
            config = build_config(self.config_table(context))
            templates = load_templates(config, src_dir)
            collection = self.load_collection(config, root, src_dir)
        except ConfigError as e:
            logger.warning(f"Error reading configuration. Skipping processing: {e}")
            return book
        except BibliographySourceError as e:
            logger.warning(f"Bibliography couldn't be loaded. Skipping processing: {e}")
            return book

        config = config.model_copy(update={"csl_style": resolve_style_name(config, src_dir)})
        backend = create_backend(config, templates, resolver=self.resolver)
        assembler = BibliographyAssembler(
            backend,
            order=config.order,
            cited_only=config.cited_only,
            chapter_refs_tpl=templates.chapter_refs_tpl,
            chapter_refs_name=templates.origin("chapter_refs_tpl"),
        )
        return self.process(book, collection, config, templates, assembler)

    def process(self, book: Book, collection: BibliographyCollection, config: BibConfig,
                templates: TemplateSet, assembler: BibliographyAssembler) -> Book:
        """
        Expand citations in every chapter and append the bibliography chapter.

        Args:
            book: The book to transform
            collection: Bibliography entries
            config: Validated configuration
            templates: Loaded templates and assets
            assembler: Assembler holding the rendering backend

        Returns:
            The transformed book
        """
        chapters = book.chapters()
        replacer = PlaceholderReplacer(
            collection,
            assembler.backend,
            index=self.index,
            syntax=config.citation_syntax,
            report=self.report,
            jobs=config.jobs,
            progress=self.progress,
        )
        chapter_citations = replacer.process_chapters(chapters)

        if config.add_bib_in_chapters:
            for chapter, citations in zip(chapters, chapter_citations):
                section = assembler.render_chapter_references(collection, citations, self.index)
                if section:
                    logger.info(f"Adding bibliography at the end of chapter {chapter.path}")
                    chapter.content = append_chapter_references(chapter.content, section, templates.css)

        entries_html = assembler.render_bibliography(collection, self.index)
        book.push_chapter(create_bibliography_chapter(config.title, templates.js, templates.css, entries_html))

        for warning in self.report.warnings:
            logger.debug(f"Build warning: {warning}")
        if self.report.unresolved:
            logger.warning(f"{len(self.report.unresolved)} unresolved citation(s): {', '.join(sorted(set(self.report.unresolved_keys)))}")
        return book
