"""Rendering backends for citations and references."""

import logging
from typing import Optional

from bib_core.backends.base import BibliographyBackend, CitationContext
from bib_core.backends.csl import CslBackend
from bib_core.backends.custom import CustomBackend
from bib_core.config import BibConfig, TemplateSet
from bib_core.styles import StyleResolver

logger = logging.getLogger(__name__)

__all__ = [
    "BibliographyBackend",
    "CitationContext",
    "CslBackend",
    "CustomBackend",
    "create_backend",
]


def create_backend(config: BibConfig, templates: TemplateSet,
                   resolver: Optional[StyleResolver] = None) -> BibliographyBackend:
    """
    Create the backend selected by the configuration.

    Args:
        config: Validated preprocessor configuration
        templates: Loaded template texts
        resolver: Style resolver to use for the CSL backend

    Returns:
        A ready backend

    Raises:
        StyleResolutionError: If the CSL style cannot be used
        TemplateLoadError: If a custom template is invalid
    """
    if config.backend == "csl":
        style = (resolver or StyleResolver()).resolve(config.csl_style)
        logger.info(f"Using CSL backend with style '{style.name}'")
        return CslBackend(style)

    logger.info("Using custom template backend")
    return CustomBackend(
        templates.references_tpl,
        templates.cite_tpl,
        references_name=templates.origin("references_tpl"),
        cite_name=templates.origin("cite_tpl"),
    )
