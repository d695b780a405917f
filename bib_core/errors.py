"""Exception hierarchy for bib_core."""

from typing import List, Optional


class BibError(Exception):
    """Base class for all bib_core errors."""


class UnresolvedCitationKey(BibError):
    """A citation refers to a key missing from the bibliography.

    Never raised by the pipeline; it is recorded in the build report and the
    citation is replaced by a visible placeholder instead.
    """

    def __init__(self, key: str, chapter: Optional[str] = None):
        self.key = key
        self.chapter = chapter
        where = f" in chapter '{chapter}'" if chapter else ""
        super().__init__(f"Unknown bibliography reference '{key}'{where}")


class StyleResolutionError(BibError):
    """A CSL style could not be resolved."""


class UnknownStyleError(StyleResolutionError):
    """The requested style is neither registered nor found in the archive."""

    def __init__(self, style: str, supported: List[str]):
        self.style = style
        self.supported = list(supported)
        super().__init__(
            f"Unknown CSL style '{style}'. Supported styles: {', '.join(self.supported)}"
        )


class DependentStyleError(StyleResolutionError):
    """The requested style only aliases another (independent) style."""

    def __init__(self, style: str, parent: str):
        self.style = style
        self.parent = parent
        super().__init__(
            f"CSL style '{style}' is a dependent style. Use its parent style '{parent}' instead."
        )


class TemplateLoadError(BibError):
    """A custom backend template failed to compile or validate."""

    def __init__(self, template: str, message: str, line: Optional[int] = None,
                 field: Optional[str] = None):
        self.template = template
        self.line = line
        self.field = field
        location = f"{template}, line {line}" if line else template
        detail = f" (field '{field}')" if field else ""
        super().__init__(f"Error in template {location}{detail}: {message}")


class ChapterScanError(BibError):
    """Wraps a failure while processing one chapter."""

    def __init__(self, chapter: str, cause: BaseException):
        self.chapter = chapter
        self.cause = cause
        super().__init__(f"Failed to process chapter '{chapter}': {cause}")


class BibliographySourceError(BibError):
    """The bibliography source could not be read, fetched or parsed."""


class ConfigError(BibError):
    """Invalid preprocessor configuration."""
