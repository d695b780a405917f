"""
Bibliography package for bib_core.

This package provides functionality for working with bibliographies:
- Loading entries from BibTeX, YAML and CSL-JSON sources
- Fetching a library from Zotero
- Assembling the rendered reference lists
"""

__all__ = ['assembler', 'sources', 'zotero']
