"""Citation syntax scanner.

Finds citation occurrences in chapter markdown. Two syntax modes exist:
``default`` recognises the native ``{{#cite key}}`` and ``@@key`` forms,
``pandoc`` additionally recognises ``@key``, ``[@key]`` and ``[-@key]``.
Code blocks and inline code are never scanned, and escaped forms
(``\\@key``, ``\\{{#cite key}}``) are left as written.
"""

import logging
from typing import List, Optional, Union

from bib_core.constants import (
    MAX_CITATION_KEY_LENGTH,
    NATIVE_SCAN_RE,
    PANDOC_SCAN_RE,
)
from bib_core.markdown import unprotected_segments
from bib_core.models import CitationOccurrence, CitationSyntax, SyntaxVariant

logger = logging.getLogger(__name__)


def _occurrence_from_match(match) -> Optional[CitationOccurrence]:
    groups = match.groupdict()
    if groups.get('helper_key') is not None:
        key, syntax = groups['helper_key'], SyntaxVariant.CITE_HELPER
    elif groups.get('at_key') is not None:
        key, syntax = groups['at_key'], SyntaxVariant.DOUBLE_AT
    elif groups.get('bracket_key') is not None:
        key = groups['bracket_key']
        syntax = SyntaxVariant.SUPPRESS_AUTHOR if groups['suppress'] else SyntaxVariant.PARENTHETICAL
    elif groups.get('inline_key') is not None:
        key, syntax = groups['inline_key'], SyntaxVariant.AUTHOR_IN_TEXT
    else:
        return None

    if len(key) > MAX_CITATION_KEY_LENGTH:
        logger.warning(f"Ignoring citation key longer than {MAX_CITATION_KEY_LENGTH} characters at offset {match.start()}")
        return None
    return CitationOccurrence(key=key, start=match.start(), end=match.end(), syntax=syntax)


def scan(text: str, syntax: Union[CitationSyntax, str] = CitationSyntax.DEFAULT) -> List[CitationOccurrence]:
    """
    Find every citation occurrence in markdown text.

    Args:
        text: Chapter markdown
        syntax: Which citation syntaxes to recognise

    Returns:
        Occurrences in left-to-right source order
    """
    pattern = PANDOC_SCAN_RE if CitationSyntax(syntax) == CitationSyntax.PANDOC else NATIVE_SCAN_RE
    occurrences: List[CitationOccurrence] = []
    for start, end in unprotected_segments(text):
        for match in pattern.finditer(text, start, end):
            occurrence = _occurrence_from_match(match)
            if occurrence is not None:
                occurrences.append(occurrence)
    return occurrences

