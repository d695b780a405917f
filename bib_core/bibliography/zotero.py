"""Fetching a bibliography from the Zotero web API."""

import logging
from pathlib import Path
from typing import List, Optional, Union

import requests

from bib_core.constants import ZOTERO_API_URL, ZOTERO_CACHE_FILENAME, ZOTERO_TIMEOUT
from bib_core.errors import BibliographySourceError

logger = logging.getLogger(__name__)


def download_bib_from_zotero(user_id: str, session: Optional[requests.Session] = None,
                             timeout: int = ZOTERO_TIMEOUT) -> str:
    """
    Download a user's whole Zotero library as BibLaTeX.

    The API pages results; the ``next`` link header is followed until the
    last page.

    Args:
        user_id: Zotero user id
        session: HTTP session to use (a new one is created if omitted)
        timeout: Per-request timeout in seconds

    Returns:
        The concatenated BibLaTeX text

    Raises:
        BibliographySourceError: If a request fails or the library is empty
    """
    http = session or requests.Session()
    url: Optional[str] = ZOTERO_API_URL.format(user_id=user_id)
    chunks: List[str] = []

    while url:
        logger.info(f"Fetching Zotero bibliography chunk from {url}")
        try:
            response = http.get(url, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise BibliographySourceError(f"Error accessing Zotero API: {e}") from e
        chunks.append(response.text)
        url = response.links.get("next", {}).get("url")

    content = "".join(chunks)
    if not content.strip():
        raise BibliographySourceError("Bib content retrieved from Zotero is empty")
    return content


def fetch_zotero_bibliography(user_id: str, book_root: Union[str, Path],
                              session: Optional[requests.Session] = None) -> str:
    """
    Download a Zotero library and cache it next to the book.

    Args:
        user_id: Zotero user id
        book_root: Book root directory where the cache file is written
        session: HTTP session to use

    Returns:
        The BibLaTeX text
    """
    content = download_bib_from_zotero(user_id, session=session)
    cache_path = Path(book_root) / ZOTERO_CACHE_FILENAME
    logger.info(f"Saving Zotero bibliography to {cache_path}")
    try:
        cache_path.write_text(content, encoding='utf-8')
    except OSError as e:
        logger.warning(f"Could not cache Zotero bibliography at {cache_path}: {e}")
    return content
