"""Constants for the bib_core package."""

import re

# Citation key alphabets
# Native keys follow BibLaTeX and may start with a digit (e.g. @@2024smith).
# Interior '.' and ':' must be followed by another key character, so a
# sentence-closing period is never part of the key.
NATIVE_KEY = r'[A-Za-z0-9_\-/]+(?:[.:][A-Za-z0-9_\-/]+)*'
# Helper keys are delimited by the closing braces, so any key character may end them.
HELPER_KEY = r'[A-Za-z0-9_\-:./@]+'
# Pandoc keys must start with a letter or underscore.
PANDOC_KEY = r'[A-Za-z_][A-Za-z0-9_]*(?:[:.#$%&\-+?<>~/][A-Za-z0-9_]+)*'

# Pattern sources; each carries one named key group
CITE_HELPER_PATTERN = r'(?<!\\)\{\{\s*#cite\s+(?P<helper_key>' + HELPER_KEY + r')\s*\}\}'
DOUBLE_AT_PATTERN = r'(?<![\\@])@@(?P<at_key>' + NATIVE_KEY + r')'
PANDOC_BRACKETED_PATTERN = r'(?<!\\)\[(?P<suppress>-?)@(?P<bracket_key>' + PANDOC_KEY + r')\]'
PANDOC_INLINE_PATTERN = r'(?<![\\@\w/])@(?P<inline_key>' + PANDOC_KEY + r')'

# Regular expression patterns
CITE_HELPER_RE = re.compile(CITE_HELPER_PATTERN)
DOUBLE_AT_CITATION_RE = re.compile(DOUBLE_AT_PATTERN)
PANDOC_BRACKETED_RE = re.compile(PANDOC_BRACKETED_PATTERN)
PANDOC_INLINE_RE = re.compile(PANDOC_INLINE_PATTERN)

# Single-pass scanner patterns; alternatives are ordered most specific first
NATIVE_SCAN_RE = re.compile('|'.join([CITE_HELPER_PATTERN, DOUBLE_AT_PATTERN]))
PANDOC_SCAN_RE = re.compile('|'.join([
    CITE_HELPER_PATTERN,
    DOUBLE_AT_PATTERN,
    PANDOC_BRACKETED_PATTERN,
    PANDOC_INLINE_PATTERN,
]))

# Markdown code regions that are never scanned
FENCE_RE = re.compile(r'^[ ]{0,3}(?P<fence>`{3,}|~{3,})')
INDENTED_LINE_RE = re.compile(r'^(?:[ ]{4}|\t)')
LIST_ITEM_RE = re.compile(r'^[ \t]*(?:[-*+]|\d+[.)])[ \t]+')
INLINE_CODE_RE = re.compile(r'(?<!`)(`+)(?!`)[^\n]+?(?<!`)\1(?!`)')

# ANSI and other terminal control sequences emitted by style engines
ANSI_ESCAPE_RE = re.compile(r'\x1b\[[0-9;]*[A-Za-z]')
BARE_ANSI_CODES = ["[0m", "[1m", "[2m", "[3m", "[4m", "[22m", "[23m", "[24m"]
CONTROL_CHARS_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

# Scanner bounds
MAX_CITATION_KEY_LENGTH = 256

# Output names
BIB_OUT_FILE = "bibliography"
ZOTERO_CACHE_FILENAME = "my_zotero.bib"
PREPROCESSOR_NAME = "bib"

# Placeholders for citations that cannot be rendered
UNKNOWN_KEY_PLACEHOLDER = "\\[Unknown bib ref: {key}\\]"
FORMAT_ERROR_PLACEHOLDER = "\\[Error formatting {key}\\]"
MISSING_VALUE = "N/A"

# Default configuration values
DEFAULT_CONFIG_PATH = "~/.config/bookbib/config.yaml"
DEFAULT_TITLE = "Bibliography"
DEFAULT_CSL_STYLE = "ieee"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_NUM_WORKERS = 1

# Bibliography source file extensions
BIBTEX_EXTENSIONS = [".bib"]
YAML_EXTENSIONS = [".yaml", ".yml"]
JSON_EXTENSIONS = [".json"]

# Zotero web API
ZOTERO_API_URL = (
    "https://api.zotero.org/users/{user_id}/items"
    "?format=biblatex&style=biblatex&limit=100&sort=creator&v=3"
)
ZOTERO_TIMEOUT = 30
