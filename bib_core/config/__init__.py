"""Configuration management for bib_core."""

import os
import yaml
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from bib_core.constants import (
    DEFAULT_CONFIG_PATH, DEFAULT_CSL_STYLE, DEFAULT_LOG_LEVEL,
    DEFAULT_NUM_WORKERS, DEFAULT_TITLE, PREPROCESSOR_NAME
)
from bib_core.errors import ConfigError
from bib_core.models import CitationSyntax

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

# Bundled template file for each template option
DEFAULT_TEMPLATES = {
    "references_tpl": "references.j2",
    "cite_tpl": "cite.j2",
    "chapter_refs_tpl": "chapter_refs_header.j2",
    "css": "style.css",
    "js": "copy2clipboard.js",
}


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class LoggingConfig(BaseModel):
    """Logging configuration model."""
    level: str = Field(default=DEFAULT_LOG_LEVEL, description="Logging level")
    file: Optional[str] = Field(default=None, description="Log file path")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            logger.warning(f"Invalid logging level: {v}. Using default: {DEFAULT_LOG_LEVEL}")
            return DEFAULT_LOG_LEVEL
        return v.upper()


class BibConfig(BaseModel):
    """Preprocessor configuration, read from [preprocessor.bib] or a YAML file."""
    model_config = ConfigDict(
        alias_generator=_kebab,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    title: str = Field(default=DEFAULT_TITLE, description="Title of the bibliography chapter")
    bibliography: Optional[str] = Field(default=None, description="Bibliography file, relative to the book src")
    zotero_uid: Optional[str] = Field(default=None, description="Zotero user id to fetch the library from")
    backend: Literal["custom", "csl"] = Field(default="custom", description="Rendering backend")
    csl_style: str = Field(default=DEFAULT_CSL_STYLE, description="CSL style name or .csl path")
    citation_syntax: CitationSyntax = Field(default=CitationSyntax.DEFAULT, description="Recognised citation syntax")
    render_bib: Literal["cited", "all"] = Field(default="cited", description="Which entries the bibliography lists")
    order: Literal["none", "key", "author", "index"] = Field(default="none", description="Bibliography sort order")
    add_bib_in_chapters: bool = Field(default=False, description="Append cited references to each chapter")
    references_tpl: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("references-tpl", "hb-tpl", "references_tpl"),
        description="Reference template file",
    )
    cite_tpl: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("cite-tpl", "cite-hb-tpl", "cite_tpl"),
        description="Citation template file",
    )
    chapter_refs_tpl: Optional[str] = Field(default=None, description="Per-chapter references header template file")
    css: Optional[str] = Field(default=None, description="Stylesheet file for the bibliography")
    js: Optional[str] = Field(default=None, description="Script file for the bibliography")
    jobs: int = Field(default=DEFAULT_NUM_WORKERS, ge=1, description="Worker threads per chapter phase")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")

    @field_validator('backend', 'render_bib', 'order', 'citation_syntax', mode='before')
    @classmethod
    def lower_choice(cls, v: Any) -> Any:
        """Accept option values in any case."""
        return v.lower() if isinstance(v, str) else v

    @property
    def cited_only(self) -> bool:
        return self.render_bib == "cited"


def build_config(table: Optional[Mapping[str, Any]] = None) -> BibConfig:
    """
    Validate a configuration table.

    Args:
        table: The [preprocessor.bib] table or equivalent mapping

    Returns:
        Validated configuration

    Raises:
        ConfigError: If any option has an invalid value
    """
    try:
        return BibConfig.model_validate(dict(table or {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid [preprocessor.{PREPROCESSOR_NAME}] configuration: {e}") from e


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML config file.

    The file may hold the options at the top level or under
    ``preprocessor.bib``.

    Args:
        config_path: Path to the config file. If None, default is used.

    Returns:
        Dict with raw configuration values.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    config: Dict[str, Any] = {}

    resolved_path = resolve_path(path)
    config_file = Path(resolved_path)
    if not config_file.exists():
        if config_path:
            logger.warning(f"Config file '{resolved_path}' not found. Using defaults.")
        return config

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            raw_config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading config file '{resolved_path}': {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError(f"Config file '{resolved_path}' does not contain a mapping")

    config = get_config_value(raw_config, f"preprocessor.{PREPROCESSOR_NAME}", raw_config)
    logger.debug(f"Loaded configuration from {resolved_path}")
    return config


def resolve_path(path: str) -> str:
    """Resolve path with environment variables and user home."""
    return os.path.expanduser(os.path.expandvars(path))


def get_config_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get configuration value using a dot-separated path.

    Args:
        config: Configuration dictionary
        key_path: Dot-separated path (e.g., "section.key")
        default: Default value if path not found

    Returns:
        Configuration value or default if not found
    """
    keys = key_path.split('.')
    current = config

    for key in keys:
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default

    return current


@dataclass
class TemplateSet:
    """Template and asset texts used to render the bibliography."""
    references_tpl: str
    cite_tpl: str
    chapter_refs_tpl: str
    css: str
    js: str
    origins: Dict[str, str] = field(default_factory=dict)

    def origin(self, name: str) -> str:
        """File the named template was read from, for error messages."""
        return self.origins.get(name, name)


def load_templates(config: BibConfig, src_dir: Optional[Path] = None) -> TemplateSet:
    """
    Read configured template files, falling back to the bundled ones.

    Args:
        config: Validated configuration
        src_dir: Book source directory that relative paths are resolved against

    Returns:
        The loaded templates

    Raises:
        ConfigError: If a configured file cannot be read
    """
    texts: Dict[str, str] = {}
    origins: Dict[str, str] = {}
    for option, default_file in DEFAULT_TEMPLATES.items():
        configured = getattr(config, option)
        if configured:
            path = Path(resolve_path(configured))
            if src_dir is not None and not path.is_absolute():
                path = Path(src_dir) / path
            logger.info(f"Using {_kebab(option)} from {path}")
        else:
            path = TEMPLATES_DIR / default_file
        try:
            texts[option] = path.read_text(encoding='utf-8')
        except OSError as e:
            raise ConfigError(f"Cannot read {_kebab(option)} file '{path}': {e}") from e
        origins[option] = str(path)
    return TemplateSet(origins=origins, **texts)


def resolve_style_name(config: BibConfig, src_dir: Optional[Path] = None) -> str:
    """Return the CSL style name, turning a relative .csl path into an absolute one."""
    style = config.csl_style
    if style.endswith(".csl") and src_dir is not None:
        path = Path(resolve_path(style))
        if not path.is_absolute():
            return str(Path(src_dir) / path)
    return style
