"""Template-driven rendering backend.

Citations and references are produced by substituting entry fields into
user-supplied jinja2 templates. No formatting logic lives here.
"""

import logging
from typing import Any, Dict, FrozenSet, Optional

from jinja2 import Environment, Template, TemplateSyntaxError, meta, nodes

from bib_core.backends.base import BibliographyBackend, CitationContext
from bib_core.errors import TemplateLoadError
from bib_core.models import BibliographyEntry

logger = logging.getLogger(__name__)

REFERENCE_FIELDS: FrozenSet[str] = frozenset(BibliographyEntry("").template_fields())
CITATION_FIELDS: FrozenSet[str] = frozenset({"path", "item", "variant"})


def _none_as_empty(value: Any) -> Any:
    return "" if value is None else value


def create_environment(keep_trailing_newline: bool = False) -> Environment:
    """Create the jinja2 environment used for backend templates."""
    return Environment(autoescape=True, finalize=_none_as_empty, keep_trailing_newline=keep_trailing_newline)


def _field_line(ast: nodes.Template, field: str) -> Optional[int]:
    for node in ast.find_all(nodes.Name):
        if node.name == field and node.ctx == "load":
            return node.lineno
    return None


def compile_template(env: Environment, source: str, name: str, allowed: FrozenSet[str]) -> Template:
    """
    Compile a template and check it only uses known fields.

    Args:
        env: jinja2 environment
        source: Template text
        name: Template name or file, used in error messages
        allowed: Variable names the template may reference

    Returns:
        The compiled template

    Raises:
        TemplateLoadError: On a syntax error or an unknown field
    """
    try:
        ast = env.parse(source, name=name)
    except TemplateSyntaxError as e:
        raise TemplateLoadError(name, e.message or str(e), line=e.lineno) from e

    unknown = meta.find_undeclared_variables(ast) - allowed - set(env.globals)
    if unknown:
        field = sorted(unknown)[0]
        raise TemplateLoadError(name, f"unknown field '{field}'", line=_field_line(ast, field), field=field)

    return env.from_string(source)


class CustomBackend(BibliographyBackend):
    """Renders through citation and reference templates."""

    name = "custom"

    def __init__(self, references_tpl: str, cite_tpl: str,
                 references_name: str = "references", cite_name: str = "cite"):
        self.env = create_environment()
        self.references_template = compile_template(self.env, references_tpl, references_name, REFERENCE_FIELDS)
        self.cite_template = compile_template(self.env, cite_tpl, cite_name, CITATION_FIELDS)
        logger.debug(f"Compiled templates '{references_name}' and '{cite_name}'")

    def format_citation(self, entry: BibliographyEntry, index: int, context: CitationContext) -> str:
        variables: Dict[str, Any] = {
            "path": context.bib_page or "",
            "item": entry.template_fields(index),
            "variant": context.variant.value,
        }
        return self.cite_template.render(**variables)

    def format_reference(self, entry: BibliographyEntry, index: Optional[int]) -> str:
        return self.references_template.render(**entry.template_fields(index))
