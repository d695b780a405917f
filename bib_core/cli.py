#!/usr/bin/env python3
"""
Command-line interface for the mdBook bibliography preprocessor.

mdBook runs the preprocessor in two ways:
- ``mdbook-bib supports <renderer>``: exit status tells whether the renderer is supported
- ``mdbook-bib``: read ``[context, book]`` JSON on stdin, write the book JSON to stdout
- ``mdbook-bib run``: the same, spelled out

Logs always go to stderr because stdout carries the book.
"""

import sys
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from bib_core.book import parse_preprocessor_input
from bib_core.config import build_config, load_config
from bib_core.errors import ConfigError, StyleResolutionError, TemplateLoadError
from bib_core.preprocessor import BibPreprocessor, supports_renderer
from bib_core.styles import format_style_list

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] (%(name)s): %(message)s"

app = typer.Typer(
    help="mdBook preprocessor that expands citations and renders a bibliography",
    add_completion=False,
)


class Verbosity(str, Enum):
    QUIET = "quiet"
    NORMAL = "normal"
    VERBOSE = "verbose"


def configure_logging(verbosity: Verbosity, level: Optional[str] = None,
                      log_file: Optional[str] = None) -> None:
    """
    Set up logging on stderr, and optionally to a file.

    Args:
        verbosity: Command-line verbosity; overrides the configured level unless normal
        level: Configured logging level name
        log_file: Optional log file path
    """
    if verbosity == Verbosity.VERBOSE:
        log_level = logging.DEBUG
    elif verbosity == Verbosity.QUIET:
        log_level = logging.ERROR
    else:
        log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=handlers, force=True)


def run_preprocessor(input_text: str, overrides: Optional[Dict[str, Any]] = None,
                     progress: bool = False, verbosity: Verbosity = Verbosity.NORMAL) -> int:
    """
    Run the preprocessor on mdBook's stdin payload and print the book.

    Args:
        input_text: The ``[context, book]`` JSON text
        overrides: Options that take precedence over the book's configuration
        progress: Show progress bars on stderr
        verbosity: Command-line verbosity

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    try:
        context, book = parse_preprocessor_input(input_text)
    except ValueError as e:
        logger.error(f"Invalid preprocessor input: {e}")
        return 1

    preprocessor = BibPreprocessor(overrides=overrides, progress=progress)
    try:
        logging_config = build_config(preprocessor.config_table(context)).logging
        configure_logging(verbosity, level=logging_config.level, log_file=logging_config.file)
    except ConfigError:
        # run() reports the invalid configuration and leaves the book unchanged
        pass

    try:
        book = preprocessor.run(context, book)
    except (StyleResolutionError, TemplateLoadError) as e:
        logger.error(str(e))
        return 1

    typer.echo(json.dumps(book.to_dict()))
    return 0


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbosity: Verbosity = typer.Option(
        Verbosity.NORMAL,
        "--verbosity", "-v",
        help="Set output verbosity level",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="YAML file with options overriding [preprocessor.bib]",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    jobs: Optional[int] = typer.Option(
        None,
        "--jobs", "-j",
        min=1,
        help="Worker threads for scanning and rendering chapters",
    ),
    progress: bool = typer.Option(
        False,
        "--progress",
        help="Show progress bars on stderr",
    ),
) -> None:
    """
    Expand citations in the book read from stdin and append a bibliography.
    """
    try:
        overrides = load_config(str(config)) if config else {}
    except ConfigError as e:
        configure_logging(verbosity)
        logger.error(str(e))
        raise typer.Exit(1)

    configure_logging(verbosity)
    if jobs is not None:
        overrides["jobs"] = jobs

    ctx.obj = {"overrides": overrides, "progress": progress, "verbosity": verbosity}
    if ctx.invoked_subcommand is None:
        raise typer.Exit(run_preprocessor(
            sys.stdin.read(), overrides=overrides, progress=progress, verbosity=verbosity,
        ))


@app.command()
def run(ctx: typer.Context) -> None:
    """Process the book read from stdin (the default when no command is given)."""
    options = ctx.obj or {}
    raise typer.Exit(run_preprocessor(
        sys.stdin.read(),
        overrides=options.get("overrides"),
        progress=options.get("progress", False),
        verbosity=options.get("verbosity", Verbosity.NORMAL),
    ))


@app.command()
def supports(renderer: str = typer.Argument(..., help="Name of the mdBook renderer")) -> None:
    """Exit with status 0 if the renderer is supported, 1 otherwise."""
    supported = supports_renderer(renderer)
    logger.debug(f"Renderer '{renderer}' supported: {supported}")
    raise typer.Exit(0 if supported else 1)


@app.command()
def styles() -> None:
    """List the built-in CSL style aliases."""
    typer.echo(format_style_list())


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
