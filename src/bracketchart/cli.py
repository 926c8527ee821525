import logging
import re
import sys
from pathlib import Path

import click

from .chords import is_chord
from .config import Config
from .exceptions import (
    ExtractionEmpty,
    FetchError,
    ParseError,
    UnsupportedSourceError,
    ValidationError,
)
from .models import ChordLyricsLine, Document
from .notation import parse, parse_lenient, serialize
from .registry import get_source
from .transpose import bar_line_chords

CONFIG_PATH = Path.home() / ".config" / "bracketchart" / "config.json"


def _slugify(text: str) -> str:
    """Convert a string to a lowercase hyphenated slug suitable for filenames."""
    text = text.lower()
    text = re.sub(r"[^\w\s-]", "", text)   # drop punctuation
    text = re.sub(r"[\s_]+", "-", text)     # spaces/underscores → hyphens
    text = re.sub(r"-{2,}", "-", text)      # collapse multiple hyphens
    return text.strip("-")


def _default_filename(title: str | None) -> str:
    return f"{_slugify(title or '') or 'chart'}.txt"


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _read_strict(path: str) -> Document:
    try:
        return parse(Path(path).read_text(encoding="utf-8"))
    except ParseError as exc:
        _fail(str(exc))


def _emit(text: str, output_path: str | None) -> None:
    if output_path is None:
        click.echo(text, nl=False)
        return
    Path(output_path).write_text(text, encoding="utf-8")
    click.echo(f"Written to {output_path}")


def _chord_count(document: Document) -> int:
    count = 0
    for line in document.iter_lines():
        if isinstance(line, ChordLyricsLine):
            count += len(line.placements)
        else:
            count += sum(1 for text in bar_line_chords(line.raw_content) if is_chord(text))
    return count


@click.group()
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log progress to stderr.")
@click.option("--config", "config_path", default=None, metavar="PATH",
              help=f"Settings file (default: {CONFIG_PATH})")
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: str | None) -> None:
    """Read, check and transpose chord charts in bracket notation.

    \b
    Bracket notation puts each chord just before the syllable it falls on:
      VERSE 1
      [G]Amazing [G7]grace how [C]sweet the [G]sound
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = Config.load(Path(config_path) if config_path else CONFIG_PATH)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--lenient", is_flag=True, default=False,
              help="Report how well untrusted text parses instead of failing on the first error.")
def check(file: str, lenient: bool) -> None:
    """Verify that FILE is well-formed bracket notation."""
    if lenient:
        result = parse_lenient(Path(file).read_text(encoding="utf-8"))
        for issue in result.issues:
            click.echo(f"Line {issue.line_number}: {issue.reason}: {issue.text!r}")
        click.echo(f"Confidence: {result.confidence:.0%}")
        return

    document = _read_strict(file)
    try:
        document.validate()
    except ValidationError as exc:
        _fail(str(exc))
    click.echo(f"OK: {len(document.sections)} section(s), {_chord_count(document)} chord(s)")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("-s", "--semitones", type=int, required=True, help="Half steps to move; negative moves down.")
@click.option("--prefer", default=None, metavar="SHARP|FLAT|AUTO|KEY",
              help="Accidental spelling for the result (default: follow --key).")
@click.option("--key", default=None, help="Current key of the chart; guides spelling.")
@click.option("-o", "--output", "output_path", default=None, metavar="PATH",
              help="Output file path (default: print to stdout)")
@click.pass_obj
def transpose(config: Config, file: str, semitones: int, prefer: str | None,
              key: str | None, output_path: str | None) -> None:
    """Transpose every chord in FILE by a number of semitones."""
    document = _read_strict(file)
    document.metadata.key = key
    if prefer is None and config.default_preference.lower() != "auto":
        prefer = config.default_preference
    skipped = document.transpose(semitones, prefer)
    for text in skipped:
        click.echo(f"Warning: left {text!r} untransposed", err=True)
    if document.metadata.key:
        click.echo(f"New key: {document.metadata.key}", err=True)
    _emit(serialize(document), output_path)


@main.command("format")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--prefer", default=None, metavar="SHARP|FLAT|KEY",
              help="Respell every chord with sharps or flats.")
@click.option("-o", "--output", "output_path", default=None, metavar="PATH",
              help="Output file path (default: print to stdout)")
def format_(file: str, prefer: str | None, output_path: str | None) -> None:
    """Clean up loosely written notation in FILE into canonical form."""
    result = parse_lenient(Path(file).read_text(encoding="utf-8"))
    for issue in result.issues:
        logging.getLogger(__name__).info("Line %d: %s", issue.line_number, issue.reason)
    _emit(serialize(result.document, prefer), output_path)


@main.command("import")
@click.argument("location")
@click.option("--endpoint", default=None, metavar="URL",
              help="Extraction endpoint for images and PDFs (default: from config).")
@click.option("-o", "--output", "output_path", default=None, metavar="PATH",
              help="Output file path (default: <title>.txt)")
@click.option("--stdout", is_flag=True, default=False,
              help="Print to stdout instead of writing a file.")
@click.pass_obj
def import_(config: Config, location: str, endpoint: str | None,
            output_path: str | None, stdout: bool) -> None:
    """Import a chart from an extraction payload, text file or scan.

    \b
    Supported inputs:
      - .json extraction payloads, .txt / .md / .chart text
      - .jpg .png .gif .webp .pdf scans (needs --endpoint)
    """
    # --- Resolve source ---
    try:
        source = get_source(location, endpoint or config.importer.endpoint, config.importer.timeout)
    except UnsupportedSourceError as exc:
        click.echo(f"Error: {exc}", err=True)
        click.echo("Scans need an extraction endpoint: pass --endpoint or set BRACKETCHART_ENDPOINT", err=True)
        sys.exit(1)

    # --- Fetch + ingest ---
    try:
        chart = source.extract(location)
    except FetchError as exc:
        msg = f"Could not reach {exc.url}"
        if exc.status_code:
            msg += f" (HTTP {exc.status_code})"
        _fail(msg)
    except (ExtractionEmpty, OSError) as exc:
        _fail(str(exc))

    if chart.confidence < 0.5:
        click.echo(f"Warning: low confidence import ({chart.confidence:.0%}); review the result", err=True)
    if chart.document.metadata.is_empty():
        click.echo("Warning: no song metadata found; the chart has no title or key", err=True)

    # --- Output ---
    text = serialize(chart.document)
    if stdout:
        click.echo(text, nl=False)
        return

    dest = Path(output_path) if output_path else Path(_default_filename(chart.document.metadata.title))
    dest.write_text(text, encoding="utf-8")
    click.echo(f"Written to {dest}")
