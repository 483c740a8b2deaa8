import enum
import logging
from pathlib import Path
from typing import Dict
from typing import List
from typing import Optional

import typer

from python_maybe_async.config import load_config
from python_maybe_async.config import merge_configs
from python_maybe_async.errors import MaybeAsyncError
from python_maybe_async.main import MaybeAsyncTransformer
from python_maybe_async.parse import parse
from python_maybe_async.parse.declarations import Mode
from python_maybe_async.transform.suspension import find_suspension_markers

app = typer.Typer(add_completion=False, help="Generate blocking and non-blocking builds of maybe_async sources.")


class BuildChoice(str, enum.Enum):
    blocking = "blocking"
    non_blocking = "non-blocking"
    gated = "gated"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s"
    )


@app.command()
def generate(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write here instead of stdout."),
    build: BuildChoice = typer.Option(BuildChoice.gated, "--build", "-b"),
    flags: Optional[List[str]] = typer.Option(None, "--flag", "-D", help="Set a flag in the selected build."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="pyproject.toml holding the settings."),
    namespace: Optional[str] = typer.Option(None, "--namespace"),
    blocking_flag: Optional[str] = typer.Option(None, "--blocking-flag"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Generate one build of SOURCE (or guarded source holding every variant)."""
    _configure_logging(verbose)
    try:
        config = merge_configs(
            load_config(config_path or Path.cwd()), namespace=namespace, blocking_flag=blocking_flag
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    flags = flags or []
    transformer = MaybeAsyncTransformer(config)
    selected: Optional[Dict[str, bool]]
    if build is BuildChoice.gated:
        selected = {flag: True for flag in flags} if flags else None
    else:
        selected = config.build_flags(Mode(build.value))
        selected.update({flag: True for flag in flags})

    try:
        generated = transformer.generate(source.read_text(), selected, str(source))
    except MaybeAsyncError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)

    if output is None:
        typer.echo(generated, nl=False)
    else:
        output.write_text(generated)
        typer.echo(f"Wrote {output}", err=True)


@app.command()
def markers(source: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True)) -> None:
    """List the suspension markers found in SOURCE."""
    for marker in find_suspension_markers(parse(source.read_text(), str(source))):
        typer.echo(f"{source}:{marker.lineno}:{marker.col_offset + 1}: {marker.kind.value}")


def main() -> None:
    app()
