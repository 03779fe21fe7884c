# ABOUTME: The `albumery inspect` command for trying the extractors on one name.
# ABOUTME: Shows every matching candidate and the arbitrated record.

from pathlib import Path

import click
from rich.console import Console

from albumery.cli.options import config_option
from albumery.cli.tables import candidates_table, record_table
from albumery.core.config import ConfigError, EngineConfig, load_config
from albumery.formats.tags import MutagenTagReader
from albumery.metadata.arbiter import arbitrate
from albumery.metadata.extractors import candidate_from_tags, extract

console = Console()


@click.command()
@click.argument("name")
@config_option
def inspect(name: str, config_path: Path | None) -> None:
    """Show what albumery reads from a directory NAME (or path).

    When NAME is an existing directory its embedded tags are read too.
    """
    try:
        config = load_config(config_path) if config_path else EngineConfig()
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc

    candidates = extract(name)
    path = Path(name)
    if path.is_dir():
        tag_candidate = candidate_from_tags(
            MutagenTagReader(config.audio_extensions).read_tags(path)
        )
        if tag_candidate is not None:
            candidates.append(tag_candidate)

    if not candidates:
        console.print(f"[yellow]No naming pattern matched[/yellow] {name!r}")
    else:
        console.print(candidates_table(candidates))

    record = arbitrate(candidates, config, directory=name)
    console.print(record_table(record))
