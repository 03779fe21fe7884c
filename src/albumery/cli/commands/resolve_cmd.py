# ABOUTME: The `albumery resolve` command: reconstruct metadata and resolve duplicates under a root.
# ABOUTME: Dry run by default; --execute archives, verifies and deletes through the ledger.

import json
import signal
from pathlib import Path

import click
from rich.console import Console

from albumery.cli.options import config_option, db_option
from albumery.cli.tables import decisions_table, review_table
from albumery.core.config import ConfigError, EngineConfig, load_config
from albumery.core.filesystem import FilesystemExecutor
from albumery.core.pipeline import ResolutionEngine, RunReport
from albumery.core.progress import CancellationToken, RichProgressSink
from albumery.db.connection import DEFAULT_DB_PATH, open_ledger
from albumery.db.ledger import LedgerWriteError, RunLedger
from albumery.formats.tags import MutagenTagReader
from albumery.metadata.discogs import DiscogsCache, DiscogsOracle
from albumery.metadata.http import AlbumeryHttpClient

console = Console()

DEFAULT_ARCHIVE_ROOT = Path.home() / ".albumery" / "archive"


def _build_config(
    config_path: Path | None,
    *,
    execute: bool,
    archive: Path | None,
    dest: Path | None,
    trash: Path | None,
    workers: int | None,
    threshold: float | None,
    strict: bool,
    discogs_token: str | None,
) -> EngineConfig:
    base = load_config(config_path) if config_path else EngineConfig()
    config = base.override(
        dry_run=not execute,
        strict_mode=strict or None,
        archive_root=archive,
        destination_root=dest,
        trash_root=trash,
        workers=workers,
        grouping_threshold=threshold,
        discogs_token=discogs_token,
        discogs_enabled=True if discogs_token else None,
    )
    if execute and config.archive_root is None:
        config = config.override(archive_root=DEFAULT_ARCHIVE_ROOT)
    return config


def _report_json(report: RunReport) -> str:
    return json.dumps(
        {
            "root": str(report.root),
            "dry_run": report.dry_run,
            "run_id": report.run_id,
            "summary": report.summary(),
            "records": [r.describe() for r in report.records],
            "decisions": [
                {
                    "id": d.decision_id,
                    "group": d.group.key_text,
                    "album": d.group.display_name,
                    "rationale": d.rationale.value,
                    "state": d.state.value,
                    "keep": d.keep,
                    "delete": list(d.delete_candidates),
                    "scores": d.scores_json(),
                }
                for d in report.decisions
            ],
            "review": [
                {"path": i.path, "reason": i.reason.value, "detail": i.detail}
                for i in report.review_items
            ],
        },
        indent=2,
        default=str,
    )


def _print_report(report: RunReport) -> None:
    duplicates = [d for d in report.decisions if len(d.group) > 1]
    if duplicates:
        console.print(decisions_table(duplicates))
    if report.review_items:
        console.print(review_table(report.review_items))

    summary = report.summary()
    mode = "[yellow]dry run[/yellow]" if report.dry_run else "[bold]executed[/bold]"
    console.print(
        f"\n{mode}: {summary['albums']} album(s), {summary['duplicates']} duplicate group(s), "
        f"{summary['review_items']} item(s) for review."
    )
    if report.dry_run and report.proposed_deletes:
        console.print(
            f"[dim]{len(report.proposed_deletes)} folder(s) would be removed; "
            "re-run with --execute to apply.[/dim]"
        )
    if not report.dry_run:
        console.print(
            f"Verified {summary['verified']}, rejected {summary['rejected']}, "
            f"executed {summary['executed']}."
        )
    if report.cancelled:
        console.print("[yellow]Run cancelled; re-run to resume.[/yellow]")


@click.command("resolve")
@click.argument("root", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--execute", is_flag=True, default=False, help="Apply decisions (default: dry run).")
@click.option(
    "--archive",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help=f"Where displaced audio goes (default with --execute: {DEFAULT_ARCHIVE_ROOT}).",
)
@click.option(
    "--dest",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Move kept albums into <dest>/<Artist>/<Title> (<Year>) [<Catalog>].",
)
@click.option(
    "--trash",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Where deleted folders are retained for undo.",
)
@config_option
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Analysis threads.")
@click.option(
    "--threshold",
    type=click.FloatRange(0.0, 1.0),
    default=None,
    help="Minimum record confidence to take part in grouping.",
)
@click.option("--strict", is_flag=True, default=False, help="Use the strict grouping threshold.")
@click.option(
    "--discogs-token",
    envvar="DISCOGS_TOKEN",
    default=None,
    help="Discogs API token; enables Discogs lookups.",
)
@db_option
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the report as JSON.")
def resolve(
    root: Path,
    execute: bool,
    archive: Path | None,
    dest: Path | None,
    trash: Path | None,
    config_path: Path | None,
    workers: int | None,
    threshold: float | None,
    strict: bool,
    discogs_token: str | None,
    db_path: Path | None,
    as_json: bool,
) -> None:
    """Reconstruct album metadata under ROOT and resolve duplicate copies."""
    try:
        config = _build_config(
            config_path,
            execute=execute,
            archive=archive,
            dest=dest,
            trash=trash,
            workers=workers,
            threshold=threshold,
            strict=strict,
            discogs_token=discogs_token,
        )
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc

    conn = open_ledger(db_path or DEFAULT_DB_PATH) if execute else None
    oracle = None
    http_client = None
    if config.discogs_enabled and config.discogs_token:
        http_client = AlbumeryHttpClient()
        oracle = DiscogsOracle(
            http_client,
            token=config.discogs_token,
            cache=DiscogsCache(ttl=config.discogs_cache_ttl),
            min_confidence=config.discogs_min_confidence,
        )

    cancel = CancellationToken()
    sink = None if as_json else RichProgressSink(console)
    engine = ResolutionEngine(
        config,
        ledger=RunLedger(conn) if conn is not None else None,
        executor=FilesystemExecutor(config.trash_root) if execute else None,
        tag_reader=MutagenTagReader(config.audio_extensions),
        oracle=oracle,
        sink=sink,
        cancel=cancel,
    )

    previous_handler = signal.signal(signal.SIGINT, lambda *_: cancel.cancel())
    try:
        report = engine.run(root)
    except (ConfigError, LedgerWriteError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        if sink is not None:
            sink.close()
        if http_client is not None:
            http_client.close()
        if conn is not None:
            conn.close()

    if as_json:
        click.echo(_report_json(report))
    else:
        _print_report(report)

    if report.cancelled:
        raise SystemExit(130)
