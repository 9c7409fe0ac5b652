"""Command-line interface for recdedup.

Provides CLI commands for importing records, flagging them and running
deduplication and integrity checks against a store.
"""

import importlib.metadata
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NoReturn

import click

from recdedup.audit import LOG_LEVELS, AuditLogger, generate_run_id, get_package_version

__all__ = ["cli"]

try:
    __version__ = importlib.metadata.version("recdedup")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development


db_option = click.option(
    "--db",
    type=click.Path(dir_okay=False),
    required=True,
    help="SQLite database file holding records and dedup groups",
)
config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="JSON dedup configuration",
)
log_option = click.option(
    "--log",
    "log_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Append JSONL events to this file",
)
log_level_option = click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS),
    default="INFO",
    show_default=True,
    help="Least severe event level written to --log",
)


@contextmanager
def _audit_logger(
    log_path: str | None,
    level: str,
    command: str,
    parameters: dict[str, Any],
) -> Iterator[AuditLogger | None]:
    """Open an audit logger when ``--log`` is given and bracket the run."""
    if log_path is None:
        yield None
        return
    start = time.perf_counter()
    with AuditLogger(generate_run_id(), Path(log_path), min_level=level) as logger:
        run_parameters = {"command": command, "version": get_package_version(), **parameters}
        logger.run_started(sys.argv, run_parameters)
        status = "failed"
        try:
            yield logger
            status = "success"
        finally:
            logger.run_finished(status, round(time.perf_counter() - start, 3))


def _fail(message: str) -> NoReturn:
    click.secho(f"✗ Error: {message}", fg="red", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="recdedup")
def cli() -> None:
    """Incremental deduplication of harvested bibliographic records.

    Use 'recdedup COMMAND --help' for command-specific help.
    """


@cli.command(name="import")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@db_option
@log_option
@log_level_option
def import_(input_path: str, db: str, log_path: str | None, log_level: str) -> None:
    """Import record documents from a JSONL file into the store.

    Each line is a record document with at least ``id``, ``source_id``
    and ``format``. Imported records are flagged for deduplication.

    Examples
    --------
        recdedup import harvest.jsonl --db dedup.sqlite
    """
    from recdedup.api import open_store, read_jsonl
    from recdedup.engine import import_records

    try:
        with _audit_logger(log_path, log_level, "import", {"input": input_path}) as logger:
            store = open_store(db)
            count = import_records(store, read_jsonl(input_path), logger)
    except Exception as e:
        _fail(str(e))

    click.secho(f"✓ Imported {count} records into {db}", fg="green")


@cli.command()
@db_option
@click.option("--source", "source_id", default=None, help="Only flag records of this source")
def mark(db: str, source_id: str | None) -> None:
    """Flag live records for re-deduplication.

    Examples
    --------
        recdedup mark --db dedup.sqlite --source lib1
    """
    from recdedup.api import open_store
    from recdedup.engine import mark_for_update

    try:
        count = mark_for_update(open_store(db), source_id)
    except Exception as e:
        _fail(str(e))

    click.secho(f"✓ Flagged {count} records for deduplication", fg="green")


@cli.command()
@db_option
@config_option
@click.option("--source", "source_id", default=None, help="Only process this source")
@click.option("--all", "all_records", is_flag=True, help="Re-evaluate every live record")
@click.option("--single", "single_id", default=None, help="Process only this record id")
@click.option("--mark-only", is_flag=True, help="Flag records and stop")
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Worker threads",
)
@log_option
@log_level_option
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def deduplicate(
    db: str,
    config_path: str,
    source_id: str | None,
    all_records: bool,
    single_id: str | None,
    mark_only: bool,
    workers: int,
    log_path: str | None,
    log_level: str,
    verbose: bool,
) -> None:
    """Deduplicate records flagged for update.

    Records of every source with deduplication enabled are processed
    unless --source or --single narrows the run.

    Examples
    --------
        recdedup deduplicate --db dedup.sqlite -c dedup.json
        recdedup deduplicate --db dedup.sqlite -c dedup.json --all --workers 4
        recdedup deduplicate --db dedup.sqlite -c dedup.json --single lib1.42
    """
    from recdedup.api import open_store
    from recdedup.engine import load_config, run_deduplication

    parameters = {
        "source_id": source_id,
        "all_records": all_records,
        "single_id": single_id,
        "mark_only": mark_only,
        "workers": workers,
    }
    if verbose:
        click.echo("Starting deduplication...", err=True)
        for name, value in parameters.items():
            click.echo(f"  {name}: {value}", err=True)

    try:
        config = load_config(Path(config_path))
        with _audit_logger(log_path, log_level, "deduplicate", parameters) as logger:
            result = run_deduplication(
                open_store(db),
                config,
                source_id=source_id,
                all_records=all_records,
                single_id=single_id,
                mark_only=mark_only,
                workers=workers,
                logger=logger,
            )
    except Exception as e:
        if verbose:
            import traceback

            click.echo(traceback.format_exc(), err=True)
        _fail(str(e))

    if mark_only:
        click.secho("✓ Records flagged for deduplication", fg="green")
        return

    line = (
        f"{result.processed} records processed, {result.deduplicated} deduplicated, "
        f"{result.failed} failed in {result.duration_seconds:.1f}s"
    )
    if not result.success:
        click.secho(f"✗ {line}", fg="red", err=True)
        sys.exit(1)
    click.secho(f"✓ {line}", fg="green")


@cli.command(name="check-dedup")
@db_option
@config_option
@click.option("--strict", is_flag=True, help="Re-run the match rules between group members")
@log_option
@log_level_option
def check_dedup(
    db: str,
    config_path: str,
    strict: bool,
    log_path: str | None,
    log_level: str,
) -> None:
    """Verify dedup groups and record links, repairing what is broken.

    Examples
    --------
        recdedup check-dedup --db dedup.sqlite -c dedup.json --strict
    """
    from recdedup.api import open_store
    from recdedup.engine import load_config, run_check_dedup

    try:
        config = load_config(Path(config_path))
        with _audit_logger(log_path, log_level, "check-dedup", {"strict": strict}) as logger:
            result = run_check_dedup(open_store(db), config, strict=strict, logger=logger)
    except Exception as e:
        _fail(str(e))

    for fix in result.fixes:
        click.echo(fix)
    click.secho(
        f"✓ Checked {result.processed} groups and links, {len(result.fixes)} repaired",
        fg="green",
    )


if __name__ == "__main__":
    cli()
