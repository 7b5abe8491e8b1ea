"""CLI commands for statistics maintenance.

Usage:
    ehs-identity agencies recompute [--all] [--limit N] [--dry-run]
    ehs-identity legislation stats
"""

import click

from .common import echo_json, run_async


@click.group(name="agencies")
def agencies_cli():
    """Maintain denormalized offender agency lists."""
    pass


@agencies_cli.command(name="recompute")
@click.option(
    "--all",
    "include_all",
    is_flag=True,
    help="Recompute every offender, not only those with an empty list",
)
@click.option("--limit", type=int, default=None, help="Maximum offenders to process")
@click.option("--dry-run", is_flag=True, help="Report without writing")
def recompute(include_all: bool, limit: int | None, dry_run: bool):
    """Rebuild offender agency lists from their cases and notices."""
    from ..db import get_db_session
    from ..resolution import recompute_all_agencies

    async def _recompute():
        async with get_db_session() as session:
            return await recompute_all_agencies(
                session,
                limit=limit,
                only_empty=not include_all,
                dry_run=dry_run,
            )

    summary = run_async(_recompute)
    prefix = "[dry run] " if summary.dry_run else ""
    click.echo(
        f"{prefix}Processed {summary.processed} offenders: "
        f"{summary.updated} updated, {summary.unchanged} unchanged"
    )


@click.group(name="legislation")
def legislation_cli():
    """Legislation catalogue commands."""
    pass


@legislation_cli.command(name="stats")
@click.option("--json", "as_json", is_flag=True, help="Print statistics as JSON")
def stats(as_json: bool):
    """Show legislation counts and potential duplicate titles."""
    from ..config import get_settings
    from ..db import get_db_session
    from ..resolution import LegislationResolver

    async def _stats():
        async with get_db_session() as session:
            return await LegislationResolver.from_settings(get_settings()).stats(session)

    result = run_async(_stats)
    if as_json:
        echo_json(result)
        return

    click.echo(f"\nLegislation records: {result.total_count}")
    for legislation_type, count in sorted(result.by_type.items()):
        click.echo(f"  {legislation_type}: {count}")
    click.echo(f"Missing year: {result.missing_year}")
    click.echo(f"Missing number: {result.missing_number}")

    if result.potential_duplicates:
        click.secho(
            f"\nPotential duplicates ({len(result.potential_duplicates)} groups)",
            fg="yellow",
        )
        for group in result.potential_duplicates:
            year = group.year if group.year is not None else "-"
            click.echo(f"  {group.normalized_title} ({year}): {group.count} records")
