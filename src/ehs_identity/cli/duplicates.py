"""CLI commands for duplicate detection.

Usage:
    ehs-identity duplicates cases [--agency AGENCY]
    ehs-identity duplicates notices [--agency AGENCY]
    ehs-identity duplicates offenders [--limit N] [--normalized]
"""

import click

from .common import run_async


@click.group(name="duplicates")
def cli():
    """Find duplicate cases, notices and offenders."""
    pass


def _detector():
    from ..config import get_settings
    from ..resolution import DuplicateDetector

    return DuplicateDetector(
        offender_scan_limit=get_settings().offender_duplicate_scan_limit
    )


def _echo_record_groups(groups, label: str) -> None:
    if not groups:
        click.echo(f"No duplicate {label} found.")
        return

    click.echo(f"\nDuplicate {label} ({len(groups)} groups)")
    click.echo("=" * 70)
    for group in groups:
        first = group[0]
        click.echo(f"\n{first.agency_id} / {first.regulator_id.strip()} ({len(group)} records)")
        for record in group:
            click.echo(f"  {record.id}  offender={record.offender_id}")


@cli.command(name="cases")
@click.option("--agency", "agency_id", type=str, default=None, help="Restrict to one agency")
def duplicate_cases(agency_id: str | None):
    """List cases that share an agency and reference code."""
    from ..db import get_db_session

    async def _find():
        async with get_db_session() as session:
            return await _detector().find_duplicate_cases(session, agency_id=agency_id)

    _echo_record_groups(run_async(_find), "cases")


@cli.command(name="notices")
@click.option("--agency", "agency_id", type=str, default=None, help="Restrict to one agency")
def duplicate_notices(agency_id: str | None):
    """List notices that share an agency and reference code."""
    from ..db import get_db_session

    async def _find():
        async with get_db_session() as session:
            return await _detector().find_duplicate_notices(session, agency_id=agency_id)

    _echo_record_groups(run_async(_find), "notices")


@cli.command(name="offenders")
@click.option("--limit", type=int, default=None, help="Maximum offenders to scan")
@click.option(
    "--normalized",
    is_flag=True,
    help="Group by normalized name instead of exact name",
)
def duplicate_offenders(limit: int | None, normalized: bool):
    """List offenders with coinciding names.

    Groups are advisory. Review them before merging.

    Examples:

        ehs-identity duplicates offenders --normalized --limit 1000
    """
    from ..db import get_db_session

    async def _find():
        async with get_db_session() as session:
            return await _detector().find_duplicate_offenders(
                session, limit=limit, normalized=normalized
            )

    groups = run_async(_find)
    if not groups:
        click.echo("No duplicate offenders found.")
        return

    click.echo(f"\nPotential duplicate offenders ({len(groups)} groups)")
    click.echo("=" * 70)
    for group in groups:
        click.echo(f"\n{group[0].name}")
        for offender in group:
            number = offender.company_registration_number or "-"
            click.echo(
                f"  {offender.id}  postcode={offender.postcode or '-'}  "
                f"company={number}  cases={offender.total_cases}  "
                f"notices={offender.total_notices}"
            )
