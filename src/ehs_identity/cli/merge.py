"""CLI commands for merging duplicate offenders.

Usage:
    ehs-identity merge preview MASTER_ID DUPLICATE_ID...
    ehs-identity merge execute MASTER_ID DUPLICATE_ID... [--yes]
"""

from uuid import UUID

import click

from .common import echo_json, run_async


@click.group(name="merge")
def cli():
    """Preview and execute offender merges."""
    pass


async def _with_coordinator(skip_registry: bool, action):
    from ..cache import create_cache
    from ..config import get_settings
    from ..db import get_session_factory
    from ..registry import CompaniesHouseClient
    from ..resolution import MergeCoordinator

    settings = get_settings()
    registry = None
    if not skip_registry:
        registry = CompaniesHouseClient.from_settings(settings, cache=create_cache(settings))

    coordinator = MergeCoordinator.from_settings(
        settings, get_session_factory(), registry=registry
    )
    try:
        return await action(coordinator)
    finally:
        if registry is not None:
            await registry.close()


def _echo_preview(preview) -> None:
    master = preview.master
    click.echo(f"\nMerge preview for {master.name} ({master.id})")
    click.echo("=" * 70)
    click.echo(f"  Duplicates: {len(preview.duplicates)}")
    for duplicate in preview.duplicates:
        click.echo(f"    {duplicate.id}  {duplicate.name}")

    registry = preview.registry
    if registry.checked:
        similarity = f"{registry.similarity:.2f}" if registry.similarity is not None else "-"
        click.echo(
            f"  Registry: {registry.canonical_name or 'not found'} "
            f"(similarity {similarity}, threshold {registry.threshold:.2f})"
        )

    for change in preview.canonical_changes:
        click.echo(f"  {change.field}: {change.current!r} -> {change.canonical!r}")

    totals = preview.projected_totals
    click.echo(
        f"  Projected: cases={totals.total_cases} notices={totals.total_notices} "
        f"fines={totals.total_fines}"
    )
    click.echo(f"  Agencies: {', '.join(preview.projected_agencies) or '-'}")
    click.echo(
        f"  Moving {preview.cases_to_move} cases and {preview.notices_to_move} notices"
    )

    for finding in preview.findings:
        colour = "red" if finding.blocking else "yellow"
        click.secho(f"  [{finding.code}] {finding.message}", fg=colour)

    if preview.can_merge:
        click.secho("\nMerge can proceed.", fg="green")
    else:
        click.secho("\nMerge is blocked.", fg="red")


@cli.command(name="preview")
@click.argument("master_id", type=click.UUID)
@click.argument("duplicate_ids", type=click.UUID, nargs=-1, required=True)
@click.option("--skip-registry", is_flag=True, help="Do not consult Companies House")
@click.option("--json", "as_json", is_flag=True, help="Print the preview as JSON")
def preview_merge(
    master_id: UUID,
    duplicate_ids: tuple[UUID, ...],
    skip_registry: bool,
    as_json: bool,
):
    """Show what merging DUPLICATE_IDS into MASTER_ID would do."""

    preview = run_async(
        lambda: _with_coordinator(
            skip_registry,
            lambda c: c.preview_merge(master_id, list(duplicate_ids)),
        )
    )
    if as_json:
        echo_json(preview)
    else:
        _echo_preview(preview)


@cli.command(name="execute")
@click.argument("master_id", type=click.UUID)
@click.argument("duplicate_ids", type=click.UUID, nargs=-1, required=True)
@click.option("--skip-registry", is_flag=True, help="Do not consult Companies House")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def execute_merge(
    master_id: UUID,
    duplicate_ids: tuple[UUID, ...],
    skip_registry: bool,
    yes: bool,
):
    """Merge DUPLICATE_IDS into MASTER_ID and delete the duplicates.

    Examples:

        ehs-identity merge execute 6f1c... 0b2e... 9d4a... --yes
    """
    if not yes:
        click.confirm(
            f"Merge {len(duplicate_ids)} offender(s) into {master_id}?", abort=True
        )

    result = run_async(
        lambda: _with_coordinator(
            skip_registry,
            lambda c: c.execute_merge(master_id, list(duplicate_ids)),
        )
    )
    click.secho(f"Merged into {result.master.name} ({result.master.id})", fg="green")
    click.echo(f"  Deleted offenders: {len(result.deleted_ids)}")
    click.echo(f"  Cases moved: {result.cases_moved}")
    click.echo(f"  Notices moved: {result.notices_moved}")
