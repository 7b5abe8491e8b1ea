"""Offender aggregate statistics and the denormalized agency list.

`record_enforcement_action` is the cheap incremental update applied after a
case or notice is written. `recompute_agencies` rebuilds the agency list
from the persisted rows; it is idempotent and safe to retry, and failures
propagate to the caller.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

import sqlalchemy as sa
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..logging import get_context_logger
from ..models import Offender, RecordKind
from ..schema import cases, notices, offenders
from .offenders import load_offender

logger = get_context_logger(__name__)


class AgencyRecomputeSummary(BaseModel):
    """Outcome of a batch agency-list recomputation."""

    processed: int = 0
    updated: int = 0
    unchanged: int = 0
    dry_run: bool = False


async def record_enforcement_action(
    session: AsyncSession,
    offender_id: UUID,
    kind: RecordKind,
    fine: Decimal | None = None,
    agency_code: str | None = None,
    action_date: date | None = None,
) -> Offender:
    """Increment an offender's counters for one new case or notice.

    Args:
        session: Session holding the caller's transaction
        offender_id: Offender the record was attached to
        kind: Case or notice
        fine: Fine imposed (cases only)
        agency_code: Agency that took the action
        action_date: Date of the action, extends first/last seen

    Returns:
        The updated offender

    Raises:
        NotFound: Offender does not exist
    """
    offender = await load_offender(session, offender_id)

    values: dict = {"updated_at": sa.func.now()}
    if kind == RecordKind.CASE:
        values["total_cases"] = offenders.c.total_cases + 1
        if fine:
            values["total_fines"] = offenders.c.total_fines + fine
    else:
        values["total_notices"] = offenders.c.total_notices + 1

    if agency_code and agency_code not in offender.agencies:
        values["agencies"] = [*offender.agencies, agency_code]

    if action_date:
        if offender.first_seen_date is None or action_date < offender.first_seen_date:
            values["first_seen_date"] = action_date
        if offender.last_seen_date is None or action_date > offender.last_seen_date:
            values["last_seen_date"] = action_date

    await session.execute(
        sa.update(offenders).where(offenders.c.id == offender_id).values(**values)
    )
    return await load_offender(session, offender_id)


async def agencies_for(session: AsyncSession, offender_id: UUID) -> list[str]:
    """Agencies with at least one case or notice against the offender."""
    case_agencies = sa.select(cases.c.agency_id).where(cases.c.offender_id == offender_id)
    notice_agencies = sa.select(notices.c.agency_id).where(notices.c.offender_id == offender_id)
    result = await session.execute(sa.union(case_agencies, notice_agencies))
    return sorted(result.scalars().all())


async def recompute_agencies(
    session: AsyncSession,
    offender_id: UUID,
    dry_run: bool = False,
) -> list[str]:
    """Rebuild the denormalized agency list of one offender.

    Returns:
        The recomputed agency list

    Raises:
        NotFound: Offender does not exist
    """
    offender = await load_offender(session, offender_id)
    agencies = await agencies_for(session, offender_id)

    if not dry_run and agencies != offender.agencies:
        await session.execute(
            sa.update(offenders)
            .where(offenders.c.id == offender_id)
            .values(agencies=agencies, updated_at=sa.func.now())
        )
        logger.debug(
            f"Updated agencies for offender {offender_id}",
            extra={"agencies": agencies},
        )
    return agencies


async def recompute_all_agencies(
    session: AsyncSession,
    limit: int | None = None,
    only_empty: bool = True,
    dry_run: bool = False,
) -> AgencyRecomputeSummary:
    """Rebuild agency lists for many offenders.

    Args:
        session: Database session
        limit: Maximum offenders processed
        only_empty: Only offenders whose agency list is empty
        dry_run: Compute without writing

    Returns:
        Counts of processed, updated and unchanged offenders
    """
    result = await session.execute(
        sa.select(offenders.c.id, offenders.c.agencies).order_by(offenders.c.created_at, offenders.c.id)
    )

    summary = AgencyRecomputeSummary(dry_run=dry_run)
    for row in result.all():
        if only_empty and row.agencies:
            continue
        if limit is not None and summary.processed >= limit:
            break

        agencies = await recompute_agencies(session, row.id, dry_run=dry_run)
        summary.processed += 1
        if agencies != (row.agencies or []):
            summary.updated += 1
        else:
            summary.unchanged += 1

    logger.info(
        f"Recomputed agencies for {summary.processed} offenders",
        extra=summary.model_dump(),
    )
    return summary
