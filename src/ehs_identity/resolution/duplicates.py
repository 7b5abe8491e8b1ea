"""Read-only duplicate detection for triage.

Cases and notices are grouped by their natural key, the pair
(agency_id, trimmed regulator_id). Agencies reuse each other's reference
formats, so the reference code alone is never used as a grouping key.

Offenders are grouped by lower-cased trimmed name. This is an advisory
heuristic for human review and never triggers an automatic merge.
"""

from collections import defaultdict

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import is_postgres
from ..logging import get_context_logger
from ..models import CaseRef, NoticeRef, OffenderRef
from ..schema import cases, notices, offenders

logger = get_context_logger(__name__)

DEFAULT_OFFENDER_SCAN_LIMIT = 500

# Characters stripped from reference codes before grouping
CODE_WHITESPACE = " \t\n\r\f\v"


class DuplicateDetector:
    """Finds groups of records that look like accidental duplicates.

    No method writes to the database.
    """

    def __init__(self, offender_scan_limit: int = DEFAULT_OFFENDER_SCAN_LIMIT):
        self.offender_scan_limit = offender_scan_limit

    async def find_duplicate_cases(
        self,
        session: AsyncSession,
        agency_id: str | None = None,
    ) -> list[list[CaseRef]]:
        """Cases sharing (agency_id, trimmed regulator_id).

        Args:
            session: Database session
            agency_id: Restrict the scan to one agency

        Returns:
            Groups with more than one member, largest first
        """
        rows = await self._rows_with_shared_key(session, cases, agency_id)
        groups = self._group_by_key(rows)
        logger.info(
            f"Found {len(groups)} duplicate case groups",
            extra={"agency_id": agency_id},
        )
        return [
            [
                CaseRef(
                    id=row.id,
                    agency_id=row.agency_id,
                    regulator_id=row.trimmed_code,
                    offender_id=row.offender_id,
                    case_reference=row.case_reference,
                    offence_action_date=row.offence_action_date,
                    offence_fine=row.offence_fine,
                )
                for row in group
            ]
            for group in groups
        ]

    async def find_duplicate_notices(
        self,
        session: AsyncSession,
        agency_id: str | None = None,
    ) -> list[list[NoticeRef]]:
        """Notices sharing (agency_id, trimmed regulator_id)."""
        rows = await self._rows_with_shared_key(session, notices, agency_id)
        groups = self._group_by_key(rows)
        logger.info(
            f"Found {len(groups)} duplicate notice groups",
            extra={"agency_id": agency_id},
        )
        return [
            [
                NoticeRef(
                    id=row.id,
                    agency_id=row.agency_id,
                    regulator_id=row.trimmed_code,
                    offender_id=row.offender_id,
                    notice_type=row.notice_type,
                    notice_date=row.notice_date,
                )
                for row in group
            ]
            for group in groups
        ]

    async def find_duplicate_offenders(
        self,
        session: AsyncSession,
        limit: int | None = None,
        normalized: bool = False,
    ) -> list[list[OffenderRef]]:
        """Offenders whose names coincide, within a bounded scan.

        Args:
            session: Database session
            limit: Maximum offenders scanned (default: offender_scan_limit)
            normalized: Group by normalized_name instead of the trimmed,
                lower-cased display name

        Returns:
            Groups with more than one member
        """
        limit = limit or self.offender_scan_limit
        result = await session.execute(
            sa.select(
                offenders.c.id,
                offenders.c.name,
                offenders.c.normalized_name,
                offenders.c.postcode,
                offenders.c.company_registration_number,
                offenders.c.total_cases,
                offenders.c.total_notices,
            )
            .order_by(offenders.c.name, offenders.c.id)
            .limit(limit)
        )

        groups: dict[str, list[OffenderRef]] = defaultdict(list)
        for row in result:
            key = row.normalized_name if normalized else (row.name or "").strip().lower()
            if not key:
                continue
            groups[key].append(OffenderRef.model_validate(dict(row._mapping)))

        duplicates = [group for group in groups.values() if len(group) > 1]
        logger.info(f"Found {len(duplicates)} duplicate offender groups")
        return duplicates

    # =========================
    # Helpers
    # =========================

    async def _rows_with_shared_key(
        self,
        session: AsyncSession,
        table: sa.Table,
        agency_id: str | None,
    ) -> list:
        # Plain trim() only strips spaces; scraped codes also carry newlines and tabs
        strip = sa.func.btrim if is_postgres(session) else sa.func.trim
        # Rendered inline so the SELECT and GROUP BY expressions are identical
        chars = sa.literal(CODE_WHITESPACE, literal_execute=True)
        trimmed = strip(table.c.regulator_id, chars)
        filters = [table.c.regulator_id.is_not(None), trimmed != ""]
        if agency_id:
            filters.append(table.c.agency_id == agency_id)

        shared_keys = (
            sa.select(table.c.agency_id, trimmed.label("code"))
            .where(*filters)
            .group_by(table.c.agency_id, trimmed)
            .having(sa.func.count() > 1)
            .subquery()
        )

        result = await session.execute(
            sa.select(table, trimmed.label("trimmed_code"))
            .join(
                shared_keys,
                sa.and_(
                    table.c.agency_id == shared_keys.c.agency_id,
                    trimmed == shared_keys.c.code,
                ),
            )
            .order_by(table.c.agency_id, trimmed, table.c.created_at, table.c.id)
        )
        return result.all()

    @staticmethod
    def _group_by_key(rows: list) -> list[list]:
        groups: dict[tuple[str, str], list] = defaultdict(list)
        for row in rows:
            groups[(row.agency_id, row.trimmed_code)].append(row)
        return sorted(groups.values(), key=len, reverse=True)
