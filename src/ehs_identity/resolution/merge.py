"""Merge erroneously split offenders into one master record.

Merge flow:
1. Load master and duplicates (short read-only session)
2. Validate the master against the company registry, outside any transaction
3. Build the canonical overlay from the registry response
4. In one transaction: re-point cases/notices, recompute aggregates from the
   rows now attached to the master, union set-valued fields, delete the
   duplicates and write the master

A preview runs steps 1-3 and projects step 4 with read-only queries.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..db import SessionFactory, session_scope
from ..errors import (
    ExternalLookupFailed,
    InvalidInput,
    MergeTransactionFailed,
    ResolutionError,
    ValidationFailed,
)
from ..logging import get_context_logger, log_merge_event
from ..models import (
    CANONICAL_FIELDS,
    CanonicalChange,
    MergeFinding,
    MergePreview,
    MergeResult,
    Offender,
    ProjectedTotals,
    RegistryCompany,
    RegistryValidation,
)
from ..schema import cases, notices, offenders
from .normalize import normalize_company_name, normalize_postcode
from .offenders import load_offender, load_offenders
from .scoring import MERGE_VALIDATION_THRESHOLD, name_similarity

if TYPE_CHECKING:
    from ..registry import CompanyRegistry

logger = get_context_logger(__name__)


def _union(*lists: list[str]) -> list[str]:
    """Order-preserving, de-duplicated union."""
    seen: dict[str, None] = {}
    for items in lists:
        for item in items or []:
            if item:
                seen.setdefault(item, None)
    return list(seen)


def _earliest(values: list[date | None]) -> date | None:
    present = [v for v in values if v is not None]
    return min(present) if present else None


def _latest(values: list[date | None]) -> date | None:
    present = [v for v in values if v is not None]
    return max(present) if present else None


class MergeCoordinator:
    """Previews and executes offender merges.

    Owns its sessions: the registry call must happen with no transaction
    open, so the coordinator opens a short read session, calls the registry
    and only then opens the write transaction.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        registry: "CompanyRegistry | None" = None,
        validation_threshold: float = MERGE_VALIDATION_THRESHOLD,
    ):
        """Initialize the coordinator.

        Args:
            session_factory: Factory for database sessions
            registry: Company registry client (None skips validation)
            validation_threshold: Minimum master/registry name similarity
        """
        self.session_factory = session_factory
        self.registry = registry
        self.validation_threshold = validation_threshold

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: SessionFactory,
        registry: "CompanyRegistry | None" = None,
    ) -> "MergeCoordinator":
        return cls(
            session_factory,
            registry=registry,
            validation_threshold=settings.merge_validation_threshold
            or MERGE_VALIDATION_THRESHOLD,
        )

    # =========================
    # Public API
    # =========================

    async def preview_merge(
        self,
        master_id: UUID,
        duplicate_ids: list[UUID],
    ) -> MergePreview:
        """Compute what a merge would do without changing anything.

        A failed registry validation is reported as a blocking finding
        rather than raised.

        Raises:
            InvalidInput: No duplicates, or the master listed as a duplicate
            NotFound: Master or a duplicate does not exist
        """
        duplicate_ids = self._check_ids(master_id, duplicate_ids)

        async with session_scope(self.session_factory) as session:
            master, duplicates = await self._load(session, master_id, duplicate_ids)

        validation, company = await self._validate_with_registry(master)

        findings = []
        if not validation.passed:
            findings.append(
                MergeFinding(
                    code=ValidationFailed.code,
                    message=(
                        f"Registry name '{validation.canonical_name}' does not match "
                        f"'{master.name}' (similarity {validation.similarity:.2f})"
                    ),
                    blocking=True,
                    details={
                        "similarity": validation.similarity,
                        "threshold": validation.threshold,
                        "canonical_name": validation.canonical_name,
                    },
                )
            )
        elif validation.warning:
            findings.append(
                MergeFinding(code="REGISTRY_UNAVAILABLE", message=validation.warning)
            )

        number_conflict = self._number_conflict(master, duplicates)
        if number_conflict:
            findings.append(number_conflict)

        overlay = self._canonical_overlay(company) if validation.passed else {}

        async with session_scope(self.session_factory) as session:
            totals = await self._aggregate(session, [master.id, *duplicate_ids])
            cases_to_move = await self._count(session, cases, duplicate_ids)
            notices_to_move = await self._count(session, notices, duplicate_ids)

        preview = MergePreview(
            master=master,
            duplicates=duplicates,
            registry=validation,
            canonical_changes=self._diff(master, overlay),
            projected_totals=totals,
            projected_agencies=_union(master.agencies, *(d.agencies for d in duplicates)),
            projected_industry_sectors=_union(
                master.industry_sectors, *(d.industry_sectors for d in duplicates)
            ),
            records_to_delete=duplicate_ids,
            cases_to_move=cases_to_move,
            notices_to_move=notices_to_move,
            findings=findings,
        )

        log_merge_event(
            str(master_id),
            [str(d) for d in duplicate_ids],
            outcome="previewed" if preview.can_merge else "blocked",
            dry_run=True,
            details={"similarity": validation.similarity, "total_cases": totals.total_cases},
        )
        return preview

    async def execute_merge(
        self,
        master_id: UUID,
        duplicate_ids: list[UUID],
    ) -> MergeResult:
        """Merge duplicates into the master and delete them.

        Raises:
            InvalidInput: Bad ID list, or conflicting registration numbers
            NotFound: Master or a duplicate does not exist
            ValidationFailed: Registry name too different from the master's
            MergeTransactionFailed: A write failed; nothing was changed
        """
        duplicate_ids = self._check_ids(master_id, duplicate_ids)
        dup_strs = [str(d) for d in duplicate_ids]

        async with session_scope(self.session_factory) as session:
            master, duplicates = await self._load(session, master_id, duplicate_ids)

        conflict = self._number_conflict(master, duplicates)
        if conflict:
            raise InvalidInput(conflict.message, conflict.details)

        validation, company = await self._validate_with_registry(master)
        if not validation.passed:
            log_merge_event(
                str(master_id),
                dup_strs,
                outcome="blocked",
                dry_run=False,
                details={"similarity": validation.similarity},
            )
            raise ValidationFailed(
                f"Registry name '{validation.canonical_name}' does not match "
                f"'{master.name}'",
                similarity=validation.similarity or 0.0,
                threshold=validation.threshold,
                canonical_name=validation.canonical_name,
            )

        overlay = self._canonical_overlay(company)

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    moved_cases, moved_notices = await self._apply(
                        session, master_id, duplicate_ids, overlay
                    )
            except ResolutionError:
                raise
            except Exception as e:
                logger.error(f"Merge into {master_id} rolled back: {e}")
                log_merge_event(str(master_id), dup_strs, outcome="failed", dry_run=False)
                raise MergeTransactionFailed(
                    f"Merge into offender {master_id} failed and was rolled back: {e}",
                    {"master_id": str(master_id), "duplicate_ids": dup_strs},
                ) from e

        async with session_scope(self.session_factory) as session:
            merged = await load_offender(session, master_id)

        log_merge_event(
            str(master_id),
            dup_strs,
            outcome="completed",
            dry_run=False,
            details={
                "cases_moved": moved_cases,
                "notices_moved": moved_notices,
                "total_cases": merged.total_cases,
                "total_notices": merged.total_notices,
            },
        )
        return MergeResult(
            master=merged,
            deleted_ids=duplicate_ids,
            cases_moved=moved_cases,
            notices_moved=moved_notices,
            registry=validation,
        )

    # =========================
    # Validation
    # =========================

    @staticmethod
    def _check_ids(master_id: UUID, duplicate_ids: list[UUID]) -> list[UUID]:
        unique_ids = list(dict.fromkeys(duplicate_ids))
        if not unique_ids:
            raise InvalidInput("At least one duplicate offender is required")
        if master_id in unique_ids:
            raise InvalidInput("Master offender cannot also be a duplicate")
        return unique_ids

    @staticmethod
    async def _load(
        session: AsyncSession,
        master_id: UUID,
        duplicate_ids: list[UUID],
    ) -> tuple[Offender, list[Offender]]:
        master = await load_offender(session, master_id)
        duplicates = await load_offenders(session, duplicate_ids)
        return master, duplicates

    @staticmethod
    def _number_conflict(master: Offender, duplicates: list[Offender]) -> MergeFinding | None:
        numbers = {
            n
            for n in [master.company_registration_number]
            + [d.company_registration_number for d in duplicates]
            if n
        }
        if len(numbers) <= 1:
            return None
        return MergeFinding(
            code="REGISTRATION_NUMBER_CONFLICT",
            message=f"Offenders carry different registration numbers: {sorted(numbers)}",
            blocking=True,
            details={"company_numbers": sorted(numbers)},
        )

    async def _validate_with_registry(
        self, master: Offender
    ) -> tuple[RegistryValidation, RegistryCompany | None]:
        number = master.company_registration_number
        validation = RegistryValidation(
            company_number=number, threshold=self.validation_threshold
        )
        if not number or self.registry is None:
            return validation, None

        validation.checked = True
        try:
            company = await self.registry.lookup_company(number)
        except ExternalLookupFailed as e:
            logger.warning(
                f"Registry lookup failed for {number}, merging without canonical data: {e}"
            )
            validation.warning = f"Registry lookup failed: {e.message}"
            return validation, None

        if company is None:
            logger.warning(f"Company {number} not found in registry, merging without canonical data")
            validation.warning = f"Company {number} not found in registry"
            return validation, None

        similarity = name_similarity(master.name, company.company_name)
        validation.found = True
        validation.canonical_name = company.company_name
        validation.company_status = company.company_status
        validation.similarity = similarity
        validation.passed = similarity >= self.validation_threshold
        return validation, company

    # =========================
    # Computation
    # =========================

    @staticmethod
    def _canonical_overlay(company: RegistryCompany | None) -> dict[str, str]:
        if company is None:
            return {}
        overlay = {"name": company.company_name, **company.address}
        if "postcode" in overlay:
            overlay["postcode"] = normalize_postcode(overlay["postcode"])
        return {k: v for k, v in overlay.items() if k in CANONICAL_FIELDS and v}

    @staticmethod
    def _diff(master: Offender, overlay: dict[str, str]) -> list[CanonicalChange]:
        changes = []
        for field in CANONICAL_FIELDS:
            canonical = overlay.get(field)
            current = getattr(master, field)
            if canonical and canonical != current:
                changes.append(CanonicalChange(field=field, current=current, canonical=canonical))
        return changes

    @staticmethod
    async def _count(session: AsyncSession, table: sa.Table, offender_ids: list[UUID]) -> int:
        result = await session.execute(
            sa.select(sa.func.count()).select_from(table).where(table.c.offender_id.in_(offender_ids))
        )
        return result.scalar_one()

    async def _aggregate(self, session: AsyncSession, offender_ids: list[UUID]) -> ProjectedTotals:
        """Totals over the persisted case and notice rows of `offender_ids`."""
        case_result = await session.execute(
            sa.select(
                sa.func.count(),
                sa.func.coalesce(sa.func.sum(cases.c.offence_fine), 0),
            ).where(cases.c.offender_id.in_(offender_ids))
        )
        total_cases, total_fines = case_result.one()
        total_notices = await self._count(session, notices, offender_ids)
        return ProjectedTotals(
            total_cases=total_cases,
            total_notices=total_notices,
            total_fines=Decimal(str(total_fines)),
        )

    async def _apply(
        self,
        session: AsyncSession,
        master_id: UUID,
        duplicate_ids: list[UUID],
        overlay: dict[str, str],
    ) -> tuple[int, int]:
        """Transactional part of the merge. Returns (cases moved, notices moved)."""
        master, duplicates = await self._load(session, master_id, duplicate_ids)

        moved_cases = (
            await session.execute(
                sa.update(cases)
                .where(cases.c.offender_id.in_(duplicate_ids))
                .values(offender_id=master_id)
            )
        ).rowcount
        moved_notices = (
            await session.execute(
                sa.update(notices)
                .where(notices.c.offender_id.in_(duplicate_ids))
                .values(offender_id=master_id)
            )
        ).rowcount

        totals = await self._aggregate(session, [master_id])
        everyone = [master, *duplicates]

        # Duplicates go first so the master may take over their unique keys
        await session.execute(sa.delete(offenders).where(offenders.c.id.in_(duplicate_ids)))

        name = overlay.get("name", master.name)
        values = {
            "name": name,
            "normalized_name": normalize_company_name(name),
            "address": overlay.get("address", master.address),
            "town": overlay.get("town", master.town),
            "county": overlay.get("county", master.county),
            "postcode": overlay.get("postcode", master.postcode),
            "company_registration_number": next(
                (o.company_registration_number for o in everyone if o.company_registration_number),
                None,
            ),
            "agencies": _union(*(o.agencies for o in everyone)),
            "industry_sectors": _union(*(o.industry_sectors for o in everyone)),
            "total_cases": totals.total_cases,
            "total_notices": totals.total_notices,
            "total_fines": totals.total_fines,
            "first_seen_date": _earliest([o.first_seen_date for o in everyone]),
            "last_seen_date": _latest([o.last_seen_date for o in everyone]),
            "updated_at": sa.func.now(),
        }
        await session.execute(
            sa.update(offenders).where(offenders.c.id == master_id).values(**values)
        )

        logger.info(
            f"Merged {len(duplicate_ids)} offender(s) into {master_id}",
            extra={"cases_moved": moved_cases, "notices_moved": moved_notices},
        )
        return moved_cases, moved_notices
