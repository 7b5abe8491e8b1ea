"""SQLAlchemy Core tables for offenders, legislation and enforcement records.

Uniqueness invariants live in the database:

- ``offenders.company_registration_number`` is unique when present.
- ``offenders.normalized_name`` is unique among offenders without a number.
- ``legislation.identity_key`` encodes (title, year, number) NULL-safely.
- ``cases`` / ``notices`` are keyed by (agency_id, regulator_id) only as a
  lookup index. Reference codes are reused within and across agencies, so
  no unique constraint is placed on them.
"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Naming convention for constraints (improves migration compatibility)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = sa.MetaData(naming_convention=convention)

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")
TIMESTAMP = sa.DateTime(timezone=True)
MONEY = sa.Numeric(14, 2)

agencies = sa.Table(
    "agencies",
    metadata,
    sa.Column("id", sa.String(32), primary_key=True),
    sa.Column("name", sa.Text(), nullable=False),
    sa.Column("base_url", sa.Text(), nullable=True),
    sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
)

offenders = sa.Table(
    "offenders",
    metadata,
    sa.Column("id", sa.Uuid(), primary_key=True),
    sa.Column("name", sa.Text(), nullable=False),
    sa.Column("normalized_name", sa.Text(), nullable=False),
    sa.Column("address", sa.Text(), nullable=True),
    sa.Column("local_authority", sa.Text(), nullable=True),
    sa.Column("country", sa.Text(), nullable=True),
    sa.Column("postcode", sa.String(16), nullable=True),
    sa.Column("town", sa.Text(), nullable=True),
    sa.Column("county", sa.Text(), nullable=True),
    sa.Column("main_activity", sa.Text(), nullable=True),
    sa.Column("business_type", sa.String(32), nullable=True),
    sa.Column("industry", sa.Text(), nullable=True),
    sa.Column("industry_sectors", JSON_TYPE, nullable=False, server_default="[]"),
    sa.Column("agencies", JSON_TYPE, nullable=False, server_default="[]"),
    sa.Column("company_registration_number", sa.String(16), nullable=True),
    sa.Column("total_cases", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("total_notices", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("total_fines", MONEY, nullable=False, server_default="0"),
    sa.Column("first_seen_date", sa.Date(), nullable=True),
    sa.Column("last_seen_date", sa.Date(), nullable=True),
    sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
    sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
    sa.UniqueConstraint("company_registration_number"),
)
sa.Index(
    "uq_offenders_normalized_name_unnumbered",
    offenders.c.normalized_name,
    unique=True,
    postgresql_where=offenders.c.company_registration_number.is_(None),
    sqlite_where=offenders.c.company_registration_number.is_(None),
)
sa.Index("ix_offenders_postcode", offenders.c.postcode)

legislation = sa.Table(
    "legislation",
    metadata,
    sa.Column("id", sa.Uuid(), primary_key=True),
    sa.Column("title", sa.Text(), nullable=False),
    sa.Column("year", sa.Integer(), nullable=True),
    sa.Column("number", sa.Integer(), nullable=True),
    sa.Column("type", sa.String(16), nullable=False, server_default="act"),
    sa.Column("identity_key", sa.Text(), nullable=False),
    sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
    sa.UniqueConstraint("identity_key"),
)
sa.Index("ix_legislation_year", legislation.c.year)

cases = sa.Table(
    "cases",
    metadata,
    sa.Column("id", sa.Uuid(), primary_key=True),
    sa.Column("agency_id", sa.String(32), sa.ForeignKey("agencies.id"), nullable=False),
    sa.Column("offender_id", sa.Uuid(), sa.ForeignKey("offenders.id"), nullable=False),
    sa.Column("regulator_id", sa.Text(), nullable=True),
    sa.Column("case_reference", sa.Text(), nullable=True),
    sa.Column("offence_action_date", sa.Date(), nullable=True),
    sa.Column("offence_fine", MONEY, nullable=True),
    sa.Column("offence_result", sa.Text(), nullable=True),
    sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
)
sa.Index("ix_cases_agency_regulator", cases.c.agency_id, cases.c.regulator_id)
sa.Index("ix_cases_offender_id", cases.c.offender_id)

notices = sa.Table(
    "notices",
    metadata,
    sa.Column("id", sa.Uuid(), primary_key=True),
    sa.Column("agency_id", sa.String(32), sa.ForeignKey("agencies.id"), nullable=False),
    sa.Column("offender_id", sa.Uuid(), sa.ForeignKey("offenders.id"), nullable=False),
    sa.Column("regulator_id", sa.Text(), nullable=True),
    sa.Column("notice_type", sa.Text(), nullable=True),
    sa.Column("notice_date", sa.Date(), nullable=True),
    sa.Column("compliance_date", sa.Date(), nullable=True),
    sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
)
sa.Index("ix_notices_agency_regulator", notices.c.agency_id, notices.c.regulator_id)
sa.Index("ix_notices_offender_id", notices.c.offender_id)

offender_match_reviews = sa.Table(
    "offender_match_reviews",
    metadata,
    sa.Column("id", sa.Uuid(), primary_key=True),
    sa.Column(
        "offender_id",
        sa.Uuid(),
        sa.ForeignKey("offenders.id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
    sa.Column("candidate_companies", JSON_TYPE, nullable=False, server_default="[]"),
    sa.Column("confidence_score", sa.Float(), nullable=True),
    sa.Column("selected_company_number", sa.String(16), nullable=True),
    sa.Column("reviewed_by", sa.Text(), nullable=True),
    sa.Column("reviewed_at", TIMESTAMP, nullable=True),
    sa.Column("review_notes", sa.Text(), nullable=True),
    sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
    sa.UniqueConstraint("offender_id"),
)
sa.Index("ix_offender_match_reviews_status", offender_match_reviews.c.status)
