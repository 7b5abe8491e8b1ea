"""Identity resolution schema

Revision ID: 001_identity_schema
Revises:
Create Date: 2026-10-19

Creates the tables behind offender and legislation resolution:
- agencies: Enforcement agencies
- offenders: Resolved offender identities
- legislation: Deduplicated legislation catalogue
- cases / notices: Enforcement records referencing offenders
- offender_match_reviews: Company match review queue
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001_identity_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Trigram similarity backs fuzzy offender candidate search
    op.execute('CREATE EXTENSION IF NOT EXISTS "pg_trgm"')

    # =========================
    # Agencies Table
    # =========================
    op.create_table(
        "agencies",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("base_url", sa.Text, nullable=True),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    )

    # =========================
    # Offenders Table
    # =========================
    op.create_table(
        "offenders",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("normalized_name", sa.Text, nullable=False),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("local_authority", sa.Text, nullable=True),
        sa.Column("country", sa.Text, nullable=True),
        sa.Column("postcode", sa.String(16), nullable=True),
        sa.Column("town", sa.Text, nullable=True),
        sa.Column("county", sa.Text, nullable=True),
        sa.Column("main_activity", sa.Text, nullable=True),
        sa.Column("business_type", sa.String(32), nullable=True),
        sa.Column("industry", sa.Text, nullable=True),
        sa.Column(
            "industry_sectors",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "agencies",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("company_registration_number", sa.String(16), nullable=True),
        sa.Column("total_cases", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_notices", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_fines", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("first_seen_date", sa.Date, nullable=True),
        sa.Column("last_seen_date", sa.Date, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.UniqueConstraint(
            "company_registration_number",
            name="uq_offenders_company_registration_number",
        ),
    )

    op.create_index(
        "uq_offenders_normalized_name_unnumbered",
        "offenders",
        ["normalized_name"],
        unique=True,
        postgresql_where=sa.text("company_registration_number IS NULL"),
    )
    op.create_index("ix_offenders_postcode", "offenders", ["postcode"])
    op.execute(
        "CREATE INDEX ix_offenders_normalized_name_trgm ON offenders "
        "USING gin (normalized_name gin_trgm_ops)"
    )

    # =========================
    # Legislation Table
    # =========================
    op.create_table(
        "legislation",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("year", sa.Integer, nullable=True),
        sa.Column("number", sa.Integer, nullable=True),
        sa.Column("type", sa.String(16), nullable=False, server_default="act"),
        sa.Column("identity_key", sa.Text, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.UniqueConstraint("identity_key", name="uq_legislation_identity_key"),
    )
    op.create_index("ix_legislation_year", "legislation", ["year"])

    # =========================
    # Enforcement Records
    # =========================
    for table_name, columns in (
        (
            "cases",
            [
                sa.Column("case_reference", sa.Text, nullable=True),
                sa.Column("offence_action_date", sa.Date, nullable=True),
                sa.Column("offence_fine", sa.Numeric(14, 2), nullable=True),
                sa.Column("offence_result", sa.Text, nullable=True),
            ],
        ),
        (
            "notices",
            [
                sa.Column("notice_type", sa.Text, nullable=True),
                sa.Column("notice_date", sa.Date, nullable=True),
                sa.Column("compliance_date", sa.Date, nullable=True),
            ],
        ),
    ):
        op.create_table(
            table_name,
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "agency_id",
                sa.String(32),
                sa.ForeignKey("agencies.id", name=f"fk_{table_name}_agency_id_agencies"),
                nullable=False,
            ),
            sa.Column(
                "offender_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("offenders.id", name=f"fk_{table_name}_offender_id_offenders"),
                nullable=False,
            ),
            sa.Column("regulator_id", sa.Text, nullable=True),
            *columns,
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.text("NOW()"),
            ),
        )
        op.create_index(
            f"ix_{table_name}_agency_regulator", table_name, ["agency_id", "regulator_id"]
        )
        op.create_index(f"ix_{table_name}_offender_id", table_name, ["offender_id"])

    # =========================
    # Match Review Queue
    # =========================
    op.create_table(
        "offender_match_reviews",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "offender_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(
                "offenders.id",
                name="fk_offender_match_reviews_offender_id_offenders",
                ondelete="CASCADE",
            ),
            nullable=False,
        ),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column(
            "candidate_companies",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("confidence_score", sa.Float, nullable=True),
        sa.Column("selected_company_number", sa.String(16), nullable=True),
        sa.Column("reviewed_by", sa.Text, nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.UniqueConstraint("offender_id", name="uq_offender_match_reviews_offender_id"),
    )
    op.create_index(
        "ix_offender_match_reviews_status", "offender_match_reviews", ["status"]
    )


def downgrade() -> None:
    op.drop_table("offender_match_reviews")
    op.drop_table("notices")
    op.drop_table("cases")
    op.drop_table("legislation")
    op.execute("DROP INDEX IF EXISTS ix_offenders_normalized_name_trgm")
    op.drop_table("offenders")
    op.drop_table("agencies")
