"""Create clinic schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


def upgrade() -> None:
    """Create directory, admin registry, tenant, patient and medical record tables."""
    op.create_table(
        "users",
        sa.Column("account_id", sa.String(128), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("email_lower", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=False),
        sa.Column("photo_url", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("tenant_id", sa.String(36), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_users_email_lower", "users", ["email_lower"], unique=False)
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"], unique=False)

    op.create_table(
        "user_profiles",
        sa.Column("account_id", sa.String(128), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("email_lower", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=False),
        sa.Column("photo_url", sa.Text(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_user_profiles_email_lower", "user_profiles", ["email_lower"], unique=False
    )

    op.create_table(
        "user_roles",
        sa.Column("account_id", sa.String(128), primary_key=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'admin'")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("role IN ('admin', 'user')", name="user_roles_role_check"),
    )

    op.create_table(
        "tenants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_tenants_owner_id", "tenants", ["owner_id"], unique=False)

    op.create_table(
        "tenant_members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(36),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=False),
        _timestamp("joined_at"),
        sa.Column("invited_by", sa.String(128), nullable=True),
        sa.UniqueConstraint("tenant_id", "user_id", name="tenant_members_tenant_user_key"),
        sa.CheckConstraint(
            "role IN ('owner', 'staff', 'readonly')", name="tenant_members_role_check"
        ),
    )
    op.create_index("idx_tenant_members_tenant", "tenant_members", ["tenant_id"], unique=False)
    op.create_index("ix_tenant_members_user_id", "tenant_members", ["user_id"], unique=False)
    # At most one owner per clinic
    op.create_index(
        "tenant_members_single_owner",
        "tenant_members",
        ["tenant_id"],
        unique=True,
        postgresql_where=sa.text("role = 'owner'"),
    )

    op.create_table(
        "patients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(40), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("photo_url", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("created_by", sa.String(128), nullable=False),
    )
    op.create_index(
        "idx_patients_tenant_created", "patients", ["tenant_id", "created_at"], unique=False
    )

    # No foreign key to patients: records survive patient deletion
    op.create_table(
        "medical_records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("patient_id", sa.String(36), nullable=False),
        sa.Column("procedure_type", sa.Text(), nullable=False),
        sa.Column("chief_complaint", sa.Text(), nullable=False),
        sa.Column("professional_assessment", sa.Text(), nullable=False),
        sa.Column("procedure_details", sa.Text(), nullable=False),
        sa.Column("products_used", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("treated_areas", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("post_care_instructions", sa.Text(), nullable=False),
        sa.Column("additional_notes", sa.Text(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("created_by", sa.String(128), nullable=False),
        sa.Column("updated_by", sa.String(128), nullable=True),
        sa.Column(
            "revision_history", sa.JSON(), nullable=False, server_default=sa.text("'[]'")
        ),
    )
    op.create_index(
        "idx_medical_records_tenant_patient_created",
        "medical_records",
        ["tenant_id", "patient_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop the clinic schema."""
    op.drop_index("idx_medical_records_tenant_patient_created", table_name="medical_records")
    op.drop_table("medical_records")
    op.drop_index("idx_patients_tenant_created", table_name="patients")
    op.drop_table("patients")
    op.drop_index("tenant_members_single_owner", table_name="tenant_members")
    op.drop_index("ix_tenant_members_user_id", table_name="tenant_members")
    op.drop_index("idx_tenant_members_tenant", table_name="tenant_members")
    op.drop_table("tenant_members")
    op.drop_index("ix_tenants_owner_id", table_name="tenants")
    op.drop_table("tenants")
    op.drop_table("user_roles")
    op.drop_index("ix_user_profiles_email_lower", table_name="user_profiles")
    op.drop_table("user_profiles")
    op.drop_index("ix_users_tenant_id", table_name="users")
    op.drop_index("ix_users_email_lower", table_name="users")
    op.drop_table("users")
