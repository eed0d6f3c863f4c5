"""entitlement schema

Revision ID: 3c1e9a7b2d40
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c1e9a7b2d40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _uuid(name: str, *fk_args, nullable: bool = False, **fk_kwargs) -> sa.Column:
    args: list = [name, postgresql.UUID(as_uuid=True)]
    if fk_args:
        args.append(sa.ForeignKey(*fk_args, **fk_kwargs))
    return sa.Column(*args, nullable=nullable)


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_super_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_table(
        "bundles",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("max_users", sa.Integer(), nullable=True),
        sa.Column("max_employees", sa.Integer(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="SAR"),
        sa.Column("billing_period", sa.String(length=16), nullable=False, server_default="monthly"),
    )
    op.create_table(
        "organizations",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("state", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("max_users", sa.Integer(), nullable=True),
        sa.Column("max_employees", sa.Integer(), nullable=True),
        _ts("expires_at"),
        _uuid("current_bundle_id", "bundles.id", nullable=True),
    )
    op.create_table(
        "memberships",
        _id(),
        _uuid("user_id", "users.id", ondelete="CASCADE"),
        _uuid("org_id", "organizations.id", ondelete="CASCADE"),
        sa.Column("state", sa.String(length=16), nullable=False, server_default="active"),
        sa.UniqueConstraint("user_id", "org_id"),
    )
    op.create_index("ix_memberships_org_id", "memberships", ["org_id"])

    op.create_table(
        "roles",
        _id(),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        _uuid("org_id", "organizations.id", nullable=True),
    )
    op.create_index(
        "uq_roles_global_key",
        "roles",
        ["key"],
        unique=True,
        postgresql_where=sa.text("org_id IS NULL"),
    )
    op.create_index(
        "uq_roles_org_key",
        "roles",
        ["key", "org_id"],
        unique=True,
        postgresql_where=sa.text("org_id IS NOT NULL"),
    )
    op.create_table(
        "permissions",
        _id(),
        sa.Column("key", sa.String(length=128), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
    )
    op.create_table(
        "role_permissions",
        sa.Column(
            "role_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("roles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "permission_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("permissions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_table(
        "membership_roles",
        sa.Column(
            "membership_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("memberships.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "role_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("roles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "modules",
        _id(),
        sa.Column("key", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "org_modules",
        _id(),
        _uuid("org_id", "organizations.id", ondelete="CASCADE"),
        _uuid("module_id", "modules.id"),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("plan", sa.String(length=64), nullable=True),
        sa.Column("seats", sa.Integer(), nullable=True),
        _ts("expires_at"),
        _ts("trial_ends_at"),
        sa.UniqueConstraint("org_id", "module_id"),
    )
    op.create_table(
        "bundle_modules",
        sa.Column(
            "bundle_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bundles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "module_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("modules.id"),
            primary_key=True,
        ),
        sa.Column("plan", sa.String(length=64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "module_prices",
        _id(),
        _uuid("module_id", "modules.id"),
        sa.Column("plan", sa.String(length=64), nullable=False),
        sa.Column("billing_period", sa.String(length=16), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="SAR"),
        sa.Column("max_seats", sa.Integer(), nullable=True),
        sa.UniqueConstraint("module_id", "plan", "billing_period"),
    )
    op.create_table(
        "subscriptions",
        _id(),
        _uuid("org_id", "organizations.id", ondelete="CASCADE"),
        _uuid("module_id", "modules.id"),
        sa.Column("plan", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        _ts("current_period_start", nullable=False),
        _ts("current_period_end", nullable=False),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("canceled_at"),
        sa.UniqueConstraint("org_id", "module_id"),
    )
    op.create_table(
        "payments",
        _id(),
        _uuid("org_id", "organizations.id", ondelete="CASCADE"),
        _uuid("module_id", "modules.id"),
        _uuid("subscription_id", "subscriptions.id", nullable=True),
        sa.Column("plan", sa.String(length=64), nullable=False),
        sa.Column("billing_period", sa.String(length=16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="SAR"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("provider", sa.String(length=32), nullable=False, server_default="manual"),
        sa.Column("provider_ref", sa.String(length=255), nullable=True, unique=True),
        sa.Column("invoice_url", sa.Text(), nullable=True),
        _ts("paid_at"),
        _ts("created_at"),
    )
    op.create_index("ix_payments_org_id", "payments", ["org_id"])

    op.create_table(
        "employees",
        _id(),
        _uuid("org_id", "organizations.id", ondelete="CASCADE"),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("state", sa.String(length=16), nullable=False, server_default="active"),
    )
    op.create_index("ix_employees_org_id", "employees", ["org_id"])


def downgrade() -> None:
    op.drop_index("ix_employees_org_id", table_name="employees")
    op.drop_table("employees")
    op.drop_index("ix_payments_org_id", table_name="payments")
    op.drop_table("payments")
    op.drop_table("subscriptions")
    op.drop_table("module_prices")
    op.drop_table("bundle_modules")
    op.drop_table("org_modules")
    op.drop_table("modules")
    op.drop_table("membership_roles")
    op.drop_table("role_permissions")
    op.drop_table("permissions")
    op.drop_table("roles")
    op.drop_index("ix_memberships_org_id", table_name="memberships")
    op.drop_table("memberships")
    op.drop_table("organizations")
    op.drop_table("bundles")
    op.drop_table("users")
