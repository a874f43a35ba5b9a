"""initial_stepwise_schema

Create projects, test cases, test steps and the append-only version tables.

Revision ID: 5f1e2d3c4b6a
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5f1e2d3c4b6a"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns(with_updated=True):
    cols = [
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    ]
    if with_updated:
        cols += [
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        ]
    return cols


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("url", sa.String(length=500), nullable=True),
            *_audit_columns(),
            sa.PrimaryKeyConstraint("id"),
        )

    if "test_cases" not in existing_tables:
        op.create_table(
            "test_cases",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("order", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=True),
            sa.Column("tags", sa.Text(), nullable=True),
            sa.Column("version", sa.String(length=20), nullable=True),
            sa.Column("playwright_test_script", sa.Text(), nullable=True),
            *_audit_columns(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_test_cases_project_id", "test_cases", ["project_id"])
        op.create_index("ix_test_cases_project_order", "test_cases", ["project_id", "order"])

    if "test_steps" not in existing_tables:
        op.create_table(
            "test_steps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_case_id", sa.Integer(), nullable=False),
            sa.Column("order", sa.Integer(), nullable=False),
            sa.Column("action", sa.Text(), nullable=False),
            sa.Column("data", sa.Text(), nullable=True),
            sa.Column("expected", sa.Text(), nullable=True),
            sa.Column("selector", sa.Text(), nullable=True),
            sa.Column("playwright_code", sa.Text(), nullable=True),
            sa.Column("disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_audit_columns(),
            sa.ForeignKeyConstraint(["test_case_id"], ["test_cases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_test_steps_test_case_id", "test_steps", ["test_case_id"])
        op.create_index("ix_test_steps_case_order", "test_steps", ["test_case_id", "order"])

    if "test_case_versions" not in existing_tables:
        op.create_table(
            "test_case_versions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_case_id", sa.Integer(), nullable=False),
            sa.Column("version_no", sa.Integer(), nullable=False),
            sa.Column("version", sa.String(length=20), nullable=False),
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=True),
            sa.Column("tags", sa.Text(), nullable=True),
            sa.Column("playwright_test_script", sa.Text(), nullable=True),
            sa.Column("order", sa.Integer(), nullable=True),
            sa.Column("change_summary", sa.Text(), nullable=True),
            *_audit_columns(with_updated=False),
            sa.ForeignKeyConstraint(["test_case_id"], ["test_cases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("test_case_id", "version_no", name="uq_tcv_case_version_no"),
        )
        op.create_index("ix_test_case_versions_test_case_id", "test_case_versions", ["test_case_id"])

    if "test_step_versions" not in existing_tables:
        op.create_table(
            "test_step_versions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_case_version_id", sa.Integer(), nullable=False),
            sa.Column("source_step_id", sa.Integer(), nullable=True),
            sa.Column("order", sa.Integer(), nullable=False),
            sa.Column("action", sa.Text(), nullable=False),
            sa.Column("data", sa.Text(), nullable=True),
            sa.Column("expected", sa.Text(), nullable=True),
            sa.Column("selector", sa.Text(), nullable=True),
            sa.Column("playwright_code", sa.Text(), nullable=True),
            sa.Column("disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_audit_columns(with_updated=False),
            sa.ForeignKeyConstraint(
                ["test_case_version_id"], ["test_case_versions.id"], ondelete="CASCADE",
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_test_step_versions_test_case_version_id",
            "test_step_versions",
            ["test_case_version_id"],
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    # Children first
    for table in ("test_step_versions", "test_case_versions", "test_steps", "test_cases", "projects"):
        if table in existing_tables:
            op.drop_table(table)
