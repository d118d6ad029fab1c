"""sample automation reference tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "header_mappings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("original_header", sa.String(255), nullable=False),
        sa.Column("mapped_header", sa.String(255), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=True),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("original_header", "vendor_id", "client_id", name="uq_header_mapping_scope"),
    )
    op.create_index("ix_header_mappings_original_header", "header_mappings", ["original_header"])
    op.create_index("ix_header_mappings_vendor_id", "header_mappings", ["vendor_id"])
    op.create_index("ix_header_mappings_client_id", "header_mappings", ["client_id"])

    op.create_table(
        "variable_exclusions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("variable_name", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "project_variable_inclusions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("project_id", sa.String(50), nullable=False),
        sa.Column("original_variable", sa.String(255), nullable=False),
        sa.Column("mapped_variable", sa.String(255), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("project_id", "original_variable", name="uq_project_inclusion"),
    )
    op.create_index("ix_project_variable_inclusions_project_id", "project_variable_inclusions", ["project_id"])

    op.create_table(
        "project_files",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("project_id", sa.String(50), nullable=False),
        sa.Column("file_id", sa.Integer(), nullable=False),
        sa.Column("original_filename", sa.String(500), nullable=False),
        sa.Column("table_name", sa.String(255), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("project_id", "file_id", name="uq_project_file_id"),
    )
    op.create_index("ix_project_files_project_id", "project_files", ["project_id"])
    op.create_index("ix_project_files_table_name", "project_files", ["table_name"])

    op.create_table(
        "dnc_numbers",
        sa.Column("phone_number", sa.String(10), primary_key=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
    )

    age_ranges = op.create_table(
        "age_ranges",
        sa.Column("code", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("min_age", sa.Integer(), nullable=False),
        sa.Column("max_age", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(50), nullable=False),
    )
    op.bulk_insert(
        age_ranges,
        [
            {"code": 1, "min_age": 18, "max_age": 24, "label": "18-24"},
            {"code": 2, "min_age": 25, "max_age": 34, "label": "25-34"},
            {"code": 3, "min_age": 35, "max_age": 44, "label": "35-44"},
            {"code": 4, "min_age": 45, "max_age": 54, "label": "45-54"},
            {"code": 5, "min_age": 55, "max_age": 64, "label": "55-64"},
            {"code": 6, "min_age": 65, "max_age": 99, "label": "65+"},
        ],
    )


def downgrade() -> None:
    op.drop_table("age_ranges")
    op.drop_table("dnc_numbers")
    op.drop_index("ix_project_files_table_name", table_name="project_files")
    op.drop_index("ix_project_files_project_id", table_name="project_files")
    op.drop_table("project_files")
    op.drop_index("ix_project_variable_inclusions_project_id", table_name="project_variable_inclusions")
    op.drop_table("project_variable_inclusions")
    op.drop_table("variable_exclusions")
    op.drop_index("ix_header_mappings_client_id", table_name="header_mappings")
    op.drop_index("ix_header_mappings_vendor_id", table_name="header_mappings")
    op.drop_index("ix_header_mappings_original_header", table_name="header_mappings")
    op.drop_table("header_mappings")
