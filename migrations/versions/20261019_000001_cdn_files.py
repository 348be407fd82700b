from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "cdn_files",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("thumb_filename", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("file_hash", sa.String(length=64), nullable=False),
        sa.Column("original_width", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("original_height", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("width", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("height", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("thumb_width", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("thumb_height", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("file_size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("thumb_size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("extension", sa.String(length=16), nullable=False),
        sa.Column("mime_type", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_cdn_files_filename", "cdn_files", ["filename"], unique=True)
    op.create_index("ix_cdn_files_file_hash", "cdn_files", ["file_hash"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_cdn_files_file_hash", table_name="cdn_files")
    op.drop_index("ix_cdn_files_filename", table_name="cdn_files")
    op.drop_table("cdn_files")
