"""Initial schema

Revision ID: 001
Revises: None
Create Date: 2024-03-01 00:00:00.000000+00:00

What:  Creates every TalentDesk table: users and pipeline assignments,
       pipelines and stages, candidates with their stage history, tags,
       notes, attachments, email templates and logs, merge and audit logs,
       import batches and items, saved searches.
How:   PostgreSQL types throughout (UUID keys from gen_random_uuid(),
       TIMESTAMP WITH TIME ZONE, JSONB, text[]).

Creation order follows the foreign keys; downgrade() drops in reverse.
Rollback is destructive.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
        primary_key=True,
    )


def _ts(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.TIMESTAMP(timezone=True), nullable=True)
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def _fk(name: str, target: str, ondelete: str, nullable: bool = True) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def upgrade() -> None:
    # gen_random_uuid() is built in from PostgreSQL 13; older servers need pgcrypto
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ── Users and pipelines ───────────────────────────────────────────────
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'VIEWER'")),
        sa.Column("invite_token", sa.String(128), nullable=True, unique=True),
        _ts("invite_token_expires", nullable=True),
        _ts("invited_at", nullable=True),
        _fk("invited_by_user_id", "users.id", "SET NULL"),
        _ts("activated_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True, comment="Soft-delete marker"),
    )

    op.create_table(
        "pipelines",
        _id(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _fk("created_by_user_id", "users.id", "SET NULL"),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "pipeline_assignments",
        _id(),
        _fk("user_id", "users.id", "CASCADE", nullable=False),
        _fk("pipeline_id", "pipelines.id", "CASCADE", nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("user_id", "pipeline_id", name="uq_pipeline_assignments_user_pipeline"),
    )
    op.create_index("idx_pipeline_assignments_pipeline", "pipeline_assignments", ["pipeline_id"])

    op.create_table(
        "stages",
        _id(),
        _fk("pipeline_id", "pipelines.id", "CASCADE", nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("color", sa.String(7), nullable=False, server_default=sa.text("'#6B7280'")),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _ts("created_at"),
    )
    op.create_index("idx_stages_pipeline_order", "stages", ["pipeline_id", "order_index"])

    # ── Candidates ────────────────────────────────────────────────────────
    op.create_table(
        "candidates",
        _id(),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone_e164", sa.String(32), nullable=True),
        _fk("pipeline_id", "pipelines.id", "RESTRICT", nullable=False),
        _fk("stage_id", "stages.id", "RESTRICT", nullable=False),
        _fk("assigned_to_user_id", "users.id", "SET NULL"),
        sa.Column("source", sa.String(50), nullable=True),
        sa.Column("import_item_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("extracted_text", sa.Text(), nullable=True),
        sa.Column("parsing_confidence", sa.Integer(), nullable=True),
        sa.Column("is_rejected", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _ts("rejected_at", nullable=True),
        _fk("rejected_by_user_id", "users.id", "SET NULL"),
        _fk("merged_into_id", "candidates.id", "SET NULL"),
        _ts("created_at"),
        _ts("updated_at"),
        _ts("deleted_at", nullable=True),
    )
    op.create_index("idx_candidates_pipeline_stage", "candidates", ["pipeline_id", "stage_id"])
    op.create_index("idx_candidates_email_lower", "candidates", [sa.text("lower(email)")])
    op.create_index("idx_candidates_phone", "candidates", ["phone_e164"])
    op.create_index("idx_candidates_created_at", "candidates", [sa.text("created_at DESC")])

    op.create_table(
        "candidate_stage_history",
        _id(),
        _fk("candidate_id", "candidates.id", "CASCADE", nullable=False),
        _fk("from_stage_id", "stages.id", "SET NULL"),
        _fk("to_stage_id", "stages.id", "SET NULL"),
        _fk("moved_by_user_id", "users.id", "SET NULL"),
        _ts("moved_at"),
    )
    op.create_index("idx_stage_history_candidate", "candidate_stage_history", ["candidate_id"])
    op.create_index("idx_stage_history_moved_at", "candidate_stage_history", ["moved_at"])

    op.create_table(
        "tags",
        _id(),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
        sa.Column("color", sa.String(7), nullable=False, server_default=sa.text("'#6B7280'")),
        _ts("created_at"),
    )

    op.create_table(
        "candidate_tags",
        _fk("candidate_id", "candidates.id", "CASCADE", nullable=False),
        _fk("tag_id", "tags.id", "CASCADE", nullable=False),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("candidate_id", "tag_id"),
    )
    op.create_index("idx_candidate_tags_tag", "candidate_tags", ["tag_id"])

    # ── Activity ──────────────────────────────────────────────────────────
    op.create_table(
        "notes",
        _id(),
        _fk("candidate_id", "candidates.id", "CASCADE", nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _fk("created_by_user_id", "users.id", "SET NULL"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_notes_candidate_created", "notes", ["candidate_id", sa.text("created_at DESC")])

    op.create_table(
        "attachments",
        _id(),
        _fk("candidate_id", "candidates.id", "CASCADE", nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("storage_key", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(127), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        _fk("uploaded_by_user_id", "users.id", "SET NULL"),
        _ts("uploaded_at"),
    )
    op.create_index("idx_attachments_candidate", "attachments", ["candidate_id"])

    op.create_table(
        "email_templates",
        _id(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column(
            "variables",
            postgresql.ARRAY(sa.String(64)),
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        _fk("created_by_user_id", "users.id", "SET NULL"),
        _ts("created_at"),
        _ts("updated_at"),
        _ts("deleted_at", nullable=True),
    )

    op.create_table(
        "email_logs",
        _id(),
        _fk("candidate_id", "candidates.id", "CASCADE", nullable=False),
        _fk("template_id", "email_templates.id", "SET NULL"),
        _fk("sent_by_user_id", "users.id", "SET NULL"),
        sa.Column("to_email", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("provider_message_id", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        _ts("sent_at"),
    )
    op.create_index("idx_email_logs_candidate", "email_logs", ["candidate_id"])
    op.create_index("idx_email_logs_sent_at", "email_logs", ["sent_at"])

    # ── Logs ──────────────────────────────────────────────────────────────
    op.create_table(
        "merge_logs",
        _id(),
        _fk("source_candidate_id", "candidates.id", "CASCADE", nullable=False),
        _fk("target_candidate_id", "candidates.id", "CASCADE", nullable=False),
        _fk("merged_by_user_id", "users.id", "SET NULL"),
        _ts("merged_at"),
    )
    op.create_index("idx_merge_logs_target", "merge_logs", ["target_candidate_id"])

    op.create_table(
        "audit_logs",
        _id(),
        _fk("user_id", "users.id", "SET NULL"),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        _ts("created_at"),
    )
    op.create_index("idx_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_logs_created_at", "audit_logs", [sa.text("created_at DESC")])

    # ── Imports ───────────────────────────────────────────────────────────
    op.create_table(
        "import_batches",
        _id(),
        _fk("pipeline_id", "pipelines.id", "CASCADE", nullable=False),
        _fk("created_by_user_id", "users.id", "SET NULL"),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("default_country_code", sa.String(2), nullable=False, server_default=sa.text("'BE'")),
        sa.Column("total_files", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("processed_files", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _ts("created_at"),
        _ts("completed_at", nullable=True),
    )
    op.create_index("idx_import_batches_created_at", "import_batches", [sa.text("created_at DESC")])

    op.create_table(
        "import_items",
        _id(),
        _fk("batch_id", "import_batches.id", "CASCADE", nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("storage_key", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(127), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'QUEUED'")),
        _fk("candidate_id", "candidates.id", "SET NULL"),
        sa.Column("parsed_name", sa.String(200), nullable=True),
        sa.Column("parsed_email", sa.String(255), nullable=True),
        sa.Column("parsed_phone", sa.String(32), nullable=True),
        sa.Column("parsing_confidence", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("processed_at", nullable=True),
    )
    op.create_index("idx_import_items_batch_status", "import_items", ["batch_id", "status"])

    op.create_table(
        "saved_searches",
        _id(),
        _fk("user_id", "users.id", "CASCADE", nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("filters", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_saved_searches_user", "saved_searches", ["user_id"])


def downgrade() -> None:
    for table in (
        "saved_searches",
        "import_items",
        "import_batches",
        "audit_logs",
        "merge_logs",
        "email_logs",
        "email_templates",
        "attachments",
        "notes",
        "candidate_tags",
        "tags",
        "candidate_stage_history",
        "candidates",
        "stages",
        "pipeline_assignments",
        "pipelines",
        "users",
    ):
        op.drop_table(table)
