"""create user_profiles, projects, chat_messages, project_files, workbench_states

Revision ID: 0001_init_project_tables
Revises:
Create Date: 2025-10-23 22:21:23

Project existence is a prerequisite for message, file and workbench rows;
each child table carries a natural unique key so client retries upsert.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_init_project_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_profiles",
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "owner_id",
            sa.String(),
            sa.ForeignKey("user_profiles.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("url_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False, server_default="Untitled Project"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("git_url", sa.String(), nullable=True),
        sa.Column("git_branch", sa.String(), nullable=True),
        sa.Column("netlify_site_id", sa.String(), nullable=True),
        sa.Column("last_opened_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("owner_id", "url_id", name="unique_url_id_per_owner"),
    )
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"])
    op.create_index("ix_projects_url_id", "projects", ["url_id"])
    op.create_index("idx_projects_last_opened", "projects", ["owner_id", "last_opened_at"])

    op.create_table(
        "chat_messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("message_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("parts", postgresql.JSONB(), nullable=True),
        sa.Column("tool_calls", postgresql.JSONB(), nullable=True),
        sa.Column("annotations", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("project_id", "message_id", name="unique_message_per_project"),
        sa.CheckConstraint("role IN ('user', 'assistant', 'system')", name="chat_messages_role_check"),
    )
    op.create_index("idx_messages_project", "chat_messages", ["project_id", "created_at"])

    op.create_table(
        "project_files",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("file_type", sa.String(10), nullable=False, server_default="text"),
        sa.Column("mime_type", sa.String(), nullable=True),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("project_id", "file_path", name="unique_file_per_project"),
        sa.CheckConstraint("file_type IN ('text', 'binary')", name="project_files_type_check"),
    )
    op.create_index("ix_project_files_project_id", "project_files", ["project_id"])

    op.create_table(
        "workbench_states",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("selected_file", sa.Text(), nullable=True),
        sa.Column("open_files", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("current_view", sa.String(10), nullable=True),
        sa.Column("show_workbench", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("terminal_history", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("preview_urls", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "current_view IN ('code', 'diff', 'preview')",
            name="workbench_states_view_check",
        ),
    )


def downgrade() -> None:
    op.drop_table("workbench_states")
    op.drop_index("ix_project_files_project_id", table_name="project_files")
    op.drop_table("project_files")
    op.drop_index("idx_messages_project", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index("idx_projects_last_opened", table_name="projects")
    op.drop_index("ix_projects_url_id", table_name="projects")
    op.drop_index("ix_projects_owner_id", table_name="projects")
    op.drop_table("projects")
    op.drop_table("user_profiles")
