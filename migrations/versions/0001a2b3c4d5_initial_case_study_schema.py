"""initial_case_study_schema

Create users, case studies and their 1:1 / 1:N children, notifications,
audit log, system config and GDPR deletion requests.

Revision ID: 0001a2b3c4d5
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001a2b3c4d5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("role", sa.String(length=30), nullable=False, server_default="CONTRIBUTOR"),
            sa.Column("region", sa.String(length=100), nullable=True),
            sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "case_studies" not in existing_tables:
        op.create_table(
            "case_studies",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False, server_default="APPLICATION"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
            sa.Column("contributor_id", sa.Integer(), nullable=True),
            sa.Column("customer_name", sa.String(length=200), nullable=False),
            sa.Column("industry", sa.String(length=100), nullable=False),
            sa.Column("location", sa.String(length=200), nullable=False),
            sa.Column("country", sa.String(length=100), nullable=True),
            sa.Column("component_workpiece", sa.String(length=200), nullable=False),
            sa.Column("work_type", sa.String(length=20), nullable=False, server_default="WORKSHOP"),
            sa.Column("wear_type", sa.JSON(), nullable=True),
            sa.Column("wear_severities", sa.JSON(), nullable=True),
            sa.Column("base_metal", sa.String(length=200), nullable=True),
            sa.Column("general_dimensions", sa.String(length=200), nullable=True),
            sa.Column("oem", sa.String(length=200), nullable=True),
            sa.Column("problem_description", sa.Text(), nullable=False),
            sa.Column("previous_solution", sa.Text(), nullable=True),
            sa.Column("previous_service_life", sa.String(length=100), nullable=True),
            sa.Column("competitor_name", sa.String(length=200), nullable=True),
            sa.Column("wa_solution", sa.Text(), nullable=False),
            sa.Column("wa_product", sa.String(length=200), nullable=False),
            sa.Column("technical_advantages", sa.Text(), nullable=True),
            sa.Column("expected_service_life", sa.String(length=100), nullable=True),
            sa.Column("solution_value_revenue", sa.Numeric(14, 2), nullable=True),
            sa.Column("annual_potential_revenue", sa.Numeric(14, 2), nullable=True),
            sa.Column("customer_savings_amount", sa.Numeric(14, 2), nullable=True),
            sa.Column("currency", sa.String(length=3), nullable=True, server_default="EUR"),
            sa.Column("qualifier_type", sa.String(length=20), nullable=True),
            sa.Column("tags", sa.JSON(), nullable=True),
            sa.Column("images", sa.JSON(), nullable=True),
            sa.Column("supporting_docs", sa.JSON(), nullable=True),
            sa.Column("original_language", sa.String(length=5), nullable=True),
            sa.Column("translation_available", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("approver_id", sa.Integer(), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("rejected_by", sa.Integer(), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("insightly_opportunity_id", sa.BigInteger(), nullable=True),
            sa.Column("insightly_synced_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["contributor_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["approver_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["rejected_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_case_status", "case_studies", ["status"])
        op.create_index("idx_case_contributor", "case_studies", ["contributor_id"])
        op.create_index("idx_case_customer", "case_studies", ["customer_name"])

    if "case_study_translations" not in existing_tables:
        op.create_table(
            "case_study_translations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("case_study_id", sa.Integer(), nullable=False),
            sa.Column("language", sa.String(length=5), nullable=False),
            sa.Column("field_name", sa.String(length=50), nullable=False),
            sa.Column("translated_text", sa.Text(), nullable=False),
            sa.Column("provider", sa.String(length=20), nullable=False),
            sa.Column("translated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["case_study_id"], ["case_studies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "case_study_id", "language", "field_name", name="uq_case_translation_field",
            ),
        )
        op.create_index(
            "ix_case_study_translations_case_study_id", "case_study_translations", ["case_study_id"],
        )

    if "welding_procedures" not in existing_tables:
        op.create_table(
            "welding_procedures",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("case_study_id", sa.Integer(), nullable=False),
            sa.Column("wa_product_name", sa.String(length=200), nullable=False),
            sa.Column("welding_process", sa.String(length=100), nullable=False),
            sa.Column("wa_product_diameter", sa.String(length=50), nullable=True),
            sa.Column("base_metal_type", sa.String(length=100), nullable=True),
            sa.Column("base_metal_grade", sa.String(length=100), nullable=True),
            sa.Column("base_metal_thickness", sa.String(length=50), nullable=True),
            sa.Column("surface_preparation", sa.String(length=200), nullable=True),
            sa.Column("buffer_layer", sa.String(length=100), nullable=True),
            sa.Column("buffer_layer_product", sa.String(length=200), nullable=True),
            sa.Column("heating_procedure", sa.String(length=200), nullable=True),
            sa.Column("preheating_temp", sa.String(length=50), nullable=True),
            sa.Column("interpass_temp", sa.String(length=50), nullable=True),
            sa.Column("post_heating", sa.String(length=200), nullable=True),
            sa.Column("current_type", sa.String(length=50), nullable=True),
            sa.Column("current_mode_synergy", sa.String(length=100), nullable=True),
            sa.Column("wire_feed_speed", sa.String(length=50), nullable=True),
            sa.Column("intensity", sa.String(length=50), nullable=True),
            sa.Column("voltage", sa.String(length=50), nullable=True),
            sa.Column("welding_position", sa.String(length=50), nullable=True),
            sa.Column("torch_angle", sa.String(length=50), nullable=True),
            sa.Column("stickout", sa.String(length=50), nullable=True),
            sa.Column("travel_speed", sa.String(length=50), nullable=True),
            sa.Column("shielding_gas", sa.String(length=100), nullable=True),
            sa.Column("shielding_flow_rate", sa.String(length=50), nullable=True),
            sa.Column("flux_name", sa.String(length=100), nullable=True),
            sa.Column("standard_designation", sa.String(length=100), nullable=True),
            sa.Column("pwht_details", sa.Text(), nullable=True),
            sa.Column("oscillation_details", sa.Text(), nullable=True),
            sa.Column("layers", sa.JSON(), nullable=True),
            sa.Column("additional_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["case_study_id"], ["case_studies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("case_study_id"),
        )

    if "cost_calculators" not in existing_tables:
        op.create_table(
            "cost_calculators",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("case_study_id", sa.Integer(), nullable=False),
            sa.Column("cost_of_part_old", sa.Float(), nullable=False),
            sa.Column("cost_of_part_new", sa.Float(), nullable=False),
            sa.Column("old_lifetime_hours", sa.Float(), nullable=True),
            sa.Column("old_lifetime_days", sa.Float(), nullable=True),
            sa.Column("old_lifetime_weeks", sa.Float(), nullable=True),
            sa.Column("old_lifetime_months", sa.Float(), nullable=True),
            sa.Column("old_lifetime_years", sa.Float(), nullable=True),
            sa.Column("new_lifetime_hours", sa.Float(), nullable=True),
            sa.Column("new_lifetime_days", sa.Float(), nullable=True),
            sa.Column("new_lifetime_weeks", sa.Float(), nullable=True),
            sa.Column("new_lifetime_months", sa.Float(), nullable=True),
            sa.Column("new_lifetime_years", sa.Float(), nullable=True),
            sa.Column("parts_per_year", sa.Float(), nullable=False),
            sa.Column("maintenance_cost_per_event", sa.Float(), nullable=True),
            sa.Column("disassembly_cost_per_event", sa.Float(), nullable=True),
            sa.Column("downtime_cost_per_event", sa.Float(), nullable=True),
            sa.Column("currency", sa.String(length=3), nullable=True, server_default="EUR"),
            sa.Column("lifetime_ratio", sa.Float(), nullable=True),
            sa.Column("new_parts_per_year", sa.Float(), nullable=True),
            sa.Column("annual_cost_old", sa.Float(), nullable=True),
            sa.Column("annual_cost_new", sa.Float(), nullable=True),
            sa.Column("annual_savings", sa.Float(), nullable=True),
            sa.Column("savings_percentage", sa.Float(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["case_study_id"], ["case_studies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("case_study_id"),
        )

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=30), nullable=True, server_default="SYSTEM"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("link", sa.String(length=300), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=64), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("details_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor_user_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])

    if "system_configs" not in existing_tables:
        op.create_table(
            "system_configs",
            sa.Column("key", sa.String(length=100), nullable=False),
            sa.Column("value", sa.Text(), nullable=False),
            sa.Column("description", sa.String(length=300), nullable=True),
            sa.Column("updated_by", sa.Integer(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["updated_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("key"),
        )

    if "deletion_requests" not in existing_tables:
        op.create_table(
            "deletion_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("requested_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("processed_by", sa.Integer(), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["processed_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_deletion_requests_user_id", "deletion_requests", ["user_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in (
        "deletion_requests",
        "system_configs",
        "audit_logs",
        "notifications",
        "cost_calculators",
        "welding_procedures",
        "case_study_translations",
        "case_studies",
        "users",
    ):
        if table in existing_tables:
            op.drop_table(table)
