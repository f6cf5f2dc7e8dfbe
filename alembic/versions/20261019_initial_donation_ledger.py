"""initial donation ledger schema"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_initial_donation_ledger"
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum("donor", "fundraiser", "admin", name="userrole")
cause_status = sa.Enum("pending", "approved", "rejected", name="causestatus")
donation_status = sa.Enum("pending", "completed", "failed", name="donationstatus")
payment_method = sa.Enum("stripe", "other", name="paymentmethod")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "donor_profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("total_donations", sa.Integer(), nullable=False),
        sa.Column("mobile_number", sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id"),
        sa.CheckConstraint("total_donations >= 0", name="ck_donor_total_donations_non_negative"),
    )

    op.create_table(
        "causes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("fundraiser_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("goal_amount", sa.Integer(), nullable=False),
        sa.Column("current_amount", sa.Integer(), nullable=False),
        sa.Column("status", cause_status, nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("goal_amount > 0", name="ck_cause_goal_amount_positive"),
        sa.CheckConstraint("current_amount >= 0", name="ck_cause_current_amount_non_negative"),
    )
    op.create_index("ix_causes_status", "causes", ["status"])

    op.create_table(
        "donations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("donor_id", sa.Integer(), sa.ForeignKey("donor_profiles.id"), nullable=False),
        sa.Column("cause_id", sa.Integer(), sa.ForeignKey("causes.id"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("platform_fee", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("status", donation_status, nullable=False),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("message", sa.String(length=500), nullable=True),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False),
        sa.Column("transaction_id", sa.String(length=255), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("transaction_id", name="uq_donations_transaction_id"),
        sa.CheckConstraint("amount >= 0", name="ck_donation_amount_non_negative"),
        sa.CheckConstraint("platform_fee >= 0", name="ck_donation_platform_fee_non_negative"),
        sa.CheckConstraint("total_amount = amount + platform_fee", name="ck_donation_total_amount"),
    )
    op.create_index("ix_donations_donor_cause", "donations", ["donor_id", "cause_id"])
    op.create_index("ix_donations_status", "donations", ["status"])

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("prefix", sa.String(length=32), nullable=False),
        sa.Column("key_hash", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("name"),
        sa.UniqueConstraint("key_hash"),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"])

    op.create_table(
        "psp_webhook_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("event_id", sa.String(length=100), nullable=False),
        sa.Column("kind", sa.String(length=100), nullable=False),
        sa.Column("transaction_id", sa.String(length=255), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("provider", "event_id", name="uq_psp_webhook_events_provider_event_id"),
    )
    op.create_index("ix_psp_webhook_events_transaction_id", "psp_webhook_events", ["transaction_id"])
    op.create_index("ix_psp_webhook_events_kind", "psp_webhook_events", ["kind"])


def downgrade() -> None:
    op.drop_index("ix_psp_webhook_events_kind", table_name="psp_webhook_events")
    op.drop_index("ix_psp_webhook_events_transaction_id", table_name="psp_webhook_events")
    op.drop_table("psp_webhook_events")
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_api_keys_user_id", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_index("ix_donations_status", table_name="donations")
    op.drop_index("ix_donations_donor_cause", table_name="donations")
    op.drop_table("donations")
    op.drop_index("ix_causes_status", table_name="causes")
    op.drop_table("causes")
    op.drop_table("donor_profiles")
    op.drop_table("users")
    bind = op.get_bind()
    for enum_type in (payment_method, donation_status, cause_status, user_role):
        enum_type.drop(bind, checkfirst=True)
