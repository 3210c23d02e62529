"""Initial schema - ingestion tables for Relay.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FEATURE_FLAGS = [
    ("retell_processing", True, "Process Retell call webhooks on the legacy pipeline"),
    ("retell_processing_v2", False, "Process Retell call webhooks on the v2 pipeline"),
    ("cinc_ingestion", True, "Upsert CINC lead webhooks into leads"),
    ("cinc_ingestion_v2", False, "Stage CINC lead webhooks in cinc_lead_mapping"),
    ("use_makecom_processing", False, "Record downstream workflow runs"),
    ("cal_booking_ingestion", True, "Mirror Cal.com bookings into appointments"),
]


def _lead_columns() -> list:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone_raw", sa.String(40)),
        sa.Column("phone_e164", sa.String(20)),
        sa.Column("source", sa.String(100)),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        sa.Column("cinc_lead_id", sa.String(100)),
        sa.Column("assigned_to", sa.String(100)),
        sa.Column("notes", sa.Text),
        sa.Column("profile_data", postgresql.JSONB),
        sa.Column("last_contacted_at", sa.DateTime(timezone=True)),
        sa.Column("next_follow_up_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _conversation_columns(lead_table: str) -> list:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey(f"{lead_table}.id")),
        sa.Column("provider", sa.String(30), nullable=False),
        sa.Column("provider_call_id", sa.String(100), nullable=False),
        sa.Column("agent_id", sa.String(100)),
        sa.Column("direction", sa.String(10), server_default="inbound"),
        sa.Column("call_status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("extraction_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("ended_at", sa.DateTime(timezone=True)),
        sa.Column("duration_seconds", sa.Integer),
        sa.Column("transcript", sa.Text),
        sa.Column("recording_url", sa.Text),
        sa.Column("sentiment_score", sa.Float),
        sa.Column("call_analysis", postgresql.JSONB),
        sa.Column("call_data", postgresql.JSONB),
        sa.Column("error_reason", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Leads (legacy + v2 share one layout)
    op.create_table("leads", *_lead_columns())
    op.create_index("ix_leads_phone_e164", "leads", ["phone_e164"])
    op.create_index("ix_leads_cinc_lead_id", "leads", ["cinc_lead_id"], unique=True)
    op.create_index("ix_leads_status", "leads", ["status"])
    op.create_index("ix_leads_created_at", "leads", ["created_at"])

    op.create_table("leads_v2", *_lead_columns())
    op.create_index("ix_leads_v2_phone_e164", "leads_v2", ["phone_e164"])
    op.create_index("ix_leads_v2_status", "leads_v2", ["status"])

    # Phone -> lead cache maintained by CRM sync
    op.create_table(
        "phone_lead_mapping",
        sa.Column("phone_e164", sa.String(20), primary_key=True),
        sa.Column("phone_raw", sa.String(40)),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id")),
        sa.Column("lead_name", sa.String(200)),
        sa.Column("property_interests", postgresql.JSONB),
        sa.Column("cinc_data", postgresql.JSONB),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_phone_lead_mapping_lead_id", "phone_lead_mapping", ["lead_id"])

    # Conversations (one row per call, keyed by provider call id)
    op.create_table("conversations", *_conversation_columns("leads"))
    op.create_index("ix_conversations_provider_call_id", "conversations", ["provider_call_id"], unique=True)
    op.create_index("ix_conversations_lead_id", "conversations", ["lead_id"])
    op.create_index("ix_conversations_call_status", "conversations", ["call_status"])
    op.create_index("ix_conversations_created_at", "conversations", ["created_at"])

    op.create_table("conversations_v2", *_conversation_columns("leads_v2"))
    op.create_index("ix_conversations_v2_provider_call_id", "conversations_v2", ["provider_call_id"], unique=True)
    op.create_index("ix_conversations_v2_lead_id", "conversations_v2", ["lead_id"])
    op.create_index("ix_conversations_v2_call_status", "conversations_v2", ["call_status"])

    # Extraction shells and transcript messages (conversation id spans both pipelines)
    op.create_table(
        "conversation_extractions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("pipeline_version", sa.String(10), nullable=False, server_default="legacy"),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True)),
        sa.Column("extraction_version", sa.String(20), nullable=False, server_default="legacy"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("extracted_data", postgresql.JSONB),
        sa.Column("summary", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_conversation_extractions_conversation_id", "conversation_extractions",
        ["conversation_id"], unique=True,
    )
    op.create_index("ix_conversation_extractions_status", "conversation_extractions", ["status"])

    op.create_table(
        "conversation_messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("pipeline_version", sa.String(10), nullable=False, server_default="legacy"),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("start_seconds", sa.Float),
        sa.Column("end_seconds", sa.Float),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_conversation_messages_conversation_seq", "conversation_messages",
        ["conversation_id", "sequence"], unique=True,
    )

    # Webhook audit trail
    op.create_table(
        "webhook_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("event_id", sa.String(100)),
        sa.Column("payload_hash", sa.String(64), nullable=False),
        sa.Column("raw_payload", postgresql.JSONB, nullable=False),
        sa.Column("processing_status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("error_message", sa.Text),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("correlation_id", sa.String(64)),
    )
    op.create_index("ix_webhook_events_provider", "webhook_events", ["provider"])
    op.create_index("ix_webhook_events_event_id", "webhook_events", ["event_id"])
    op.create_index("ix_webhook_events_payload_hash", "webhook_events", ["payload_hash"])
    op.create_index("ix_webhook_events_correlation_id", "webhook_events", ["correlation_id"])

    # Feature flags
    system_config = op.create_table(
        "system_config",
        sa.Column("feature", sa.String(100), primary_key=True),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("description", sa.Text),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.bulk_insert(
        system_config,
        [
            {"feature": feature, "enabled": enabled, "description": description}
            for feature, enabled, description in FEATURE_FLAGS
        ],
    )

    # Downstream workflow runs
    op.create_table(
        "makecom_workflows",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("workflow_name", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True)),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True)),
        sa.Column("input_data", postgresql.JSONB),
        sa.Column("error_message", sa.Text),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_makecom_workflows_workflow_name", "makecom_workflows", ["workflow_name"])
    op.create_index("ix_makecom_workflows_status", "makecom_workflows", ["status"])

    # CINC v2 staging
    op.create_table(
        "cinc_lead_mapping",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("cinc_lead_id", sa.String(100)),
        sa.Column("cinc_contact_id", sa.String(100)),
        sa.Column("phone_raw", sa.String(40)),
        sa.Column("phone_e164", sa.String(20), nullable=False),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("email", sa.String(255)),
        sa.Column("processing_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("lead_data", postgresql.JSONB),
        sa.Column("error_message", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_cinc_lead_mapping_phone_e164", "cinc_lead_mapping", ["phone_e164"])
    op.create_index("ix_cinc_lead_mapping_processing_status", "cinc_lead_mapping", ["processing_status"])

    # Follow-up actions
    op.create_table(
        "actions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id")),
        sa.Column("action_type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("title", sa.String(255)),
        sa.Column("notes", sa.Text),
        sa.Column("due_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_actions_lead_id", "actions", ["lead_id"])
    op.create_index("ix_actions_status", "actions", ["status"])

    # Cal.com bookings
    op.create_table(
        "appointments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("appointment_type", sa.String(30), nullable=False, server_default="phone_call"),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("cal_booking_id", sa.String(100), nullable=False, unique=True),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_appointments_lead_id", "appointments", ["lead_id"])


def downgrade() -> None:
    op.drop_table("appointments")
    op.drop_table("actions")
    op.drop_table("cinc_lead_mapping")
    op.drop_table("makecom_workflows")
    op.drop_table("system_config")
    op.drop_table("webhook_events")
    op.drop_table("conversation_messages")
    op.drop_table("conversation_extractions")
    op.drop_table("conversations_v2")
    op.drop_table("conversations")
    op.drop_table("phone_lead_mapping")
    op.drop_table("leads_v2")
    op.drop_table("leads")
