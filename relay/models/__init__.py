"""
Database models - import all models here so Alembic can discover them.
"""
from relay.models.lead import Lead, LeadV2
from relay.models.phone_lead_mapping import PhoneLeadMapping
from relay.models.conversation import Conversation, ConversationV2
from relay.models.conversation_extraction import ConversationExtraction
from relay.models.conversation_message import ConversationMessage
from relay.models.webhook_event import WebhookEvent
from relay.models.feature_flag import SystemConfig
from relay.models.workflow_run import WorkflowRun
from relay.models.cinc_lead_mapping import CincLeadMapping
from relay.models.action import Action
from relay.models.appointment import Appointment

__all__ = [
    "Lead",
    "LeadV2",
    "PhoneLeadMapping",
    "Conversation",
    "ConversationV2",
    "ConversationExtraction",
    "ConversationMessage",
    "WebhookEvent",
    "SystemConfig",
    "WorkflowRun",
    "CincLeadMapping",
    "Action",
    "Appointment",
]
