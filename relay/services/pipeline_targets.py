"""
Pipeline targets - which tables a webhook delivery writes to.

The leads/conversations tables are mid-migration to their _v2 copies. Both
pipelines run the same code; a target only decides the tables and whether
the phone_lead_mapping cache takes part in lead matching.
"""
from relay.models.conversation import Conversation, ConversationV2
from relay.models.lead import Lead, LeadV2

LEGACY = "legacy"
V2 = "v2"


class PipelineTarget:
    """Table selection for one pipeline version."""

    def __init__(self, version: str, lead_model, conversation_model, use_phone_mapping: bool):
        self.version = version
        self.lead_model = lead_model
        self.conversation_model = conversation_model
        self.use_phone_mapping = use_phone_mapping

    def __repr__(self) -> str:
        return f"<PipelineTarget {self.version}>"


LEGACY_TARGET = PipelineTarget(
    version=LEGACY,
    lead_model=Lead,
    conversation_model=Conversation,
    use_phone_mapping=True,
)

V2_TARGET = PipelineTarget(
    version=V2,
    lead_model=LeadV2,
    conversation_model=ConversationV2,
    use_phone_mapping=False,
)

TARGETS = {LEGACY: LEGACY_TARGET, V2: V2_TARGET}
