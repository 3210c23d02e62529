"""
Workflow trigger - record a downstream automation run when enabled.

Purely additive: a run row is inserted with status "running" and a copy of
the triggering data. Completion is reported by the automation system itself.
Nothing here ever fails the webhook that fired it.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.workflow_run import WorkflowRun
from relay.services.feature_flags import USE_MAKECOM_PROCESSING, is_feature_enabled

logger = logging.getLogger(__name__)


async def trigger_workflow(
    db: AsyncSession,
    workflow_name: str,
    input_data: dict,
    conversation_id: Optional[uuid.UUID] = None,
    lead_id: Optional[uuid.UUID] = None,
    pipeline_version: str = "legacy",
) -> Optional[WorkflowRun]:
    """Insert a running WorkflowRun, or return None when automation is off."""
    try:
        if not await is_feature_enabled(USE_MAKECOM_PROCESSING, db):
            logger.debug("Workflow %s skipped, automation disabled", workflow_name)
            return None

        run = WorkflowRun(
            workflow_name=workflow_name,
            status="running",
            conversation_id=conversation_id,
            lead_id=lead_id,
            input_data={"pipeline_version": pipeline_version, **(input_data or {})},
        )
        db.add(run)
        await db.commit()
        logger.info(
            "Workflow %s started (run=%s)", workflow_name, run.id,
            extra={
                "conversation_id": str(conversation_id) if conversation_id else None,
                "lead_id": str(lead_id) if lead_id else None,
            },
        )
        return run
    except Exception as e:
        await db.rollback()
        logger.error("Failed to trigger workflow %s: %s", workflow_name, str(e))
        return None
