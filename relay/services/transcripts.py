"""
Transcript materialization - turn a finished call's transcript into
ordered conversation_messages rows.

Structured utterances from the provider win. Otherwise the plain-text
transcript is split line by line on speaker prefixes.
"""
import logging
import re
import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.conversation_message import ConversationMessage

logger = logging.getLogger(__name__)

_AGENT_LINE = re.compile(r"^(?:Agent|AI Agent):\s?(.+)$")
_LEAD_LINE = re.compile(r"^(?:Lead|Customer|User):\s?(.+)$")


def split_transcript(transcript: Optional[str]) -> list[dict]:
    """
    Split "Agent: ..." / "User: ..." lines into messages.
    Lines without a speaker prefix are attributed to the lead.
    """
    if not transcript:
        return []

    messages = []
    for line in transcript.splitlines():
        line = line.strip()
        if not line:
            continue
        agent = _AGENT_LINE.match(line)
        lead = _LEAD_LINE.match(line)
        if agent:
            role, content = "agent", agent.group(1).strip()
        elif lead:
            role, content = "lead", lead.group(1).strip()
        else:
            role, content = "lead", line
        if content:
            messages.append({"role": role, "content": content})
    return messages


async def materialize_messages(
    db: AsyncSession,
    conversation_id: uuid.UUID,
    pipeline_version: str,
    utterances: list[dict],
    transcript: Optional[str],
) -> int:
    """
    Replace the conversation's messages with the final transcript.
    Returns the number of rows written. Best-effort: errors are logged.
    """
    messages = utterances or split_transcript(transcript)
    if not messages:
        return 0

    try:
        await db.execute(
            delete(ConversationMessage).where(
                ConversationMessage.conversation_id == conversation_id
            )
        )
        for seq, message in enumerate(messages):
            db.add(ConversationMessage(
                conversation_id=conversation_id,
                pipeline_version=pipeline_version,
                sequence=seq,
                role=message["role"],
                content=message["content"],
                start_seconds=message.get("start_seconds"),
                end_seconds=message.get("end_seconds"),
            ))
        await db.commit()
        logger.info(
            "Stored %d transcript messages", len(messages),
            extra={"conversation_id": str(conversation_id)},
        )
        return len(messages)
    except Exception as e:
        await db.rollback()
        logger.error(
            "Error storing transcript messages: %s", str(e),
            extra={"conversation_id": str(conversation_id)},
        )
        return 0


async def upsert_live_messages(
    db: AsyncSession,
    conversation_id: uuid.UUID,
    pipeline_version: str,
    utterances: list[dict],
) -> int:
    """
    Write utterances streamed during a live call, keyed by position.
    Re-delivered positions are overwritten. Best-effort.
    """
    if not utterances:
        return 0

    try:
        result = await db.execute(
            select(ConversationMessage).where(
                ConversationMessage.conversation_id == conversation_id
            )
        )
        existing = {m.sequence: m for m in result.scalars().all()}
        for seq, utterance in enumerate(utterances):
            row = existing.get(seq)
            if row is None:
                db.add(ConversationMessage(
                    conversation_id=conversation_id,
                    pipeline_version=pipeline_version,
                    sequence=seq,
                    role=utterance["role"],
                    content=utterance["content"],
                    start_seconds=utterance.get("start_seconds"),
                    end_seconds=utterance.get("end_seconds"),
                ))
            else:
                row.role = utterance["role"]
                row.content = utterance["content"]
        await db.commit()
        return len(utterances)
    except Exception as e:
        await db.rollback()
        logger.error(
            "Error storing live messages: %s", str(e),
            extra={"conversation_id": str(conversation_id)},
        )
        return 0
