"""Crisis webhook for escalated sessions.

The webhook POST never blocks the request: it runs as a background task with
3 attempts and 1s, 2s backoff between them. Failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.chat_message import ChatMessage
from app.models.chat_session import ChatSession

logger = structlog.get_logger(__name__)

BACKOFF_SECONDS = (1, 2)
MAX_ATTEMPTS = 3

# Strong references to in-flight webhook tasks so they are not collected early.
_pending: set[asyncio.Task[None]] = set()


class EscalationNotifier:
    """Builds the escalation payload and fires the configured webhook."""

    def __init__(self, db: AsyncSession, webhook_url: str | None = None) -> None:
        self._db = db
        self._webhook_url = (
            webhook_url if webhook_url is not None else settings.escalation_webhook_url
        )

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def build_payload(self, session: ChatSession) -> dict[str, Any]:
        result = await self._db.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session.id)
            .order_by(ChatMessage.sent_at.asc())
        )
        transcript = [
            {
                "sender_kind": msg.sender_kind,
                "message_kind": msg.message_kind,
                "body": msg.body,
                "sent_at": msg.sent_at.isoformat(),
            }
            for msg in result.scalars().all()
        ]
        return {
            "event": "escalation",
            "session_id": str(session.id),
            "user_id": None if session.is_anonymous else str(session.user_id),
            "counselor_id": str(session.counselor_id) if session.counselor_id else None,
            "priority": session.priority,
            "topic": session.topic,
            "escalation_reason": session.escalation_reason,
            "transcript": transcript,
            "escalated_at": datetime.now(timezone.utc).isoformat(),
        }

    async def notify(self, session: ChatSession) -> asyncio.Task[None] | None:
        """Schedule the webhook for an escalated session.

        Returns the background task, or None when no webhook is configured.
        """
        if not self.enabled:
            logger.info("escalation_webhook_skipped", session_id=str(session.id))
            return None

        payload = await self.build_payload(session)
        task = asyncio.create_task(
            fire_webhook(self._webhook_url, payload, session_id=str(session.id))
        )
        _pending.add(task)
        task.add_done_callback(_pending.discard)
        return task


async def fire_webhook(
    webhook_url: str,
    payload: dict[str, Any],
    session_id: str,
) -> bool:
    """POST the payload, retrying with backoff. Returns True on success.

    Runs as a background task, so nothing escapes it.
    """
    try:
        for attempt in range(MAX_ATTEMPTS):
            try:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.post(webhook_url, json=payload)
                    response.raise_for_status()

                logger.info(
                    "escalation_webhook_sent",
                    session_id=session_id,
                    status_code=response.status_code,
                    attempt=attempt + 1,
                )
                return True

            except httpx.HTTPError as e:
                logger.warning(
                    "escalation_webhook_attempt_failed",
                    session_id=session_id,
                    attempt=attempt + 1,
                    error=str(e),
                )
                if attempt < MAX_ATTEMPTS - 1:
                    await asyncio.sleep(BACKOFF_SECONDS[attempt])

        logger.error(
            "escalation_webhook_all_retries_failed",
            session_id=session_id,
            webhook_url=webhook_url,
        )
        return False
    except Exception as e:
        logger.error(
            "escalation_webhook_task_error",
            session_id=session_id,
            error=str(e),
        )
        return False
