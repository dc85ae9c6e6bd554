"""Proactive contact: whether to reach out, and delivering the message.

ContactGate only answers "should we?". Contact requires both a pending
self-question at or above ``min_priority`` and motivation intensity at or
above ``min_intensity``; any store failure means no contact.

ProactiveMessenger stores the message as pending, hands it to the
notification channel and marks it sent on success. A message the channel
did not accept stays pending and is retried before any new one is created.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from mindloop.protocols import NotificationChannel, StorageError
from mindloop.types import (
    AgentState,
    MessageStatus,
    ProactiveMessage,
    QuestionStatus,
    Urgency,
    utc_now,
)
from mindloop.utils import offload

logger = logging.getLogger(__name__)

CONTACT_REASON = "high-priority question"


@dataclass
class ContactDecision:
    should: bool
    message: Optional[str] = None
    reason: Optional[str] = None
    urgency: Optional[Urgency] = None
    question_id: Optional[str] = None


class ContactGate:
    def __init__(
        self,
        storage,
        min_priority: int = 8,
        min_intensity: int = 7,
        candidate_limit: int = 10,
        store_timeout: Optional[float] = None,
    ):
        self._storage = storage
        self._min_priority = min_priority
        self._min_intensity = min_intensity
        self._candidate_limit = candidate_limit
        self._store_timeout = store_timeout

    async def should_contact(self, state: AgentState) -> ContactDecision:
        if state.motivation_intensity < self._min_intensity:
            return ContactDecision(should=False)
        try:
            questions = await offload(
                self._storage.get_pending_questions,
                self._candidate_limit,
                self._min_priority,
                timeout=self._store_timeout,
            )
        except StorageError as e:
            logger.warning(f"Contact check skipped: {e}")
            return ContactDecision(should=False)

        eligible = [q for q in questions if q.priority >= self._min_priority]
        if not eligible:
            return ContactDecision(should=False)

        top = max(eligible, key=lambda q: q.priority)
        return ContactDecision(
            should=True,
            message=f"I've been thinking about something and wanted to ask you: {top.question}",
            reason=CONTACT_REASON,
            urgency=Urgency.MEDIUM,
            question_id=top.id,
        )


class ProactiveMessenger:
    def __init__(
        self,
        storage,
        channel: NotificationChannel,
        store_timeout: Optional[float] = None,
    ):
        self._storage = storage
        self._channel = channel
        self._store_timeout = store_timeout

    async def _store(self, fn, *args):
        return await offload(fn, *args, timeout=self._store_timeout)

    async def deliver(self, decision: ContactDecision) -> Optional[ProactiveMessage]:
        """Send the oldest pending message, or a new one built from ``decision``.

        Returns the message with its resulting status, or None when nothing
        could be stored.
        """
        try:
            message = await self._store(self._storage.get_oldest_pending_message)
            if message is None:
                if not decision.should or not decision.message:
                    return None
                message = ProactiveMessage(
                    content=decision.message,
                    reason=decision.reason or CONTACT_REASON,
                    urgency=decision.urgency or Urgency.MEDIUM,
                    question_id=decision.question_id,
                )
                await self._store(self._storage.save_message, message)
        except StorageError as e:
            logger.warning(f"Could not store proactive message: {e}")
            return None

        try:
            delivered = await self._channel.send(message)
        except Exception as e:
            logger.warning(f"Notification channel failed for message {message.id[:8]}: {e}")
            delivered = False

        if not delivered:
            logger.info(f"Message {message.id[:8]} not delivered, will retry next cycle")
            return message

        try:
            await self._store(self._storage.mark_message_sent, message.id)
            if message.question_id:
                await self._store(
                    self._storage.update_question_status,
                    message.question_id,
                    QuestionStatus.EXPLORING,
                )
        except StorageError as e:
            logger.warning(f"Message {message.id[:8]} sent but not marked: {e}")
        message.status = MessageStatus.SENT
        message.sent_at = utc_now()
        return message
