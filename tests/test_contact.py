"""Tests for ContactGate and ProactiveMessenger."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from mindloop.contact import ContactDecision, ContactGate, ProactiveMessenger
from mindloop.types import AgentState, MessageStatus, QuestionStatus, SelfQuestion


def state(intensity):
    return AgentState(motivation_intensity=intensity)


class TestContactGate:
    @pytest.mark.asyncio
    async def test_both_conditions_met(self, storage):
        question = SelfQuestion(question="What is love?", priority=9)
        storage.save_question(question)
        decision = await ContactGate(storage).should_contact(state(8))
        assert decision.should
        assert "What is love?" in decision.message
        assert decision.question_id == question.id

    @pytest.mark.asyncio
    async def test_low_intensity_blocks(self, storage):
        storage.save_question(SelfQuestion(question="q", priority=10))
        assert not (await ContactGate(storage).should_contact(state(6))).should

    @pytest.mark.asyncio
    async def test_low_priority_blocks(self, storage):
        storage.save_question(SelfQuestion(question="q", priority=7))
        assert not (await ContactGate(storage).should_contact(state(10))).should

    @pytest.mark.asyncio
    async def test_thresholds_are_inclusive(self, storage):
        storage.save_question(SelfQuestion(question="q", priority=8))
        assert (await ContactGate(storage).should_contact(state(7))).should

    @pytest.mark.asyncio
    async def test_picks_highest_priority(self, storage):
        storage.save_question(SelfQuestion(question="good", priority=8))
        storage.save_question(SelfQuestion(question="best", priority=10))
        decision = await ContactGate(storage).should_contact(state(9))
        assert "best" in decision.message

    @pytest.mark.asyncio
    async def test_store_failure_means_no_contact(self):
        broken = MagicMock()
        broken.get_pending_questions.side_effect = RuntimeError("gone")
        assert not (await ContactGate(broken).should_contact(state(10))).should


def contact(question_id=None):
    return ContactDecision(
        should=True, message="hello there", reason="test", question_id=question_id
    )


class TestProactiveMessenger:
    @pytest.mark.asyncio
    async def test_delivered_message_marked_sent(self, storage):
        question = SelfQuestion(question="q", priority=9)
        storage.save_question(question)
        channel = MagicMock()
        channel.send = AsyncMock(return_value=True)

        message = await ProactiveMessenger(storage, channel).deliver(contact(question.id))

        assert message.status == MessageStatus.SENT
        channel.send.assert_awaited_once()
        assert storage.get_oldest_pending_message() is None
        # the question moved on from pending to exploring
        assert storage.get_pending_questions(limit=5) == []

    @pytest.mark.asyncio
    async def test_refused_message_stays_pending(self, storage):
        channel = MagicMock()
        channel.send = AsyncMock(return_value=False)
        message = await ProactiveMessenger(storage, channel).deliver(contact())
        assert message.status == MessageStatus.PENDING
        assert storage.get_oldest_pending_message().id == message.id

    @pytest.mark.asyncio
    async def test_channel_exception_stays_pending(self, storage):
        channel = MagicMock()
        channel.send = AsyncMock(side_effect=ConnectionError("down"))
        message = await ProactiveMessenger(storage, channel).deliver(contact())
        assert storage.get_oldest_pending_message().id == message.id

    @pytest.mark.asyncio
    async def test_pending_message_retried_before_new_one(self, storage):
        channel = MagicMock()
        channel.send = AsyncMock(side_effect=[False, True])
        messenger = ProactiveMessenger(storage, channel)

        first = await messenger.deliver(contact())
        second = await messenger.deliver(
            ContactDecision(should=True, message="a newer thought", reason="test")
        )

        assert second.id == first.id
        assert second.status == MessageStatus.SENT
        assert len(storage.list_messages()) == 1

    @pytest.mark.asyncio
    async def test_nothing_to_send(self, storage):
        channel = MagicMock()
        channel.send = AsyncMock(return_value=True)
        assert await ProactiveMessenger(storage, channel).deliver(ContactDecision(should=False)) is None
        channel.send.assert_not_awaited()
