"""
Conversation session state machine tests
"""

import asyncio
import random
import sys
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, Mock

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "host"))

from voice_agent.errors import AuthError, PermissionDenied, ProviderError
from voice_agent.models import (
    AgentReply,
    BUSY_STATUSES,
    ConversationStart,
    EventKind,
    Sender,
    SessionStatus,
)
from voice_agent.session import ConversationSession


class FakeRecorder:
    """Stands in for MicrophoneRecorder"""

    def __init__(self):
        self.opened = 0
        self.closed = 0
        self.discarded = 0
        self.open_error = None

    async def open(self):
        if self.open_error:
            raise self.open_error
        self.opened += 1
        return Mock(id=f"rec-{self.opened}")

    async def close(self, handle):
        self.closed += 1
        return f"file:///tmp/turn-{self.closed}.wav"

    async def discard(self, handle):
        self.discarded += 1


def make_provider(reply=None):
    provider = Mock()
    provider.start_conversation = AsyncMock(return_value=ConversationStart(conversation_id="c1"))
    provider.send_audio = AsyncMock(return_value=reply or AgentReply(text="Hello"))
    provider.end_conversation = AsyncMock(return_value=None)
    return provider


class SessionTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.provider = make_provider()
        self.recorder = FakeRecorder()
        self.session = ConversationSession("agent_123", self.provider, self.recorder)


class TestBegin(SessionTestCase):

    async def test_begin_starts_conversation_and_listens(self):
        started = await self.session.begin()

        self.assertTrue(started)
        self.assertEqual(self.session.status, SessionStatus.LISTENING)
        self.assertEqual(self.session.conversation_id, "c1")
        self.assertTrue(self.session.listening)
        self.provider.start_conversation.assert_awaited_once_with("agent_123")
        self.assertEqual(self.recorder.opened, 1)

    async def test_greeting_becomes_agent_message(self):
        self.provider.start_conversation.return_value = ConversationStart("c1", message="Hi there")

        await self.session.begin()

        self.assertEqual(len(self.session.messages), 1)
        self.assertEqual(self.session.messages[0].sender, Sender.AGENT)
        self.assertEqual(self.session.messages[0].text, "Hi there")

    async def test_second_begin_while_starting_is_noop(self):
        gate = asyncio.Event()

        async def slow_start(agent_id):
            await gate.wait()
            return ConversationStart(conversation_id="c1")

        self.provider.start_conversation.side_effect = slow_start

        first = asyncio.create_task(self.session.begin())
        await asyncio.sleep(0)
        self.assertEqual(self.session.status, SessionStatus.STARTING)

        self.assertFalse(await self.session.begin())
        self.assertFalse(await self.session.toggle())

        gate.set()
        self.assertTrue(await first)
        self.assertEqual(self.provider.start_conversation.await_count, 1)
        self.assertEqual(self.recorder.opened, 1)

    async def test_begin_while_listening_is_noop(self):
        await self.session.begin()

        self.assertFalse(await self.session.begin())
        self.assertEqual(self.recorder.opened, 1)

    async def test_unauthorized_start_fails(self):
        self.provider.start_conversation.side_effect = AuthError("API key rejected: 401", status_code=401)

        started = await self.session.begin()

        self.assertFalse(started)
        self.assertEqual(self.session.status, SessionStatus.FAILED)
        self.assertIsInstance(self.session.error, AuthError)
        self.assertIsNone(self.session.conversation_id)
        self.assertEqual(self.session.messages, ())
        self.assertEqual(self.recorder.opened, 0)
        kinds = [event.kind for event in self.session.drain_events()]
        self.assertIn(EventKind.ERROR, kinds)

    async def test_permission_denied_keeps_conversation(self):
        self.recorder.open_error = PermissionDenied("Permission to access microphone was denied")

        await self.session.begin()

        self.assertEqual(self.session.status, SessionStatus.FAILED)
        self.assertIsInstance(self.session.error, PermissionDenied)
        self.assertEqual(self.session.conversation_id, "c1")

    async def test_retry_after_failure_clears_error(self):
        self.provider.start_conversation.side_effect = [
            ProviderError("API request failed: 503", status_code=503),
            ConversationStart(conversation_id="c2"),
        ]

        await self.session.begin()
        self.assertEqual(self.session.status, SessionStatus.FAILED)

        self.assertTrue(await self.session.toggle())
        self.assertEqual(self.session.status, SessionStatus.LISTENING)
        self.assertEqual(self.session.conversation_id, "c2")
        self.assertIsNone(self.session.error)

    async def test_unexpected_error_fails_and_propagates(self):
        self.provider.start_conversation.side_effect = RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            await self.session.begin()

        self.assertEqual(self.session.status, SessionStatus.FAILED)


class TestStopAndSend(SessionTestCase):

    async def test_turn_appends_user_then_agent(self):
        await self.session.toggle()
        sent = await self.session.toggle()

        self.assertTrue(sent)
        self.assertEqual(self.session.status, SessionStatus.IDLE)
        messages = self.session.messages
        self.assertEqual(len(messages), 2)
        self.assertEqual(messages[0].sender, Sender.USER)
        self.assertIsNone(messages[0].text)
        self.assertEqual(messages[0].audio_uri, "file:///tmp/turn-1.wav")
        self.assertEqual(messages[1].sender, Sender.AGENT)
        self.assertEqual(messages[1].text, "Hello")
        self.provider.send_audio.assert_awaited_once_with("c1", "file:///tmp/turn-1.wav")
        self.assertEqual(self.session.conversation_id, "c1")

    async def test_reply_without_text_appends_user_only(self):
        self.provider.send_audio.return_value = AgentReply()

        await self.session.begin()
        await self.session.stop_and_send()

        self.assertEqual(len(self.session.messages), 1)
        self.assertEqual(self.session.messages[0].sender, Sender.USER)

    async def test_audio_only_reply_keeps_audio_url(self):
        self.provider.send_audio.return_value = AgentReply(audio_url="https://cdn.test/reply.mp3")

        await self.session.begin()
        await self.session.stop_and_send()

        agent = self.session.messages[-1]
        self.assertEqual(agent.sender, Sender.AGENT)
        self.assertIsNone(agent.text)
        self.assertEqual(agent.audio_uri, "https://cdn.test/reply.mp3")

    async def test_send_without_recording_is_noop(self):
        self.assertFalse(await self.session.stop_and_send())
        self.provider.send_audio.assert_not_awaited()

    async def test_send_failure_keeps_conversation_for_resume(self):
        self.provider.send_audio.side_effect = ProviderError("API request failed: 500", status_code=500)

        await self.session.begin()
        await self.session.stop_and_send()

        self.assertEqual(self.session.status, SessionStatus.FAILED)
        self.assertEqual(self.session.messages, ())
        self.assertEqual(self.session.conversation_id, "c1")

        self.provider.send_audio.side_effect = None
        await self.session.toggle()

        self.assertEqual(self.session.status, SessionStatus.LISTENING)
        self.provider.start_conversation.assert_awaited_once()
        self.assertEqual(self.recorder.opened, 2)

    async def test_next_turn_resumes_conversation(self):
        for _ in range(3):
            await self.session.toggle()
            await self.session.toggle()

        self.assertEqual(len(self.session.messages), 6)
        self.provider.start_conversation.assert_awaited_once()
        conversation_ids = {call.args[0] for call in self.provider.send_audio.await_args_list}
        self.assertEqual(conversation_ids, {"c1"})

    async def test_toggle_while_sending_is_noop(self):
        gate = asyncio.Event()

        async def slow_send(conversation_id, audio_uri):
            await gate.wait()
            return AgentReply(text="Hello")

        self.provider.send_audio.side_effect = slow_send
        await self.session.begin()

        sending = asyncio.create_task(self.session.toggle())
        await asyncio.sleep(0)
        self.assertEqual(self.session.status, SessionStatus.SENDING)
        self.assertFalse(self.session.listening)
        self.assertFalse(await self.session.toggle())

        gate.set()
        self.assertTrue(await sending)
        self.assertEqual(self.provider.send_audio.await_count, 1)

    async def test_single_turn_session_ends_after_reply(self):
        session = ConversationSession("agent_123", self.provider, self.recorder, end_after_turn=True)

        await session.toggle()
        await session.toggle()

        self.provider.end_conversation.assert_awaited_once_with("c1")
        self.assertIsNone(session.conversation_id)
        self.assertEqual(session.status, SessionStatus.IDLE)
        self.assertEqual(len(session.messages), 2)


class TestEnd(SessionTestCase):

    async def test_end_clears_conversation(self):
        await self.session.toggle()
        await self.session.toggle()

        await self.session.end()

        self.provider.end_conversation.assert_awaited_once_with("c1")
        self.assertIsNone(self.session.conversation_id)
        self.assertEqual(self.session.status, SessionStatus.IDLE)

    async def test_end_failure_still_cleans_up(self):
        self.provider.end_conversation.side_effect = ProviderError("API request failed: 502", status_code=502)
        await self.session.begin()

        await self.session.end()

        self.assertIsNone(self.session.conversation_id)
        self.assertEqual(self.session.status, SessionStatus.IDLE)
        self.assertIsInstance(self.session.error, ProviderError)
        errors = [e for e in self.session.drain_events() if e.kind == EventKind.ERROR]
        self.assertEqual(len(errors), 1)

    async def test_end_while_listening_discards_recording(self):
        await self.session.begin()

        await self.session.end()

        self.assertEqual(self.recorder.discarded, 1)
        self.assertEqual(self.recorder.closed, 0)
        self.provider.send_audio.assert_not_awaited()

    async def test_end_without_conversation(self):
        await self.session.end()

        self.provider.end_conversation.assert_not_awaited()
        self.assertEqual(self.session.status, SessionStatus.IDLE)

    async def test_end_after_failed_start(self):
        self.provider.start_conversation.side_effect = AuthError("API key rejected: 401", status_code=401)
        await self.session.begin()

        await self.session.end()

        self.assertEqual(self.session.status, SessionStatus.IDLE)
        self.assertIsNone(self.session.conversation_id)

    async def test_end_waits_for_in_flight_send(self):
        gate = asyncio.Event()

        async def slow_send(conversation_id, audio_uri):
            await gate.wait()
            return AgentReply(text="Hello")

        self.provider.send_audio.side_effect = slow_send
        await self.session.begin()
        sending = asyncio.create_task(self.session.stop_and_send())
        await asyncio.sleep(0)

        ending = asyncio.create_task(self.session.end())
        await asyncio.sleep(0)
        self.provider.end_conversation.assert_not_awaited()

        gate.set()
        await sending
        await ending
        self.assertEqual(len(self.session.messages), 2)
        self.assertIsNone(self.session.conversation_id)
        self.assertEqual(self.session.status, SessionStatus.IDLE)

    async def test_context_manager_closes_session(self):
        async with self.session as session:
            await session.begin()

        self.provider.end_conversation.assert_awaited_once_with("c1")
        self.assertFalse(await self.session.begin())


class TestSessionProperties(SessionTestCase):

    async def test_random_toggles_never_overlap_steps(self):
        in_flight = 0
        max_in_flight = 0

        async def tracked(result):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return result

        async def start(agent_id):
            return await tracked(ConversationStart("c1"))

        async def send(conversation_id, audio_uri):
            return await tracked(AgentReply(text="Hello"))

        async def end(conversation_id):
            return await tracked(None)

        self.provider.start_conversation.side_effect = start
        self.provider.send_audio.side_effect = send
        self.provider.end_conversation.side_effect = end

        observed = []
        rng = random.Random(7)
        for _ in range(25):
            presses = [self.session.toggle() for _ in range(rng.randint(1, 4))]
            if rng.random() < 0.2:
                presses.append(self.session.end())
            await asyncio.gather(*presses)
            observed.append(len(self.session.messages))

        self.assertEqual(max_in_flight, 1)
        self.assertEqual(observed, sorted(observed))

    async def test_status_events_follow_transitions(self):
        await self.session.toggle()
        await self.session.toggle()

        statuses = [
            event.status for event in self.session.drain_events()
            if event.kind == EventKind.STATUS_CHANGED
        ]
        self.assertEqual(statuses, [
            SessionStatus.STARTING,
            SessionStatus.LISTENING,
            SessionStatus.SENDING,
            SessionStatus.IDLE,
        ])
        self.assertNotIn(self.session.status, BUSY_STATUSES)

    async def test_undrained_events_keep_only_the_newest(self):
        session = ConversationSession("agent_123", self.provider, self.recorder, max_events=2)

        await session.toggle()
        await session.toggle()

        events = session.drain_events()
        self.assertEqual(len(events), 2)
        self.assertEqual(events[0].kind, EventKind.MESSAGE_APPENDED)
        self.assertEqual(events[0].message.sender, Sender.AGENT)
        self.assertEqual(events[1].status, SessionStatus.IDLE)

    async def test_snapshot_for_presentation(self):
        await self.session.begin()

        snapshot = self.session.snapshot()

        self.assertTrue(snapshot.listening)
        self.assertEqual(snapshot.status, SessionStatus.LISTENING)
        self.assertEqual(snapshot.messages, [])
        self.assertIsNone(snapshot.error)

    async def test_message_ids_are_unique(self):
        for _ in range(3):
            await self.session.toggle()
            await self.session.toggle()

        ids = [message.id for message in self.session.messages]
        self.assertEqual(len(ids), len(set(ids)))


if __name__ == "__main__":
    unittest.main()
