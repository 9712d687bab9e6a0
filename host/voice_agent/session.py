# voice_agent/session.py
"""
Conversation session state machine.

Coordinates the microphone recorder and the conversation provider into a
start -> record -> send -> respond -> end lifecycle, and keeps the running
transcript. The presentation layer only needs `listening`, `snapshot()`,
`mic_pressed()` and the `events` queue. The queue holds at most
`max_events` events; when nobody drains it the oldest are dropped.

Steps are serialized: `begin()`, `stop_and_send()` and `toggle()` are no-ops
while another step is in flight, `end()` waits for it.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from .audio import MicrophoneRecorder, RecordingHandle
from .errors import VoiceAgentError
from .models import (
    BUSY_STATUSES,
    AgentReply,
    EventKind,
    Message,
    Sender,
    Session,
    SessionEvent,
    SessionSnapshot,
    SessionStatus,
)
from .providers.base import ConversationProvider

logger = logging.getLogger(__name__)

# Oldest events are dropped once this many are waiting for a consumer
MAX_PENDING_EVENTS = 256


class ConversationSession:
    """One live conversation per screen instance"""

    def __init__(
        self,
        agent_id: str,
        provider: ConversationProvider,
        recorder: MicrophoneRecorder,
        end_after_turn: bool = False,
        max_events: int = MAX_PENDING_EVENTS,
    ):
        self.session = Session(agent_id=agent_id)
        self.provider = provider
        self.recorder = recorder
        self.end_after_turn = end_after_turn

        self.error: Optional[Exception] = None
        self.events: asyncio.Queue = asyncio.Queue(maxsize=max_events)

        self._messages: List[Message] = []
        self._handle: Optional[RecordingHandle] = None
        self._step_lock = asyncio.Lock()
        self._closed = False

    # ------------------------------------------------------------------ #
    # --------------------------  read side  --------------------------- #
    # ------------------------------------------------------------------ #
    @property
    def agent_id(self) -> str:
        return self.session.agent_id

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def conversation_id(self) -> Optional[str]:
        return self.session.conversation_id

    @property
    def listening(self) -> bool:
        return self.session.status == SessionStatus.LISTENING

    @property
    def busy(self) -> bool:
        return self._step_lock.locked() or self.session.status in BUSY_STATUSES

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            listening=self.listening,
            status=self.status,
            messages=list(self._messages),
            error=self.error,
        )

    def drain_events(self) -> List[SessionEvent]:
        """Return every queued event without waiting"""
        drained = []
        while True:
            try:
                drained.append(self.events.get_nowait())
            except asyncio.QueueEmpty:
                return drained

    # ------------------------------------------------------------------ #
    # ---------------------------  actions  ---------------------------- #
    # ------------------------------------------------------------------ #
    async def toggle(self) -> bool:
        """Start listening when idle, send the recording when listening"""
        if self.busy:
            logger.debug(f"Ignoring toggle while {self.status.value}")
            return False
        if self.status == SessionStatus.LISTENING:
            return await self.stop_and_send()
        return await self.begin()

    mic_pressed = toggle

    async def begin(self) -> bool:
        """Start (or resume) the conversation and open the microphone"""
        if self._closed:
            logger.warning("Session is closed, not starting")
            return False
        if self.busy or self.status not in (SessionStatus.IDLE, SessionStatus.FAILED):
            logger.debug(f"Ignoring begin while {self.status.value}")
            return False

        async with self._step_lock:
            self.error = None
            self._set_status(SessionStatus.STARTING)
            try:
                if self.session.conversation_id is None:
                    started = await self.provider.start_conversation(self.agent_id)
                    self.session.conversation_id = started.conversation_id
                    if started.message:
                        self._append(Message.create(Sender.AGENT, text=started.message))
                else:
                    logger.info(f"Resuming conversation {self.session.conversation_id}")

                self._handle = await self.recorder.open()
            except VoiceAgentError as e:
                self._fail(e)
                return False
            except Exception as e:
                self._fail(e)
                raise

            self._set_status(SessionStatus.LISTENING)
            return True

    async def stop_and_send(self) -> bool:
        """Close the recording and submit it as one turn"""
        if self.busy or self.status != SessionStatus.LISTENING or self._handle is None:
            logger.debug(f"No open recording to send (status {self.status.value})")
            return False

        async with self._step_lock:
            handle, self._handle = self._handle, None
            self._set_status(SessionStatus.SENDING)
            try:
                audio_uri = await self.recorder.close(handle)
                reply = await self.provider.send_audio(self.session.conversation_id, audio_uri)
            except VoiceAgentError as e:
                # conversation_id is kept so the next begin() resumes it
                self._fail(e)
                return False
            except Exception as e:
                self._fail(e)
                raise

            self._record_turn(audio_uri, reply)
            self._set_status(SessionStatus.IDLE)

        if self.end_after_turn:
            await self.end()
        return True

    async def end(self) -> None:
        """Best-effort end of the conversation; always leaves the session IDLE"""
        async with self._step_lock:
            try:
                if self._handle is not None:
                    handle, self._handle = self._handle, None
                    await self.recorder.discard(handle)

                conversation_id = self.session.conversation_id
                if conversation_id is not None:
                    self._set_status(SessionStatus.ENDING)
                    try:
                        await self.provider.end_conversation(conversation_id)
                    except VoiceAgentError as e:
                        logger.warning(f"Failed to end conversation {conversation_id}: {e}")
                        self.error = e
                        self._push(SessionEvent(EventKind.ERROR, status=self.status, error=e))
            finally:
                self.session.conversation_id = None
                self._set_status(SessionStatus.IDLE)

    async def close(self) -> None:
        """Tear the session down (screen unmount)"""
        self._closed = True
        await self.end()

    async def __aenter__(self) -> "ConversationSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # ------------------------------------------------------------------ #
    # ---------------------------  helpers  ---------------------------- #
    # ------------------------------------------------------------------ #
    def _record_turn(self, audio_uri: str, reply: AgentReply):
        self._append(Message.create(Sender.USER, audio_uri=audio_uri))
        if reply.is_empty:
            logger.info("Agent returned no reply for this turn")
            return
        self._append(Message.create(Sender.AGENT, text=reply.text, audio_uri=reply.audio_url))

    def _append(self, message: Message):
        self._messages.append(message)
        self._push(SessionEvent(EventKind.MESSAGE_APPENDED, status=self.status, message=message))

    def _set_status(self, new_status: SessionStatus):
        old_status = self.session.status
        if old_status == new_status:
            return
        self.session.status = new_status
        logger.info(f"Status transition: {old_status.value} -> {new_status.value}")
        self._push(SessionEvent(EventKind.STATUS_CHANGED, status=new_status))

    def _fail(self, error: Exception):
        self.error = error
        logger.error(f"Session step failed ({type(error).__name__}): {error}")
        self._set_status(SessionStatus.FAILED)
        self._push(SessionEvent(EventKind.ERROR, status=SessionStatus.FAILED, error=error))

    def _push(self, event: SessionEvent):
        if self.events.full():
            dropped = self.events.get_nowait()
            logger.debug(f"Event queue full, dropping {dropped.kind.value} event")
        self.events.put_nowait(event)
