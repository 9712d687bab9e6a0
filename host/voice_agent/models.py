# voice_agent/models.py
"""
Conversation data model: session status, transcript messages and events
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List


class SessionStatus(Enum):
    """Conversation session lifecycle states"""
    IDLE = "idle"              # Ready for the next turn
    STARTING = "starting"      # Starting the conversation / opening the mic
    LISTENING = "listening"    # Microphone is recording
    SENDING = "sending"        # Uploading audio, waiting for the agent
    ENDING = "ending"          # Ending the conversation with the provider
    FAILED = "failed"          # Last step failed, see session.error


# Steps that hold the session until they resolve
BUSY_STATUSES = (SessionStatus.STARTING, SessionStatus.SENDING, SessionStatus.ENDING)


class Sender(Enum):
    USER = "user"
    AGENT = "agent"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Message:
    """One transcript bubble"""
    id: str
    sender: Sender
    text: Optional[str] = None
    audio_uri: Optional[str] = None
    timestamp: int = field(default_factory=now_ms)

    @classmethod
    def create(cls, sender: Sender, text: Optional[str] = None, audio_uri: Optional[str] = None) -> "Message":
        return cls(id=uuid.uuid4().hex, sender=sender, text=text, audio_uri=audio_uri)


@dataclass
class Session:
    """Live conversation state owned by ConversationSession"""
    agent_id: str
    conversation_id: Optional[str] = None
    status: SessionStatus = SessionStatus.IDLE


@dataclass(frozen=True)
class ConversationStart:
    """Result of starting a conversation"""
    conversation_id: str
    message: Optional[str] = None


@dataclass(frozen=True)
class AgentReply:
    """Result of submitting one turn of audio"""
    text: Optional[str] = None
    audio_url: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.audio_url


class EventKind(Enum):
    STATUS_CHANGED = "status_changed"
    MESSAGE_APPENDED = "message_appended"
    ERROR = "error"


@dataclass(frozen=True)
class SessionEvent:
    """Entry in the session event queue consumed by the presentation layer"""
    kind: EventKind
    status: Optional[SessionStatus] = None
    message: Optional[Message] = None
    error: Optional[Exception] = None


@dataclass(frozen=True)
class SessionSnapshot:
    """What the presentation layer renders"""
    listening: bool
    status: SessionStatus
    messages: List[Message]
    error: Optional[Exception] = None
