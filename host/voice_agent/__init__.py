# voice_agent/__init__.py
"""
Voice Agent Package
"""

from .config import Config, setup_logging
from .errors import (
    VoiceAgentError,
    PermissionDenied,
    RecorderBusyError,
    AuthError,
    ProviderError,
    ProtocolError,
    EncodingError,
)
from .models import (
    Message,
    Sender,
    Session,
    SessionStatus,
    SessionEvent,
    SessionSnapshot,
    EventKind,
    ConversationStart,
    AgentReply,
)
from .audio import MicrophoneRecorder, RecordingHandle, HIGH_QUALITY, LOW_QUALITY, get_preset
from .providers import ConversationProvider, ElevenLabsConversationProvider, ProviderFactory
from .session import ConversationSession
from .playback import AudioPlayer

__all__ = [
    'Config',
    'setup_logging',
    'VoiceAgentError',
    'PermissionDenied',
    'RecorderBusyError',
    'AuthError',
    'ProviderError',
    'ProtocolError',
    'EncodingError',
    'Message',
    'Sender',
    'Session',
    'SessionStatus',
    'SessionEvent',
    'SessionSnapshot',
    'EventKind',
    'ConversationStart',
    'AgentReply',
    'MicrophoneRecorder',
    'RecordingHandle',
    'HIGH_QUALITY',
    'LOW_QUALITY',
    'get_preset',
    'ConversationProvider',
    'ElevenLabsConversationProvider',
    'ProviderFactory',
    'ConversationSession',
    'AudioPlayer',
]
