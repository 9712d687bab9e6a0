"""
Conversation provider implementations for the voice agent
"""

from .base import ConversationProvider
from .elevenlabs import ElevenLabsConversationProvider
from .factory import ProviderFactory

__all__ = [
    'ConversationProvider',
    'ElevenLabsConversationProvider',
    'ProviderFactory',
]
