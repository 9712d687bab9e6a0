# voice_agent/providers/base.py
"""
Base interface for conversational-AI providers
"""

from abc import ABC, abstractmethod

from ..models import AgentReply, ConversationStart


class ConversationProvider(ABC):
    """One request/response per call, no retries. Errors propagate to the caller."""

    @abstractmethod
    async def start_conversation(self, agent_id: str) -> ConversationStart:
        """Open a conversation with the agent"""
        pass

    @abstractmethod
    async def send_audio(self, conversation_id: str, audio_uri: str) -> AgentReply:
        """Submit one turn of recorded audio and return the agent's reply"""
        pass

    @abstractmethod
    async def end_conversation(self, conversation_id: str) -> None:
        """Close the conversation on the provider side"""
        pass

    def close(self) -> None:
        """Release any network resources held by the provider"""
