# voice_agent/providers/factory.py
"""
Factory for creating conversation providers from configuration
"""

import logging

from ..config import Config
from ..errors import AuthError
from .base import ConversationProvider
from .elevenlabs import ElevenLabsConversationProvider

logger = logging.getLogger(__name__)


class ProviderFactory:
    """Factory for creating conversation providers"""

    @staticmethod
    def create_conversation_provider(config: Config) -> ConversationProvider:
        """Create the ElevenLabs provider; a missing API key is fatal"""
        if not config.has_api_key:
            raise AuthError("ElevenLabs API key is not configured (set ELEVEN_LABS_API_KEY)")

        logger.info(f"✅ Using ElevenLabs provider at {config.api_url} ({config.model_id})")
        return ElevenLabsConversationProvider(
            api_key=config.elevenlabs_api_key,
            base_url=config.api_url,
            model_id=config.model_id,
            language=config.language,
            user_agent=config.user_agent,
            timeout=config.request_timeout,
        )
