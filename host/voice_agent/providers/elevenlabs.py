# voice_agent/providers/elevenlabs.py
"""
ElevenLabs Conversational AI provider over plain HTTP
"""

import asyncio
import base64
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests

from ..errors import AuthError, EncodingError, ProtocolError, ProviderError
from ..models import AgentReply, ConversationStart
from .base import ConversationProvider

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.elevenlabs.io/v1"


class ElevenLabsConversationProvider(ConversationProvider):
    """Starts conversations, uploads recorded turns and ends conversations"""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_URL,
        model_id: str = "eleven_turbo_v2",
        language: str = "en",
        user_agent: str = "Jarvis/1.0",
        timeout: Optional[float] = 30.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.model_id = model_id
        self.language = language
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": user_agent,
        })
        # conversation_id -> agent_id, the agent is part of every conversation URL.
        # Entries live until end_conversation() or close().
        self._agents: Dict[str, str] = {}

    # ------------------------------------------------------------------ #
    async def start_conversation(self, agent_id: str) -> ConversationStart:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self._start_conversation(agent_id))

    async def send_audio(self, conversation_id: str, audio_uri: str) -> AgentReply:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self._send_audio(conversation_id, audio_uri))

    async def end_conversation(self, conversation_id: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: self._end_conversation(conversation_id))

    def close(self) -> None:
        self._agents.clear()
        self.session.close()

    # ------------------------------------------------------------------ #
    def _start_conversation(self, agent_id: str) -> ConversationStart:
        logger.info(f"Starting conversation with agent: {agent_id}")
        data = self._post(
            f"/agents/{agent_id}/conversations",
            {
                "mode": "streaming",
                "recording_enabled": True,
                "language": self.language,
                "model_id": self.model_id,
            },
        )

        conversation_id = data.get("conversation_id")
        if not isinstance(conversation_id, str) or not conversation_id:
            raise ProtocolError(f"No conversation ID received from API: {data!r}")

        greeting = data.get("message")
        if greeting is not None and not isinstance(greeting, str):
            raise ProtocolError(f"Unexpected 'message' in start response: {greeting!r}")

        self._agents[conversation_id] = agent_id
        logger.info(f"✅ Conversation started: {conversation_id}")
        return ConversationStart(conversation_id=conversation_id, message=greeting or None)

    def _send_audio(self, conversation_id: str, audio_uri: str) -> AgentReply:
        agent_id = self._agent_for(conversation_id)
        audio = self._read_audio(audio_uri)
        logger.info(f"Sending {len(audio)} bytes of audio to conversation: {conversation_id}")

        data = self._post(
            f"/agents/{agent_id}/conversations/{conversation_id}/audio",
            {
                "audio": base64.b64encode(audio).decode("ascii"),
                "model_id": self.model_id,
            },
        )

        text = data.get("text")
        audio_url = data.get("audio_url")
        for name, value in (("text", text), ("audio_url", audio_url)):
            if value is not None and not isinstance(value, str):
                raise ProtocolError(f"Unexpected '{name}' in audio response: {value!r}")

        return AgentReply(text=text or None, audio_url=audio_url or None)

    def _end_conversation(self, conversation_id: str) -> None:
        agent_id = self._agent_for(conversation_id)
        logger.info(f"Ending conversation: {conversation_id}")
        try:
            self._post(f"/agents/{agent_id}/conversations/{conversation_id}/end", None)
        finally:
            self._agents.pop(conversation_id, None)
        logger.info("Conversation ended successfully")

    # ------------------------------------------------------------------ #
    def _agent_for(self, conversation_id: str) -> str:
        try:
            return self._agents[conversation_id]
        except KeyError:
            raise ProtocolError(f"Conversation {conversation_id} was not started by this provider")

    def _post(self, path: str, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not self.api_key or not self.api_key.strip():
            raise AuthError("ElevenLabs API key is not configured")

        url = f"{self.base_url}{path}"
        start_time = time.time()
        try:
            response = self.session.post(
                url,
                json=payload,
                headers={"xi-api-key": self.api_key},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            elapsed = time.time() - start_time
            logger.warning(f"Request to {url} timed out after {elapsed:.1f}s")
            raise ProviderError(f"Request to {url} timed out") from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"Could not connect to provider: {e}")
            raise ProviderError(f"Could not connect to provider: {e}") from e

        status = response.status_code
        if status in (401, 403):
            logger.error(f"API Error Response: {response.text}")
            raise AuthError(
                f"API key rejected: {status} {response.reason} - {response.text}",
                status_code=status,
                body=response.text,
            )
        if not 200 <= status < 300:
            logger.error(f"API Error Response: {response.text}")
            logger.error(f"Request URL: {url}")
            raise ProviderError(
                f"API request failed: {status} {response.reason} - {response.text}",
                status_code=status,
                body=response.text,
            )

        logger.debug(f"POST {path} -> {status} in {time.time() - start_time:.2f}s")
        return self._parse_json(response)

    @staticmethod
    def _parse_json(response) -> Dict[str, Any]:
        if not (response.text or "").strip():
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(f"Response is not JSON: {response.text[:200]}") from e
        if not isinstance(data, dict):
            raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")
        return data

    def _read_audio(self, audio_uri: str) -> bytes:
        """Fetch the recorded audio behind a path, file:// URI or http(s) URL"""
        if not audio_uri:
            raise EncodingError("No audio to send")

        parsed = urlparse(audio_uri)
        try:
            if parsed.scheme in ("http", "https"):
                response = self.session.get(audio_uri, timeout=self.timeout)
                response.raise_for_status()
                audio = response.content
            elif parsed.scheme == "file":
                audio = Path(url2pathname(parsed.path)).read_bytes()
            else:
                audio = Path(audio_uri).read_bytes()
        except (OSError, requests.exceptions.RequestException) as e:
            raise EncodingError(f"Could not read audio from {audio_uri}: {e}") from e

        if not audio:
            raise EncodingError(f"Audio at {audio_uri} is empty")
        return audio
