# voice_agent/playback.py
"""
Playback of agent reply audio
"""

import asyncio
import io
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests
import soundfile as sf

from .audio import load_sounddevice

logger = logging.getLogger(__name__)


class AudioPlayer:
    """Plays audio from a URL, file:// URI or path on the default output device"""

    def __init__(self, timeout: Optional[float] = 30.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.is_playing = False

    async def play(self, uri: str) -> bool:
        """Returns True when playback completed"""
        loop = asyncio.get_running_loop()
        self.is_playing = True
        try:
            audio_data = await loop.run_in_executor(None, self._fetch, uri)
            await loop.run_in_executor(None, self._play_blocking, audio_data)
        except Exception as e:
            logger.warning(f"Playback of {uri} failed: {e}")
            return False
        finally:
            self.is_playing = False

        logger.info("Audio playback completed")
        return True

    def _fetch(self, uri: str) -> bytes:
        parsed = urlparse(uri)
        if parsed.scheme in ("http", "https"):
            response = self.session.get(uri, timeout=self.timeout)
            response.raise_for_status()
            return response.content
        if parsed.scheme == "file":
            return Path(url2pathname(parsed.path)).read_bytes()
        return Path(uri).read_bytes()

    @staticmethod
    def _play_blocking(audio_data: bytes):
        data, sample_rate = sf.read(io.BytesIO(audio_data), dtype="float32")
        sd = load_sounddevice()
        sd.play(data, sample_rate)
        sd.wait()
