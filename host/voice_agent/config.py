# voice_agent/config.py
"""
Configuration management for the voice agent
"""

import os
import sys
import logging
import tempfile
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DEFAULT_API_URL = "https://api.elevenlabs.io/v1"
DEFAULT_RECORDING_DIR = os.path.join(tempfile.gettempdir(), "jarvis-recordings")

TRUTHY = ("true", "1", "yes", "on")


@dataclass
class Config:
    """Configuration settings for the voice agent"""
    # === PROVIDER ===
    elevenlabs_api_key: str
    agent_id: str
    api_url: str
    model_id: str
    language: str
    user_agent: str
    # Seconds; None means the request waits indefinitely
    request_timeout: Optional[float]

    # === AUDIO CONFIGURATION ===
    recording_preset: str
    recording_dir: str

    # === SESSION BEHAVIOUR ===
    end_after_turn: bool
    play_replies: bool

    # === LOGGING CONFIGURATION ===
    log_level: str
    log_file: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables"""
        timeout = float(os.getenv("REQUEST_TIMEOUT", "30"))
        return cls(
            # === PROVIDER ===
            elevenlabs_api_key=os.getenv("ELEVEN_LABS_API_KEY", ""),
            agent_id=os.getenv("ELEVEN_LABS_AGENT_ID", ""),
            api_url=os.getenv("ELEVEN_LABS_API_URL", DEFAULT_API_URL).rstrip("/"),
            model_id=os.getenv("ELEVEN_LABS_MODEL_ID", "eleven_turbo_v2"),
            language=os.getenv("CONVERSATION_LANGUAGE", "en"),
            user_agent=os.getenv("USER_AGENT", "Jarvis/1.0"),
            request_timeout=timeout if timeout > 0 else None,

            # === AUDIO CONFIGURATION ===
            recording_preset=os.getenv("RECORDING_PRESET", "high_quality").lower(),
            recording_dir=os.path.expanduser(os.getenv("RECORDING_DIR", DEFAULT_RECORDING_DIR)),

            # === SESSION BEHAVIOUR ===
            end_after_turn=os.getenv("END_AFTER_TURN", "false").lower() in TRUTHY,
            play_replies=os.getenv("PLAY_REPLIES", "false").lower() in TRUTHY,

            # === LOGGING CONFIGURATION ===
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", "voice_agent.log"),
        )

    @property
    def has_api_key(self) -> bool:
        return bool(self.elevenlabs_api_key and self.elevenlabs_api_key.strip())


def setup_logging(config: Config):
    """Configure file and console logging"""
    file_handler = logging.FileHandler(config.log_file, encoding='utf-8')
    console_handler = logging.StreamHandler(sys.stdout)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[file_handler, console_handler],
        force=True  # Reconfigure even if already configured
    )

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
