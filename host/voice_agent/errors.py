# voice_agent/errors.py
"""
Error taxonomy shared by the recorder, the provider client and the session
"""

from typing import Optional


class VoiceAgentError(Exception):
    """Base class for every error the session knows how to surface"""


class PermissionDenied(VoiceAgentError):
    """Microphone access was refused or no input device is available"""


class RecorderBusyError(VoiceAgentError):
    """A recording handle is already open"""


class AuthError(VoiceAgentError):
    """API key missing, or rejected by the provider"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProviderError(VoiceAgentError):
    """Provider answered with a non-success status, or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProtocolError(VoiceAgentError):
    """Provider response does not have the expected shape"""


class EncodingError(VoiceAgentError):
    """Recorded audio could not be read or encoded for upload"""
