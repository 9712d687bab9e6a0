# jarvis_host.py
"""
Terminal host for the voice agent.
Press Enter to start talking, Enter again to send the turn, 'q' to quit.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Add this directory to path so the package imports when run as a script
sys.path.insert(0, str(Path(__file__).parent))

from voice_agent.audio import MicrophoneRecorder, get_preset
from voice_agent.config import Config, setup_logging
from voice_agent.errors import VoiceAgentError
from voice_agent.models import EventKind, Message, Sender, SessionEvent, SessionStatus
from voice_agent.playback import AudioPlayer
from voice_agent.providers import ProviderFactory
from voice_agent.session import ConversationSession

logger = logging.getLogger(__name__)

STATUS_LINES = {
    SessionStatus.IDLE: "○ Tap Enter to talk",
    SessionStatus.STARTING: "◌ Connecting...",
    SessionStatus.LISTENING: "● Listening... press Enter to send",
    SessionStatus.SENDING: "◌ Thinking...",
    SessionStatus.ENDING: "◌ Ending conversation...",
    SessionStatus.FAILED: "✖ Something went wrong, press Enter to retry",
}

QUIT_WORDS = ("q", "quit", "exit")


def format_status(status: SessionStatus) -> str:
    return STATUS_LINES[status]


def format_message(message: Message) -> str:
    if message.sender == Sender.USER:
        body = message.text or "🎤 (voice message)"
        return f"🧑 You: {body}"
    body = message.text or "🔊 (audio reply)"
    return f"🤖 Agent: {body}"


def format_event(event: SessionEvent) -> Optional[str]:
    if event.kind == EventKind.STATUS_CHANGED:
        return format_status(event.status)
    if event.kind == EventKind.MESSAGE_APPENDED:
        return format_message(event.message)
    if event.kind == EventKind.ERROR:
        return f"❌ {event.error}"
    return None


async def render_events(session: ConversationSession, player: Optional[AudioPlayer] = None):
    """Print session events in order, playing agent audio when enabled"""
    while True:
        event = await session.events.get()
        line = format_event(event)
        if line:
            print(line, flush=True)
        if (
            player is not None
            and event.kind == EventKind.MESSAGE_APPENDED
            and event.message.sender == Sender.AGENT
            and event.message.audio_uri
        ):
            await player.play(event.message.audio_uri)


async def read_presses(session: ConversationSession):
    """Turn each line on stdin into a mic press until the user quits.

    Presses run as tasks so stdin keeps being read; a press that arrives
    while a step is in flight is dropped instead of replayed afterwards.
    """
    loop = asyncio.get_running_loop()
    pending: Optional[asyncio.Task] = None
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line or line.strip().lower() in QUIT_WORDS:
                return
            if pending is not None and pending.done():
                pending, done = None, pending
                done.result()
            if pending is not None or session.busy:
                logger.debug(f"Ignoring press while {session.status.value}")
                continue
            pending = asyncio.create_task(session.mic_pressed())
    finally:
        if pending is not None:
            await pending


async def run(config: Config) -> int:
    provider = ProviderFactory.create_conversation_provider(config)
    recorder = MicrophoneRecorder(config.recording_dir, get_preset(config.recording_preset))
    player = AudioPlayer(timeout=config.request_timeout) if config.play_replies else None

    session = ConversationSession(
        agent_id=config.agent_id,
        provider=provider,
        recorder=recorder,
        end_after_turn=config.end_after_turn,
    )

    print(format_status(session.status), flush=True)
    renderer = asyncio.create_task(render_events(session, player))
    try:
        async with session:
            await read_presses(session)
    finally:
        renderer.cancel()
        for event in session.drain_events():
            line = format_event(event)
            if line:
                print(line, flush=True)
        provider.close()
    return 0


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Talk to a conversational AI agent from the terminal")
    parser.add_argument("--agent-id", help="Agent identifier (default: ELEVEN_LABS_AGENT_ID)")
    parser.add_argument("--single-turn", action="store_true", help="End the conversation after every turn")
    parser.add_argument("--play-replies", action="store_true", help="Play agent audio replies")
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL or INFO)")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    config = Config.from_env()
    if args.agent_id:
        config.agent_id = args.agent_id
    if args.single_turn:
        config.end_after_turn = True
    if args.play_replies:
        config.play_replies = True
    if args.log_level:
        config.log_level = args.log_level
    return config


def main(argv=None) -> int:
    """Main entry point"""
    args = parse_args(argv)
    config = build_config(args)
    setup_logging(config)

    if not config.agent_id:
        logger.error("No agent configured, set ELEVEN_LABS_AGENT_ID or pass --agent-id")
        return 2

    logger.info(f"🎤 Starting Jarvis with agent {config.agent_id}")
    try:
        return asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except VoiceAgentError as e:
        logger.error(f"Fatal: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
