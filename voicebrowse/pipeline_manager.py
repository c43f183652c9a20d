import asyncio
import logging

from .audio_capture import Recorder
from .browser import BrowserSession
from .config import AppConfig
from .executor import ActionExecutor
from .pipeline import VoiceCommandLoop, VoiceCommandPipeline
from .transcriber import WhisperTranscriber, create_transcriber


logger = logging.getLogger(__name__)


class PipelineManager:
    """Builds the voice command components and runs them."""

    def __init__(self, config: AppConfig, stop_event: asyncio.Event):
        """Initialize the pipeline manager."""
        self.config = config
        self.stop_event = stop_event

        # Create component instances
        self.recorder = Recorder(self.config.recorder)
        self.transcriber = create_transcriber(self.config.transcriber)
        self.browser = BrowserSession(self.config.agent)
        self.executor = ActionExecutor(self.browser)

        self.pipeline = VoiceCommandPipeline(
            self.recorder,
            self.transcriber,
            self.executor,
            self.config.recorder.audio_file,
        )
        self.loop = VoiceCommandLoop(
            self.pipeline,
            self.stop_event,
            session=self.browser,
            max_iterations=self.config.daemon.max_iterations,
        )

    async def start(self):
        """Load the local model if needed and open the browser."""
        if isinstance(self.transcriber, WhisperTranscriber):
            if not self.transcriber.load_model():
                raise RuntimeError("Failed to load Whisper model")

        await self.browser.start()

    async def run(self) -> int:
        """Run the voice command loop until it stops."""
        return await self.loop.run()

    async def stop(self):
        """Release the browser session."""
        await self.browser.stop()
