"""Voice command pipeline: record, transcribe, execute, clean up."""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Protocol

from .audio_capture import Recorder
from .executor import ActionExecutor
from .transcriber import Transcriber

logger = logging.getLogger(__name__)

RECORDING = "Recording"
TRANSCRIBING = "Transcribing"
EXECUTING = "Executing"
CLEANING_UP = "CleaningUp"


@dataclass
class VoiceCommandResult:
    """What happened during one pipeline iteration."""

    audio_file: Path
    transcript: Optional[str] = None
    action_result: Any = None
    error: Optional[BaseException] = None
    cleaned_up: bool = False
    stages: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None


def cleanup_audio_file(path: Path) -> bool:
    """Delete the audio file if it exists.

    Safe to call when the file is already gone. A failed deletion is logged
    rather than raised so it cannot mask the error that led here.

    Returns:
        True if the file no longer exists afterwards.
    """
    if not os.path.exists(path):
        logger.debug(f"No audio file to remove at {path}")
        return True

    try:
        os.remove(path)
    except OSError as e:
        logger.error(f"Failed to remove audio file {path}: {e}")
        return False

    logger.debug(f"Removed audio file {path}")
    return True


class VoiceCommandPipeline:
    """Runs one voice command through Recording, Transcribing, Executing, CleaningUp."""

    def __init__(
        self,
        recorder: Recorder,
        transcriber: Transcriber,
        executor: ActionExecutor,
        audio_file: Optional[Path] = None,
    ):
        self.recorder = recorder
        self.transcriber = transcriber
        self.executor = executor
        self.audio_file = Path(audio_file or recorder.config.audio_file)

    @staticmethod
    def _enter(result: VoiceCommandResult, stage: str) -> None:
        logger.debug(f"Voice command stage: {stage}")
        result.stages.append(stage)

    async def handle_voice_command(self) -> VoiceCommandResult:
        """Run a single pipeline iteration.

        Recording and transcription failures end the iteration early; execution
        failures are absorbed by the executor. The audio file is removed on
        every path, including cancellation.
        """
        result = VoiceCommandResult(audio_file=self.audio_file)

        try:
            self._enter(result, RECORDING)
            await self.recorder.record_audio(self.audio_file)

            self._enter(result, TRANSCRIBING)
            result.transcript = await self.transcriber.transcribe(self.audio_file)

            self._enter(result, EXECUTING)
            result.action_result = await self.executor.execute_action(result.transcript)

        except Exception as e:
            logger.exception(f"Error handling voice command: {e}")
            result.error = e

        finally:
            self._enter(result, CLEANING_UP)
            result.cleaned_up = cleanup_audio_file(self.audio_file)

        return result


class PageSession(Protocol):
    async def prepare(self, first_load: bool) -> None:
        ...


class VoiceCommandLoop:
    """Re-arms the pipeline after every command until told to stop."""

    def __init__(
        self,
        pipeline: VoiceCommandPipeline,
        stop_event: asyncio.Event,
        session: Optional[PageSession] = None,
        max_iterations: int = 0,
    ):
        """Initialize the loop.

        Args:
            pipeline: The pipeline to run on every iteration.
            stop_event: Ends the loop once set; checked between iterations.
            session: Optional page session prepared before each iteration.
            max_iterations: Stop after this many iterations (0 = unbounded).
        """
        self.pipeline = pipeline
        self.stop_event = stop_event
        self.session = session
        self.max_iterations = max_iterations
        self.iterations = 0

    async def _prepare_page(self, first_load: bool) -> None:
        if self.session is None:
            return
        try:
            await self.session.prepare(first_load)
        except Exception as e:
            logger.error(f"Error preparing page: {e}")

    async def run(self) -> int:
        """Run iterations until stopped.

        Returns:
            Number of completed iterations.
        """
        logger.info("Voice command loop started")
        first_load = True

        while not self.stop_event.is_set():
            await self._prepare_page(first_load)
            first_load = False

            await self.pipeline.handle_voice_command()
            self.iterations += 1

            if self.max_iterations and self.iterations >= self.max_iterations:
                logger.info(f"Reached {self.max_iterations} iterations, stopping")
                break

            if not self.stop_event.is_set():
                logger.info("Listening for the next voice command...")

        logger.info("Voice command loop stopped")
        return self.iterations
