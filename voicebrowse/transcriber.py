"""Audio transcription module."""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from faster_whisper import WhisperModel
from openai import AsyncOpenAI

from .config import TranscriberConfig

logger = logging.getLogger(__name__)


class Transcriber(ABC):
    """Turns a recorded audio file into plain text."""

    @abstractmethod
    async def transcribe(self, audio_file_path: Union[str, Path]) -> str:
        """Transcribe the audio file and return the recognized text."""


class OpenAITranscriber(Transcriber):
    """Transcribes audio with the OpenAI speech-to-text API."""

    def __init__(
        self, config: TranscriberConfig, client: Optional[AsyncOpenAI] = None
    ):
        """Initialize the transcriber.

        Args:
            config: Transcriber configuration carrying the API credentials.
            client: Optional pre-built client, mostly for tests.
        """
        self.config = config
        self._client = client or AsyncOpenAI(
            api_key=config.api_key, base_url=config.base_url
        )

    async def transcribe(self, audio_file_path: Union[str, Path]) -> str:
        logger.info(f"Transcribing audio with {self.config.model}...")

        request = {"model": self.config.model, "response_format": "text"}
        if self.config.language:
            request["language"] = self.config.language

        try:
            with open(audio_file_path, "rb") as audio_file:
                transcription = await self._client.audio.transcriptions.create(
                    file=audio_file, **request
                )
        except Exception as e:
            logger.error(f"Error transcribing audio: {e}")
            raise

        # response_format="text" yields a bare string
        text = transcription if isinstance(transcription, str) else transcription.text
        text = text.strip()
        logger.info(f"Transcribed text: {text}")
        return text


class WhisperTranscriber(Transcriber):
    """Transcribes audio locally using faster-whisper."""

    def __init__(self, config: TranscriberConfig):
        self.config = config
        self._model: Optional[WhisperModel] = None

    def load_model(self) -> bool:
        """Load the Whisper model.

        Returns:
            True if model loaded successfully, False otherwise.
        """
        if self._model:
            logger.warning("Model already loaded")
            return True

        try:
            logger.info(
                f"Loading Whisper model '{self.config.local_model}' "
                f"(Device: {self.config.device}, "
                f"Compute: {self.config.compute_type}, "
                f"CPU threads: {self.config.cpu_threads})"
            )
            self._model = WhisperModel(
                self.config.local_model,
                device=self.config.device,
                compute_type=self.config.compute_type,
                cpu_threads=self.config.cpu_threads,
            )
            logger.info("Whisper model loaded successfully")
            return True

        except Exception as e:
            logger.exception(f"Failed to load Whisper model: {e}")
            self._model = None
            return False

    def _run_transcription(self, audio_file_path: str) -> str:
        """Run transcription in a worker thread."""
        if not self._model:
            raise RuntimeError("Model not loaded")

        segments, info = self._model.transcribe(
            audio_file_path,
            language=self.config.language,
            beam_size=self.config.beam_size,
        )
        text = " ".join(seg.text.strip() for seg in segments).strip()
        logger.debug(
            f"Detected language {info.language} "
            f"(probability {info.language_probability:.2f})"
        )
        return text

    async def transcribe(self, audio_file_path: Union[str, Path]) -> str:
        logger.info("Transcribing audio locally...")
        try:
            text = await asyncio.to_thread(self._run_transcription, str(audio_file_path))
        except Exception as e:
            logger.error(f"Error transcribing audio: {e}")
            raise

        logger.info(f"Transcribed text: {text}")
        return text


def create_transcriber(config: TranscriberConfig) -> Transcriber:
    """Create the transcriber selected by the configuration."""
    if config.backend == "local":
        return WhisperTranscriber(config)
    return OpenAITranscriber(config)
