"""Audio capture module."""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from contextlib import aclosing
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple

from .config import RecorderConfig

logger = logging.getLogger(__name__)

# Define a buffer size for reading from stdout
BUFFER_SIZE = 4096

# Seconds to wait for the capture program to exit before killing it
TERMINATE_TIMEOUT = 2.0


class CaptureError(RuntimeError):
    """Raised when the capture program fails or produces no audio."""


def build_capture_command(config: RecorderConfig) -> Tuple[List[str], Dict[str, str]]:
    """Build the argv and extra environment for the capture program.

    Args:
        config: Recorder configuration.

    Returns:
        Tuple of (command, environment overrides).
    """
    env: Dict[str, str] = {}

    if config.program == "arecord":
        command = [
            "arecord",
            "-q",
            "-r", str(config.rate),
            "-c", str(config.channels),
            "-t", config.container,
            "-f", "S16_LE",
        ]
        if config.device:
            command += ["-D", config.device]
        command.append("-")
        return command, env

    command = [config.program]
    if config.program == "sox":
        # sox needs the default input device named explicitly
        command.append("-d")
    command += [
        "-q",
        "-r", str(config.rate),
        "-c", str(config.channels),
        "-e", config.encoding,
        "-b", str(config.bits),
        "-t", config.container,
        "-",
    ]

    if config.silence:
        command.append("silence")
        if config.keep_silence:
            command.append("-l")
        command += [
            "1", "0.1", f"{config.threshold_start}%",
            "1", f"{config.silence}", f"{config.threshold_stop}%",
        ]

    if config.device:
        env["AUDIODEV"] = config.device

    return command, env


class CaptureBackend(ABC):
    """A live audio input stream bound to one recording attempt."""

    @abstractmethod
    async def start(self) -> None:
        """Open the input device and begin capturing."""

    @abstractmethod
    async def stop(self) -> None:
        """Signal the capture to end. Must be safe to call more than once."""

    @abstractmethod
    def stream(self) -> AsyncIterator[bytes]:
        """Yield encoded audio chunks until the capture ends."""


class SoxCapture(CaptureBackend):
    """Captures audio using a SoX (rec/sox) or arecord subprocess."""

    def __init__(self, config: RecorderConfig):
        self.config = config
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stop_requested = False

    async def start(self) -> None:
        if self._process is not None:
            logger.warning("Audio capture is already running.")
            return

        command, env_overrides = build_capture_command(self.config)
        env = {**os.environ, **env_overrides} if env_overrides else None
        self._stop_requested = False

        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                env=env,
            )
        except FileNotFoundError:
            logger.error(
                f"'{self.config.program}' command not found. "
                "Please ensure SoX (or alsa-utils for arecord) is installed."
            )
            raise

        logger.info(f"Started {self.config.program} process with PID: {self._process.pid}")

    async def stream(self) -> AsyncIterator[bytes]:
        if not self._process or not self._process.stdout:
            raise CaptureError("Capture process not started")

        while True:
            data = await self._process.stdout.read(BUFFER_SIZE)
            if not data:
                logger.debug(f"{self.config.program} stdout stream ended.")
                break
            yield data

        returncode = await self._process.wait()
        if returncode != 0 and not self._stop_requested:
            raise CaptureError(
                f"{self.config.program} exited with code {returncode}"
            )

    async def stop(self) -> None:
        if not self._process or self._process.returncode is not None:
            return

        self._stop_requested = True
        try:
            self._process.terminate()
            await asyncio.wait_for(self._process.wait(), timeout=TERMINATE_TIMEOUT)
            logger.debug(f"{self.config.program} process terminated.")
        except ProcessLookupError:
            pass  # Process already finished
        except asyncio.TimeoutError:
            logger.warning(
                f"Timeout waiting for {self.config.program} to terminate, killing."
            )
            self._process.kill()


class Recorder:
    """Records one voice command from the microphone into a file."""

    def __init__(
        self,
        config: RecorderConfig,
        backend_factory: Optional[Callable[[RecorderConfig], CaptureBackend]] = None,
    ):
        """Initialize the recorder.

        Args:
            config: Recorder configuration.
            backend_factory: Builds a fresh capture backend for each recording.
                Defaults to SoxCapture.
        """
        self.config = config
        self._backend_factory = backend_factory or SoxCapture

    async def record_audio(
        self, file_path: Optional[Path] = None, duration: Optional[float] = None
    ) -> Path:
        """Record audio until the duration elapses or the capture stream ends.

        Args:
            file_path: Where to write the audio. Defaults to config.audio_file.
            duration: Recording length in seconds. Defaults to config.duration_s.

        Returns:
            Path of the written audio file.

        Raises:
            CaptureError: If the capture program fails or records nothing.
            FileNotFoundError: If the capture program is not installed.
        """
        path = Path(file_path or self.config.audio_file)
        if duration is None:
            duration = self.config.duration_s
        if duration <= 0:
            raise ValueError(f"Recording duration must be positive, got {duration}")

        backend = self._backend_factory(self.config)
        logger.info(f"Recording audio for {duration:g}s into {path}...")
        await backend.start()

        stop_tasks: List[asyncio.Task] = []

        def on_timeout() -> None:
            logger.debug("Recording duration elapsed, stopping capture.")
            stop_tasks.append(asyncio.ensure_future(backend.stop()))

        timer = asyncio.get_running_loop().call_later(duration, on_timeout)
        bytes_written = 0

        try:
            async with aclosing(backend.stream()) as chunks:
                with open(path, "wb") as audio_file:
                    async for chunk in chunks:
                        audio_file.write(chunk)
                        bytes_written += len(chunk)
        except asyncio.CancelledError:
            logger.info("Recording cancelled.")
            raise
        except Exception as e:
            logger.error(f"Recording error: {e}")
            raise
        finally:
            timer.cancel()
            if stop_tasks:
                await stop_tasks[0]
            else:
                await backend.stop()

        if not bytes_written:
            raise CaptureError("No audio was captured")

        logger.info(f"Recording complete ({bytes_written} bytes).")
        return path
