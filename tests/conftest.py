"""Shared test fixtures."""

import asyncio
from typing import AsyncIterator

import pytest

from voicebrowse.audio_capture import CaptureBackend, CaptureError

# 100 ms of 16-bit mono silence at 16 kHz
SILENCE_CHUNK = b"\x00\x00" * 1600


class SyntheticCapture(CaptureBackend):
    """Capture backend that emits silence until stopped."""

    def __init__(self, config=None, chunk_interval: float = 0.02, fail_after: int = 0):
        self.config = config
        self.chunk_interval = chunk_interval
        self.fail_after = fail_after
        self.started = False
        self.stop_calls = 0
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stop_calls += 1
        self._stopped.set()

    async def stream(self) -> AsyncIterator[bytes]:
        sent = 0
        while not self._stopped.is_set():
            if self.fail_after and sent >= self.fail_after:
                raise CaptureError("device unavailable")
            yield SILENCE_CHUNK
            sent += 1
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.chunk_interval)
            except asyncio.TimeoutError:
                pass


@pytest.fixture
def synthetic_backends():
    """Factory that records every SyntheticCapture it builds."""
    created = []

    def factory(config):
        backend = SyntheticCapture(config)
        created.append(backend)
        return backend

    factory.created = created
    return factory
