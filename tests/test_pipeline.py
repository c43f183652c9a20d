"""Tests for the voice command pipeline and loop."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from voicebrowse.audio_capture import CaptureError, Recorder
from voicebrowse.config import RecorderConfig
from voicebrowse.executor import ActionExecutor
from voicebrowse.pipeline import (
    CLEANING_UP,
    EXECUTING,
    RECORDING,
    TRANSCRIBING,
    VoiceCommandLoop,
    VoiceCommandPipeline,
    VoiceCommandResult,
    cleanup_audio_file,
)

from .conftest import SyntheticCapture


@pytest.fixture
def audio_path(tmp_path):
    return tmp_path / "command.mp3"


@pytest.fixture
def recorder(audio_path, synthetic_backends):
    """Recorder producing one second of synthetic silence."""
    config = RecorderConfig(duration_s=1.0, audio_file=audio_path)
    return Recorder(config, backend_factory=synthetic_backends)


@pytest.fixture
def transcriber():
    transcriber = MagicMock()
    transcriber.transcribe = AsyncMock(return_value="navigate to the pricing page")
    return transcriber


@pytest.fixture
def agent_session():
    session = MagicMock()
    session.act = AsyncMock(return_value="navigated")
    return session


@pytest.fixture
def pipeline(recorder, transcriber, agent_session, audio_path):
    return VoiceCommandPipeline(
        recorder, transcriber, ActionExecutor(agent_session), audio_path
    )


def test_cleanup_missing_file_is_noop(audio_path):
    """Test that cleanup is idempotent."""
    assert cleanup_audio_file(audio_path) is True
    assert cleanup_audio_file(audio_path) is True


def test_cleanup_removes_file(audio_path):
    audio_path.write_bytes(b"\x00")
    assert cleanup_audio_file(audio_path) is True
    assert not audio_path.exists()


def test_cleanup_reports_failed_removal(tmp_path):
    # A non-empty directory cannot be removed with os.remove
    target = tmp_path / "command.mp3"
    target.mkdir()
    (target / "inner").write_bytes(b"")

    assert cleanup_audio_file(target) is False


@pytest.mark.asyncio
async def test_successful_command(pipeline, transcriber, agent_session, audio_path):
    """Silence capture, stubbed transcript, executor called, file removed."""
    result = await pipeline.handle_voice_command()

    assert isinstance(result, VoiceCommandResult)
    assert result.succeeded
    assert result.transcript == "navigate to the pricing page"
    assert result.action_result == "navigated"
    assert result.cleaned_up
    transcriber.transcribe.assert_awaited_once_with(audio_path)
    agent_session.act.assert_awaited_once_with("navigate to the pricing page")
    assert not audio_path.exists()
    assert result.stages == [RECORDING, TRANSCRIBING, EXECUTING, CLEANING_UP]


@pytest.mark.asyncio
async def test_transcription_failure_skips_execution(
    pipeline, transcriber, agent_session, audio_path
):
    """A network error during transcription ends the iteration early."""
    seen_file = []

    async def fail(path):
        seen_file.append(path.exists())
        raise ConnectionError("network unreachable")

    transcriber.transcribe.side_effect = fail

    result = await pipeline.handle_voice_command()

    assert seen_file == [True]
    assert isinstance(result.error, ConnectionError)
    assert result.transcript is None
    agent_session.act.assert_not_awaited()
    assert result.cleaned_up
    assert not audio_path.exists()
    assert result.stages == [RECORDING, TRANSCRIBING, CLEANING_UP]


@pytest.mark.asyncio
async def test_execution_failure_still_cleans_up(pipeline, agent_session, audio_path):
    """An agent failure is not fatal and the file is still removed."""
    agent_session.act.side_effect = RuntimeError("could not find the pricing link")

    result = await pipeline.handle_voice_command()

    assert result.succeeded
    assert result.action_result is None
    agent_session.act.assert_awaited_once()
    assert not audio_path.exists()
    assert result.stages == [RECORDING, TRANSCRIBING, EXECUTING, CLEANING_UP]


@pytest.mark.asyncio
async def test_raising_executor_still_cleans_up(
    recorder, transcriber, audio_path
):
    executor = MagicMock()
    executor.execute_action = AsyncMock(side_effect=RuntimeError("agent crashed"))
    pipeline = VoiceCommandPipeline(
        recorder, transcriber, executor, audio_path
    )

    result = await pipeline.handle_voice_command()

    assert isinstance(result.error, RuntimeError)
    assert result.cleaned_up
    assert not audio_path.exists()


@pytest.mark.asyncio
async def test_capture_failure_skips_transcription(
    transcriber, agent_session, audio_path
):
    config = RecorderConfig(duration_s=1.0, audio_file=audio_path)
    recorder = Recorder(
        config, backend_factory=lambda c: SyntheticCapture(c, fail_after=3)
    )
    pipeline = VoiceCommandPipeline(
        recorder, transcriber, ActionExecutor(agent_session)
    )

    result = await pipeline.handle_voice_command()

    assert isinstance(result.error, CaptureError)
    assert result.stages == [RECORDING, CLEANING_UP]
    transcriber.transcribe.assert_not_awaited()
    agent_session.act.assert_not_awaited()
    # The partial recording is removed too
    assert not audio_path.exists()


@pytest.mark.asyncio
async def test_cancelled_command_still_cleans_up(pipeline, audio_path):
    task = asyncio.create_task(pipeline.handle_voice_command())
    await asyncio.sleep(0.1)
    assert audio_path.exists()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not audio_path.exists()


@pytest.mark.asyncio
async def test_audio_file_defaults_to_recorder_config(recorder, transcriber, agent_session, audio_path):
    pipeline = VoiceCommandPipeline(recorder, transcriber, ActionExecutor(agent_session))
    assert pipeline.audio_file == audio_path


@pytest.fixture
def fast_pipeline():
    pipeline = MagicMock()
    pipeline.handle_voice_command = AsyncMock(
        side_effect=lambda: VoiceCommandResult(audio_file="command.mp3")
    )
    return pipeline


@pytest.mark.asyncio
async def test_loop_respects_max_iterations(fast_pipeline):
    session = MagicMock()
    session.prepare = AsyncMock()
    loop = VoiceCommandLoop(fast_pipeline, asyncio.Event(), session, max_iterations=3)

    assert await loop.run() == 3

    assert fast_pipeline.handle_voice_command.await_count == 3
    assert [c.args[0] for c in session.prepare.await_args_list] == [True, False, False]


@pytest.mark.asyncio
async def test_loop_stops_on_event(fast_pipeline):
    stop_event = asyncio.Event()

    async def handle():
        if fast_pipeline.handle_voice_command.await_count == 2:
            stop_event.set()
        return VoiceCommandResult(audio_file="command.mp3")

    fast_pipeline.handle_voice_command.side_effect = handle
    loop = VoiceCommandLoop(fast_pipeline, stop_event)

    assert await loop.run() == 2


@pytest.mark.asyncio
async def test_loop_does_not_start_when_stopped(fast_pipeline):
    stop_event = asyncio.Event()
    stop_event.set()

    assert await VoiceCommandLoop(fast_pipeline, stop_event).run() == 0
    fast_pipeline.handle_voice_command.assert_not_awaited()


@pytest.mark.asyncio
async def test_loop_survives_prepare_failure(fast_pipeline):
    session = MagicMock()
    session.prepare = AsyncMock(side_effect=RuntimeError("page crashed"))
    loop = VoiceCommandLoop(fast_pipeline, asyncio.Event(), session, max_iterations=2)

    assert await loop.run() == 2


@pytest.mark.asyncio
async def test_loop_runs_many_iterations_without_recursion(fast_pipeline):
    loop = VoiceCommandLoop(fast_pipeline, asyncio.Event(), max_iterations=5000)
    assert await loop.run() == 5000
