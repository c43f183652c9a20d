"""Configuration handling for the voicebrowse daemon."""

import os
import tomllib
from pathlib import Path
from typing import List, Literal, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator


def get_default_config_path() -> Path:
    """Get the default config file path following XDG spec."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base_dir = Path(xdg_config)
    else:
        base_dir = Path.home() / ".config"

    return base_dir / "voicebrowse" / "config.toml"


def get_default_log_path() -> Path:
    """Get the default log file path following XDG spec."""
    xdg_state = os.environ.get("XDG_STATE_HOME")
    if xdg_state:
        base_dir = Path(xdg_state)
    else:
        base_dir = Path.home() / ".local" / "state"

    log_dir = base_dir / "voicebrowse"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / "voicebrowse.log"


class RecorderConfig(BaseModel):
    """Microphone capture configuration."""

    model_config = ConfigDict(populate_by_name=True)

    program: Literal["rec", "sox", "arecord"] = Field(
        default="rec", description="Capture program to spawn."
    )
    device: Optional[str] = Field(
        default=None, description="Input device (None = system default)."
    )
    bits: int = Field(default=16, gt=0, description="Sample bit depth.")
    channels: int = Field(default=1, ge=1, description="Number of channels.")
    encoding: str = Field(
        default="signed-integer", description="Sample encoding passed to SoX."
    )
    rate: int = Field(default=16000, gt=0, description="Sample rate in Hz.")
    container: str = Field(
        default="mp3", alias="type", description="Output container type (-t)."
    )
    silence: float = Field(
        default=2.0,
        ge=0,
        description="Seconds of silence that end the capture (0 = no silence effect).",
    )
    threshold_start: float = Field(
        default=0.5, ge=0, description="Silence threshold (%) to start recording."
    )
    threshold_stop: float = Field(
        default=0.5, ge=0, description="Silence threshold (%) to stop recording."
    )
    keep_silence: bool = Field(
        default=True, description="Keep silence in the output instead of trimming it."
    )
    duration_s: float = Field(
        default=20.0, gt=0, description="Recording duration in seconds."
    )
    audio_file: Path = Field(
        default=Path("command.mp3"),
        description="Temporary audio file written on each iteration.",
    )


class TranscriberConfig(BaseModel):
    """Speech-to-text configuration."""

    backend: Literal["openai", "local"] = Field(
        default="openai", description="Transcription backend."
    )
    api_key: Optional[str] = Field(
        default=None, description="OpenAI API key (falls back to OPENAI_API_KEY)."
    )
    base_url: Optional[str] = Field(
        default=None, description="Optional custom OpenAI-compatible endpoint."
    )
    model: str = Field(default="whisper-1", description="Remote transcription model.")
    language: Optional[str] = Field(
        default=None, description="Optional language code (empty for auto-detect)."
    )
    local_model: str = Field(
        default="small.en",
        description="faster-whisper model identifier for the local backend.",
    )
    device: str = Field(
        default="auto", description="Device for local inference (auto, cpu, cuda)."
    )
    compute_type: str = Field(
        default="auto",
        description="Compute type for local inference (auto, float32, float16, int8).",
    )
    beam_size: int = Field(default=5, ge=1, description="Beam size for local search.")
    cpu_threads: int = Field(
        default=0, ge=0, description="Number of CPU threads for inference (0 = auto)."
    )

    @field_validator("model", "local_model")
    @classmethod
    def check_model_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Model identifier cannot be empty")
        return v


class AgentConfig(BaseModel):
    """Browser automation agent configuration."""

    env: Literal["LOCAL", "BROWSERBASE"] = Field(
        default="LOCAL", description="Where the browser runs."
    )
    model_name: str = Field(
        default="gpt-4o", description="Model used by the agent to plan actions."
    )
    model_api_key: Optional[str] = Field(
        default=None, description="API key for the agent model (falls back to OPENAI_API_KEY)."
    )
    browserbase_api_key: Optional[str] = Field(
        default=None, description="Browserbase API key (BROWSERBASE env only)."
    )
    browserbase_project_id: Optional[str] = Field(
        default=None, description="Browserbase project id (BROWSERBASE env only)."
    )
    headless: bool = Field(default=False, description="Run the local browser headless.")
    start_url: str = Field(
        default="https://www.google.com", description="Page opened on first load."
    )
    dom_settle_timeout_ms: int = Field(
        default=3000, ge=0, description="Time to wait for the DOM to settle (ms)."
    )
    verbose: int = Field(default=0, ge=0, le=2, description="Agent log verbosity.")


class DaemonConfig(BaseModel):
    """Daemon runtime configuration."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).",
    )
    log_file: Optional[Path] = Field(
        default=None, description="Optional custom log file path."
    )
    max_iterations: int = Field(
        default=0, ge=0, description="Stop after this many voice commands (0 = never)."
    )

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in allowed_levels:
            raise ValueError(f"Invalid log level. Choose from {allowed_levels}")
        return upper_v

    @property
    def computed_log_file(self) -> Path:
        return self.log_file or get_default_log_path()


class AppConfig(BaseModel):
    """Root configuration."""

    recorder: RecorderConfig = Field(default_factory=RecorderConfig)
    transcriber: TranscriberConfig = Field(default_factory=TranscriberConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    daemon: DaemonConfig = Field(default_factory=DaemonConfig)


def apply_environment(config: AppConfig) -> AppConfig:
    """Fill credentials missing from the config file from the environment."""
    openai_key = os.environ.get("OPENAI_API_KEY")

    if not config.transcriber.api_key:
        config.transcriber.api_key = openai_key
    if not config.agent.model_api_key:
        config.agent.model_api_key = openai_key
    if not config.agent.browserbase_api_key:
        config.agent.browserbase_api_key = os.environ.get("BROWSERBASE_API_KEY")
    if not config.agent.browserbase_project_id:
        config.agent.browserbase_project_id = os.environ.get("BROWSERBASE_PROJECT_ID")

    return config


def validate_credentials(config: AppConfig) -> None:
    """Check that every credential the configured backends need is present.

    Raises:
        ValueError: Naming each missing setting and its environment fallback.
    """
    missing: List[str] = []

    if config.transcriber.backend == "openai" and not config.transcriber.api_key:
        missing.append("transcriber.api_key (OPENAI_API_KEY)")
    if not config.agent.model_api_key:
        missing.append("agent.model_api_key (OPENAI_API_KEY)")
    if config.agent.env == "BROWSERBASE":
        if not config.agent.browserbase_api_key:
            missing.append("agent.browserbase_api_key (BROWSERBASE_API_KEY)")
        if not config.agent.browserbase_project_id:
            missing.append("agent.browserbase_project_id (BROWSERBASE_PROJECT_ID)")

    if missing:
        raise ValueError(f"Missing required credentials: {', '.join(missing)}")


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load and validate configuration.

    If path is not provided, looks for config in standard locations.
    If no config file is found, returns default configuration. Credentials
    left unset by the file are taken from the environment (a ``.env`` file
    in the working directory is loaded first).

    Args:
        path: Optional path to config file.

    Returns:
        Validated AppConfig instance.

    Raises:
        ValueError: If config file exists but has invalid format/content.
        OSError: If config file exists but can't be read.
    """
    load_dotenv(find_dotenv(usecwd=True))

    if path is None:
        path = get_default_config_path()

    if not path.exists():
        return apply_environment(AppConfig())  # Use defaults

    try:
        with open(path, "rb") as f:
            config_data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Error decoding TOML file: {path}\n{e}") from e
    except OSError as e:
        raise OSError(f"Error reading file: {path}\n{e}") from e

    try:
        config = AppConfig(**config_data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")

    return apply_environment(config)
