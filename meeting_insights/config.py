"""Configuration loader and validation."""

import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

__all__ = [
    "GeminiConfig",
    "AnalysisConfig",
    "AudioConfig",
    "SegmenterConfig",
    "GeneralConfig",
    "Config",
    "ConfigError",
    "FAILURE_POLICIES",
    "load_config",
    "discover_audio_devices",
]

FAILURE_POLICIES = ("fallback", "propagate")
_SECTIONS = ("gemini", "analysis", "audio", "segmenter", "general")


class ConfigError(Exception):
    """Configuration loading or validation error."""

    pass


@dataclass
class GeminiConfig:
    """Gemini provider configuration."""

    api_key: str | None = None
    model: str = "gemini-2.0-flash"


@dataclass
class AnalysisConfig:
    """Analysis retry, fallback, and decoding settings."""

    max_attempts: int = 3
    base_delay: float = 1.0
    attempt_timeout: float = 60.0
    temperature: float = 0.2
    failure_policy: str = "fallback"
    strengthen_prompt: bool = True
    min_transcript_length: int = 50


@dataclass
class AudioConfig:
    """Audio capture configuration."""

    sample_rate: int = 16000
    channels: int = 1
    chunk_size: int = 1024
    device: int | str | None = None
    level_interval: float = 0.05


@dataclass
class SegmenterConfig:
    """Transcript segmentation settings."""

    speaker_cadence: int = 5
    speaker_prefix: str = "Speaker"


@dataclass
class GeneralConfig:
    """General application settings."""

    verbose: bool = False


@dataclass
class Config:
    """Main configuration container."""

    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    segmenter: SegmenterConfig = field(default_factory=SegmenterConfig)
    general: GeneralConfig = field(default_factory=GeneralConfig)

    @classmethod
    def from_dict(
        cls,
        raw_data: dict,
        *,
        env: Mapping[str, str] | None = None,
    ) -> "Config":
        """Build configuration from parsed TOML data.

        Raises:
            ConfigError: If a section is malformed or has unknown keys
        """
        if env is None:
            import os

            env = os.environ

        try:
            coerced = _coerce_config_values(raw_data, env)
            return cls(
                gemini=GeminiConfig(**coerced["gemini"]),
                analysis=AnalysisConfig(**coerced["analysis"]),
                audio=AudioConfig(**coerced["audio"]),
                segmenter=SegmenterConfig(**coerced["segmenter"]),
                general=GeneralConfig(**coerced["general"]),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid configuration values: {e}") from e

    @classmethod
    def from_toml(
        cls,
        path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
        required: bool = True,
    ) -> "Config":
        """Load configuration from TOML file with environment overrides.

        Args:
            path: Explicit config file path. If None, searches in order:
                  1. MEETING_INSIGHTS_CONFIG env var
                  2. ./meeting_insights.toml
                  3. ~/.config/meeting_insights.toml
            env: Environment variables for overrides (defaults to os.environ)
            required: When False and no file is found, return defaults

        Returns:
            Loaded Config instance

        Raises:
            ConfigError: If config file not found (and required) or invalid
        """
        if env is None:
            import os

            env = os.environ

        try:
            resolved_path = _resolve_config_path(path, env)
        except ConfigError:
            if required or path is not None:
                raise
            logger.info("No config file found, using defaults")
            return cls.from_dict({}, env=env)

        raw_data = _load_toml_file(resolved_path)
        return cls.from_dict(raw_data, env=env)

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigError: If any value is out of range
        """
        validate_analysis_config(self.analysis)
        validate_audio_config(self.audio)
        validate_segmenter_config(self.segmenter)


def _resolve_config_path(
    cli_path: Path | None,
    env: Mapping[str, str],
) -> Path:
    """Resolve configuration file path following search order.

    Raises:
        ConfigError: If no config file found in any location
    """
    candidates = []

    if cli_path:
        cli_path = Path(cli_path)
        if cli_path.exists():
            logger.info("Using config file: %s", cli_path.resolve())
            return cli_path.resolve()
        raise ConfigError(f"Config file not found: {cli_path}")

    if env_path := env.get("MEETING_INSIGHTS_CONFIG"):
        candidates.append(Path(env_path))

    candidates.append(Path("meeting_insights.toml"))
    candidates.append(Path.home() / ".config" / "meeting_insights.toml")

    for candidate in candidates:
        if candidate.exists():
            logger.info("Using config file: %s", candidate.resolve())
            return candidate.resolve()

    raise ConfigError(
        f"Config file not found. Searched: {', '.join(str(c) for c in candidates)}"
    )


def _load_toml_file(path: Path) -> dict:
    """Load and parse TOML configuration file.

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except Exception as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e


def _coerce_config_values(raw_data: dict, env: Mapping[str, str]) -> dict:
    """Normalize raw TOML data for dataclass instantiation.

    Applies environment fallbacks for the Gemini key and model.
    """
    coerced = {}

    for section in _SECTIONS:
        value = raw_data.get(section, {})
        if not isinstance(value, dict):
            raise ConfigError(f"Section [{section}] must be a table")
        coerced[section] = dict(value)

    gemini_section = coerced["gemini"]
    if not gemini_section.get("api_key"):
        gemini_section["api_key"] = env.get("GEMINI_API_KEY")
    if env.get("GEMINI_MODEL") and "model" not in gemini_section:
        gemini_section["model"] = env["GEMINI_MODEL"]

    audio_section = coerced["audio"]
    if audio_section.get("device") == "":
        audio_section["device"] = None

    return coerced


def validate_analysis_config(analysis_cfg: AnalysisConfig) -> None:
    """Validate analysis configuration.

    Raises:
        ConfigError: If analysis configuration is invalid
    """
    if analysis_cfg.failure_policy not in FAILURE_POLICIES:
        raise ConfigError(
            f"Invalid failure_policy '{analysis_cfg.failure_policy}'. "
            f"Must be one of: {', '.join(FAILURE_POLICIES)}"
        )

    if analysis_cfg.max_attempts <= 0:
        raise ConfigError(f"max_attempts must be positive, got {analysis_cfg.max_attempts}")

    if analysis_cfg.base_delay < 0:
        raise ConfigError(f"base_delay must be non-negative, got {analysis_cfg.base_delay}")

    if analysis_cfg.attempt_timeout <= 0:
        raise ConfigError(
            f"attempt_timeout must be positive, got {analysis_cfg.attempt_timeout}"
        )

    if not 0.0 <= analysis_cfg.temperature <= 2.0:
        raise ConfigError(
            f"temperature must be between 0.0 and 2.0, got {analysis_cfg.temperature}"
        )

    if analysis_cfg.min_transcript_length < 0:
        raise ConfigError(
            f"min_transcript_length must be non-negative, got "
            f"{analysis_cfg.min_transcript_length}"
        )


def validate_audio_config(audio_cfg: AudioConfig) -> None:
    """Validate audio configuration.

    Raises:
        ConfigError: If audio configuration is invalid
    """
    if audio_cfg.sample_rate <= 0:
        raise ConfigError(f"sample_rate must be positive, got {audio_cfg.sample_rate}")
    if audio_cfg.channels not in (1, 2):
        raise ConfigError(f"channels must be 1 or 2, got {audio_cfg.channels}")
    if audio_cfg.chunk_size <= 0:
        raise ConfigError(f"chunk_size must be positive, got {audio_cfg.chunk_size}")
    if audio_cfg.level_interval <= 0:
        raise ConfigError(
            f"level_interval must be positive, got {audio_cfg.level_interval}"
        )


def validate_segmenter_config(segmenter_cfg: SegmenterConfig) -> None:
    """Validate segmenter configuration.

    Raises:
        ConfigError: If segmenter configuration is invalid
    """
    if segmenter_cfg.speaker_cadence <= 0:
        raise ConfigError(
            f"speaker_cadence must be positive, got {segmenter_cfg.speaker_cadence}"
        )
    if not segmenter_cfg.speaker_prefix.strip():
        raise ConfigError("speaker_prefix must be a non-empty string")


def discover_audio_devices() -> list[dict]:
    """Enumerate available audio capture devices.

    Returns:
        List of device dicts with keys: index, name, channels, sample_rate
        Returns empty list if sounddevice unavailable or no devices found
    """
    try:
        import sounddevice
    except (ImportError, OSError):
        logger.warning("sounddevice not available, cannot enumerate audio devices")
        return []

    devices = []
    try:
        device_list = sounddevice.query_devices()
        if isinstance(device_list, dict):
            device_list = [device_list]

        for idx, dev_info in enumerate(device_list):
            if dev_info.get("max_input_channels", 0) > 0:
                devices.append(
                    {
                        "index": idx,
                        "name": dev_info.get("name", f"Device {idx}"),
                        "channels": dev_info.get("max_input_channels", 0),
                        "sample_rate": dev_info.get("default_samplerate", 0),
                    }
                )
    except Exception as e:
        logger.warning("Error discovering audio devices: %s", e)

    return devices


def load_config(
    path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    required: bool = True,
) -> Config:
    """Load configuration from TOML file.

    Convenience wrapper around Config.from_toml().
    """
    return Config.from_toml(path, env=env, required=required)
