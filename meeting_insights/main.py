"""Typer CLI entrypoint for meeting-insights."""

import asyncio
import json
import logging
from pathlib import Path

import typer

from meeting_insights.analysis import AnalysisEngine, AnalysisOutcome
from meeting_insights.config import (
    FAILURE_POLICIES,
    Config,
    ConfigError,
    SegmenterConfig,
    discover_audio_devices,
    load_config,
)
from meeting_insights.errors import AnalysisError
from meeting_insights.providers import GeminiProvider
from meeting_insights.recorder import RecordingController
from meeting_insights.segmenter import TranscriptSegmenter, format_transcript, parse_event

app = typer.Typer(help="Meeting intelligence from transcripts, plus audio capture")

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load(config: Path | None, policy: str | None = None) -> Config:
    cfg = load_config(config, required=False)
    if policy is not None:
        if policy not in FAILURE_POLICIES:
            raise ConfigError(
                f"Invalid policy '{policy}'. Must be one of: {', '.join(FAILURE_POLICIES)}"
            )
        logger.debug("Overriding failure policy to '%s'", policy)
        cfg.analysis.failure_policy = policy
    cfg.validate()
    return cfg


def _segment_events(path: Path, segmenter_cfg: SegmenterConfig) -> str:
    """Replay a JSON Lines recognition event log into a speaker-tagged transcript."""
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise ConfigError(f"Cannot read event log {path}: {e}") from e

    segmenter = TranscriptSegmenter.from_config(segmenter_cfg)
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            segmenter.handle_event(parse_event(json.loads(line)))
        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid recognition event at {path}:{lineno}: {e}") from e

    logger.info("Segmented %d final result(s) from %s", len(segmenter), path)
    return format_transcript(segmenter.committed_segments())


def _read_transcript(
    path: Path, min_length: int, segmenter_cfg: SegmenterConfig | None = None
) -> str:
    if segmenter_cfg is not None:
        transcript = _segment_events(path, segmenter_cfg)
    else:
        try:
            transcript = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read transcript {path}: {e}") from e
    if len(transcript.strip()) < min_length:
        raise ConfigError(
            f"Transcript too short for analysis ({len(transcript.strip())} < {min_length} chars)"
        )
    return transcript


def _build_engine(cfg: Config) -> AnalysisEngine:
    provider = GeminiProvider(api_key=cfg.gemini.api_key, model=cfg.gemini.model)
    return AnalysisEngine(provider, cfg.analysis)


async def _run_analysis(engine: AnalysisEngine, transcript: str) -> AnalysisOutcome:
    try:
        return await engine.analyze(transcript)
    finally:
        await engine.shutdown()


async def _run_summary(engine: AnalysisEngine, transcript: str) -> str:
    try:
        return await engine.quick_summarize(transcript)
    finally:
        await engine.shutdown()


def _print_report(outcome: AnalysisOutcome) -> None:
    result = outcome.result
    if outcome.is_fallback:
        typer.echo("[placeholder] Analysis unavailable; showing fallback result.")
    if result.suggested_title:
        typer.echo(f"# {result.suggested_title}")
    typer.echo(f"\n{result.summary.executive}\n")
    for point in result.summary.bullet_points:
        typer.echo(f"  - {point}")

    if result.action_items:
        typer.echo("\nAction items:")
        for item in result.action_items:
            owner = item.assignee or "unassigned"
            due = f", due {item.due_date.isoformat()}" if item.due_date else ""
            typer.echo(f"  [{item.priority}] {item.description} ({owner}{due})")

    if result.decisions:
        typer.echo("\nDecisions:")
        for decision in result.decisions:
            typer.echo(f"  - {decision.description} ({decision.consensus})")

    if result.topics:
        typer.echo("\nTopics:")
        for topic in result.topics:
            typer.echo(f"  - {topic.name} ({topic.relevance:.0%})")

    sentiment = result.sentiment
    typer.echo(
        f"\nSentiment: {sentiment.primary_emotion} "
        f"(score={sentiment.score:+.2f}, magnitude={sentiment.magnitude:.2f})"
    )


@app.command()
def analyze(
    transcript_path: Path = typer.Argument(..., help="Transcript text file"),
    config: Path | None = typer.Option(
        None, "--config", help="Path to configuration file"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output the result as JSON"
    ),
    policy: str | None = typer.Option(
        None, "--policy", help="Failure policy override (fallback, propagate)"
    ),
    events: bool = typer.Option(
        False, "--events", help="Input is a JSON Lines recognition event log"
    ),
) -> None:
    """Extract summary, action items, decisions, topics, and sentiment."""
    _setup_logging(verbose)
    try:
        cfg = _load(config, policy)
        transcript = _read_transcript(
            transcript_path,
            cfg.analysis.min_transcript_length,
            cfg.segmenter if events else None,
        )
        outcome = asyncio.run(_run_analysis(_build_engine(cfg), transcript))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(1)
    except AnalysisError as e:
        logger.error("Analysis failed: %s", e)
        if json_output:
            typer.echo(json.dumps({"error": e.to_dict()}, indent=2))
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(outcome.to_dict(), indent=2))
    else:
        _print_report(outcome)


@app.command()
def summarize(
    transcript_path: Path = typer.Argument(..., help="Transcript text file"),
    config: Path | None = typer.Option(
        None, "--config", help="Path to configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    events: bool = typer.Option(
        False, "--events", help="Input is a JSON Lines recognition event log"
    ),
) -> None:
    """Print a 2-3 sentence summary of a transcript."""
    _setup_logging(verbose)
    try:
        cfg = _load(config)
        transcript = _read_transcript(
            transcript_path, 1, cfg.segmenter if events else None
        )
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(1)

    typer.echo(asyncio.run(_run_summary(_build_engine(cfg), transcript)))


@app.command()
def segment(
    events_path: Path = typer.Argument(..., help="JSON Lines recognition event log"),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the transcript here instead of stdout"
    ),
    config: Path | None = typer.Option(
        None, "--config", help="Path to configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Turn recognition events into "Speaker N: text" transcript lines."""
    _setup_logging(verbose)
    try:
        cfg = _load(config)
        transcript = _segment_events(events_path, cfg.segmenter)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(1)

    if output is not None:
        output.write_text(transcript + "\n", encoding="utf-8")
        typer.echo(f"Wrote transcript to {output}")
    else:
        typer.echo(transcript)


async def _record(
    controller: RecordingController, seconds: int | None, output: Path
) -> bool:
    """Record until the time limit or interruption, then save the artifact."""
    async with controller:
        error = await controller.start()
        if error is not None:
            return False
        try:
            while seconds is None or controller.elapsed_seconds < seconds:
                await asyncio.sleep(0.1)
        except asyncio.CancelledError:
            logger.info("Recording interrupted, saving captured audio")

        result = await controller.stop()
        if result is None:
            return False
        output.write_bytes(result.artifact.data)
        typer.echo(f"Saved {result.duration_seconds}s of audio to {output}")
        return True


@app.command()
def record(
    output: Path = typer.Argument(..., help="Where to write the WAV file"),
    seconds: int | None = typer.Option(
        None, "--seconds", "-s", help="Stop after this many seconds (default: Ctrl-C)"
    ),
    config: Path | None = typer.Option(
        None, "--config", help="Path to configuration file"
    ),
    audio_device: int | None = typer.Option(
        None, "--audio-device", "-a", help="Override audio device by index"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Record microphone audio to a WAV file."""
    _setup_logging(verbose)
    try:
        cfg = _load(config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(1)

    if seconds is not None and seconds <= 0:
        logger.error("--seconds must be positive")
        raise typer.Exit(1)

    def _on_error(kind, message):
        typer.echo(f"Recording error ({kind.value}): {message}", err=True)

    controller = RecordingController(
        sample_rate=cfg.audio.sample_rate,
        channels=cfg.audio.channels,
        chunk_size=cfg.audio.chunk_size,
        device=audio_device if audio_device is not None else cfg.audio.device,
        level_interval=cfg.audio.level_interval,
        on_error=_on_error,
    )

    try:
        saved = asyncio.run(_record(controller, seconds, output))
    except KeyboardInterrupt:
        logger.info("Recording interrupted by user")
        controller.close()
        raise typer.Exit(0)

    if not saved:
        raise typer.Exit(1)


@app.command()
def list_audio(
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    json_output: bool = typer.Option(
        False, "--json", help="Output as JSON instead of table"
    ),
) -> None:
    """List available audio devices."""
    _setup_logging(verbose)
    try:
        devices = discover_audio_devices()
        if not devices:
            logger.warning("No audio devices found")
            return

        if json_output:
            typer.echo(json.dumps(devices, indent=2))
        else:
            typer.echo("Available audio devices:")
            for dev in devices:
                typer.echo(
                    f"  [{dev['index']}] {dev['name']} "
                    f"({dev['channels']}ch, {dev['sample_rate']}Hz)"
                )
    except Exception as e:
        logger.error("Error listing audio devices: %s", e)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
