"""Command line interface for the flowdictate application."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, NoReturn, Optional

import typer

from . import __version__
from . import config as config_mod
from .config import ConfigError
from .hotkey import format_hotkey, normalize_hotkey
from .models import AudioAsset
from .pipeline import DictationPipeline
from .providers import DictationError, Provider, create_config
from .recorder import purge_stale_recordings
from .validation import KeyValidationProbe

app = typer.Typer(add_completion=False, help="Hold a hotkey, speak, and get polished text on the clipboard.")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _fail(message: str, exc: Optional[BaseException] = None) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def _load() -> config_mod.Config:
    try:
        return config_mod.load_config()
    except ConfigError as exc:
        _fail(str(exc), exc)


def _resolve_provider(cfg: config_mod.Config, name: Optional[str]) -> Provider:
    try:
        return Provider.parse(name) if name else config_mod.active_provider(cfg)
    except (ValueError, ConfigError) as exc:
        _fail(str(exc), exc)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    daemon: bool = typer.Option(False, "--daemon", "-d", help="Launch the menu bar daemon"),
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
    verbose: bool = typer.Option(False, "--verbose", help="Log debug output to stderr"),
) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)

    if version:
        typer.echo(f"flowdictate v{__version__}")
        raise typer.Exit()

    if daemon:
        if ctx.invoked_subcommand is None:
            ctx.invoke(daemon_command)
        return

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command()
def transcribe(
    audio: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Path to the audio file."),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Override the configured provider."),
    context: Optional[str] = typer.Option(None, "--context", help="Context prompt for the enhancement step."),
    raw: bool = typer.Option(False, "--raw", help="Print the transcript without enhancement."),
    copy: bool = typer.Option(False, "--copy", help="Also copy the result to the clipboard."),
) -> None:
    """Transcribe and enhance an audio file.

    The file is left in place; only recordings made by the daemon are deleted
    after processing.
    """

    cfg = _load()
    chosen = _resolve_provider(cfg, provider)
    credential = config_mod.get_credential(cfg, chosen)
    asset = AudioAsset(path=audio, created_at=datetime.fromtimestamp(audio.stat().st_mtime))

    with DictationPipeline(
        create_config(chosen),
        timeout=cfg.api_timeout,
        max_retries=cfg.max_retries,
    ) as pipeline:
        if raw:
            if not credential:
                _fail(f"No {chosen.display_name} API key configured. Run `flowdictate set-key {chosen.value}`.")
            try:
                text = pipeline.transcribe(asset, credential)
            except DictationError as exc:
                _fail(str(exc), exc)
        else:
            result = pipeline.process(asset, context or cfg.context_prompt, credential)
            if not result.ok:
                _fail(result.description)
            text = result.text or ""

    typer.echo(text)
    if copy:
        try:
            from .menubar import copy_to_pasteboard

            copy_to_pasteboard(text)
        except (ImportError, RuntimeError) as exc:
            _fail(f"Could not copy to the clipboard: {exc}", exc)
        typer.secho("Copied to clipboard.", fg=typer.colors.BLUE, err=True)


@app.command()
def config(
    provider: Optional[str] = typer.Option(None, help="Active provider (openai or groq)."),
    openai_api_key: Optional[str] = typer.Option(None, help="API key for OpenAI."),
    groq_api_key: Optional[str] = typer.Option(None, help="API key for Groq."),
    hotkey: Optional[str] = typer.Option(None, help="Modifier combination to hold, e.g. shift+cmd."),
    context_prompt: Optional[str] = typer.Option(None, help="Instructions passed to the enhancement model."),
    show_indicator: Optional[bool] = typer.Option(
        None,
        "--show-indicator/--no-show-indicator",
        help="Toggle the floating recording indicator.",
    ),
    insert_destination: Optional[str] = typer.Option(None, help="Where to place text (clipboard or paste)."),
    api_timeout: Optional[float] = typer.Option(None, help="Per-request timeout (seconds) for provider calls."),
    max_retries: Optional[int] = typer.Option(None, min=0, help="Retries after a network failure."),
    show: bool = typer.Option(False, "--show", help="Display the active configuration."),
) -> None:
    """Update or inspect configuration settings."""

    updates: Dict[str, object] = {
        key: value
        for key, value in {
            "provider": provider,
            "openai_api_key": openai_api_key,
            "groq_api_key": groq_api_key,
            "hotkey": hotkey,
            "context_prompt": context_prompt,
            "show_indicator": show_indicator,
            "insert_destination": insert_destination,
            "api_timeout": api_timeout,
            "max_retries": max_retries,
        }.items()
        if value is not None
    }

    if show or not updates:
        cfg = _load()
        payload = asdict(cfg)
        for field in ("openai_api_key", "groq_api_key"):
            payload[field] = config_mod.mask_secret(payload[field] or "") or None
        typer.echo(json.dumps(payload, indent=2, default=str))
        return

    if "hotkey" in updates:
        try:
            updates["hotkey"] = list(normalize_hotkey(str(updates["hotkey"])))
        except ValueError as exc:
            _fail(str(exc), exc)
    if api_timeout is not None and api_timeout <= 0:
        _fail("API timeout must be positive.")

    try:
        config_mod.update_config(**updates)
    except ConfigError as exc:
        _fail(str(exc), exc)
    typer.secho("Configuration updated.", fg=typer.colors.BLUE)


@app.command("set-key")
def set_key(
    provider: str = typer.Argument(..., help="Provider the key belongs to."),
    api_key: str = typer.Option(
        ...,
        "--api-key",
        help="API key for the provider.",
        prompt=True,
        hide_input=True,
    ),
    validate: bool = typer.Option(True, "--validate/--no-validate", help="Check the key before finishing."),
) -> None:
    """Store the API key for a provider."""

    try:
        chosen = Provider.parse(provider)
        config_mod.set_credential(chosen, api_key)
    except (ValueError, ConfigError) as exc:
        _fail(str(exc), exc)
    typer.secho(f"{chosen.display_name} API key stored.", fg=typer.colors.BLUE)

    if validate and api_key.strip():
        _report_validation(chosen, api_key.strip())


@app.command()
def validate(
    provider: Optional[str] = typer.Argument(None, help="Provider to check; defaults to the active one."),
) -> None:
    """Check that the stored API key is accepted by the provider."""

    cfg = _load()
    chosen = _resolve_provider(cfg, provider)
    credential = config_mod.get_credential(cfg, chosen)
    if not credential:
        _fail(f"No {chosen.display_name} API key configured. Run `flowdictate set-key {chosen.value}`.")
    _report_validation(chosen, credential)


def _report_validation(provider: Provider, credential: str) -> None:
    probe = KeyValidationProbe(timeout=_load().api_timeout)
    try:
        valid = probe.validate(provider, credential)
    finally:
        probe.close()
    if valid:
        typer.secho(f"{provider.display_name} API key is valid.", fg=typer.colors.GREEN)
        return
    _fail(f"{provider.display_name} rejected the API key.")


@app.command()
def providers() -> None:
    """List supported providers and their models."""

    cfg = _load()
    active = _resolve_provider(cfg, None)
    header = f"{'':<2}{'Provider':<10}  {'Transcription':<24}  {'Enhancement':<22}  {'Key':<6}"
    typer.echo(header)
    typer.echo("-" * len(header))
    for provider in Provider:
        settings = create_config(provider)
        marker = "*" if provider == active else ""
        key = "set" if config_mod.get_credential(cfg, provider) else "-"
        typer.echo(
            f"{marker:<2}{provider.display_name:<10}  {settings.transcription_model:<24}  "
            f"{settings.enhancement_model:<22}  {key:<6}"
        )
    typer.echo(f"\nHotkey: {format_hotkey(cfg.hotkey)}")


@app.command()
def cleanup(
    max_age: int = typer.Option(60, "--max-age", min=0, help="Delete recordings older than this many minutes."),
) -> None:
    """Delete leftover recordings."""

    removed = purge_stale_recordings(config_mod.RECORDINGS_DIR, max_age=timedelta(minutes=max_age))
    if not removed:
        typer.echo("No stale recordings found.")
        return
    for path in removed:
        typer.echo(f"Removed {path.name}")
    typer.secho(f"{len(removed)} recording(s) deleted.", fg=typer.colors.BLUE)


@app.command(name="daemon")
def daemon_command() -> None:  # pragma: no cover - interactive
    """Launch the macOS menu bar daemon."""

    try:
        from .menubar import run as run_menubar
    except ImportError as exc:
        _fail(
            "Missing dependencies for daemon mode. Install with `pip install "
            '"flowdictate[mac]"` or `pip install \'.[mac]\'` if you are using a local checkout.',
            exc,
        )

    try:
        run_menubar()
    except RuntimeError as exc:
        _fail(str(exc), exc)


@app.command()
def setup() -> None:  # pragma: no cover - interactive
    """Run the interactive setup wizard."""

    from .onboarding import run_onboarding

    try:
        run_onboarding()
    except Exception as exc:
        _fail(f"Setup failed: {exc}", exc)


@app.command()
def settings() -> None:  # pragma: no cover - interactive
    """Open the interactive settings configuration."""

    from .settings_ui import show_settings_ui

    try:
        show_settings_ui()
    except Exception as exc:
        _fail(f"Settings UI failed: {exc}", exc)


if __name__ == "__main__":  # pragma: no cover
    app()
