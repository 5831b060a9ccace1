from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from .config import CONFIG_PATH, mask_secret, save_config
from .hotkey import PRESET_HOTKEYS, format_hotkey, normalize_hotkey
from .models import Config
from .providers import Provider, create_config

KEY_URLS = {
    Provider.OPENAI: "https://platform.openai.com/api-keys",
    Provider.GROQ: "https://console.groq.com/keys",
}


def run_onboarding() -> Config:
    console = Console()

    console.clear()

    welcome_text = Text()
    welcome_text.append("🎤 Welcome to FlowDictate!\n\n", style="bold cyan")
    welcome_text.append("Hold a hotkey, speak, and get polished text on your clipboard\n", style="dim")

    console.print(Panel(welcome_text, border_style="cyan", expand=False))
    console.print()

    config = Config()

    console.print("[bold]Provider[/bold]")
    console.print()

    providers = list(Provider)
    console.print("Choose who transcribes and enhances your speech:")
    for index, provider in enumerate(providers, start=1):
        settings = create_config(provider)
        console.print(
            f"  {index}. {provider.display_name} "
            f"[dim]({settings.transcription_model} + {settings.enhancement_model})[/dim]"
        )
    console.print()

    choices = [str(index) for index in range(1, len(providers) + 1)]
    provider_choice = Prompt.ask("Select option", choices=choices, default="1")
    provider = providers[int(provider_choice) - 1]
    config.provider = provider.value

    console.print()
    console.print(f"Enter your {provider.display_name} API key:")
    console.print(f"(Get one at {KEY_URLS[provider]})")
    api_key = Prompt.ask("API Key", password=True).strip()
    if api_key:
        setattr(config, f"{provider.value}_api_key", api_key)

    console.print()
    console.print("[bold]Recording Hotkey[/bold]")
    console.print()

    console.print("Hold this combination to record, release it to transcribe:")
    for index, preset in enumerate(PRESET_HOTKEYS, start=1):
        suffix = " (recommended)" if index == 1 else ""
        console.print(f"  {index}. {format_hotkey(preset)}{suffix}")
    custom_index = len(PRESET_HOTKEYS) + 1
    console.print(f"  {custom_index}. Custom modifier combination")
    console.print()

    hotkey_choice = Prompt.ask(
        "Select option",
        choices=[str(index) for index in range(1, custom_index + 1)],
        default="1",
    )
    if int(hotkey_choice) == custom_index:
        console.print()
        console.print("Enter modifiers joined with + (e.g., ctrl+option):")
        while True:
            raw = Prompt.ask("Hotkey", default="shift+cmd")
            try:
                config.hotkey = list(normalize_hotkey(raw))
                break
            except ValueError as exc:
                console.print(f"[red]{exc}[/red]")
    else:
        config.hotkey = list(PRESET_HOTKEYS[int(hotkey_choice) - 1])

    console.print()
    console.print("[bold]Text Insertion[/bold]")
    console.print()

    console.print("Where should enhanced text go?")
    console.print("  1. Copy to clipboard only (recommended)")
    console.print("  2. Copy and paste into the focused app")
    console.print()

    insert_choice = Prompt.ask("Select option", choices=["1", "2"], default="1")
    config.insert_destination = "paste" if insert_choice == "2" else "clipboard"

    console.print()
    console.print("[bold green]✓ Setup Complete![/bold green]")
    console.print()

    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column(style="cyan")
    summary.add_column()

    summary.add_row("Provider:", provider.display_name)
    summary.add_row("API key:", mask_secret(api_key) or "[yellow]not set[/yellow]")
    summary.add_row("Hotkey:", format_hotkey(config.hotkey))
    summary.add_row("Insert mode:", config.insert_destination)

    console.print(Panel(summary, title="Your Configuration", border_style="green"))
    console.print()

    if Confirm.ask("Save this configuration?", default=True):
        save_config(config)
        console.print("[green]Configuration saved to[/green]", CONFIG_PATH)
        console.print()
        console.print("[bold]To start the menu bar app, run:[/bold]")
        console.print("  [cyan]flowdictate daemon[/cyan]")
        console.print()
        console.print("[bold]To transcribe a file, run:[/bold]")
        console.print("  [cyan]flowdictate transcribe <audio-file>[/cyan]")
        console.print()
    else:
        console.print("[yellow]Configuration not saved. Run 'flowdictate setup' to try again.[/yellow]")
    return config
