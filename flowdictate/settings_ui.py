from __future__ import annotations

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.widgets import Button, Footer, Header, Input, Label, Select, Static, Switch

from .config import CONFIG_PATH, INSERT_DESTINATIONS, load_config, save_config
from .hotkey import format_hotkey, normalize_hotkey
from .models import DEFAULT_CONTEXT_PROMPT
from .providers import Provider


class SettingsApp(App):
    CSS = """
    Screen {
        align: center middle;
    }

    #settings-container {
        width: 76;
        height: auto;
        border: solid $primary;
        background: $surface;
        padding: 1 2;
    }

    .section-title {
        text-style: bold;
        color: $accent;
        margin: 1 0;
    }

    .field-row {
        height: 3;
        margin: 0 0 0 2;
    }

    .field-label {
        width: 20;
        content-align: left middle;
    }

    .field-input {
        width: 44;
    }

    #button-container {
        height: 3;
        margin: 1 0 0 0;
        align: center middle;
    }

    Button {
        margin: 0 1;
    }
    """

    BINDINGS = [
        Binding("ctrl+s", "save", "Save"),
        Binding("escape", "cancel", "Cancel"),
        Binding("ctrl+c", "quit", "Quit"),
    ]

    def __init__(self):
        super().__init__()
        self.config = load_config()

    def compose(self) -> ComposeResult:
        yield Header()

        with Container(id="settings-container"):
            yield Static("⚙️  FlowDictate Settings", classes="section-title")

            yield Static("Provider", classes="section-title")
            with Horizontal(classes="field-row"):
                yield Label("Active provider:", classes="field-label")
                yield Select(
                    options=[(provider.display_name, provider.value) for provider in Provider],
                    value=self.config.provider,
                    id="provider",
                    allow_blank=False,
                )

            with Horizontal(classes="field-row"):
                yield Label("OpenAI API Key:", classes="field-label")
                yield Input(
                    value=self.config.openai_api_key or "",
                    placeholder="sk-...",
                    password=True,
                    id="openai_api_key",
                    classes="field-input",
                )

            with Horizontal(classes="field-row"):
                yield Label("Groq API Key:", classes="field-label")
                yield Input(
                    value=self.config.groq_api_key or "",
                    placeholder="gsk_...",
                    password=True,
                    id="groq_api_key",
                    classes="field-input",
                )

            yield Static("Recording", classes="section-title")
            with Horizontal(classes="field-row"):
                yield Label("Hotkey:", classes="field-label")
                yield Input(
                    value="+".join(self.config.hotkey),
                    placeholder="shift+cmd",
                    id="hotkey",
                    classes="field-input",
                )

            with Horizontal(classes="field-row"):
                yield Label("Show indicator:", classes="field-label")
                yield Switch(value=self.config.show_indicator, id="show_indicator")

            yield Static("Enhancement", classes="section-title")
            with Horizontal(classes="field-row"):
                yield Label("Context prompt:", classes="field-label")
                yield Input(
                    value=self.config.context_prompt,
                    placeholder=DEFAULT_CONTEXT_PROMPT,
                    id="context_prompt",
                    classes="field-input",
                )

            yield Static("Insertion", classes="section-title")
            with Horizontal(classes="field-row"):
                yield Label("Destination:", classes="field-label")
                yield Select(
                    options=[
                        ("Clipboard only", "clipboard"),
                        ("Paste immediately", "paste"),
                    ],
                    value=self.config.insert_destination,
                    id="insert_destination",
                    allow_blank=False,
                )

            with Horizontal(id="button-container"):
                yield Button("Save", variant="primary", id="save-button")
                yield Button("Cancel", variant="default", id="cancel-button")

        yield Footer()

    def action_save(self) -> None:
        self.save_settings()

    def action_cancel(self) -> None:
        self.exit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "save-button":
            self.save_settings()
        elif event.button.id == "cancel-button":
            self.exit()

    def save_settings(self) -> None:
        try:
            hotkey = normalize_hotkey(self.query_one("#hotkey", Input).value)
        except ValueError as exc:
            self.notify(str(exc), severity="error")
            return

        destination = str(self.query_one("#insert_destination", Select).value)
        if destination not in INSERT_DESTINATIONS:
            destination = "clipboard"

        self.config.provider = str(self.query_one("#provider", Select).value)
        for field in ("openai_api_key", "groq_api_key"):
            value = self.query_one(f"#{field}", Input).value.strip()
            setattr(self.config, field, value or None)
        self.config.hotkey = list(hotkey)
        self.config.show_indicator = self.query_one("#show_indicator", Switch).value
        self.config.context_prompt = self.query_one("#context_prompt", Input).value.strip() or DEFAULT_CONTEXT_PROMPT
        self.config.insert_destination = destination

        try:
            save_config(self.config)
        except OSError as exc:
            self.notify(f"Failed to save settings: {exc}", severity="error")
            return
        self.notify(f"Settings saved to {CONFIG_PATH} (hotkey {format_hotkey(hotkey)})", severity="information")
        self.exit()


def show_settings_ui() -> None:
    app = SettingsApp()
    app.run()
