"""macOS menu bar application for flowdictate."""

from __future__ import annotations

import logging
import platform
import subprocess
import threading
from typing import Optional

import httpx

from . import __version__
from .config import RECORDINGS_DIR, active_provider, get_credential, load_config, update_config
from .hotkey import HotkeyMonitor, QuartzModifierSource, normalize_hotkey
from .models import DEFAULT_HOTKEY, AudioAsset
from .pipeline import APP_TITLE, DictationPipeline
from .providers import Provider, create_config
from .recorder import AudioRecorder, microphone_authorized, purge_stale_recordings
from .state import AppState
from .validation import KeyValidationProbe

PRIVACY_SETTINGS_URL = "x-apple.systempreferences:com.apple.preference.security?Privacy_Microphone"
RESULT_PREVIEW_LENGTH = 60


def _require_macos() -> None:
    if platform.system() != "Darwin":  # pragma: no cover - platform guard
        raise RuntimeError("The menu bar application is only supported on macOS.")


def copy_to_pasteboard(text: str) -> None:
    try:
        from AppKit import NSPasteboard, NSPasteboardTypeString  # type: ignore
    except Exception as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "The `pyobjc` packages are required to access the clipboard. Install flowdictate[mac]."
        ) from exc

    pasteboard = NSPasteboard.generalPasteboard()
    pasteboard.clearContents()
    pasteboard.setString_forType_(text, NSPasteboardTypeString)


def _paste_from_clipboard() -> None:
    try:
        subprocess.run(
            [
                "/usr/bin/osascript",
                "-e",
                'tell application "System Events" to keystroke "v" using {command down}',
            ],
            check=True,
        )
    except Exception as exc:  # pragma: no cover - best effort
        logging.debug("Failed to trigger paste: %s", exc)


def _open_privacy_settings() -> None:
    try:
        subprocess.run(["/usr/bin/open", PRIVACY_SETTINGS_URL], check=True)
    except Exception as exc:  # pragma: no cover - best effort
        logging.warning("Failed to open privacy settings: %s", exc)


class RecordingIndicator:
    """Floating status panel shown while recording and processing."""

    def __init__(self) -> None:
        try:
            from AppKit import (  # type: ignore
                NSBackingStoreBuffered,
                NSColor,
                NSFont,
                NSPanel,
                NSScreen,
                NSStatusWindowLevel,
                NSTextAlignmentCenter,
                NSTextField,
                NSWindowCollectionBehaviorCanJoinAllSpaces,
                NSWindowStyleMaskBorderless,
            )
            from Quartz import NSMakeRect  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "The `pyobjc` packages are required for the recording indicator. Install flowdictate[mac]."
            ) from exc

        self._NSPanel = NSPanel
        self._NSScreen = NSScreen
        self._NSColor = NSColor
        self._NSFont = NSFont
        self._NSTextField = NSTextField
        self._NSMakeRect = NSMakeRect
        self._style_mask = NSWindowStyleMaskBorderless
        self._backing = NSBackingStoreBuffered
        self._behavior = NSWindowCollectionBehaviorCanJoinAllSpaces
        self._level = NSStatusWindowLevel
        self._alignment_center = NSTextAlignmentCenter
        self._window = None
        self._label = None

    def show(self, text: str) -> None:
        if self._window is not None:
            self._label.setStringValue_(text)
            return

        screen = self._NSScreen.mainScreen()
        if screen is None:
            return

        frame = screen.frame()
        width = 180.0
        height = 48.0
        origin_x = (frame.size.width - width) / 2.0
        origin_y = 64.0

        panel = self._NSPanel.alloc().initWithContentRect_styleMask_backing_defer_(
            self._NSMakeRect(origin_x, origin_y, width, height),
            self._style_mask,
            self._backing,
            False,
        )
        panel.setBackgroundColor_(self._NSColor.colorWithCalibratedWhite_alpha_(0.0, 0.65))
        panel.setOpaque_(False)
        panel.setIgnoresMouseEvents_(True)
        panel.setCollectionBehavior_(self._behavior)
        panel.setLevel_(self._level)

        label = self._NSTextField.alloc().initWithFrame_(self._NSMakeRect(0.0, 8.0, width, height - 16.0))
        label.setStringValue_(text)
        label.setAlignment_(self._alignment_center)
        label.setFont_(self._NSFont.boldSystemFontOfSize_(18.0))
        label.setTextColor_(self._NSColor.whiteColor())
        label.setBezeled_(False)
        label.setDrawsBackground_(False)
        label.setEditable_(False)
        label.setSelectable_(False)
        panel.contentView().addSubview_(label)

        panel.orderFrontRegardless()
        self._window = panel
        self._label = label

    def hide(self) -> None:
        if self._window is None:
            return

        self._window.orderOut_(None)
        self._window = None
        self._label = None


class FlowDictateMenuApp:
    """Controller for the macOS menu bar workflow.

    Owns the recorder, the hotkey monitor and the application state. The
    hotkey timer runs on the main run loop; pipelines and key checks run on
    worker threads and report back through ``AppState``.
    """

    def __init__(self) -> None:
        _require_macos()
        import rumps  # type: ignore
        from PyObjCTools import AppHelper  # type: ignore

        self._rumps = rumps
        self._call_after = AppHelper.callAfter
        self._config = load_config()

        try:
            modifiers = normalize_hotkey(self._config.hotkey)
        except ValueError:
            logging.warning("Invalid stored hotkey %s; falling back to the default.", self._config.hotkey)
            modifiers = tuple(DEFAULT_HOTKEY)
            self._config = update_config(hotkey=list(modifiers))
        else:
            if list(modifiers) != list(self._config.hotkey):
                self._config = update_config(hotkey=list(modifiers))

        self._state = AppState()
        self._state.subscribe(self._on_state_change)
        self._http = httpx.Client(timeout=self._config.api_timeout)
        self._probe = KeyValidationProbe()
        self._recorder = AudioRecorder(RECORDINGS_DIR, permission_check=microphone_authorized)
        self._provider = active_provider(self._config)

        self._app = rumps.App("🎤", quit_button=None)
        self._status_item = rumps.MenuItem("")
        self._result_item = rumps.MenuItem("No dictation yet")
        self._provider_menu = rumps.MenuItem("Provider")
        for provider in Provider:
            self._provider_menu.add(rumps.MenuItem(provider.display_name, callback=self._select_provider))
        self._app.menu = [
            self._status_item,
            self._result_item,
            rumps.separator,
            self._provider_menu,
            rumps.MenuItem("Validate API Key", callback=self._validate_clicked),
            rumps.MenuItem("Copy Last Result", callback=self._copy_last_result),
            rumps.separator,
            rumps.MenuItem("Open Privacy Settings", callback=lambda _sender: _open_privacy_settings()),
            rumps.MenuItem("About", callback=self._show_about),
            rumps.MenuItem("Exit", callback=self._quit),
        ]
        self._indicator = self._create_indicator() if self._config.show_indicator else None
        self._hotkey_monitor: Optional[HotkeyMonitor] = None

        purge_stale_recordings(RECORDINGS_DIR)
        self._refresh_provider_menu()
        self._reload_hotkey_monitor(modifiers)
        self._validate_in_background()

    def run(self) -> None:  # pragma: no cover - interactive
        self._rumps.debug_mode(False)
        self._app.run()

    def _quit(self, _sender) -> None:
        if self._hotkey_monitor is not None:
            self._hotkey_monitor.stop()
        if self._state.recording:
            asset = self._recorder.stop()
            self._state.recording = False
            if asset is not None:
                asset.delete()
        if self._indicator is not None:
            self._indicator.hide()
        self._http.close()
        self._probe.close()
        self._rumps.quit_application()

    def _create_indicator(self) -> Optional[RecordingIndicator]:
        try:
            return RecordingIndicator()
        except Exception as exc:
            logging.debug("Recording indicator unavailable: %s", exc)
            return None

    def _show_about(self, _sender) -> None:
        self._notify(f"{APP_TITLE} v{__version__}", "Hold-to-dictate with transcription and enhancement.")

    def _reload_hotkey_monitor(self, modifiers) -> None:
        if self._hotkey_monitor is not None:
            self._hotkey_monitor.stop()
        try:
            self._hotkey_monitor = HotkeyMonitor(
                modifiers,
                QuartzModifierSource(),
                on_press=self._on_hotkey_press,
                on_release=self._on_hotkey_release,
            )
        except Exception as exc:
            logging.error("Failed to initialise hotkey monitor: %s", exc)
            self._hotkey_monitor = None
            self._set_status(f"Hotkey error: {exc}")
            return
        self._hotkey_monitor.start()
        self._refresh_ui()

    def _on_hotkey_press(self) -> None:
        if self._state.recording:
            return
        if not self._recorder.start():
            self._notify(f"{APP_TITLE} Error", "Failed to start recording. Check microphone permissions.")
            return
        self._state.recording = True
        if self._indicator is None:
            self._notify(APP_TITLE, "Recording...")

    def _on_hotkey_release(self) -> None:
        if not self._state.recording:
            return
        asset = self._recorder.stop()
        self._state.recording = False
        if asset is None:
            self._set_status("Recording failed. Hold the hotkey to try again.")
            return

        thread = threading.Thread(
            target=self._process_audio,
            args=(asset,),
            daemon=True,
        )
        thread.start()

    def _process_audio(self, asset: AudioAsset) -> None:
        config = self._config
        provider = self._provider
        pipeline = DictationPipeline(
            create_config(provider),
            client=self._http,
            timeout=config.api_timeout,
            max_retries=config.max_retries,
            state=self._state,
            clipboard=self._publish_text,
            notifier=self._notify,
        )
        try:
            pipeline.run(asset, config.context_prompt, get_credential(config, provider))
        except Exception:
            logging.exception("Unexpected failure while processing a recording")
            self._notify(f"{APP_TITLE} Error", "Processing failed unexpectedly. See the log for details.")

    def _publish_text(self, text: str) -> None:
        copy_to_pasteboard(text)
        destination = (self._config.insert_destination or "clipboard").lower()
        if destination == "paste":
            _paste_from_clipboard()
        elif destination != "clipboard":
            logging.debug("Unknown insert destination %s; defaulting to clipboard.", destination)

    def _copy_last_result(self, _sender) -> None:
        if not self._state.last_result:
            self._notify(APP_TITLE, "Nothing has been dictated yet.")
            return
        copy_to_pasteboard(self._state.last_result)

    def _select_provider(self, sender) -> None:
        provider = Provider.parse(sender.title)
        if provider == self._provider:
            return
        self._config = update_config(provider=provider.value)
        self._provider = provider
        logging.info("Switched to %s", provider.display_name)
        self._refresh_provider_menu()
        self._refresh_ui()
        self._validate_in_background()

    def _validate_clicked(self, _sender) -> None:
        self._validate_in_background(announce=True)

    def _validate_in_background(self, announce: bool = False) -> None:
        provider = self._provider
        credential = get_credential(self._config, provider)
        if not credential:
            self._state.set_key_valid(provider, None)
            if announce:
                self._notify(APP_TITLE, f"No {provider.display_name} API key configured.")
            return

        def worker() -> None:
            valid = self._probe.validate(provider, credential)
            if valid is None:
                return
            self._state.set_key_valid(provider, valid)
            if announce:
                verdict = "accepted" if valid else "rejected"
                self._notify(APP_TITLE, f"{provider.display_name} API key {verdict}.")

        threading.Thread(target=worker, daemon=True).start()

    def _on_state_change(self, _name: str) -> None:
        self._call_after(self._refresh_ui)

    def _refresh_provider_menu(self) -> None:
        for provider in Provider:
            self._provider_menu[provider.display_name].state = int(provider == self._provider)

    def _refresh_ui(self) -> None:
        display = self._hotkey_monitor.display if self._hotkey_monitor is not None else ""
        if self._state.recording:
            self._app.title = "🔴"
            self._set_status(f"Recording… Release {display} to finish.")
            if self._indicator is not None:
                self._indicator.show("🔴 Recording")
        elif self._state.processing:
            self._app.title = "⏳"
            self._set_status("Processing…")
            if self._indicator is not None:
                self._indicator.show("⏳ Processing")
        else:
            self._app.title = "🎤"
            if self._indicator is not None:
                self._indicator.hide()
            self._set_status(self._idle_status(display))

        result = self._state.last_result
        if result:
            preview = result if len(result) <= RESULT_PREVIEW_LENGTH else result[:RESULT_PREVIEW_LENGTH] + "…"
            self._result_item.title = f"Last: {preview}"

    def _idle_status(self, display: str) -> str:
        name = self._provider.display_name
        if not get_credential(self._config, self._provider):
            return f"Set a {name} API key with `flowdictate set-key {self._provider.value}`."
        if self._state.key_valid(self._provider) is False:
            return f"{name} API key was rejected."
        return f"Hold {display} to record ({name})."

    def _set_status(self, message: str) -> None:
        self._status_item.title = message

    def _notify(self, title: str, message: str) -> None:
        try:
            self._rumps.notification(APP_TITLE, title, message)
        except Exception as exc:
            logging.debug("Notification unavailable: %s", exc)


def run() -> None:
    """Launch the menu bar application."""

    app = FlowDictateMenuApp()
    app.run()


__all__ = ["FlowDictateMenuApp", "run"]
