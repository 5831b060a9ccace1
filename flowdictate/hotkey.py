"""Modifier-only hold-to-record hotkeys."""

from __future__ import annotations

import logging
from typing import Callable, FrozenSet, Iterable, Optional, Protocol, Set, Tuple, Union

POLL_INTERVAL = 0.05

MODIFIER_ALIASES = {
    "cmd": "cmd",
    "command": "cmd",
    "⌘": "cmd",
    "ctrl": "ctrl",
    "control": "ctrl",
    "^": "ctrl",
    "⌃": "ctrl",
    "option": "option",
    "alt": "option",
    "opt": "option",
    "⌥": "option",
    "shift": "shift",
    "⇧": "shift",
    "fn": "fn",
    "function": "fn",
}

MODIFIER_ORDER = ("ctrl", "option", "shift", "cmd", "fn")

MODIFIER_DISPLAY = {
    "cmd": "⌘",
    "option": "⌥",
    "ctrl": "⌃",
    "shift": "⇧",
    "fn": "fn",
}

PRESET_HOTKEYS = (
    ("shift", "cmd"),
    ("option", "cmd"),
    ("ctrl", "cmd"),
)


def normalize_hotkey(raw: Union[str, Iterable[str]]) -> Tuple[str, ...]:
    """Return the canonical, ordered modifier tuple for a hotkey.

    Accepts ``"shift+cmd"`` style strings or an iterable of modifier names.
    Only modifiers are allowed; the hotkey is held, not pressed.
    """

    if isinstance(raw, str):
        parts = [part.strip().lower() for part in raw.split("+")]
    else:
        parts = [str(part).strip().lower() for part in raw]
    parts = [part for part in parts if part]
    if not parts:
        raise ValueError("Hotkey cannot be empty.")

    modifiers: Set[str] = set()
    for part in parts:
        alias = MODIFIER_ALIASES.get(part)
        if alias is None:
            raise ValueError(
                f"Unsupported key '{part}' in shortcut. Use modifiers only: {', '.join(MODIFIER_ORDER)}."
            )
        modifiers.add(alias)
    return tuple(mod for mod in MODIFIER_ORDER if mod in modifiers)


def format_hotkey(modifiers: Iterable[str]) -> str:
    """Return a user friendly representation of a modifier hotkey."""

    return " + ".join(MODIFIER_DISPLAY.get(mod, mod) for mod in normalize_hotkey(modifiers))


class ModifierSource(Protocol):
    """Reports which modifier keys are held right now."""

    def current_modifiers(self) -> Set[str]:
        ...


class QuartzModifierSource:
    """Read the global modifier state from Quartz event sources."""

    def __init__(self) -> None:
        try:
            from Quartz import (  # type: ignore
                CGEventSourceFlagsState,
                kCGEventFlagMaskAlternate,
                kCGEventFlagMaskCommand,
                kCGEventFlagMaskControl,
                kCGEventFlagMaskSecondaryFn,
                kCGEventFlagMaskShift,
                kCGEventSourceStateCombinedSessionState,
            )
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "The `pyobjc` packages are required for global hotkey support. Install flowdictate[mac]."
            ) from exc

        self._flags_state = CGEventSourceFlagsState
        self._state_id = kCGEventSourceStateCombinedSessionState
        self._masks = {
            "cmd": kCGEventFlagMaskCommand,
            "option": kCGEventFlagMaskAlternate,
            "ctrl": kCGEventFlagMaskControl,
            "shift": kCGEventFlagMaskShift,
            "fn": kCGEventFlagMaskSecondaryFn,
        }

    def current_modifiers(self) -> Set[str]:  # pragma: no cover - needs a window server
        flags = int(self._flags_state(self._state_id))
        return {name for name, mask in self._masks.items() if flags & int(mask)}


class Timer(Protocol):
    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


TimerFactory = Callable[[Callable[[], object], float], Timer]


def _rumps_timer(callback: Callable[[], object], interval: float) -> Timer:  # pragma: no cover
    import rumps  # type: ignore

    return rumps.Timer(lambda _sender: callback(), interval)


class HotkeyMonitor:
    """Poll the modifier state and report the rising and falling edge of the hotkey.

    ``on_press`` fires when every configured modifier becomes held and
    ``on_release`` when any of them is let go. Samples that repeat the
    previous state fire nothing.
    """

    def __init__(
        self,
        modifiers: Union[str, Iterable[str]],
        source: ModifierSource,
        on_press: Callable[[], None],
        on_release: Callable[[], None],
        interval: float = POLL_INTERVAL,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self._modifiers: FrozenSet[str] = frozenset(normalize_hotkey(modifiers))
        self._display = format_hotkey(self._modifiers)
        self._source = source
        self._on_press = on_press
        self._on_release = on_release
        self._interval = interval
        self._timer_factory = timer_factory or _rumps_timer
        self._timer: Optional[Timer] = None
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    @property
    def running(self) -> bool:
        return self._timer is not None

    @property
    def display(self) -> str:
        return self._display

    def poll(self) -> bool:
        """Sample the modifier state once and fire on a change. Returns the held state."""

        try:
            current = self._source.current_modifiers()
        except Exception:
            logging.exception("Failed to read modifier state")
            return self._held

        held = self._modifiers.issubset(current)
        if held == self._held:
            return held

        self._held = held
        if held:
            logging.debug("Hotkey %s held", self._display)
            self._fire(self._on_press)
        else:
            logging.debug("Hotkey %s released", self._display)
            self._fire(self._on_release)
        return held

    def start(self) -> None:
        if self._timer is not None:
            return
        self._held = False
        self._timer = self._timer_factory(self.poll, self._interval)
        self._timer.start()
        logging.info("Monitoring hotkey %s every %.0fms", self._display, self._interval * 1000)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
        self._held = False

    @staticmethod
    def _fire(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logging.exception("Hotkey callback failed")
