import pytest

from flowdictate.hotkey import HotkeyMonitor, format_hotkey, normalize_hotkey


class FakeSource:
    def __init__(self, samples):
        self.samples = list(samples)

    def current_modifiers(self):
        sample = self.samples.pop(0)
        if isinstance(sample, Exception):
            raise sample
        return set(sample)


class FakeTimer:
    def __init__(self, callback, interval):
        self.callback = callback
        self.interval = interval
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True


def _monitor(samples, events, **kwargs):
    return HotkeyMonitor(
        ["shift", "cmd"],
        FakeSource(samples),
        on_press=lambda: events.append("start"),
        on_release=lambda: events.append("stop"),
        **kwargs,
    )


def test_fires_once_per_edge():
    events = []
    monitor = _monitor([set(), {"cmd", "shift"}, {"cmd", "shift"}, set()], events)

    for _ in range(4):
        monitor.poll()

    assert events == ["start", "stop"]
    assert not monitor.held


def test_extra_modifiers_still_hold():
    events = []
    monitor = _monitor([{"cmd", "shift", "option"}, {"cmd"}, {"shift"}], events)

    assert monitor.poll() is True
    assert monitor.poll() is False
    assert monitor.poll() is False
    assert events == ["start", "stop"]


def test_partial_combination_does_not_fire():
    events = []
    monitor = _monitor([{"cmd"}, {"shift"}, set()], events)
    for _ in range(3):
        monitor.poll()
    assert events == []


def test_source_failure_keeps_state():
    events = []
    monitor = _monitor([{"cmd", "shift"}, RuntimeError("no window server"), set()], events)

    monitor.poll()
    assert monitor.poll() is True
    monitor.poll()
    assert events == ["start", "stop"]


def test_callback_failure_does_not_break_polling():
    def explode():
        raise RuntimeError("boom")

    released = []
    monitor = HotkeyMonitor(
        "shift+cmd",
        FakeSource([{"cmd", "shift"}, set()]),
        on_press=explode,
        on_release=lambda: released.append(True),
    )
    monitor.poll()
    monitor.poll()
    assert released == [True]


def test_start_and_stop_use_timer():
    timers = []

    def factory(callback, interval):
        timer = FakeTimer(callback, interval)
        timers.append(timer)
        return timer

    events = []
    monitor = _monitor([{"cmd", "shift"}], events, interval=0.1, timer_factory=factory)
    monitor.start()
    monitor.start()

    assert len(timers) == 1
    assert timers[0].started
    assert timers[0].interval == 0.1
    assert monitor.running

    timers[0].callback()
    assert monitor.held

    monitor.stop()
    assert timers[0].stopped
    assert not monitor.running
    assert not monitor.held
    assert events == ["start"]


def test_normalize_hotkey():
    assert normalize_hotkey("cmd+shift") == ("shift", "cmd")
    assert normalize_hotkey(["Command", "alt"]) == ("option", "cmd")
    assert normalize_hotkey("⌃ + ⌥") == ("ctrl", "option")

    with pytest.raises(ValueError):
        normalize_hotkey("")
    with pytest.raises(ValueError):
        normalize_hotkey("cmd+space")


def test_format_hotkey():
    assert format_hotkey(["cmd", "shift"]) == "⇧ + ⌘"
    assert format_hotkey("fn") == "fn"
