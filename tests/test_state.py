import pytest

from flowdictate.providers import Provider
from flowdictate.state import AppState


def test_recording_emits_only_on_change():
    state = AppState()
    changes = []
    state.subscribe(changes.append)

    state.recording = True
    state.recording = True
    state.recording = False

    assert changes == ["recording", "recording"]


def test_processing_scope_nests():
    state = AppState()
    changes = []
    state.subscribe(changes.append)

    with state.processing_scope():
        with state.processing_scope():
            assert state.processing
        assert state.processing
    assert not state.processing
    assert changes == ["processing", "processing"]


def test_processing_scope_clears_on_error():
    state = AppState()
    with pytest.raises(RuntimeError):
        with state.processing_scope():
            raise RuntimeError("boom")
    assert not state.processing


def test_unsubscribe_and_failing_observer():
    state = AppState()
    seen = []

    def broken(_name):
        raise ValueError("observer bug")

    state.subscribe(broken)
    unsubscribe = state.subscribe(seen.append)
    state.last_result = "Hello."
    unsubscribe()
    state.last_result = "Again."

    assert seen == ["last_result"]
    assert state.last_result == "Again."


def test_key_validity_per_provider():
    state = AppState()
    assert state.key_valid(Provider.OPENAI) is None
    state.set_key_valid(Provider.GROQ, True)
    assert state.key_valid(Provider.GROQ) is True
    assert state.key_valid(Provider.OPENAI) is None
