import json
from datetime import datetime

import httpx
import pytest

from flowdictate.models import AudioAsset
from flowdictate.pipeline import DictationPipeline, strip_quotes
from flowdictate.providers import (
    InvalidResponseError,
    MissingCredentialError,
    NoSpeechError,
    Provider,
    ProviderError,
    RequestTimeoutError,
    create_config,
)
from flowdictate.state import AppState


def _chat(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)


@pytest.fixture
def asset(tmp_path):
    path = tmp_path / "recording_1700000000000.m4a"
    path.write_bytes(b"fake-aac")
    return AudioAsset(path=path, created_at=datetime(2024, 1, 1))


def _pipeline(handler, provider=Provider.OPENAI, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    kwargs.setdefault("sleep", lambda _delay: None)
    return DictationPipeline(create_config(provider), client=client, **kwargs)


def test_run_transcribes_enhances_and_publishes(asset):
    seen = []

    def handler(request):
        seen.append(request.url.path)
        assert request.headers["Authorization"] == "Bearer sk-test"
        if request.url.path.endswith("/audio/transcriptions"):
            return httpx.Response(200, json={"text": "hello   world"})
        payload = json.loads(request.content)
        assert "hello   world" in payload["messages"][-1]["content"]
        return _chat(json.dumps({"enhanced_text": "Hello, world."}))

    state = AppState()
    clipboard = Recorder()
    notifier = Recorder()
    pipeline = _pipeline(handler, state=state, clipboard=clipboard, notifier=notifier)

    result = pipeline.run(asset, "Be concise.", "sk-test")

    assert result.ok
    assert result.text == "Hello, world."
    assert seen == ["/v1/audio/transcriptions", "/v1/chat/completions"]
    assert clipboard.calls == [("Hello, world.",)]
    assert notifier.calls == [("FlowDictate", "Text copied to clipboard")]
    assert state.last_result == "Hello, world."
    assert not state.processing
    assert not asset.exists()


def test_groq_pipeline_strips_wrapping_quotes(asset):
    def handler(request):
        if request.url.path.endswith("/audio/transcriptions"):
            return httpx.Response(200, json={"text": "ship it", "segments": []})
        return _chat('  "Ship it."  ')

    result = _pipeline(handler, provider=Provider.GROQ).process(asset, "ctx", "gsk")
    assert result.text == "Ship it."
    assert asset.exists()


def test_missing_credential_makes_no_request(asset):
    def handler(request):
        raise AssertionError("no request expected")

    notifier = Recorder()
    result = _pipeline(handler, notifier=notifier).run(asset, "ctx", "")

    assert isinstance(result.error, MissingCredentialError)
    assert result.description == "API key is missing"
    assert notifier.calls == [("FlowDictate Error", "API key is missing")]
    assert not asset.exists()


def test_http_error_is_reported_without_retry(asset):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, text='{"error": "bad key"}')

    state = AppState()
    clipboard = Recorder()
    result = _pipeline(handler, state=state, clipboard=clipboard).run(asset, "ctx", "sk")

    assert isinstance(result.error, ProviderError)
    assert result.error.status_code == 401
    assert "bad key" in result.description
    assert len(calls) == 1
    assert clipboard.calls == []
    assert not state.processing
    assert not asset.exists()


def test_transport_errors_are_retried(asset):
    attempts = []
    delays = []

    def handler(request):
        attempts.append(request.url.path)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path.endswith("/audio/transcriptions"):
            return httpx.Response(200, json={"text": "retry me"})
        return _chat("Retry me.")

    pipeline = _pipeline(handler, max_retries=2, retry_backoff=0.5, sleep=delays.append)
    result = pipeline.process(asset, "ctx", "sk")

    assert result.text == "Retry me."
    assert delays == [0.5, 1.0]


def test_transport_error_after_retries(asset):
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    result = _pipeline(handler, max_retries=1).process(asset, "ctx", "sk")
    assert isinstance(result.error, InvalidResponseError)


def test_timeout_is_reported(asset):
    def handler(request):
        assert request.extensions["timeout"]["read"] == 5.0
        raise httpx.ReadTimeout("slow", request=request)

    state = AppState()
    result = _pipeline(handler, timeout=5.0, max_retries=0, state=state).process(asset, "ctx", "sk")

    assert isinstance(result.error, RequestTimeoutError)
    assert "5s" in result.description
    assert not state.processing


def test_empty_transcript_is_not_enhanced(asset):
    paths = []

    def handler(request):
        paths.append(request.url.path)
        return httpx.Response(200, json={"text": "   "})

    notifier = Recorder()
    result = _pipeline(handler, notifier=notifier).run(asset, "ctx", "sk")
    assert isinstance(result.error, NoSpeechError)
    assert notifier.calls == [("FlowDictate Error", "No speech detected")]
    assert paths == ["/v1/audio/transcriptions"]


def test_clipboard_failure_is_notified(asset):
    def handler(request):
        if request.url.path.endswith("/audio/transcriptions"):
            return httpx.Response(200, json={"text": "hi"})
        return _chat("Hi.")

    def broken_clipboard(_text):
        raise RuntimeError("pasteboard unavailable")

    notifier = Recorder()
    result = _pipeline(handler, clipboard=broken_clipboard, notifier=notifier).run(asset, "ctx", "sk")

    assert result.ok
    assert notifier.calls == [("FlowDictate Error", "Clipboard error: pasteboard unavailable")]


def test_processing_flag_is_set_during_requests(asset):
    state = AppState()
    observed = []

    def handler(request):
        observed.append(state.processing)
        if request.url.path.endswith("/audio/transcriptions"):
            return httpx.Response(200, json={"text": "hi"})
        return _chat("Hi.")

    _pipeline(handler, state=state).process(asset, "ctx", "sk")
    assert observed == [True, True]
    assert not state.processing


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('"hello"', "hello"),
        ("  'hello'  ", "hello"),
        ("“Hello there.”", "Hello there."),
        ('it said "hi"', 'it said "hi"'),
        ('""double""', '"double"'),
        ('"', '"'),
        ('""', '""'),
        ("plain", "plain"),
    ],
)
def test_strip_quotes(raw, expected):
    assert strip_quotes(raw) == expected
