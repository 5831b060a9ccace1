import os
import sys
import types
from datetime import datetime, timedelta

import numpy as np
import pytest

from flowdictate import recorder
from flowdictate.recorder import AudioRecorder, purge_stale_recordings


class FakeStream:
    instances = []

    def __init__(self, samplerate, channels, dtype, callback):
        self.samplerate = samplerate
        self.channels = channels
        self.callback = callback
        self.started = False
        self.closed = False
        FakeStream.instances.append(self)

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


@pytest.fixture
def fake_audio(monkeypatch):
    FakeStream.instances = []
    written = []

    def write(path, data, samplerate):
        written.append((path, data, samplerate))
        path.write_bytes(b"RIFF")

    def encode(source, destination, samplerate, channels):
        assert source.exists()
        destination.write_bytes(b"aac")

    monkeypatch.setitem(sys.modules, "sounddevice", types.SimpleNamespace(InputStream=FakeStream))
    monkeypatch.setitem(sys.modules, "soundfile", types.SimpleNamespace(write=write))
    monkeypatch.setattr(recorder, "encode_aac", encode)
    return written


def test_purge_removes_only_old_recordings(tmp_path):
    now = datetime(2024, 5, 1, 12, 0)
    old = tmp_path / "recording_1.m4a"
    fresh = tmp_path / "recording_2.m4a"
    other = tmp_path / "notes.txt"
    for path in (old, fresh, other):
        path.write_bytes(b"x")

    two_hours_ago = (now - timedelta(hours=2)).timestamp()
    ten_minutes_ago = (now - timedelta(minutes=10)).timestamp()
    os.utime(old, (two_hours_ago, two_hours_ago))
    os.utime(fresh, (ten_minutes_ago, ten_minutes_ago))
    os.utime(other, (two_hours_ago, two_hours_ago))

    removed = purge_stale_recordings(tmp_path, now=now)

    assert removed == [old]
    assert not old.exists()
    assert fresh.exists()
    assert other.exists()


def test_purge_missing_directory(tmp_path):
    assert purge_stale_recordings(tmp_path / "missing") == []


def test_record_and_stop_produces_asset(tmp_path, fake_audio):
    rec = AudioRecorder(tmp_path / "recordings", samplerate=16000)

    assert rec.start() is True
    assert rec.is_recording
    stream = FakeStream.instances[0]
    assert stream.started
    stream.callback(np.zeros((160, 1), dtype="float32"), 160, None, None)
    stream.callback(np.ones((160, 1), dtype="float32"), 160, None, None)

    asset = rec.stop()

    assert asset is not None
    assert asset.path.name.startswith("recording_")
    assert asset.path.suffix == ".m4a"
    assert asset.path.read_bytes() == b"aac"
    assert asset.samplerate == 16000
    assert stream.closed
    assert not rec.is_recording
    _path, data, samplerate = fake_audio[0]
    assert data.shape == (320, 1)
    assert samplerate == 16000
    assert not asset.path.with_suffix(".wav").exists()


def test_start_twice_is_rejected(tmp_path, fake_audio):
    rec = AudioRecorder(tmp_path)
    assert rec.start() is True
    assert rec.start() is False
    assert len(FakeStream.instances) == 1


def test_stop_when_idle_returns_none(tmp_path, fake_audio):
    assert AudioRecorder(tmp_path).stop() is None


def test_stop_without_audio_returns_none(tmp_path, fake_audio):
    rec = AudioRecorder(tmp_path)
    rec.start()
    assert rec.stop() is None
    assert fake_audio == []


def test_permission_denied_does_not_open_stream(tmp_path, fake_audio):
    rec = AudioRecorder(tmp_path, permission_check=lambda: False)
    assert rec.start() is False
    assert FakeStream.instances == []


def test_encoding_failure_discards_recording(tmp_path, fake_audio, monkeypatch):
    def fail(source, destination, samplerate, channels):
        raise RuntimeError("ffmpeg missing")

    monkeypatch.setattr(recorder, "encode_aac", fail)
    rec = AudioRecorder(tmp_path)
    rec.start()
    FakeStream.instances[0].callback(np.zeros((10, 1), dtype="float32"), 10, None, None)

    assert rec.stop() is None
    assert list(tmp_path.glob("recording_*")) == []


def test_busy_device_fails_start(tmp_path, fake_audio, monkeypatch):
    def refuse(self):
        raise OSError("device busy")

    monkeypatch.setattr(FakeStream, "start", refuse)
    rec = AudioRecorder(tmp_path)

    assert rec.start() is False
    assert not rec.is_recording
    assert FakeStream.instances[0].closed
    assert rec.stop() is None
