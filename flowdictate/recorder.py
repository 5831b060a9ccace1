"""Microphone capture into AAC recordings."""

from __future__ import annotations

import logging
import subprocess
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional

import numpy as np

from .models import AudioAsset

RETENTION = timedelta(hours=1)
RECORDING_PREFIX = "recording_"
RECORDING_SUFFIX = ".m4a"
DEFAULT_SAMPLERATE = 44100

# AVAuthorizationStatus values
_AV_RESTRICTED = 1
_AV_DENIED = 2


def microphone_authorized() -> bool:
    """Return False only when macOS has refused microphone access.

    An undetermined status counts as allowed: the system prompts the user the
    first time capture starts.
    """

    try:
        from AVFoundation import AVCaptureDevice, AVMediaTypeAudio  # type: ignore
    except Exception as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "The `pyobjc` packages are required to check microphone access. Install flowdictate[mac]."
        ) from exc

    status = int(AVCaptureDevice.authorizationStatusForMediaType_(AVMediaTypeAudio))
    return status not in (_AV_RESTRICTED, _AV_DENIED)


def encode_aac(source: Path, destination: Path, samplerate: int, channels: int) -> None:
    """Encode ``source`` to an AAC ``.m4a`` file with ffmpeg."""

    cmd = [
        "ffmpeg",
        "-y",
        "-loglevel", "error",
        "-i", str(source),
        "-c:a", "aac",
        "-b:a", "128k",
        "-ar", str(samplerate),
        "-ac", str(channels),
        str(destination),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise RuntimeError("ffmpeg is required to encode recordings. Install it with `brew install ffmpeg`.") from exc
    if result.returncode != 0:
        raise RuntimeError(f"Failed to encode audio: {result.stderr.strip()}")


def purge_stale_recordings(
    directory: Path,
    max_age: timedelta = RETENTION,
    now: Optional[datetime] = None,
) -> List[Path]:
    """Delete recordings left behind by pipelines that never finished."""

    if not directory.exists():
        return []

    cutoff = ((now or datetime.now()) - max_age).timestamp()
    removed: List[Path] = []
    for path in sorted(directory.glob(f"{RECORDING_PREFIX}*")):
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                removed.append(path)
                logging.info("Removed stale recording %s", path.name)
        except OSError as exc:
            logging.warning("Failed to remove stale recording %s: %s", path, exc)
    return removed


class AudioRecorder:
    """Stream audio from the default microphone into an AAC file."""

    def __init__(
        self,
        directory: Path,
        samplerate: int = DEFAULT_SAMPLERATE,
        channels: int = 1,
        permission_check: Optional[Callable[[], bool]] = None,
    ) -> None:
        try:
            import sounddevice as sd  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "The `sounddevice` package is required for recording. Install flowdictate[mac]."
            ) from exc

        self._sd = sd
        self._directory = Path(directory)
        self._samplerate = samplerate
        self._channels = channels
        self._permission_check = permission_check
        self._stream = None
        self._frames: list[np.ndarray] = []
        self._frames_lock = threading.Lock()
        self._path: Optional[Path] = None
        self._created_at: Optional[datetime] = None

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    def start(self) -> bool:
        if self._stream is not None:
            logging.warning("Recording is already active")
            return False

        if self._permission_check is not None and not self._permission_check():
            logging.warning("Microphone access has not been granted")
            return False

        created_at = datetime.now()
        path = self._directory / f"{RECORDING_PREFIX}{int(created_at.timestamp() * 1000)}{RECORDING_SUFFIX}"

        with self._frames_lock:
            self._frames = []
        stream = None
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            stream = self._sd.InputStream(
                samplerate=self._samplerate,
                channels=self._channels,
                dtype="float32",
                callback=self._callback,
            )
            stream.start()
        except Exception as exc:
            logging.error("Failed to start recording: %s", exc)
            if stream is not None:
                try:
                    stream.close()
                except Exception as close_exc:
                    logging.debug("Failed to close audio stream: %s", close_exc)
            return False

        self._stream = stream
        self._path = path
        self._created_at = created_at
        logging.info("Recording to %s", path)
        return True

    def stop(self) -> Optional[AudioAsset]:
        if self._stream is None:
            logging.debug("stop() called while not recording")
            return None

        stream, self._stream = self._stream, None
        path, self._path = self._path, None
        created_at, self._created_at = self._created_at, None

        try:
            stream.stop()
            stream.close()
        except Exception as exc:
            logging.warning("Error stopping audio stream: %s", exc)

        with self._frames_lock:
            frames, self._frames = self._frames, []
        if not frames or path is None or created_at is None:
            logging.warning("No audio was captured")
            return None

        audio = np.concatenate(frames, axis=0)
        try:
            self._write(path, audio)
        except (OSError, RuntimeError) as exc:
            logging.error("Failed to save recording: %s", exc)
            path.unlink(missing_ok=True)
            return None

        logging.info(
            "Saved %.1fs recording to %s",
            len(audio) / float(self._samplerate),
            path.name,
        )
        return AudioAsset(
            path=path,
            created_at=created_at,
            samplerate=self._samplerate,
            channels=self._channels,
        )

    def _write(self, path: Path, audio: np.ndarray) -> None:
        try:
            import soundfile as sf  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "The `soundfile` package is required to write audio files. Install flowdictate[mac]."
            ) from exc

        wav_path = path.with_suffix(".wav")
        try:
            sf.write(wav_path, audio, self._samplerate)
            encode_aac(wav_path, path, self._samplerate, self._channels)
        finally:
            wav_path.unlink(missing_ok=True)

    def _callback(self, indata, frames, time, status) -> None:  # type: ignore[override]
        if status:
            logging.debug("Recorder status: %s", status)
        with self._frames_lock:
            self._frames.append(indata.copy())
