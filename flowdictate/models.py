"""Dataclasses describing persistent and transient objects for flowdictate."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .providers import DictationError

DEFAULT_CONTEXT_PROMPT = (
    "Please enhance and improve this transcribed text while maintaining its "
    "original meaning and intent."
)
DEFAULT_HOTKEY = ["shift", "cmd"]


@dataclass(slots=True)
class Config:
    """User configuration stored on disk."""

    provider: str = "openai"
    openai_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    hotkey: List[str] = field(default_factory=lambda: list(DEFAULT_HOTKEY))
    context_prompt: str = DEFAULT_CONTEXT_PROMPT
    show_indicator: bool = True
    insert_destination: str = "clipboard"
    api_timeout: float = 30.0
    max_retries: int = 2


@dataclass(slots=True)
class AudioAsset:
    """A finalised recording waiting to be transcribed."""

    path: Path
    created_at: datetime
    samplerate: int = 44100
    channels: int = 1
    format: str = "aac"

    def exists(self) -> bool:
        return self.path.exists()

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)


@dataclass(slots=True)
class PipelineResult:
    """Outcome of one dictation pipeline run: text on success, error otherwise."""

    text: Optional[str] = None
    error: Optional["DictationError"] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.text is not None

    @property
    def description(self) -> str:
        if self.error is not None:
            return str(self.error)
        return self.text or ""
